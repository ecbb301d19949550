from .common import CUSTOM_SITE_NAME, SITE_CATALOG, GeoBoundingBox, Site, find_site
from .config import DEFAULT_CONFIG, ThermalConfig
from .dates import DateIndexResolver
from .engine import ComputeEngine
from .errors import (
    ComputeEngineError,
    InvalidLegendInput,
    InvalidTargetDate,
    NoDataError,
    RequestTimeout,
    StaleResponse,
    StatisticsUnavailable,
    ThermalViewerError,
)
from .events import EventKind, UiEvent
from .interface import (
    Layer,
    LayerRole,
    NavigationState,
    Notice,
    NoticeKind,
    RangeSource,
    Scene,
    ViewState,
    VisualizationParameters,
)
from .layers import LayerCompositor, LayerStack
from .legend import LegendController, colorbar_image
from .navigation import ImageNavigationController, NavigationStatus
from .stats import VisualizationStatsEngine
from .url_state import QueryStringStore, URLStateSync

__all__ = [
    'CUSTOM_SITE_NAME',
    'SITE_CATALOG',
    'GeoBoundingBox',
    'Site',
    'find_site',
    'DEFAULT_CONFIG',
    'ThermalConfig',
    'DateIndexResolver',
    'ComputeEngine',
    'ComputeEngineError',
    'InvalidLegendInput',
    'InvalidTargetDate',
    'NoDataError',
    'RequestTimeout',
    'StaleResponse',
    'StatisticsUnavailable',
    'ThermalViewerError',
    'EventKind',
    'UiEvent',
    'Layer',
    'LayerRole',
    'NavigationState',
    'Notice',
    'NoticeKind',
    'RangeSource',
    'Scene',
    'ViewState',
    'VisualizationParameters',
    'LayerCompositor',
    'LayerStack',
    'LegendController',
    'colorbar_image',
    'ImageNavigationController',
    'NavigationStatus',
    'VisualizationStatsEngine',
    'QueryStringStore',
    'URLStateSync',
]
