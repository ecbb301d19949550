from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from .common import GeoBoundingBox, Site


class LayerRole(str, Enum):
    RGB = "rgb"
    LST = "lst"
    LAND_MASK = "land_mask"
    SITE_MARKERS = "site_markers"


# Bottom to top.
LAYER_ORDER: tuple[LayerRole, ...] = (
    LayerRole.RGB,
    LayerRole.LST,
    LayerRole.LAND_MASK,
    LayerRole.SITE_MARKERS,
)


class RangeSource(str, Enum):
    STATISTICS = "statistics"
    FALLBACK = "fallback"
    MANUAL = "manual"


class Reducer(str, Enum):
    PERCENTILE = "percentile"
    MEDIAN_STDDEV = "median_stddev"
    FIRST = "first"


class NoticeKind(str, Enum):
    NO_DATA = "no-data"
    STATISTICS_UNAVAILABLE = "statistics-unavailable"
    REQUEST_FAILED = "request-failed"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    message: str


@dataclass(frozen=True)
class VisualizationParameters:
    lst_range: tuple[float, float]
    rgb_min: tuple[float, float, float]
    rgb_max: tuple[float, float, float]
    lst_source: RangeSource = RangeSource.STATISTICS
    rgb_source: RangeSource = RangeSource.STATISTICS

    def with_lst_range(self, low: float, high: float, source: RangeSource) -> "VisualizationParameters":
        return replace(self, lst_range=(low, high), lst_source=source)


@dataclass(frozen=True)
class LayerStyle:
    """Display parameters applied by the renderer to one layer."""

    min: tuple[float, ...] = ()
    max: tuple[float, ...] = ()
    palette: tuple[str, ...] = ()
    bands: tuple[str, ...] = ()
    color: Optional[str] = None

    def as_vis_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if self.bands:
            params["bands"] = list(self.bands)
        if self.min:
            params["min"] = list(self.min) if len(self.min) > 1 else self.min[0]
        if self.max:
            params["max"] = list(self.max) if len(self.max) > 1 else self.max[0]
        if self.palette:
            params["palette"] = list(self.palette)
        if self.color is not None:
            params["color"] = self.color
        return params


@dataclass(frozen=True)
class Layer:
    role: LayerRole
    name: str
    data: Any
    style: LayerStyle
    z_order: int
    resample: Optional[str] = None

    def restyled(self, style: LayerStyle) -> "Layer":
        return replace(self, style=style)


@dataclass(frozen=True)
class Scene:
    """Per-date data references produced by a compute engine.

    ``lst_statistics`` is water-masked and only feeds the range statistics;
    ``lst_display`` is unmasked and is what the LST layer renders.
    """

    date: str
    lst_statistics: Any
    lst_display: Any
    lst_probe: Any
    rgb: Any
    water_mask: Any
    land_mask: Any


@dataclass(frozen=True)
class ReductionRequest:
    image: Any
    geometry: GeoBoundingBox
    reducer: Reducer
    bands: tuple[str, ...]
    scale: int
    max_pixels: float = 1e9
    percentiles: tuple[int, ...] = ()


@dataclass(frozen=True)
class NavigationState:
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    zoom: Optional[int] = None
    date: Optional[str] = None

    @property
    def has_session(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class AnalysisContext:
    """Per-session navigation state; ``date_list`` is fixed once resolved."""

    site: Site
    area_of_interest: GeoBoundingBox
    zoom: int
    target_date: Optional[str] = None
    date_list: tuple[str, ...] = ()
    current_index: int = 0

    @property
    def count(self) -> int:
        return len(self.date_list)

    @property
    def current_date(self) -> Optional[str]:
        if not self.date_list:
            return None
        return self.date_list[self.current_index]

    def clamp(self, index: int) -> int:
        if not self.date_list:
            return 0
        return max(0, min(len(self.date_list) - 1, int(index)))


@dataclass(frozen=True)
class Viewport:
    lon: float
    lat: float
    zoom: int


@dataclass(frozen=True)
class LegendState:
    title: str
    min_text: str
    max_text: str
    mid_text: str
    palette: tuple[str, ...]


@dataclass(frozen=True)
class InspectorState:
    visible: bool = False
    text: str = ""
    loading: bool = False


@dataclass(frozen=True)
class ViewState:
    status: str
    site_name: Optional[str] = None
    date_label: str = ""
    image_count_label: str = ""
    slider_max: int = 0
    slider_value: int = 0
    back_enabled: bool = False
    forward_enabled: bool = False
    loading: bool = False
    layers: tuple[Layer, ...] = ()
    layer_version: int = 0
    legend: Optional[LegendState] = None
    inspector: InspectorState = field(default_factory=InspectorState)
    viewport: Optional[Viewport] = None
    area_of_interest: Optional[GeoBoundingBox] = None
    error: Optional[str] = None
