"""Data-driven display ranges for the LST and true-color layers."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from .common import GeoBoundingBox
from .config import DEFAULT_CONFIG, LST_BAND, RGB_BANDS, ThermalConfig
from .engine import ComputeEngine, ReductionResult
from .errors import ComputeEngineError, StatisticsUnavailable
from .interface import (
    Notice,
    NoticeKind,
    RangeSource,
    Reducer,
    ReductionRequest,
    Scene,
    VisualizationParameters,
)

LOGGER = logging.getLogger(__name__)

LST_UNAVAILABLE_MESSAGE = (
    "Could not compute statistics for the image. It might be fully clouded. "
    "Using default LST visualization."
)
RGB_UNAVAILABLE_MESSAGE = (
    "Could not compute RGB statistics for the image. Using default RGB visualization."
)


@dataclass(frozen=True)
class StatisticsOutcome:
    parameters: VisualizationParameters
    notices: Tuple[Notice, ...] = ()


class VisualizationStatsEngine:
    def __init__(self, config: ThermalConfig = DEFAULT_CONFIG) -> None:
        self._config = config

    def requests_for(self, scene: Scene, aoi: GeoBoundingBox) -> Tuple[ReductionRequest, ReductionRequest]:
        cfg = self._config
        lst_request = ReductionRequest(
            image=scene.lst_statistics,
            geometry=aoi,
            reducer=Reducer.PERCENTILE,
            bands=(LST_BAND,),
            scale=cfg.lst_scale_m,
            max_pixels=cfg.max_pixels,
            percentiles=(cfg.lst_low_percentile, cfg.lst_high_percentile),
        )
        rgb_request = ReductionRequest(
            image=scene.rgb,
            geometry=aoi,
            reducer=Reducer.MEDIAN_STDDEV,
            bands=RGB_BANDS,
            scale=cfg.rgb_scale_m,
            max_pixels=cfg.max_pixels,
        )
        return lst_request, rgb_request

    def compute(self, engine: ComputeEngine, scene: Scene, aoi: GeoBoundingBox) -> StatisticsOutcome:
        """Run both reductions in one engine call and derive the display ranges."""
        requests = self.requests_for(scene, aoi)
        try:
            results: Sequence[ReductionResult] = engine.reduce_regions(list(requests))
        except ComputeEngineError as exc:
            LOGGER.warning("Statistics request failed for %s: %s", scene.date, exc)
            results = (None, None)
        return self.interpret(results)

    def interpret(self, results: Optional[Sequence[ReductionResult]]) -> StatisticsOutcome:
        results = list(results or ())
        lst_stats = results[0] if len(results) > 0 else None
        rgb_stats = results[1] if len(results) > 1 else None
        notices: List[Notice] = []

        try:
            lst_range = self.lst_range(lst_stats)
            lst_source = RangeSource.STATISTICS
        except StatisticsUnavailable as exc:
            LOGGER.warning("%s (%s)", LST_UNAVAILABLE_MESSAGE, exc)
            notices.append(Notice(NoticeKind.STATISTICS_UNAVAILABLE, LST_UNAVAILABLE_MESSAGE))
            lst_range = self._config.default_lst_range
            lst_source = RangeSource.FALLBACK

        try:
            rgb_min, rgb_max = self.rgb_range(rgb_stats)
            rgb_source = RangeSource.STATISTICS
        except StatisticsUnavailable as exc:
            LOGGER.warning("%s (%s)", RGB_UNAVAILABLE_MESSAGE, exc)
            notices.append(Notice(NoticeKind.STATISTICS_UNAVAILABLE, RGB_UNAVAILABLE_MESSAGE))
            rgb_min, rgb_max = self._config.default_rgb_range
            rgb_source = RangeSource.FALLBACK

        parameters = VisualizationParameters(
            lst_range=lst_range,
            rgb_min=rgb_min,
            rgb_max=rgb_max,
            lst_source=lst_source,
            rgb_source=rgb_source,
        )
        return StatisticsOutcome(parameters=parameters, notices=tuple(notices))

    def lst_range(self, stats: Optional[Mapping[str, Any]]) -> Tuple[float, float]:
        cfg = self._config
        low_key = f"{LST_BAND}_p{cfg.lst_low_percentile}"
        high_key = f"{LST_BAND}_p{cfg.lst_high_percentile}"
        low = _finite(stats, low_key)
        high = _finite(stats, high_key)
        if low >= high:
            raise StatisticsUnavailable(f"degenerate LST range {low}..{high}")
        return (low, high)

    def rgb_range(
        self, stats: Optional[Mapping[str, Any]]
    ) -> Tuple[Tuple[float, float, float], Tuple[float, float, float]]:
        factor = self._config.rgb_stddev_factor
        lows: List[float] = []
        highs: List[float] = []
        for band in RGB_BANDS:
            median = _finite(stats, f"{band}_median")
            spread = _finite(stats, f"{band}_stdDev")
            low = median - factor * spread
            high = median + factor * spread
            if low >= high:
                raise StatisticsUnavailable(f"degenerate {band} range {low}..{high}")
            lows.append(low)
            highs.append(high)
        return (lows[0], lows[1], lows[2]), (highs[0], highs[1], highs[2])


def _finite(stats: Optional[Mapping[str, Any]], key: str) -> float:
    if not stats:
        raise StatisticsUnavailable("no statistics returned")
    value = stats.get(key)
    if value is None:
        raise StatisticsUnavailable(f"{key} is missing")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise StatisticsUnavailable(f"{key} is not numeric: {value!r}") from exc
    if not math.isfinite(number):
        raise StatisticsUnavailable(f"{key} is not finite")
    return number
