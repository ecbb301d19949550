from __future__ import annotations

import math

import pytest

from thermal.common import find_site
from thermal.config import DEFAULT_CONFIG
from thermal.errors import ComputeEngineError, StatisticsUnavailable
from thermal.interface import NoticeKind, RangeSource, Reducer
from thermal.stats import LST_UNAVAILABLE_MESSAGE, RGB_UNAVAILABLE_MESSAGE, VisualizationStatsEngine

from tests.fakes import GOOD_LST_STATS, GOOD_RGB_STATS, ScriptedEngine

GREENIDGE = find_site("Greenidge Generation")
AOI = GREENIDGE.area_of_interest(1.0, 0.5)


@pytest.fixture
def stats() -> VisualizationStatsEngine:
    return VisualizationStatsEngine()


def test_requests_describe_both_reductions(stats: VisualizationStatsEngine) -> None:
    scene = ScriptedEngine().load_scene(GREENIDGE, AOI, "2023-06-01")
    lst, rgb = stats.requests_for(scene, AOI)

    assert lst.image == "lst-statistics:2023-06-01"
    assert lst.reducer is Reducer.PERCENTILE
    assert lst.percentiles == (1, 99)
    assert lst.bands == ("LST",)
    assert lst.scale == 90
    assert lst.max_pixels == 1e9
    assert lst.geometry == AOI

    assert rgb.image == "rgb:2023-06-01"
    assert rgb.reducer is Reducer.MEDIAN_STDDEV
    assert rgb.bands == ("SR_B4", "SR_B3", "SR_B2")
    assert rgb.scale == 30


def test_interpret_uses_statistics(stats: VisualizationStatsEngine) -> None:
    outcome = stats.interpret([GOOD_LST_STATS, GOOD_RGB_STATS])
    params = outcome.parameters
    assert params.lst_range == (55.5, 88.25)
    assert params.rgb_min == pytest.approx((0.05, 0.05, 0.05))
    assert params.rgb_max == pytest.approx((0.15, 0.15, 0.15))
    assert params.lst_source is RangeSource.STATISTICS
    assert params.rgb_source is RangeSource.STATISTICS
    assert outcome.notices == ()


@pytest.mark.parametrize(
    "lst_stats",
    [
        None,
        {},
        {"LST_p1": None, "LST_p99": None},
        {"LST_p1": 60.0},
        {"LST_p1": math.nan, "LST_p99": 80.0},
        {"LST_p1": 80.0, "LST_p99": 60.0},
        {"LST_p1": 70.0, "LST_p99": 70.0},
        {"LST_p1": "warm", "LST_p99": 80.0},
    ],
)
def test_lst_fallback(stats: VisualizationStatsEngine, lst_stats) -> None:
    outcome = stats.interpret([lst_stats, GOOD_RGB_STATS])
    assert outcome.parameters.lst_range == (50.0, 90.0)
    assert outcome.parameters.lst_source is RangeSource.FALLBACK
    assert outcome.parameters.rgb_source is RangeSource.STATISTICS
    assert [notice.message for notice in outcome.notices] == [LST_UNAVAILABLE_MESSAGE]
    assert outcome.notices[0].kind is NoticeKind.STATISTICS_UNAVAILABLE


def test_rgb_fallback_is_independent(stats: VisualizationStatsEngine) -> None:
    rgb_stats = dict(GOOD_RGB_STATS, SR_B3_stdDev=None)
    outcome = stats.interpret([GOOD_LST_STATS, rgb_stats])
    params = outcome.parameters
    assert params.lst_source is RangeSource.STATISTICS
    assert params.rgb_min == (-0.1, -0.1, -0.1)
    assert params.rgb_max == (0.3, 0.3, 0.3)
    assert [notice.message for notice in outcome.notices] == [RGB_UNAVAILABLE_MESSAGE]


def test_zero_spread_rgb_falls_back(stats: VisualizationStatsEngine) -> None:
    rgb_stats = dict(GOOD_RGB_STATS, SR_B4_stdDev=0.0)
    outcome = stats.interpret([GOOD_LST_STATS, rgb_stats])
    assert outcome.parameters.rgb_source is RangeSource.FALLBACK


def test_compute_batches_one_engine_call(stats: VisualizationStatsEngine) -> None:
    engine = ScriptedEngine()
    scene = engine.load_scene(GREENIDGE, AOI, "2023-06-01")
    outcome = stats.compute(engine, scene, AOI)
    assert [call for call in engine.calls if call[0] == "reduce_regions"] == [("reduce_regions", "2023-06-01", 2)]
    assert outcome.parameters.lst_range == (55.5, 88.25)


def test_compute_engine_error_falls_back_for_both(stats: VisualizationStatsEngine) -> None:
    engine = ScriptedEngine(stats={"2023-06-01": ComputeEngineError("boom")})
    scene = engine.load_scene(GREENIDGE, AOI, "2023-06-01")
    outcome = stats.compute(engine, scene, AOI)
    assert outcome.parameters.lst_source is RangeSource.FALLBACK
    assert outcome.parameters.rgb_source is RangeSource.FALLBACK
    assert len(outcome.notices) == 2


def test_lst_range_raises_for_missing_values(stats: VisualizationStatsEngine) -> None:
    with pytest.raises(StatisticsUnavailable):
        stats.lst_range({"LST_p1": None, "LST_p99": 80.0})


def test_kelvin_to_fahrenheit() -> None:
    assert DEFAULT_CONFIG.kelvin_to_display(273.15) == pytest.approx(32.0)
    assert DEFAULT_CONFIG.kelvin_to_display(300.0) == pytest.approx(80.33)
