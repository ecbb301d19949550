from __future__ import annotations

from typing import List, Optional

import pytest

from thermal.common import CUSTOM_SITE_NAME, SITE_CATALOG, find_site
from thermal.errors import ComputeEngineError
from thermal.events import EventKind, UiEvent
from thermal.interface import LAYER_ORDER, LayerRole, Notice, NoticeKind, RangeSource
from thermal.navigation import (
    NO_DATA_MESSAGE,
    NO_PROBE_VALUE_TEXT,
    ImageNavigationController,
    NavigationStatus,
)
from thermal.stats import LST_UNAVAILABLE_MESSAGE, RGB_UNAVAILABLE_MESSAGE
from thermal.url_state import QueryStringStore, URLStateSync

from tests.fakes import GOOD_RGB_STATS, FakeClock, ManualExecutor, ScriptedEngine, settle

GREENIDGE = find_site("Greenidge Generation")


class Harness:
    def __init__(self, engine: ScriptedEngine, store: Optional[QueryStringStore] = None) -> None:
        self.engine = engine
        self.executor = ManualExecutor()
        self.clock = FakeClock()
        self.store = store if store is not None else QueryStringStore()
        self.controller = ImageNavigationController(
            engine,
            url_sync=URLStateSync(self.store),
            executor=self.executor,
            clock=self.clock,
        )

    def settle(self) -> None:
        settle(self.controller, self.executor)

    def notices(self) -> List[Notice]:
        drained = []
        while True:
            notice = self.controller.pop_notice()
            if notice is None:
                return drained
            drained.append(notice)


@pytest.fixture
def engine() -> ScriptedEngine:
    return ScriptedEngine()


@pytest.fixture
def harness(engine: ScriptedEngine) -> Harness:
    return Harness(engine)


def test_select_resolves_nearest_date_and_displays(harness: Harness) -> None:
    controller = harness.controller
    controller.select(GREENIDGE, target_date="2023-06-20")
    assert controller.status is NavigationStatus.LOADING
    assert controller.view_state().loading

    harness.settle()

    assert controller.status is NavigationStatus.DISPLAYED
    assert controller.context.current_index == 1
    assert controller.current_scene.date == "2023-06-17"
    view = controller.view_state()
    assert view.date_label == "Selected Date: 2023-06-17"
    assert view.image_count_label == "Image 2 of 3"
    assert view.slider_max == 2
    assert view.slider_value == 1
    assert view.back_enabled and view.forward_enabled
    assert not view.loading
    assert [layer.role for layer in view.layers] == list(LAYER_ORDER)
    assert view.layers[1].data == "lst-display:2023-06-17"
    assert view.legend is not None and view.legend.min_text == "55.50"


def test_select_writes_location_and_date(harness: Harness) -> None:
    harness.controller.select(GREENIDGE, target_date="2023-06-20")
    harness.settle()
    store = harness.store
    assert store.get("latitude") == "42.683010"
    assert store.get("longitude") == "-76.943681"
    assert store.get("zoom") == "14"
    assert store.get("date") == "2023-06-17"
    viewport = harness.controller.viewport
    assert (viewport.lon, viewport.lat, viewport.zoom) == (GREENIDGE.lon, GREENIDGE.lat, 14)


def test_date_list_uses_catalog_range(harness: Harness) -> None:
    harness.controller.select(GREENIDGE)
    harness.settle()
    assert ("list_dates", GREENIDGE.name, "2000-01-01", "2026-12-31") in harness.engine.calls


def test_navigation_buttons_follow_index(harness: Harness) -> None:
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.settle()

    view = controller.view_state()
    assert view.image_count_label == "Image 1 of 3"
    assert not view.back_enabled
    assert view.forward_enabled
    assert controller.back() is False
    assert harness.executor.runnable() == []

    assert controller.slide(99) is True
    harness.settle()
    view = controller.view_state()
    assert controller.context.current_index == 2
    assert view.back_enabled and not view.forward_enabled
    assert controller.forward() is False

    assert controller.back() is True
    harness.settle()
    assert controller.current_scene.date == "2023-06-17"


def test_slide_to_current_index_issues_nothing(harness: Harness) -> None:
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.settle()
    seq = controller.sequence
    assert controller.slide(0) is False
    assert controller.sequence == seq


def test_late_response_for_older_step_is_discarded(harness: Harness) -> None:
    controller = harness.controller
    executor = harness.executor
    controller.select(GREENIDGE)
    harness.settle()

    controller.forward()
    d2 = executor.find("load_scene", "2023-06-17")
    d2.start()
    controller.forward()
    d3 = executor.find("load_scene", "2023-07-03")

    d3.finish()
    controller.poll()
    executor.named("compute")[0].finish()
    controller.poll()
    assert controller.current_scene.date == "2023-07-03"

    d2.finish()
    controller.poll()
    harness.settle()

    assert controller.current_scene.date == "2023-07-03"
    assert controller.context.current_index == 2
    assert ("reduce_regions", "2023-06-17", 2) not in harness.engine.calls


def test_superseded_queued_work_is_cancelled(harness: Harness) -> None:
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.settle()

    controller.forward()
    queued = harness.executor.find("load_scene", "2023-06-17")
    controller.forward()

    assert queued.future.cancelled()
    harness.settle()
    assert ("load_scene", "2023-06-17") not in harness.engine.calls
    assert controller.current_scene.date == "2023-07-03"


def test_reset_discards_in_flight_responses(harness: Harness) -> None:
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.settle()

    controller.forward()
    pending = harness.executor.find("load_scene", "2023-06-17")
    pending.start()
    controller.reset()
    pending.finish()
    controller.poll()
    harness.settle()

    assert controller.status is NavigationStatus.IDLE
    assert controller.context is None
    assert controller.current_scene is None
    assert controller.legend.state() is None
    assert [layer.role for layer in controller.layers.layers] == [LayerRole.SITE_MARKERS]
    view = controller.view_state()
    assert view.date_label == ""
    assert view.viewport.zoom == 7
    for key in ("latitude", "longitude", "zoom", "date"):
        assert harness.store.get(key) is None


def test_reset_during_date_list_keeps_idle(harness: Harness) -> None:
    controller = harness.controller
    controller.select(GREENIDGE)
    job = harness.executor.named("fetch_dates")[0]
    job.start()
    controller.reset()
    job.finish()
    controller.poll()
    assert controller.status is NavigationStatus.IDLE
    assert harness.executor.runnable() == []


def test_null_lst_statistics_fall_back_with_one_notice(engine: ScriptedEngine) -> None:
    engine.stats["2023-06-01"] = [{"LST_p1": None, "LST_p99": None}, GOOD_RGB_STATS]
    harness = Harness(engine)
    harness.controller.select(GREENIDGE)
    harness.settle()

    params = harness.controller.visualization
    assert params.lst_range == (50.0, 90.0)
    assert params.lst_source is RangeSource.FALLBACK
    assert params.rgb_source is RangeSource.STATISTICS
    notices = harness.notices()
    assert notices == [Notice(NoticeKind.STATISTICS_UNAVAILABLE, LST_UNAVAILABLE_MESSAGE)]
    legend = harness.controller.legend.state()
    assert (legend.min_text, legend.mid_text, legend.max_text) == ("50.00", "70.00", "90.00")


def test_statistics_engine_error_falls_back_for_both_sets(engine: ScriptedEngine) -> None:
    engine.stats["2023-06-01"] = ComputeEngineError("quota exceeded")
    harness = Harness(engine)
    harness.controller.select(GREENIDGE)
    harness.settle()

    params = harness.controller.visualization
    assert params.lst_range == (50.0, 90.0)
    assert params.rgb_min == (-0.1, -0.1, -0.1)
    assert params.rgb_max == (0.3, 0.3, 0.3)
    assert [notice.message for notice in harness.notices()] == [
        LST_UNAVAILABLE_MESSAGE,
        RGB_UNAVAILABLE_MESSAGE,
    ]
    assert harness.controller.status is NavigationStatus.DISPLAYED


def test_discarded_step_emits_no_notice(engine: ScriptedEngine) -> None:
    engine.stats["2023-06-17"] = [None, None]
    harness = Harness(engine)
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.settle()
    harness.notices()

    controller.forward()
    image = harness.executor.find("load_scene", "2023-06-17")
    image.finish()
    controller.poll()
    stats_job = harness.executor.named("compute")[0]
    stats_job.start()
    controller.forward()
    stats_job.finish()
    harness.settle()

    assert controller.current_scene.date == "2023-07-03"
    assert harness.notices() == []


def test_empty_catalog_is_an_error_state() -> None:
    harness = Harness(ScriptedEngine(dates=()))
    harness.controller.select(GREENIDGE)
    harness.settle()

    controller = harness.controller
    assert controller.status is NavigationStatus.ERROR
    assert controller.view_state().error == NO_DATA_MESSAGE
    assert harness.notices() == [Notice(NoticeKind.NO_DATA, NO_DATA_MESSAGE)]
    assert controller.back() is False and controller.forward() is False


def test_date_list_failure_reports_request_failed() -> None:
    harness = Harness(ScriptedEngine(list_error=ComputeEngineError("backend down")))
    harness.controller.select(GREENIDGE)
    harness.settle()

    assert harness.controller.status is NavigationStatus.ERROR
    notices = harness.notices()
    assert len(notices) == 1
    assert notices[0].kind is NoticeKind.REQUEST_FAILED
    assert "backend down" in notices[0].message


def test_failed_step_keeps_previous_display(engine: ScriptedEngine) -> None:
    engine.scene_errors["2023-06-17"] = ComputeEngineError("tile error")
    harness = Harness(engine)
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.settle()
    harness.notices()

    controller.forward()
    harness.settle()

    assert controller.current_scene.date == "2023-06-01"
    assert controller.context.current_index == 0
    assert harness.store.get("date") == "2023-06-01"
    assert not controller.view_state().loading
    assert [notice.kind for notice in harness.notices()] == [NoticeKind.REQUEST_FAILED]


def test_step_timeout_keeps_display_and_drops_late_arrival(harness: Harness) -> None:
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.settle()
    harness.notices()
    seq = controller.sequence

    controller.forward()
    slow = harness.executor.find("load_scene", "2023-06-17")
    slow.start()
    harness.clock.advance(121)
    assert controller.poll() is True

    assert controller.sequence > seq + 1
    assert controller.context.current_index == 0
    assert [notice.kind for notice in harness.notices()] == [NoticeKind.TIMEOUT]

    slow.finish()
    harness.settle()
    assert controller.current_scene.date == "2023-06-01"
    assert ("reduce_regions", "2023-06-17", 2) not in harness.engine.calls


def test_request_within_timeout_is_kept(harness: Harness) -> None:
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.clock.advance(60)
    controller.poll()
    assert controller.status is NavigationStatus.LOADING
    harness.settle()
    assert controller.status is NavigationStatus.DISPLAYED


def test_date_list_timeout_is_an_error(harness: Harness) -> None:
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.clock.advance(500)
    controller.poll()

    assert controller.status is NavigationStatus.ERROR
    assert [notice.kind for notice in harness.notices()] == [NoticeKind.TIMEOUT]
    harness.settle()
    assert controller.status is NavigationStatus.ERROR


def test_legend_edit_restyles_without_refetch(harness: Harness) -> None:
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.settle()
    seq = controller.sequence
    before = controller.layers.get(LayerRole.LST)

    assert controller.edit_legend("40", "100") is True

    after = controller.layers.get(LayerRole.LST)
    assert after.style.min == (40.0,)
    assert after.style.max == (100.0,)
    assert after.data is before.data
    assert controller.visualization.lst_range == (40.0, 100.0)
    assert controller.visualization.lst_source is RangeSource.MANUAL
    assert controller.legend.state().mid_text == "70.00"
    assert controller.sequence == seq
    assert harness.executor.runnable() == []


@pytest.mark.parametrize("low, high", [("abc", "100"), ("90", "40"), ("50", "50"), ("", "")])
def test_invalid_legend_edit_is_ignored(harness: Harness, low: str, high: str) -> None:
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.settle()
    version = controller.layers.version

    assert controller.edit_legend(low, high) is False

    assert controller.visualization.lst_range == (55.5, 88.25)
    assert controller.layers.version == version
    assert controller.legend.state().min_text == "55.50"


def test_legend_edit_before_display_is_ignored(harness: Harness) -> None:
    harness.controller.select(GREENIDGE)
    assert harness.controller.edit_legend("40", "100") is False


def test_inspector_probes_masked_temperature(engine: ScriptedEngine) -> None:
    engine.samples[(-76.9, 42.7)] = 71.234
    harness = Harness(engine)
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.settle()

    controller.click(-76.9, 42.7)
    inspector = controller.view_state().inspector
    assert inspector.visible and inspector.loading and inspector.text == "Loading..."

    harness.settle()
    assert controller.view_state().inspector.text == "Temperature: 71.23 °F"
    assert ("sample", "lst-probe:2023-06-01", -76.9, 42.7, "LST", 90) in engine.calls

    controller.click(-76.5, 42.1)
    harness.settle()
    assert controller.view_state().inspector.text == NO_PROBE_VALUE_TEXT

    controller.close_inspector()
    assert not controller.view_state().inspector.visible


def test_only_latest_probe_is_shown(engine: ScriptedEngine) -> None:
    engine.samples[(-76.9, 42.7)] = 60.0
    engine.samples[(-76.8, 42.6)] = 65.0
    harness = Harness(engine)
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.settle()

    controller.click(-76.9, 42.7)
    controller.click(-76.8, 42.6)
    harness.settle()
    assert controller.view_state().inspector.text == "Temperature: 65.00 °F"


def test_probe_closed_before_arrival_stays_hidden(engine: ScriptedEngine) -> None:
    engine.samples[(-76.9, 42.7)] = 60.0
    harness = Harness(engine)
    controller = harness.controller
    controller.select(GREENIDGE)
    harness.settle()

    controller.click(-76.9, 42.7)
    controller.close_inspector()
    harness.settle()
    assert not controller.view_state().inspector.visible


def test_start_without_state_shows_default_view(harness: Harness) -> None:
    controller = harness.controller
    controller.start()

    assert controller.status is NavigationStatus.IDLE
    viewport = controller.viewport
    assert viewport.zoom == 7
    extent = controller.catalog_extent()
    assert (viewport.lon, viewport.lat) == pytest.approx(extent.center())
    assert [layer.role for layer in controller.layers.layers] == [LayerRole.SITE_MARKERS]
    assert controller.layers.layers[0].data == ("markers",) + tuple(site.name for site in SITE_CATALOG)
    assert harness.executor.runnable() == []


def test_click_in_idle_starts_custom_session(harness: Harness) -> None:
    controller = harness.controller
    controller.start()
    controller.click(-76.5, 42.5)

    assert controller.status is NavigationStatus.LOADING
    site = controller.context.site
    assert (site.name, site.lon, site.lat) == (CUSTOM_SITE_NAME, -76.5, 42.5)
    bbox = controller.context.area_of_interest
    assert (bbox.min_lon, bbox.max_lon) == pytest.approx((-77.5, -75.5))
    assert (bbox.min_lat, bbox.max_lat) == pytest.approx((42.0, 43.0))


def test_viewport_idle_only_persists_during_session(harness: Harness) -> None:
    controller = harness.controller
    controller.start()
    controller.on_viewport_idle(-75.0, 42.0, 8)
    assert harness.store.get("latitude") is None
    assert controller.viewport.zoom == 8

    controller.select(GREENIDGE)
    harness.settle()
    controller.on_viewport_idle(-76.1234567, 42.7654321, 11)
    assert harness.store.get("latitude") == "42.765432"
    assert harness.store.get("longitude") == "-76.123457"
    assert harness.store.get("zoom") == "11"


def test_session_round_trips_through_link(engine: ScriptedEngine) -> None:
    first = Harness(engine)
    first.controller.select(GREENIDGE, target_date="2023-06-20")
    first.settle()
    first.controller.forward()
    first.settle()
    link = first.store.link("https://viewer.example/")

    second = Harness(engine, QueryStringStore(link))
    second.controller.start()
    second.settle()

    controller = second.controller
    assert controller.status is NavigationStatus.DISPLAYED
    assert controller.context.site.name == CUSTOM_SITE_NAME
    assert controller.context.site.lat == pytest.approx(GREENIDGE.lat)
    assert controller.context.site.lon == pytest.approx(GREENIDGE.lon)
    assert controller.context.zoom == 14
    assert controller.current_scene.date == "2023-07-03"


def test_invalid_persisted_location_starts_default_view(engine: ScriptedEngine) -> None:
    harness = Harness(engine, QueryStringStore("latitude=abc&longitude=-76.9&zoom=12&date=2023-06-17"))
    harness.controller.start()
    assert harness.controller.status is NavigationStatus.IDLE
    assert harness.executor.runnable() == []


def test_handle_dispatches_ui_events(harness: Harness) -> None:
    controller = harness.controller
    controller.start()

    controller.handle(UiEvent.site_chosen("Nowhere"))
    assert controller.status is NavigationStatus.IDLE

    controller.handle(UiEvent.site_chosen("Miliken Station"))
    harness.settle()
    assert controller.context.site.name == "Miliken Station"

    controller.handle(UiEvent.simple(EventKind.FORWARD_CLICKED))
    harness.settle()
    assert controller.context.current_index == 1

    controller.handle(UiEvent.slider_moved(0))
    harness.settle()
    assert controller.context.current_index == 0

    controller.handle(UiEvent.legend_range_edited("45", "95"))
    assert controller.visualization.lst_range == (45.0, 95.0)

    controller.handle(UiEvent(EventKind.VIEWPORT_IDLE, lon=-76.0, lat=42.0))
    assert controller.viewport.zoom == 14

    controller.handle(UiEvent.simple(EventKind.RESET_CLICKED))
    assert controller.status is NavigationStatus.IDLE
