"""Session state machine for browsing a site's thermal scenes.

The controller owns the active :class:`AnalysisContext`, the visible layer
stack, the legend and the "current image". Backend calls run through a
:class:`RequestTracker`; their results are applied only from :meth:`poll`,
and only when they carry the most recently issued sequence number. Every
navigation step and every reset bumps that number, so a slow response for an
older step can never overwrite a newer display.
"""
from __future__ import annotations

import logging
import time
from collections import deque
from concurrent.futures import Executor
from enum import Enum
from typing import Any, Callable, Deque, Iterable, Optional

from .common import SITE_CATALOG, GeoBoundingBox, Site, find_site
from .config import DEFAULT_CONFIG, LST_BAND, ThermalConfig
from .dates import DateIndexResolver
from .engine import ComputeEngine
from .errors import ComputeEngineError, NoDataError, RequestTimeout, StaleResponse
from .events import EventKind, UiEvent
from .interface import (
    AnalysisContext,
    InspectorState,
    LayerRole,
    NavigationState,
    Notice,
    NoticeKind,
    RangeSource,
    Scene,
    ViewState,
    Viewport,
    VisualizationParameters,
)
from .layers import LayerCompositor, LayerStack, lst_style, marker_layer
from .legend import LegendController
from .stats import StatisticsOutcome, VisualizationStatsEngine
from .tasks import PendingRequest, RequestKind, RequestTracker
from .url_state import URLStateSync

LOGGER = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No images found for the given point."
LOADING_TEXT = "Loading..."
NO_PROBE_VALUE_TEXT = "No data at this location."


class NavigationStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    DISPLAYED = "displayed"
    ERROR = "error"


class ImageNavigationController:
    def __init__(
        self,
        engine: ComputeEngine,
        *,
        config: ThermalConfig = DEFAULT_CONFIG,
        url_sync: Optional[URLStateSync] = None,
        catalog: Iterable[Site] = SITE_CATALOG,
        executor: Optional[Executor] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._config = config
        self._url_sync = url_sync
        self._catalog = tuple(catalog)
        self._resolver = DateIndexResolver(engine, config)
        self._stats = VisualizationStatsEngine(config)
        self._compositor = LayerCompositor(config)
        self._legend = LegendController()
        self._layers = LayerStack()
        self._tracker = RequestTracker(executor=executor, max_workers=config.max_workers, clock=clock)

        self._seq = 0
        self._probe_token = 0
        self._status = NavigationStatus.IDLE
        self._context: Optional[AnalysisContext] = None
        self._scene: Optional[Scene] = None
        self._visualization: Optional[VisualizationParameters] = None
        self._markers: Any = None
        self._loading = False
        self._error: Optional[str] = None
        self._inspector = InspectorState()
        self._viewport: Optional[Viewport] = None
        self._notices: Deque[Notice] = deque()

    # ---- Accessors ----
    @property
    def status(self) -> NavigationStatus:
        return self._status

    @property
    def sequence(self) -> int:
        return self._seq

    @property
    def context(self) -> Optional[AnalysisContext]:
        return self._context

    @property
    def current_scene(self) -> Optional[Scene]:
        """The image currently on screen, if any."""
        return self._scene

    @property
    def visualization(self) -> Optional[VisualizationParameters]:
        return self._visualization

    @property
    def layers(self) -> LayerStack:
        return self._layers

    @property
    def legend(self) -> LegendController:
        return self._legend

    @property
    def viewport(self) -> Optional[Viewport]:
        return self._viewport

    @property
    def catalog(self) -> tuple[Site, ...]:
        return self._catalog

    def pop_notice(self) -> Optional[Notice]:
        if self._notices:
            return self._notices.popleft()
        return None

    # ---- Session lifecycle ----
    def start(self, state: Optional[NavigationState] = None) -> None:
        """Restore a session from persisted state, or show the default view."""
        if state is None:
            state = self._url_sync.restore() if self._url_sync is not None else NavigationState()
        if state.has_session:
            assert state.latitude is not None and state.longitude is not None
            site = Site.custom(state.longitude, state.latitude)
            self.select(site, target_date=state.date, zoom=state.zoom)
        else:
            self.show_default_view()

    def show_default_view(self) -> None:
        center_lon, center_lat = self.catalog_extent().center()
        self._viewport = Viewport(lon=center_lon, lat=center_lat, zoom=self._config.default_view_zoom)
        self._layers.replace([marker_layer(self._marker_data())])

    def catalog_extent(self) -> GeoBoundingBox:
        return GeoBoundingBox.covering(site.coordinates for site in self._catalog)

    def select(self, site: Site, *, target_date: Optional[str] = None, zoom: Optional[int] = None) -> None:
        cfg = self._config
        self._supersede()
        aoi = site.area_of_interest(cfg.aoi_half_width_deg, cfg.aoi_half_height_deg)
        self._context = AnalysisContext(
            site=site,
            area_of_interest=aoi,
            zoom=zoom if zoom is not None else cfg.site_zoom,
            target_date=target_date,
        )
        self._scene = None
        self._visualization = None
        self._legend.clear()
        self._inspector = InspectorState()
        self._layers.replace([marker_layer(self._marker_data())])
        self._status = NavigationStatus.LOADING
        self._error = None
        self._loading = True
        LOGGER.info("Starting analysis for %s (%.6f, %.6f)", site.name, site.lon, site.lat)
        self._fetch_date_list(self._seq, site, aoi)

    def reset(self) -> None:
        """Drop the session and return to the default view."""
        self._supersede()
        self._context = None
        self._scene = None
        self._visualization = None
        self._legend.clear()
        self._inspector = InspectorState()
        self._status = NavigationStatus.IDLE
        self._error = None
        self._loading = False
        if self._url_sync is not None:
            self._url_sync.clear()
        self.show_default_view()

    def shutdown(self) -> None:
        self._tracker.shutdown()

    # ---- Navigation ----
    def advance(self, step: int) -> bool:
        if self._status is not NavigationStatus.DISPLAYED or self._context is None:
            return False
        return self._go_to(self._context.current_index + step)

    def back(self) -> bool:
        return self.advance(-1)

    def forward(self) -> bool:
        return self.advance(1)

    def slide(self, index: int) -> bool:
        if self._status is not NavigationStatus.DISPLAYED or self._context is None:
            return False
        return self._go_to(index)

    def _go_to(self, index: int) -> bool:
        assert self._context is not None
        target = self._context.clamp(index)
        if target == self._context.current_index:
            return False
        self._issue_show(target)
        return True

    def click(self, lon: float, lat: float) -> None:
        """Map click: start a custom-point session, or probe the current image."""
        if self._status is NavigationStatus.IDLE:
            self.select(Site.custom(lon, lat))
            return
        if self._scene is None:
            return
        self._probe_token += 1
        self._inspector = InspectorState(visible=True, text=LOADING_TEXT, loading=True)
        self._fetch_sample(self._seq, self._probe_token, self._scene, lon, lat)

    def close_inspector(self) -> None:
        self._probe_token += 1
        self._inspector = InspectorState()

    def edit_legend(self, min_text: str, max_text: str) -> bool:
        """Recolor the LST layer from a manual range; invalid input is ignored."""
        if self._visualization is None:
            return False
        accepted = self._legend.edit(min_text, max_text)
        if accepted is None:
            return False
        low, high = accepted
        self._layers.restyle(LayerRole.LST, lst_style(low, high))
        self._visualization = self._visualization.with_lst_range(low, high, RangeSource.MANUAL)
        return True

    def on_viewport_idle(self, lon: float, lat: float, zoom: int) -> None:
        self._viewport = Viewport(lon=lon, lat=lat, zoom=int(zoom))
        if self._context is not None and self._url_sync is not None:
            self._url_sync.on_viewport_idle(lat, lon, int(zoom))

    def handle(self, event: UiEvent) -> None:
        kind = event.kind
        if kind is EventKind.SITE_CLICKED and event.lon is not None and event.lat is not None:
            self.click(event.lon, event.lat)
        elif kind is EventKind.SITE_CHOSEN and event.name:
            site = find_site(event.name, self._catalog)
            if site is None:
                LOGGER.warning("Unknown site %r", event.name)
                return
            self.select(site)
        elif kind is EventKind.SLIDER_MOVED and event.index is not None:
            self.slide(event.index)
        elif kind is EventKind.BACK_CLICKED:
            self.back()
        elif kind is EventKind.FORWARD_CLICKED:
            self.forward()
        elif kind is EventKind.RESET_CLICKED:
            self.reset()
        elif kind is EventKind.LEGEND_RANGE_EDITED:
            self.edit_legend(event.min_text or "", event.max_text or "")
        elif kind is EventKind.VIEWPORT_IDLE and event.lon is not None and event.lat is not None:
            zoom = event.zoom
            if zoom is None:
                zoom = self._viewport.zoom if self._viewport is not None else self._config.default_view_zoom
            self.on_viewport_idle(event.lon, event.lat, zoom)
        elif kind is EventKind.INSPECTOR_CLOSED:
            self.close_inspector()
        else:
            LOGGER.debug("Ignoring incomplete event %s", event)

    # ---- Background requests ----
    def _fetch_date_list(self, seq: int, site: Site, aoi: GeoBoundingBox) -> PendingRequest:
        return self._tracker.submit(seq, RequestKind.DATE_LIST, self._resolver.fetch_dates, site, aoi)

    def _fetch_image(self, seq: int, date: str) -> PendingRequest:
        assert self._context is not None
        ctx = self._context
        return self._tracker.submit(
            seq, RequestKind.IMAGE, self._engine.load_scene, ctx.site, ctx.area_of_interest, date
        )

    def _fetch_statistics(self, seq: int, scene: Scene) -> PendingRequest:
        assert self._context is not None
        return self._tracker.submit(
            seq,
            RequestKind.STATISTICS,
            self._stats.compute,
            self._engine,
            scene,
            self._context.area_of_interest,
            payload=scene,
        )

    def _fetch_sample(self, seq: int, token: int, scene: Scene, lon: float, lat: float) -> PendingRequest:
        return self._tracker.submit(
            seq,
            RequestKind.SAMPLE,
            self._engine.sample,
            scene.lst_probe,
            lon,
            lat,
            LST_BAND,
            self._config.lst_scale_m,
            token=token,
        )

    def _issue_show(self, index: int) -> None:
        assert self._context is not None
        self._context.current_index = index
        self._supersede()
        self._loading = True
        self._error = None
        date = self._context.date_list[index]
        if self._url_sync is not None:
            self._url_sync.on_navigation(date)
        LOGGER.debug("Showing %s (%d/%d) as #%d", date, index + 1, self._context.count, self._seq)
        self._fetch_image(self._seq, date)

    def _supersede(self) -> None:
        self._seq += 1
        self._tracker.cancel_superseded(self._seq)
        if self._inspector.loading:
            self._inspector = InspectorState()

    # ---- Completion handling ----
    def poll(self) -> bool:
        """Apply finished backend work; return True when visible state changed."""
        changed = False
        for request in self._tracker.completed():
            changed = self._dispatch(request) or changed
        for request in self._tracker.expired(self._seq, self._config.request_timeout_s):
            changed = self._on_timeout(request) or changed
        return changed

    def _ensure_current(self, request: PendingRequest) -> None:
        if request.seq != self._seq:
            raise StaleResponse(request.seq, self._seq)
        if request.kind is RequestKind.SAMPLE and request.token != self._probe_token:
            raise StaleResponse(request.token, self._probe_token)

    def _dispatch(self, request: PendingRequest) -> bool:
        try:
            self._ensure_current(request)
        except StaleResponse as exc:
            LOGGER.debug("Discarding %s response: %s", request.kind.value, exc)
            return False
        try:
            value = request.future.result()
        except Exception as exc:  # noqa: BLE001 - converted into a notice
            return self._on_failure(request, exc)
        if request.kind is RequestKind.DATE_LIST:
            return self._on_date_list(value)
        if request.kind is RequestKind.IMAGE:
            return self._on_image(value)
        if request.kind is RequestKind.STATISTICS:
            return self._on_statistics(request.payload, value)
        return self._on_sample(value)

    def _on_date_list(self, dates: tuple[str, ...]) -> bool:
        assert self._context is not None
        ctx = self._context
        ctx.date_list = tuple(dates)
        ctx.current_index = self._resolver.nearest_index(ctx.date_list, ctx.target_date)
        self._status = NavigationStatus.DISPLAYED
        self._viewport = Viewport(lon=ctx.site.lon, lat=ctx.site.lat, zoom=ctx.zoom)
        if self._url_sync is not None:
            self._url_sync.on_viewport_idle(ctx.site.lat, ctx.site.lon, ctx.zoom)
        self._issue_show(ctx.current_index)
        return True

    def _on_image(self, scene: Scene) -> bool:
        self._fetch_statistics(self._seq, scene)
        return False

    def _on_statistics(self, scene: Scene, outcome: StatisticsOutcome) -> bool:
        params = outcome.parameters
        layers = self._compositor.compose(scene, params, self._marker_data())
        self._layers.replace(layers)
        self._scene = scene
        self._visualization = params
        self._legend.seed(params.lst_range)
        self._notices.extend(outcome.notices)
        self._loading = False
        LOGGER.info(
            "Displayed %s: LST %.2f..%.2f (%s)",
            scene.date,
            params.lst_range[0],
            params.lst_range[1],
            params.lst_source.value,
        )
        return True

    def _on_sample(self, value: Optional[float]) -> bool:
        if value is None:
            text = NO_PROBE_VALUE_TEXT
        else:
            text = f"Temperature: {value:.2f} °F"
        self._inspector = InspectorState(visible=True, text=text)
        return True

    def _on_failure(self, request: PendingRequest, exc: BaseException) -> bool:
        timed_out = isinstance(exc, RequestTimeout)
        kind = NoticeKind.TIMEOUT if timed_out else NoticeKind.REQUEST_FAILED
        if request.kind is RequestKind.SAMPLE:
            self._log_failure(request, exc)
            self._inspector = InspectorState(visible=True, text=NO_PROBE_VALUE_TEXT)
            return True
        if request.kind is RequestKind.DATE_LIST:
            self._status = NavigationStatus.ERROR
            self._loading = False
            if isinstance(exc, NoDataError):
                LOGGER.info("%s", exc)
                self._error = NO_DATA_MESSAGE
                self._notices.append(Notice(NoticeKind.NO_DATA, NO_DATA_MESSAGE))
            else:
                self._log_failure(request, exc)
                self._error = f"Could not list images: {exc}"
                self._notices.append(Notice(kind, self._error))
            return True
        self._log_failure(request, exc)
        self._notices.append(Notice(kind, f"Could not load the selected image: {exc}"))
        self._restore_displayed_index()
        return True

    def _on_timeout(self, request: PendingRequest) -> bool:
        if request.kind is RequestKind.SAMPLE:
            if request.token != self._probe_token:
                return False
            self._probe_token += 1
        else:
            # A late arrival for a timed-out step must not be applied.
            self._seq += 1
        exc = RequestTimeout(
            f"{request.kind.value} request timed out after {self._config.request_timeout_s:.0f} s"
        )
        return self._on_failure(request, exc)

    def _restore_displayed_index(self) -> None:
        """Point navigation back at the image still on screen after a failed step."""
        self._loading = False
        ctx = self._context
        if ctx is None or self._scene is None:
            return
        try:
            ctx.current_index = ctx.date_list.index(self._scene.date)
        except ValueError:
            return
        if self._url_sync is not None:
            self._url_sync.on_navigation(self._scene.date)

    @staticmethod
    def _log_failure(request: PendingRequest, exc: BaseException) -> None:
        if isinstance(exc, (ComputeEngineError, RequestTimeout)):
            LOGGER.warning("%s request #%d failed: %s", request.kind.value, request.seq, exc)
        else:
            LOGGER.error(
                "%s request #%d failed unexpectedly",
                request.kind.value,
                request.seq,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def _marker_data(self) -> Any:
        if self._markers is None:
            self._markers = self._engine.site_markers(self._catalog)
        return self._markers

    # ---- UI snapshot ----
    def view_state(self) -> ViewState:
        ctx = self._context
        if ctx is None or not ctx.date_list:
            return ViewState(
                status=self._status.value,
                site_name=ctx.site.name if ctx is not None else None,
                loading=self._loading,
                layers=self._layers.layers,
                layer_version=self._layers.version,
                viewport=self._viewport,
                area_of_interest=ctx.area_of_interest if ctx is not None else None,
                error=self._error,
            )
        index = ctx.current_index
        count = ctx.count
        displayed = self._status is NavigationStatus.DISPLAYED
        return ViewState(
            status=self._status.value,
            site_name=ctx.site.name,
            date_label=f"Selected Date: {ctx.date_list[index]}",
            image_count_label=f"Image {index + 1} of {count}",
            slider_max=count - 1,
            slider_value=index,
            back_enabled=displayed and index > 0,
            forward_enabled=displayed and index < count - 1,
            loading=self._loading,
            layers=self._layers.layers,
            layer_version=self._layers.version,
            legend=self._legend.state(),
            inspector=self._inspector,
            viewport=self._viewport,
            area_of_interest=ctx.area_of_interest,
            error=self._error,
        )
