"""Application entry point: wire the Earth Engine backend to the Qt panel."""
from __future__ import annotations

import logging
import sys
import time
from typing import Optional, Sequence

from thermal.common import GeoBoundingBox
from thermal.config import ThermalConfig, earth_engine_project, log_level_from_env
from thermal.earth_engine import EarthEngineBackend
from thermal.engine import ComputeEngine
from thermal.errors import ComputeEngineError
from thermal.navigation import ImageNavigationController
from thermal.url_state import QueryStringStore, StateStore, URLStateSync, copy_state, share_link

from .preview import LayerPreviewController
from .qt_controls import ThermalControlPanel
from .settings_store import SettingsStateStore

LOGGER = logging.getLogger(__name__)

FRAME_INTERVAL_S = 1.0 / 30.0
DEFAULT_VIEW_MARGIN_DEG = 0.5


class ThermalViewerApp:
    def __init__(
        self,
        engine: ComputeEngine,
        store: StateStore,
        *,
        config: ThermalConfig,
    ) -> None:
        self._config = config
        self._store = store
        self._controller = ImageNavigationController(
            engine,
            config=config,
            url_sync=URLStateSync(store, config),
        )
        self._preview = LayerPreviewController(engine)
        self._panel = ThermalControlPanel(self._controller.catalog, preview_size=config.preview_size)
        self._default_region = GeoBoundingBox.covering(
            (site.coordinates for site in self._controller.catalog),
            margin=DEFAULT_VIEW_MARGIN_DEG,
        )

    def run(self) -> int:
        self._controller.start()
        try:
            while self._panel.poll():
                self._dispatch_events()
                self._controller.poll()
                self._drain_notices()

                view = self._controller.view_state()
                self._panel.render(view)
                region = view.area_of_interest or self._default_region
                self._preview.request(view.layers, view.layer_version, region, self._config.preview_size)
                result = self._preview.poll()
                if result is not None:
                    self._panel.set_preview(result.image, result.request.region)
                self._panel.set_share_link(share_link(self._store))

                time.sleep(FRAME_INTERVAL_S)
        finally:
            self._preview.shutdown()
            self._controller.shutdown()
            self._panel.destroy()
        return 0

    def _dispatch_events(self) -> None:
        while True:
            event = self._panel.pop_event()
            if event is None:
                return
            LOGGER.debug("UI event %s", event.kind.value)
            self._controller.handle(event)

    def _drain_notices(self) -> None:
        while True:
            notice = self._controller.pop_notice()
            if notice is None:
                return
            self._panel.add_notice(notice)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(level=log_level_from_env(), format="%(levelname)s:%(name)s:%(message)s")
    config = ThermalConfig.from_env()

    store = SettingsStateStore()
    if args:
        # A shared link replaces whatever location was saved last time.
        copy_state(QueryStringStore(args[0]), store)

    try:
        engine = EarthEngineBackend(config, project=earth_engine_project())
    except ComputeEngineError as exc:
        LOGGER.error("%s", exc)
        return 1

    app = ThermalViewerApp(engine, store, config=config)
    try:
        return app.run()
    finally:
        store.sync()


if __name__ == "__main__":
    sys.exit(main())
