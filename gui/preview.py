"""Composited map preview of the visible layer stack, rendered off the UI thread."""
from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence

from PIL import Image

from thermal.common import GeoBoundingBox
from thermal.engine import ComputeEngine
from thermal.errors import ComputeEngineError
from thermal.interface import Layer

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PreviewRequest:
    version: int
    layers: tuple[Layer, ...]
    region: GeoBoundingBox
    size: int

    @property
    def key(self) -> tuple[int, GeoBoundingBox, int]:
        return (self.version, self.region, self.size)


@dataclass(frozen=True)
class PreviewResult:
    request: PreviewRequest
    image: Image.Image
    skipped: tuple[str, ...] = ()


def preview_dimensions(region: GeoBoundingBox, size: int) -> tuple[int, int]:
    width = max(1, int(size))
    height = max(1, int(round(size * region.height() / region.width())))
    return width, height


def pixel_to_lon_lat(region: GeoBoundingBox, width: int, height: int, x: float, y: float) -> tuple[float, float]:
    """Map a pixel position on a ``width``x``height`` preview back to degrees."""
    if width <= 0 or height <= 0:
        raise ValueError("Preview dimensions must be positive")
    fx = min(max(x / width, 0.0), 1.0)
    fy = min(max(y / height, 0.0), 1.0)
    lon = region.min_lon + fx * region.width()
    lat = region.max_lat - fy * region.height()
    return lon, lat


def composite(layers: Sequence[Layer], tiles: Sequence[Image.Image], size: tuple[int, int]) -> Image.Image:
    canvas = Image.new("RGBA", size, (0, 0, 0, 0))
    ordered = sorted(zip(layers, tiles), key=lambda pair: pair[0].z_order)
    for _layer, tile in ordered:
        if tile.mode != "RGBA":
            tile = tile.convert("RGBA")
        if tile.size != size:
            tile = tile.resize(size, Image.BILINEAR)
        canvas.alpha_composite(tile)
    return canvas


class LayerPreviewController:
    """Renders the layer stack on a worker thread; at most one render in flight.

    A newer request made while a render runs is queued and replaces any older
    queued one, so only the latest stack version is ever drawn next.
    """

    def __init__(self, engine: ComputeEngine, *, executor: Optional[Executor] = None) -> None:
        self._engine = engine
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="thermal-preview")
        self._future: Optional[Future[PreviewResult]] = None
        self._active: Optional[PreviewRequest] = None
        self._pending: Optional[PreviewRequest] = None
        self._current: Optional[PreviewRequest] = None
        self.status: str = "Idle"
        self.status_detail: str = "Nothing rendered yet."

    def request(self, layers: Sequence[Layer], version: int, region: GeoBoundingBox, size: int) -> None:
        params = PreviewRequest(version=version, layers=tuple(layers), region=region, size=int(size))
        if any(
            other is not None and other.key == params.key
            for other in (self._current, self._active if self._future is not None else None, self._pending)
        ):
            return
        if self._future is not None:
            self._pending = params
            self.status = "Queued"
            return
        self._start(params)

    def poll(self) -> Optional[PreviewResult]:
        if self._future is None or not self._future.done():
            return None
        future = self._future
        self._future = None
        result: Optional[PreviewResult] = None
        try:
            result = future.result()
        except Exception as exc:  # pragma: no cover - runtime safety
            LOGGER.warning("Preview render failed: %s", exc)
            self.status = "Error"
            self.status_detail = str(exc)
            self._current = None
        else:
            self._current = result.request
            self.status = "Ready"
            self.status_detail = f"{len(result.request.layers)} layer(s) at {result.image.size[0]}px"
            if result.skipped:
                self.status_detail += f", skipped {', '.join(result.skipped)}"
        if self._pending is not None:
            params = self._pending
            self._pending = None
            self._start(params)
            # A newer stack is already on its way; drop the outdated frame.
            return None
        return result

    def shutdown(self) -> None:
        if self._future is not None and not self._future.done():
            self._future.cancel()
        self._future = None
        self._pending = None
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def _start(self, params: PreviewRequest) -> None:
        self._active = params
        self.status = "Rendering"
        self.status_detail = f"Layer stack v{params.version}"
        self._future = self._executor.submit(self._render, params)

    def _render(self, params: PreviewRequest) -> PreviewResult:
        size = preview_dimensions(params.region, params.size)
        layers = []
        tiles = []
        skipped = []
        for layer in params.layers:
            try:
                tile = self._engine.render_layer(layer, params.region, params.size)
            except ComputeEngineError as exc:
                LOGGER.warning("Could not render %s layer: %s", layer.name, exc)
                skipped.append(layer.name)
                continue
            layers.append(layer)
            tiles.append(tile)
        return PreviewResult(request=params, image=composite(layers, tiles, size), skipped=tuple(skipped))
