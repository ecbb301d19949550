"""In-memory compute engine over georeferenced numpy rasters.

Scenes hold Landsat Collection 2 Level 2 digital numbers on a regular
lon/lat grid; the engine applies the same scaling, masking and reductions as
the Earth Engine backend so the navigation core can run without a network.
Reductions work at the arrays' native resolution; ``scale`` is ignored.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence

import numpy as np
from PIL import Image, ImageDraw

from .common import GeoBoundingBox, Site, lon_lat_grids, pixel_index, roi_mask
from .config import DEFAULT_CONFIG, LST_BAND, RGB_BANDS, ThermalConfig
from .dates import parse_date
from .engine import ReductionResult
from .errors import ComputeEngineError
from .interface import Layer, LayerRole, Reducer, ReductionRequest, Scene
from .legend import palette_lut, css_color

LOGGER = logging.getLogger(__name__)

WATER_BAND = "water"
LAND_BAND = "land"
MARKER_RADIUS_PX = 4


@dataclass(frozen=True)
class ArrayImage:
    """Float bands on a lon/lat grid; NaN marks masked pixels."""

    bands: Mapping[str, np.ndarray]
    bbox: GeoBoundingBox

    @property
    def shape(self) -> tuple[int, int]:
        first = next(iter(self.bands.values()))
        return int(first.shape[0]), int(first.shape[1])

    def band(self, name: str) -> np.ndarray:
        try:
            return self.bands[name]
        except KeyError as exc:
            raise ComputeEngineError(f"Band {name!r} not present (have {sorted(self.bands)})") from exc


@dataclass(frozen=True)
class ArrayScene:
    acquired: str
    bbox: GeoBoundingBox
    thermal_dn: np.ndarray
    reflectance_dn: Mapping[str, np.ndarray]
    cloud: Optional[np.ndarray] = None


@dataclass(frozen=True)
class ArrayLandCover:
    classes: np.ndarray
    bbox: GeoBoundingBox


@dataclass(frozen=True)
class MarkerSet:
    points: tuple[tuple[float, float], ...] = field(default_factory=tuple)


class ArrayComputeEngine:
    def __init__(
        self,
        scenes: Iterable[ArrayScene],
        land_cover: Optional[ArrayLandCover] = None,
        *,
        config: ThermalConfig = DEFAULT_CONFIG,
    ) -> None:
        self._scenes = sorted(scenes, key=lambda scene: str(scene.acquired))
        self._land_cover = land_cover
        self._config = config

    # ---- Catalog ----
    def list_dates(self, site: Site, aoi: GeoBoundingBox, start: str, end: str) -> list[str]:
        start_day = parse_date(start)
        end_day = parse_date(end)
        dates: List[str] = []
        for scene in self._scenes:
            if not scene.bbox.contains(site.lon, site.lat):
                continue
            day = parse_date(scene.acquired)
            if day is None:
                continue
            if start_day is not None and day < start_day:
                continue
            if end_day is not None and day > end_day:
                continue
            dates.append(day.isoformat())
        return dates

    def load_scene(self, site: Site, aoi: GeoBoundingBox, date: str) -> Scene:
        scene = self._first_scene(site, date)
        cfg = self._config
        thermal = np.asarray(scene.thermal_dn, dtype=np.float64)
        kelvin = np.where(thermal > 0, thermal * cfg.thermal_scale + cfg.thermal_offset, np.nan)
        display = cfg.kelvin_to_display(kelvin)

        water = self._water_mask(scene)
        probe = display.copy()
        if scene.cloud is not None:
            probe[np.asarray(scene.cloud, dtype=bool)] = np.nan
        statistics = probe.copy()
        statistics[water] = np.nan

        reflectance = {
            band: np.asarray(scene.reflectance_dn[band], dtype=np.float64) * cfg.reflectance_scale
            + cfg.reflectance_offset
            for band in RGB_BANDS
            if band in scene.reflectance_dn
        }
        if len(reflectance) != len(RGB_BANDS):
            raise ComputeEngineError(f"Scene {scene.acquired} lacks reflectance bands {RGB_BANDS}")

        return Scene(
            date=date,
            lst_statistics=ArrayImage({LST_BAND: statistics}, scene.bbox),
            lst_display=ArrayImage({LST_BAND: display}, scene.bbox),
            lst_probe=ArrayImage({LST_BAND: probe}, scene.bbox),
            rgb=ArrayImage(reflectance, scene.bbox),
            water_mask=ArrayImage({WATER_BAND: np.where(water, 1.0, np.nan)}, scene.bbox),
            land_mask=ArrayImage({LAND_BAND: np.where(water, np.nan, 1.0)}, scene.bbox),
        )

    def _first_scene(self, site: Site, date: str) -> ArrayScene:
        day = parse_date(date)
        for scene in self._scenes:
            if parse_date(scene.acquired) == day and scene.bbox.contains(site.lon, site.lat):
                return scene
        raise ComputeEngineError(f"No scene on {date} covers {site.name}")

    def _water_mask(self, scene: ArrayScene) -> np.ndarray:
        height, width = np.asarray(scene.thermal_dn).shape
        if self._land_cover is None:
            return np.zeros((height, width), dtype=bool)
        classes = _regrid(
            np.asarray(self._land_cover.classes, dtype=np.float64),
            self._land_cover.bbox,
            scene.bbox,
            width,
            height,
        )
        return classes == float(self._config.water_class)

    # ---- Reductions ----
    def reduce_regions(self, requests: Sequence[ReductionRequest]) -> list[ReductionResult]:
        return [self._reduce(request) for request in requests]

    def _reduce(self, request: ReductionRequest) -> ReductionResult:
        image = _as_image(request.image)
        height, width = image.shape
        region = roi_mask(width, height, image.bbox, request.geometry)
        result: dict[str, Optional[float]] = {}
        for band in request.bands:
            values = image.band(band)[region]
            values = values[np.isfinite(values)]
            if request.reducer is Reducer.PERCENTILE:
                for pct in request.percentiles:
                    result[f"{band}_p{pct}"] = float(np.percentile(values, pct)) if values.size else None
            elif request.reducer is Reducer.MEDIAN_STDDEV:
                result[f"{band}_median"] = float(np.median(values)) if values.size else None
                result[f"{band}_stdDev"] = float(np.std(values)) if values.size else None
            elif request.reducer is Reducer.FIRST:
                result[band] = float(values[0]) if values.size else None
        return result

    def sample(self, image: Any, lon: float, lat: float, band: str, scale: int) -> Optional[float]:
        array_image = _as_image(image)
        height, width = array_image.shape
        index = pixel_index(width, height, array_image.bbox, lon, lat)
        if index is None:
            return None
        value = float(array_image.band(band)[index])
        return value if math.isfinite(value) else None

    # ---- Rendering ----
    def site_markers(self, sites: Iterable[Site]) -> MarkerSet:
        return MarkerSet(points=tuple(site.coordinates for site in sites))

    def render_layer(self, layer: Layer, region: GeoBoundingBox, size: int) -> Image.Image:
        width = max(1, int(size))
        height = max(1, int(round(size * region.height() / region.width())))
        if layer.role is LayerRole.SITE_MARKERS:
            return self._render_markers(layer, region, width, height)
        image = _as_image(layer.data)
        native_w, native_h = _native_size(image, region, width, height)
        if layer.role is LayerRole.RGB:
            rgba = self._colorize_rgb(layer, image, region, native_w, native_h)
        else:
            rgba = self._colorize_palette(layer, image, region, native_w, native_h)
        tile = Image.fromarray(rgba)
        method = Image.BICUBIC if layer.resample == "bicubic" else Image.NEAREST
        return tile.resize((width, height), method)

    @staticmethod
    def _colorize_rgb(layer: Layer, image: ArrayImage, region: GeoBoundingBox, width: int, height: int) -> np.ndarray:
        bands = layer.style.bands or RGB_BANDS
        rgba = np.zeros((height, width, 4), dtype=np.uint8)
        valid = np.ones((height, width), dtype=bool)
        for channel, band in enumerate(bands[:3]):
            values = _regrid(image.band(band), image.bbox, region, width, height)
            low = layer.style.min[channel] if len(layer.style.min) > channel else 0.0
            high = layer.style.max[channel] if len(layer.style.max) > channel else 1.0
            norm = _normalize(values, low, high)
            rgba[..., channel] = np.rint(np.nan_to_num(norm) * 255).astype(np.uint8)
            valid &= np.isfinite(values)
        rgba[..., 3] = np.where(valid, 255, 0).astype(np.uint8)
        return rgba

    @staticmethod
    def _colorize_palette(layer: Layer, image: ArrayImage, region: GeoBoundingBox, width: int, height: int) -> np.ndarray:
        band = next(iter(image.bands))
        values = _regrid(image.band(band), image.bbox, region, width, height)
        palette = layer.style.palette or ("000000",)
        lut = palette_lut(palette)
        low = layer.style.min[0] if layer.style.min else 0.0
        high = layer.style.max[0] if layer.style.max else 1.0
        norm = np.nan_to_num(_normalize(values, low, high))
        indices = np.rint(norm * (len(lut) - 1)).astype(np.int64)
        rgba = np.zeros((height, width, 4), dtype=np.uint8)
        rgba[..., :3] = lut[indices]
        rgba[..., 3] = np.where(np.isfinite(values), 255, 0).astype(np.uint8)
        return rgba

    @staticmethod
    def _render_markers(layer: Layer, region: GeoBoundingBox, width: int, height: int) -> Image.Image:
        canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(canvas)
        markers = layer.data if isinstance(layer.data, MarkerSet) else MarkerSet()
        color = css_color(layer.style.color or "red")
        for lon, lat in markers.points:
            index = pixel_index(width, height, region, lon, lat)
            if index is None:
                continue
            row, col = index
            r = MARKER_RADIUS_PX
            draw.ellipse((col - r, row - r, col + r, row + r), fill=color)
        return canvas


def _as_image(image: Any) -> ArrayImage:
    if not isinstance(image, ArrayImage):
        raise ComputeEngineError(f"Expected an in-memory image, got {type(image).__name__}")
    return image


def _normalize(values: np.ndarray, low: float, high: float) -> np.ndarray:
    span = high - low
    if span <= 0:
        span = 1e-6
    return np.clip((values - low) / span, 0.0, 1.0)


def _native_size(image: ArrayImage, region: GeoBoundingBox, width: int, height: int) -> tuple[int, int]:
    src_h, src_w = image.shape
    cols = int(round(region.width() / (image.bbox.width() / src_w)))
    rows = int(round(region.height() / (image.bbox.height() / src_h)))
    return max(1, min(width, cols)), max(1, min(height, rows))


def _regrid(
    values: np.ndarray,
    src_bbox: GeoBoundingBox,
    dst_bbox: GeoBoundingBox,
    width: int,
    height: int,
) -> np.ndarray:
    """Nearest-neighbour resample of ``values`` onto a ``width``x``height`` grid."""
    src_h, src_w = values.shape
    lon_grid, lat_grid = lon_lat_grids(width, height, dst_bbox)
    cols = np.floor((lon_grid - src_bbox.min_lon) / src_bbox.width() * src_w).astype(np.int64)
    rows = np.floor((src_bbox.max_lat - lat_grid) / src_bbox.height() * src_h).astype(np.int64)
    inside = (cols >= 0) & (cols < src_w) & (rows >= 0) & (rows < src_h)
    out = np.full((height, width), np.nan, dtype=np.float64)
    out[inside] = values[rows[inside], cols[inside]]
    return out
