"""Google Earth Engine implementation of the compute engine capabilities."""
from __future__ import annotations

import io
import logging
from typing import Any, Iterable, List, Optional, Sequence

import ee
import requests
from PIL import Image, UnidentifiedImageError
from requests import exceptions as requests_exceptions

from .common import GeoBoundingBox, Site
from .config import DEFAULT_CONFIG, LST_BAND, RGB_BANDS, ThermalConfig
from .engine import ReductionResult
from .errors import ComputeEngineError
from .interface import Layer, LayerRole, Reducer, ReductionRequest, Scene

LOGGER = logging.getLogger(__name__)

LANDSAT_COLLECTIONS = ("LANDSAT/LC08/C02/T1_L2", "LANDSAT/LC09/C02/T1_L2")
WORLD_COVER = "ESA/WorldCover/v200"
THERMAL_BAND = "ST_B10"
QA_BAND = "QA_PIXEL"
# QA_PIXEL bits: dilated cloud, cirrus, cloud, cloud shadow
CLOUD_BITS = (1, 2, 3, 4)
MARKER_WIDTH_PX = 3


class EarthEngineBackend:
    def __init__(
        self,
        config: ThermalConfig = DEFAULT_CONFIG,
        *,
        project: Optional[str] = None,
        initialize: bool = True,
        http_timeout: tuple[float, float] = (5, 60),
    ) -> None:
        self._config = config
        self._project = project
        self._http_timeout = http_timeout
        if initialize:
            self.initialize()

    def initialize(self) -> None:
        try:
            if self._project:
                ee.Initialize(project=self._project)
            else:
                ee.Initialize()
        except ee.EEException as exc:
            raise ComputeEngineError(
                f"Earth Engine initialization failed: {exc}. Run 'earthengine authenticate' "
                "and set EE_PROJECT."
            ) from exc
        LOGGER.info("Earth Engine initialized (project=%s)", self._project or "default")

    # ---- Collections ----
    def _collection(self, site: Site) -> ee.ImageCollection:
        first, *rest = LANDSAT_COLLECTIONS
        merged = ee.ImageCollection(first)
        for name in rest:
            merged = merged.merge(ee.ImageCollection(name))
        return ee.ImageCollection(merged).filterBounds(ee.Geometry.Point([site.lon, site.lat]))

    def _water(self) -> ee.Image:
        world_cover = ee.ImageCollection(WORLD_COVER).first()
        return ee.Image(world_cover).eq(self._config.water_class)

    def _to_display_temperature(self, kelvin: ee.Image) -> ee.Image:
        cfg = self._config
        return (
            kelvin.subtract(cfg.kelvin_offset)
            .multiply(cfg.fahrenheit_scale)
            .add(cfg.fahrenheit_offset)
            .rename(LST_BAND)
        )

    @staticmethod
    def _cloud_mask(image: ee.Image) -> ee.Image:
        qa = image.select(QA_BAND)
        clear = qa.bitwiseAnd(1 << CLOUD_BITS[0]).eq(0)
        for bit in CLOUD_BITS[1:]:
            clear = clear.And(qa.bitwiseAnd(1 << bit).eq(0))
        return clear

    # ---- Capabilities ----
    def list_dates(self, site: Site, aoi: GeoBoundingBox, start: str, end: str) -> list[str]:
        collection = self._collection(site).filterDate(start, end).sort("system:time_start")
        dates = (
            collection.map(lambda image: ee.Feature(None, {"date": image.date().format("YYYY-MM-dd")}))
            .distinct("date")
            .aggregate_array("date")
        )
        return list(self._evaluate(dates) or [])

    def load_scene(self, site: Site, aoi: GeoBoundingBox, date: str) -> Scene:
        cfg = self._config
        day = ee.Date(date)
        raw = ee.Image(self._collection(site).filterDate(day, day.advance(1, "day")).first())

        kelvin = raw.select(THERMAL_BAND).multiply(cfg.thermal_scale).add(cfg.thermal_offset)
        display = self._to_display_temperature(kelvin)
        probe = display.updateMask(self._cloud_mask(raw))
        water = self._water()
        statistics = probe.updateMask(water.Not())
        rgb = raw.select(list(RGB_BANDS)).multiply(cfg.reflectance_scale).add(cfg.reflectance_offset)
        return Scene(
            date=date,
            lst_statistics=statistics,
            lst_display=display,
            lst_probe=probe,
            rgb=rgb,
            water_mask=water,
            land_mask=water.Not().selfMask(),
        )

    def reduce_regions(self, requests: Sequence[ReductionRequest]) -> list[ReductionResult]:
        reductions = [self._reduction(request) for request in requests]
        values = self._evaluate(ee.List(reductions))
        results: List[ReductionResult] = []
        for value in values or []:
            results.append(dict(value) if value else None)
        while len(results) < len(requests):
            results.append(None)
        return results

    def _reduction(self, request: ReductionRequest) -> ee.Dictionary:
        image = ee.Image(request.image).select(list(request.bands))
        return image.reduceRegion(
            reducer=self._reducer(request),
            geometry=ee.Geometry.Rectangle(request.geometry.as_list()),
            scale=request.scale,
            maxPixels=request.max_pixels,
        )

    @staticmethod
    def _reducer(request: ReductionRequest) -> ee.Reducer:
        if request.reducer is Reducer.PERCENTILE:
            return ee.Reducer.percentile(list(request.percentiles))
        if request.reducer is Reducer.MEDIAN_STDDEV:
            return ee.Reducer.median().combine(reducer2=ee.Reducer.stdDev(), sharedInputs=True)
        return ee.Reducer.first()

    def sample(self, image: Any, lon: float, lat: float, band: str, scale: int) -> Optional[float]:
        value = (
            ee.Image(image)
            .select(band)
            .reduceRegion(reducer=ee.Reducer.first(), geometry=ee.Geometry.Point([lon, lat]), scale=scale)
            .get(band)
        )
        result = self._evaluate(value)
        return None if result is None else float(result)

    def site_markers(self, sites: Iterable[Site]) -> ee.FeatureCollection:
        return ee.FeatureCollection(
            [ee.Feature(ee.Geometry.Point([site.lon, site.lat]), {"name": site.name}) for site in sites]
        )

    def render_layer(self, layer: Layer, region: GeoBoundingBox, size: int) -> Image.Image:
        url = self._thumbnail_url(layer, region, size)
        try:
            response = requests.get(url, timeout=self._http_timeout)
            response.raise_for_status()
        except requests_exceptions.RequestException as exc:
            raise ComputeEngineError(f"Thumbnail request failed for {layer.name}: {exc}") from exc
        return self._response_to_image(response, layer.name)

    def _thumbnail_url(self, layer: Layer, region: GeoBoundingBox, size: int) -> str:
        if layer.role is LayerRole.SITE_MARKERS:
            color = layer.style.color or "red"
            visual = (
                ee.Image()
                .byte()
                .paint(ee.FeatureCollection(layer.data), 1, MARKER_WIDTH_PX)
                .selfMask()
                .visualize(palette=[color])
            )
        else:
            image = ee.Image(layer.data)
            if layer.resample:
                image = image.resample(layer.resample)
            visual = image.visualize(**layer.style.as_vis_params())
        params = {
            "region": ee.Geometry.Rectangle(region.as_list()),
            "dimensions": int(size),
            "format": "png",
        }
        try:
            return visual.getThumbURL(params)
        except ee.EEException as exc:
            raise ComputeEngineError(f"Could not build thumbnail for {layer.name}: {exc}") from exc

    @staticmethod
    def _response_to_image(resp: requests.Response, name: str) -> Image.Image:
        ct = (resp.headers.get("Content-Type") or "").lower()
        data = resp.content or b""
        if "image" not in ct or len(data) < 32:
            preview = data[:200].decode("utf-8", errors="replace")
            raise ComputeEngineError(f"{name} thumbnail returned content-type '{ct}': {preview}")
        try:
            with Image.open(io.BytesIO(data)) as img:
                return img.convert("RGBA")
        except (UnidentifiedImageError, OSError) as exc:
            raise ComputeEngineError(f"{name} thumbnail is not a readable image") from exc

    @staticmethod
    def _evaluate(value: Any) -> Any:
        try:
            return value.getInfo()
        except ee.EEException as exc:
            raise ComputeEngineError(str(exc)) from exc
