from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import numpy as np

CUSTOM_SITE_NAME = "Custom Location"


@dataclass(frozen=True)
class GeoBoundingBox:
    """Geographic bounding box expressed in degrees."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def validate(self) -> None:
        if not (
            math.isfinite(self.min_lon)
            and math.isfinite(self.max_lon)
            and math.isfinite(self.min_lat)
            and math.isfinite(self.max_lat)
        ):
            raise ValueError("Bounding box coordinates must be finite numbers")
        if self.min_lon >= self.max_lon:
            raise ValueError("min_lon must be less than max_lon")
        if self.min_lat >= self.max_lat:
            raise ValueError("min_lat must be less than max_lat")

    @classmethod
    def around(cls, lon: float, lat: float, half_width: float, half_height: float) -> "GeoBoundingBox":
        bbox = cls(
            min_lon=lon - half_width,
            min_lat=lat - half_height,
            max_lon=lon + half_width,
            max_lat=lat + half_height,
        )
        bbox.validate()
        return bbox

    @classmethod
    def covering(cls, points: Iterable[Tuple[float, float]], *, margin: float = 0.0) -> "GeoBoundingBox":
        """Smallest box holding every ``(lon, lat)`` point, padded by ``margin``."""
        coords = list(points)
        if not coords:
            raise ValueError("At least one point is required")
        lons = [lon for lon, _ in coords]
        lats = [lat for _, lat in coords]
        pad = max(margin, 1e-6)
        return cls(
            min_lon=min(lons) - pad,
            min_lat=min(lats) - pad,
            max_lon=max(lons) + pad,
            max_lat=max(lats) + pad,
        )

    def intersection(self, other: "GeoBoundingBox") -> Optional["GeoBoundingBox"]:
        min_lon = max(self.min_lon, other.min_lon)
        max_lon = min(self.max_lon, other.max_lon)
        min_lat = max(self.min_lat, other.min_lat)
        max_lat = min(self.max_lat, other.max_lat)
        if min_lon >= max_lon or min_lat >= max_lat:
            return None
        return GeoBoundingBox(
            min_lon=min_lon,
            min_lat=min_lat,
            max_lon=max_lon,
            max_lat=max_lat,
        )

    def contains(self, lon: float, lat: float) -> bool:
        return (
            self.min_lon <= lon <= self.max_lon
            and self.min_lat <= lat <= self.max_lat
        )

    def width(self) -> float:
        return self.max_lon - self.min_lon

    def height(self) -> float:
        return self.max_lat - self.min_lat

    def center(self) -> Tuple[float, float]:
        return ((self.min_lon + self.max_lon) / 2.0, (self.min_lat + self.max_lat) / 2.0)

    def as_list(self) -> list[float]:
        return [self.min_lon, self.min_lat, self.max_lon, self.max_lat]


@dataclass(frozen=True)
class Site:
    """Named point of interest."""

    name: str
    lon: float
    lat: float

    @property
    def coordinates(self) -> Tuple[float, float]:
        return (self.lon, self.lat)

    @classmethod
    def custom(cls, lon: float, lat: float) -> "Site":
        return cls(name=CUSTOM_SITE_NAME, lon=float(lon), lat=float(lat))

    def area_of_interest(self, half_width: float, half_height: float) -> GeoBoundingBox:
        return GeoBoundingBox.around(self.lon, self.lat, half_width, half_height)


SITE_CATALOG: tuple[Site, ...] = (
    Site("Greenidge Generation", -76.943681, 42.683010),
    Site("Miliken Station", -76.636753, 42.601217),
    Site("Constellation Nuclear", -77.308268, 43.279134),
    Site("Westchester County Water Treatment", -73.910938, 40.919956),
)


def find_site(name: str, catalog: Iterable[Site] = SITE_CATALOG) -> Optional[Site]:
    for site in catalog:
        if site.name == name:
            return site
    return None


def parse_finite_float(text: Optional[str]) -> Optional[float]:
    if text is None:
        return None
    cleaned = str(text).strip()
    if not cleaned:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def lon_lat_grids(
    width: int,
    height: int,
    bbox: GeoBoundingBox,
) -> Tuple[np.ndarray, np.ndarray]:
    bbox.validate()
    if width <= 0 or height <= 0:
        raise ValueError("Raster dimensions must be positive")
    lon_step = bbox.width() / width
    lat_step = bbox.height() / height
    lon_centers = bbox.min_lon + (np.arange(width, dtype=np.float64) + 0.5) * lon_step
    lat_centers = bbox.max_lat - (np.arange(height, dtype=np.float64) + 0.5) * lat_step
    lon_grid, lat_grid = np.meshgrid(lon_centers, lat_centers)
    return lon_grid, lat_grid


def roi_mask(
    width: int,
    height: int,
    image_bbox: GeoBoundingBox,
    roi: GeoBoundingBox,
) -> np.ndarray:
    intersection = image_bbox.intersection(roi)
    if intersection is None:
        return np.zeros((height, width), dtype=bool)
    lon_grid, lat_grid = lon_lat_grids(width, height, image_bbox)
    mask = (
        (lon_grid >= intersection.min_lon)
        & (lon_grid <= intersection.max_lon)
        & (lat_grid >= intersection.min_lat)
        & (lat_grid <= intersection.max_lat)
    )
    return mask


def pixel_index(
    width: int,
    height: int,
    bbox: GeoBoundingBox,
    lon: float,
    lat: float,
) -> Optional[Tuple[int, int]]:
    """Return ``(row, col)`` of the pixel holding ``(lon, lat)``."""
    if not bbox.contains(lon, lat):
        return None
    col = int((lon - bbox.min_lon) / bbox.width() * width)
    row = int((bbox.max_lat - lat) / bbox.height() * height)
    return min(max(row, 0), height - 1), min(max(col, 0), width - 1)
