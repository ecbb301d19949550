"""Named constants for the thermal site viewer, overridable from the environment."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional

LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "THERMAL_"

LST_BAND = "LST"
RGB_BANDS = ("SR_B4", "SR_B3", "SR_B2")
LST_PALETTE = ("blue", "cyan", "green", "yellow", "red")


@dataclass(frozen=True)
class ThermalConfig:
    # Area of interest around the selected site, degrees.
    aoi_half_width_deg: float = 1.0
    aoi_half_height_deg: float = 0.5

    catalog_start: str = "2000-01-01"
    catalog_end: str = "2026-12-31"

    lst_scale_m: int = 90
    rgb_scale_m: int = 30
    max_pixels: float = 1e9
    lst_low_percentile: int = 1
    lst_high_percentile: int = 99
    rgb_stddev_factor: float = 2.0

    default_lst_min: float = 50.0
    default_lst_max: float = 90.0
    default_rgb_min: float = -0.1
    default_rgb_max: float = 0.3

    # Kelvin -> Fahrenheit: (K - kelvin_offset) * fahrenheit_scale + fahrenheit_offset
    kelvin_offset: float = 273.15
    fahrenheit_scale: float = 9.0 / 5.0
    fahrenheit_offset: float = 32.0

    # Landsat Collection 2 Level 2 scale factors
    thermal_scale: float = 0.00341802
    thermal_offset: float = 149.0
    reflectance_scale: float = 0.0000275
    reflectance_offset: float = -0.2

    water_class: int = 80

    site_zoom: int = 14
    default_view_zoom: int = 7
    coordinate_decimals: int = 6

    request_timeout_s: float = 120.0
    max_workers: int = 2
    preview_size: int = 512

    @property
    def default_lst_range(self) -> tuple[float, float]:
        return (self.default_lst_min, self.default_lst_max)

    @property
    def default_rgb_range(self) -> tuple[tuple[float, float, float], tuple[float, float, float]]:
        low = (self.default_rgb_min,) * 3
        high = (self.default_rgb_max,) * 3
        return low, high

    def kelvin_to_display(self, kelvin: float) -> float:
        return (kelvin - self.kelvin_offset) * self.fahrenheit_scale + self.fahrenheit_offset

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ThermalConfig":
        """Build a config, overriding fields from ``THERMAL_<FIELD>`` variables."""
        env = os.environ if environ is None else environ
        base = cls()
        overrides: dict[str, object] = {}
        for item in fields(cls):
            raw = env.get(ENV_PREFIX + item.name.upper())
            if raw is None or not raw.strip():
                continue
            current = getattr(base, item.name)
            try:
                overrides[item.name] = type(current)(raw.strip())
            except ValueError:
                LOGGER.warning("Ignoring invalid %s%s=%r", ENV_PREFIX, item.name.upper(), raw)
        return replace(base, **overrides) if overrides else base


DEFAULT_CONFIG = ThermalConfig()


def log_level_from_env(environ: Optional[Mapping[str, str]] = None) -> int:
    env = os.environ if environ is None else environ
    name = (env.get("THERMAL_LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def earth_engine_project(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    env = os.environ if environ is None else environ
    project = (env.get("EE_PROJECT") or "").strip()
    return project or None
