"""Editable LST legend: min/max fields, midpoint label and color bar."""
from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageColor

from .common import parse_finite_float
from .config import LST_PALETTE
from .errors import InvalidLegendInput
from .interface import LegendState

LOGGER = logging.getLogger(__name__)

LEGEND_TITLE = "LST (°F)"


def palette_lut(palette: Sequence[str], steps: int = 256) -> np.ndarray:
    """Linear RGB lookup table of shape ``(steps, 3)`` through the palette stops."""
    colors = np.array([ImageColor.getrgb(css_color(name))[:3] for name in palette], dtype=np.float32)
    if len(colors) == 0:
        raise ValueError("Palette must contain at least one color")
    if len(colors) == 1:
        return np.repeat(colors.astype(np.uint8), steps, axis=0)
    stops = np.linspace(0.0, 1.0, len(colors))
    samples = np.linspace(0.0, 1.0, steps)
    lut = np.stack([np.interp(samples, stops, colors[:, channel]) for channel in range(3)], axis=1)
    return np.clip(np.rint(lut), 0, 255).astype(np.uint8)


def css_color(name: str) -> str:
    text = name.strip()
    if len(text) == 6 and all(ch in "0123456789abcdefABCDEF" for ch in text):
        return f"#{text}"
    return text


def colorbar_image(palette: Sequence[str] = LST_PALETTE, *, width: int = 100, height: int = 10) -> Image.Image:
    lut = palette_lut(palette, steps=max(2, width))
    row = lut[np.newaxis, :, :]
    rgb = np.repeat(row, max(1, height), axis=0)
    return Image.fromarray(rgb)


def format_value(value: float) -> str:
    return f"{value:.2f}"


class LegendController:
    """Holds the text shown in the legend and validates manual edits."""

    def __init__(self, palette: Sequence[str] = LST_PALETTE) -> None:
        self._palette = tuple(palette)
        self._range: Optional[Tuple[float, float]] = None
        self._min_text = ""
        self._max_text = ""
        self._mid_text = ""

    @property
    def applied_range(self) -> Optional[Tuple[float, float]]:
        return self._range

    def seed(self, lst_range: Tuple[float, float]) -> None:
        low, high = lst_range
        self._range = (low, high)
        self._min_text = format_value(low)
        self._max_text = format_value(high)
        self._mid_text = format_value((low + high) / 2.0)

    def edit(self, min_text: str, max_text: str) -> Optional[Tuple[float, float]]:
        """Accept a manual range, or return ``None`` and keep the previous one."""
        try:
            low, high = self.parse_range(min_text, max_text)
        except InvalidLegendInput as exc:
            LOGGER.debug("Ignoring legend edit: %s", exc)
            return None
        self._range = (low, high)
        self._min_text = str(min_text).strip()
        self._max_text = str(max_text).strip()
        self._mid_text = format_value((low + high) / 2.0)
        return self._range

    @staticmethod
    def parse_range(min_text: str, max_text: str) -> Tuple[float, float]:
        low = parse_finite_float(min_text)
        high = parse_finite_float(max_text)
        if low is None or high is None:
            raise InvalidLegendInput(f"non-numeric range {min_text!r}..{max_text!r}")
        if low >= high:
            raise InvalidLegendInput(f"inverted range {low}..{high}")
        return low, high

    def clear(self) -> None:
        self._range = None
        self._min_text = self._max_text = self._mid_text = ""

    def state(self) -> Optional[LegendState]:
        if self._range is None:
            return None
        return LegendState(
            title=LEGEND_TITLE,
            min_text=self._min_text,
            max_text=self._max_text,
            mid_text=self._mid_text,
            palette=self._palette,
        )
