"""Events raised by the UI shell."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class EventKind(str, Enum):
    SITE_CLICKED = "site_clicked"
    SITE_CHOSEN = "site_chosen"
    SLIDER_MOVED = "slider_moved"
    BACK_CLICKED = "back_clicked"
    FORWARD_CLICKED = "forward_clicked"
    RESET_CLICKED = "reset_clicked"
    LEGEND_RANGE_EDITED = "legend_range_edited"
    VIEWPORT_IDLE = "viewport_idle"
    INSPECTOR_CLOSED = "inspector_closed"


@dataclass(frozen=True)
class UiEvent:
    kind: EventKind
    lon: Optional[float] = None
    lat: Optional[float] = None
    index: Optional[int] = None
    zoom: Optional[int] = None
    name: Optional[str] = None
    min_text: Optional[str] = None
    max_text: Optional[str] = None

    @classmethod
    def site_clicked(cls, lon: float, lat: float) -> "UiEvent":
        return cls(EventKind.SITE_CLICKED, lon=lon, lat=lat)

    @classmethod
    def site_chosen(cls, name: str) -> "UiEvent":
        return cls(EventKind.SITE_CHOSEN, name=name)

    @classmethod
    def slider_moved(cls, index: int) -> "UiEvent":
        return cls(EventKind.SLIDER_MOVED, index=index)

    @classmethod
    def legend_range_edited(cls, min_text: str, max_text: str) -> "UiEvent":
        return cls(EventKind.LEGEND_RANGE_EDITED, min_text=min_text, max_text=max_text)

    @classmethod
    def viewport_idle(cls, lon: float, lat: float, zoom: int) -> "UiEvent":
        return cls(EventKind.VIEWPORT_IDLE, lon=lon, lat=lat, zoom=zoom)

    @classmethod
    def simple(cls, kind: EventKind) -> "UiEvent":
        return cls(kind)
