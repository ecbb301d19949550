"""Mirror the live session into a shareable ``latitude/longitude/zoom/date`` state."""
from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit

from .common import parse_finite_float
from .config import DEFAULT_CONFIG, ThermalConfig
from .interface import NavigationState

LOGGER = logging.getLogger(__name__)

KEY_LATITUDE = "latitude"
KEY_LONGITUDE = "longitude"
KEY_ZOOM = "zoom"
KEY_DATE = "date"
STATE_KEYS = (KEY_LATITUDE, KEY_LONGITUDE, KEY_ZOOM, KEY_DATE)

MIN_ZOOM = 0
MAX_ZOOM = 22


class StateStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class QueryStringStore:
    """Key-value state kept as a URL query string."""

    def __init__(self, link: str = "") -> None:
        self._values: Dict[str, str] = {}
        text = (link or "").strip()
        if text:
            parts = urlsplit(text)
            query = parts.query or parts.fragment
            if not query and not parts.scheme:
                query = text
            for key, value in parse_qsl(query.lstrip("?#"), keep_blank_values=False):
                self._values[key] = value

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    @property
    def query(self) -> str:
        ordered = [(key, self._values[key]) for key in STATE_KEYS if key in self._values]
        return urlencode(ordered)

    def link(self, base: str = "") -> str:
        query = self.query
        if not query:
            return base
        return f"{base}?{query}" if base else query


def copy_state(source: StateStore, target: StateStore) -> None:
    """Overwrite the four location keys of ``target`` with those of ``source``."""
    for key in STATE_KEYS:
        value = source.get(key)
        if value is None:
            target.delete(key)
        else:
            target.set(key, value)


def share_link(store: StateStore, base: str = "") -> str:
    link = QueryStringStore()
    copy_state(store, link)
    return link.link(base)


class URLStateSync:
    def __init__(self, store: StateStore, config: ThermalConfig = DEFAULT_CONFIG) -> None:
        self._store = store
        self._config = config

    @property
    def store(self) -> StateStore:
        return self._store

    def on_viewport_idle(self, lat: float, lon: float, zoom: int) -> None:
        decimals = self._config.coordinate_decimals
        self._store.set(KEY_LATITUDE, f"{lat:.{decimals}f}")
        self._store.set(KEY_LONGITUDE, f"{lon:.{decimals}f}")
        self._store.set(KEY_ZOOM, str(int(zoom)))

    def on_navigation(self, date: str) -> None:
        self._store.set(KEY_DATE, date)

    def clear(self) -> None:
        for key in STATE_KEYS:
            self._store.delete(key)

    def restore(self) -> NavigationState:
        lat = parse_finite_float(self._store.get(KEY_LATITUDE))
        lon = parse_finite_float(self._store.get(KEY_LONGITUDE))
        if lat is None or lon is None:
            if self._store.get(KEY_LATITUDE) or self._store.get(KEY_LONGITUDE):
                LOGGER.info("Ignoring persisted location with invalid coordinates")
            return NavigationState()
        zoom = _parse_zoom(self._store.get(KEY_ZOOM))
        date = (self._store.get(KEY_DATE) or "").strip() or None
        return NavigationState(latitude=lat, longitude=lon, zoom=zoom, date=date)


def _parse_zoom(text: Optional[str]) -> Optional[int]:
    value = parse_finite_float(text)
    if value is None:
        return None
    return min(max(int(value), MIN_ZOOM), MAX_ZOOM)
