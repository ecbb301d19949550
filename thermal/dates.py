from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable, Optional, Sequence

from .common import GeoBoundingBox, Site
from .config import DEFAULT_CONFIG, ThermalConfig
from .engine import ComputeEngine
from .errors import InvalidTargetDate, NoDataError

LOGGER = logging.getLogger(__name__)


def parse_date(value: object) -> Optional[dt.date]:
    """Parse an ISO date or datetime string down to its calendar day."""
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = str(value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        if "T" in text or " " in text:
            return dt.datetime.fromisoformat(text).date()
        return dt.date.fromisoformat(text)
    except ValueError:
        try:
            return dt.date.fromisoformat(text[:10])
        except ValueError:
            return None


class DateIndexResolver:
    """Fetch the per-site date index and resolve targets against it."""

    def __init__(self, engine: ComputeEngine, config: ThermalConfig = DEFAULT_CONFIG) -> None:
        self._engine = engine
        self._config = config

    def fetch_dates(self, site: Site, aoi: GeoBoundingBox) -> tuple[str, ...]:
        raw = self._engine.list_dates(
            site,
            aoi,
            self._config.catalog_start,
            self._config.catalog_end,
        )
        dates = self.normalize(raw)
        if not dates:
            raise NoDataError(f"No images found for {site.name} ({site.lon:.6f}, {site.lat:.6f})")
        LOGGER.info("Resolved %d scene dates for %s", len(dates), site.name)
        return dates

    @staticmethod
    def normalize(raw: Iterable[object]) -> tuple[str, ...]:
        """Reduce engine dates to unique ascending ``YYYY-MM-DD`` strings."""
        days: set[dt.date] = set()
        for value in raw or ():
            day = parse_date(value)
            if day is None:
                LOGGER.warning("Skipping unparseable catalog date %r", value)
                continue
            days.add(day)
        return tuple(day.isoformat() for day in sorted(days))

    @staticmethod
    def nearest_index(dates: Sequence[str], target: Optional[str]) -> int:
        """Index of the date closest to ``target``; earlier entries win ties."""
        if not dates or target is None:
            return 0
        try:
            target_day = DateIndexResolver._parse_target(target)
        except InvalidTargetDate as exc:
            LOGGER.debug("%s; starting at the first date", exc)
            return 0
        best_index = 0
        best_distance: Optional[int] = None
        for index, value in enumerate(dates):
            day = parse_date(value)
            if day is None:
                continue
            distance = abs((day - target_day).days)
            if best_distance is None or distance < best_distance:
                best_index = index
                best_distance = distance
        return best_index

    @staticmethod
    def _parse_target(target: str) -> dt.date:
        day = parse_date(target)
        if day is None:
            raise InvalidTargetDate(f"Invalid target date {target!r}")
        return day
