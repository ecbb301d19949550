"""Capability protocol for the remote imagery/reduction backend."""
from __future__ import annotations

from typing import Any, Iterable, Optional, Protocol, Sequence

from PIL import Image

from .common import GeoBoundingBox, Site
from .interface import Layer, ReductionRequest, Scene

ReductionResult = Optional[dict[str, Optional[float]]]


class ComputeEngine(Protocol):
    """Backend able to list, reduce and render per-date thermal scenes.

    Implementations raise :class:`thermal.errors.ComputeEngineError` for
    backend failures. A reduction that produced no value is reported as
    ``None`` (or ``None`` entries) rather than an error.
    """

    def list_dates(self, site: Site, aoi: GeoBoundingBox, start: str, end: str) -> list[str]:
        """Return the acquisition dates of scenes intersecting ``site``."""

    def load_scene(self, site: Site, aoi: GeoBoundingBox, date: str) -> Scene:
        """Return the data references for the first scene on ``date``."""

    def reduce_regions(self, requests: Sequence[ReductionRequest]) -> list[ReductionResult]:
        """Evaluate every reduction in a single round trip."""

    def sample(self, image: Any, lon: float, lat: float, band: str, scale: int) -> Optional[float]:
        """Return the first value of ``band`` at a point, ``None`` when masked."""

    def site_markers(self, sites: Iterable[Site]) -> Any:
        """Return a renderable reference for the site marker overlay."""

    def render_layer(self, layer: Layer, region: GeoBoundingBox, size: int) -> Image.Image:
        """Render one styled layer over ``region`` as an RGBA image."""
