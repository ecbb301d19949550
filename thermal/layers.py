from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from .config import DEFAULT_CONFIG, LST_PALETTE, RGB_BANDS, ThermalConfig
from .interface import (
    LAYER_ORDER,
    Layer,
    LayerRole,
    LayerStyle,
    Scene,
    VisualizationParameters,
)

LOGGER = logging.getLogger(__name__)

LAYER_NAMES = {
    LayerRole.RGB: "RGB",
    LayerRole.LST: "LST",
    LayerRole.LAND_MASK: "Land Mask",
    LayerRole.SITE_MARKERS: "Selectable Points",
}
LST_RESAMPLING = "bicubic"
LAND_MASK_COLOR = "000000"
MARKER_COLOR = "red"


def lst_style(low: float, high: float, palette: Sequence[str] = LST_PALETTE) -> LayerStyle:
    return LayerStyle(min=(low,), max=(high,), palette=tuple(palette))


def marker_layer(markers: Any) -> Layer:
    return Layer(
        role=LayerRole.SITE_MARKERS,
        name=LAYER_NAMES[LayerRole.SITE_MARKERS],
        data=markers,
        style=LayerStyle(color=MARKER_COLOR),
        z_order=LAYER_ORDER.index(LayerRole.SITE_MARKERS),
    )


class LayerCompositor:
    """Build the full, ordered layer list for one displayed date."""

    def __init__(self, config: ThermalConfig = DEFAULT_CONFIG) -> None:
        self._config = config

    def compose(self, scene: Scene, params: VisualizationParameters, markers: Any) -> tuple[Layer, ...]:
        rgb = Layer(
            role=LayerRole.RGB,
            name=LAYER_NAMES[LayerRole.RGB],
            data=scene.rgb,
            style=LayerStyle(min=params.rgb_min, max=params.rgb_max, bands=RGB_BANDS),
            z_order=0,
        )
        # Display uses the unmasked thermal image; the masked one only feeds statistics.
        lst = Layer(
            role=LayerRole.LST,
            name=LAYER_NAMES[LayerRole.LST],
            data=scene.lst_display,
            style=lst_style(*params.lst_range),
            z_order=1,
            resample=LST_RESAMPLING,
        )
        land = Layer(
            role=LayerRole.LAND_MASK,
            name=LAYER_NAMES[LayerRole.LAND_MASK],
            data=scene.land_mask,
            style=LayerStyle(palette=(LAND_MASK_COLOR,)),
            z_order=2,
        )
        return (rgb, lst, land, marker_layer(markers))


class LayerStack:
    """The visible layer list; only ever swapped as a whole."""

    def __init__(self) -> None:
        self._layers: tuple[Layer, ...] = ()
        self._version = 0

    @property
    def layers(self) -> tuple[Layer, ...]:
        return self._layers

    @property
    def version(self) -> int:
        return self._version

    def replace(self, layers: Sequence[Layer]) -> None:
        new_layers = tuple(layers)
        roles = tuple(layer.role for layer in new_layers)
        if roles not in (LAYER_ORDER, LAYER_ORDER[-1:]):
            raise ValueError(f"Layers must be ordered {[r.value for r in LAYER_ORDER]}, got {[r.value for r in roles]}")
        self._layers = new_layers
        self._version += 1

    def get(self, role: LayerRole) -> Optional[Layer]:
        for layer in self._layers:
            if layer.role is role:
                return layer
        return None

    def restyle(self, role: LayerRole, style: LayerStyle) -> bool:
        """Swap the style of one layer, keeping its data reference."""
        layer = self.get(role)
        if layer is None:
            LOGGER.debug("No %s layer to restyle", role.value)
            return False
        self._layers = tuple(item.restyled(style) if item.role is role else item for item in self._layers)
        self._version += 1
        return True

    def clear(self) -> None:
        self._layers = ()
        self._version += 1
