from __future__ import annotations

import pytest
from PIL import Image

from gui.preview import LayerPreviewController, composite, pixel_to_lon_lat, preview_dimensions
from thermal.common import GeoBoundingBox, find_site
from thermal.interface import Layer, LayerRole, LayerStyle, VisualizationParameters
from thermal.layers import LayerCompositor, marker_layer

from tests.fakes import ManualExecutor, ScriptedEngine, array_engine

GREENIDGE = find_site("Greenidge Generation")
REGION = GeoBoundingBox.around(GREENIDGE.lon, GREENIDGE.lat, 1.0, 0.5)


def _layer(name: str, z_order: int, role: LayerRole = LayerRole.RGB) -> Layer:
    return Layer(role=role, name=name, data=name, style=LayerStyle(), z_order=z_order)


def test_pixel_to_lon_lat_corners() -> None:
    assert pixel_to_lon_lat(REGION, 200, 100, 0, 0) == pytest.approx((REGION.min_lon, REGION.max_lat))
    assert pixel_to_lon_lat(REGION, 200, 100, 200, 100) == pytest.approx((REGION.max_lon, REGION.min_lat))
    assert pixel_to_lon_lat(REGION, 200, 100, 100, 50) == pytest.approx((GREENIDGE.lon, GREENIDGE.lat))
    with pytest.raises(ValueError):
        pixel_to_lon_lat(REGION, 0, 100, 0, 0)


def test_preview_dimensions_follow_region_aspect() -> None:
    assert preview_dimensions(REGION, 512) == (512, 256)


def test_composite_draws_in_z_order() -> None:
    bottom = Image.new("RGBA", (4, 4), (0, 0, 255, 255))
    top = Image.new("RGBA", (4, 4), (255, 0, 0, 255))
    image = composite([_layer("top", 3), _layer("bottom", 0)], [top, bottom], (4, 4))
    assert image.getpixel((1, 1)) == (255, 0, 0, 255)


def test_controller_renders_latest_request_only() -> None:
    executor = ManualExecutor()
    preview = LayerPreviewController(ScriptedEngine(), executor=executor)
    layers = [marker_layer("markers")]

    preview.request(layers, 1, REGION, 64)
    preview.request(layers, 1, REGION, 64)
    assert len(executor.jobs) == 1
    preview.request(layers, 2, REGION, 64)
    preview.request(layers, 3, REGION, 64)
    assert preview.status == "Queued"

    executor.run_all()
    assert preview.poll() is None
    assert len(executor.jobs) == 2

    executor.run_all()
    result = preview.poll()
    assert result.request.version == 3
    assert result.image.size == (64, 32)
    assert preview.status == "Ready"


def test_failed_layers_are_skipped() -> None:
    executor = ManualExecutor()
    preview = LayerPreviewController(ScriptedEngine(), executor=executor)
    preview.request([_layer("broken", 0), marker_layer("markers")], 1, REGION, 64)
    executor.run_all()
    result = preview.poll()
    assert result.skipped == ("broken",)
    assert "broken" in preview.status_detail


def test_preview_of_array_scene() -> None:
    engine = array_engine(GREENIDGE)
    scene = engine.load_scene(GREENIDGE, REGION, "2023-06-01")
    params = VisualizationParameters(lst_range=(60.0, 80.0), rgb_min=(-0.1,) * 3, rgb_max=(0.3,) * 3)
    layers = LayerCompositor().compose(scene, params, engine.site_markers([GREENIDGE]))
    executor = ManualExecutor()
    preview = LayerPreviewController(engine, executor=executor)
    preview.request(layers, 7, REGION, 128)
    executor.run_all()
    result = preview.poll()
    assert result.image.size == (128, 64)
    assert result.skipped == ()
    # Site marker is drawn on top of everything else.
    assert result.image.getpixel((64, 32))[:3] == (255, 0, 0)
