import asyncio

import numpy as np

from conftest import FakeRasterizer, disk_pixels
from vectorforge.models import VectorFragment
from vectorforge.operators.raster import (
    layer_blur,
    polar_remap,
    process_layer_blur_node,
    process_pixelate_node,
    process_polar_node,
)
from vectorforge.operators.utils import decode_data_uri, png_data_uri

SOURCE = VectorFragment('<circle cx="10" cy="10" r="5" fill="white"/>', ())


def image_pixels(fragment):
    start = fragment.markup.index('href="') + len('href="')
    uri = fragment.markup[start:fragment.markup.index('"', start)]
    return np.asarray(decode_data_uri(uri))


def solid_white(width, height):
    return np.full((height, width, 4), 255, dtype=np.uint8)


# --- Pixelate ---


def test_pixelate_renders_at_reduced_size(make_ctx):
    rasterizer = FakeRasterizer()
    result = asyncio.run(
        process_pixelate_node({"pixelSize": 10}, 256, {"in": SOURCE}, make_ctx(rasterizer))
    )

    request = rasterizer.requests[0]
    assert (request.width, request.height, request.viewport_size) == (25, 25, 256)
    assert 'style="image-rendering: pixelated"' in result.markup
    assert 'width="256"' in result.markup
    assert image_pixels(result).shape == (25, 25, 4)


def test_pixelate_size_never_drops_below_one(make_ctx):
    rasterizer = FakeRasterizer()
    asyncio.run(process_pixelate_node({"pixelSize": 500}, 64, {"in": SOURCE}, make_ctx(rasterizer)))
    assert rasterizer.requests[0].width == 1


def test_pixelate_passes_input_through_on_failure(make_ctx, failing_rasterizer):
    ctx = make_ctx(failing_rasterizer)
    result = asyncio.run(process_pixelate_node({"pixelSize": 4}, 64, {"in": SOURCE}, ctx))
    assert result is SOURCE


def test_pixelate_without_input_is_empty(make_ctx, disk_rasterizer):
    result = asyncio.run(process_pixelate_node({}, 64, {}, make_ctx(disk_rasterizer)))
    assert result.is_empty
    assert disk_rasterizer.calls == 0


# --- Layer blur ---


def test_layer_blur_degenerate_axis_returns_source():
    pixels = disk_pixels(32, 32)
    assert layer_blur(pixels, 10, (16, 16), (16.5, 16), steps=8) is pixels
    assert layer_blur(pixels, 0.2, (0, 0), (32, 32), steps=8) is pixels


def test_layer_blur_node_degenerate_is_lossless(make_ctx):
    rasterizer = FakeRasterizer()
    params = {"pointA": {"x": 0.5, "y": 0.5}, "pointB": {"x": 0.5, "y": 0.5}}
    result = asyncio.run(process_layer_blur_node(params, 32, {"in": SOURCE}, make_ctx(rasterizer)))

    assert np.array_equal(image_pixels(result), disk_pixels(32, 32))


def test_layer_blur_softens_the_blurry_end(make_ctx):
    rasterizer = FakeRasterizer()
    ctx = make_ctx(rasterizer, blur_steps=4)
    params = {"radius": 4, "pointA": {"x": 0.5, "y": 0.0}, "pointB": {"x": 0.5, "y": 1.0}}

    result = asyncio.run(process_layer_blur_node(params, 64, {"in": SOURCE}, ctx))

    # One rasterization; the layers are blurred from the same pixels
    assert rasterizer.calls == 1
    alpha = image_pixels(result)[..., 3]
    source_alpha = disk_pixels(64, 64)[..., 3]

    bottom = alpha[40:]
    assert np.any((bottom > 0) & (bottom < 255))
    assert not np.array_equal(alpha, source_alpha)
    # Far from the shape nothing is painted
    assert alpha[0, 0] == 0


def test_layer_blur_passes_input_through_on_failure(make_ctx, failing_rasterizer):
    result = asyncio.run(process_layer_blur_node({}, 64, {"in": SOURCE}, make_ctx(failing_rasterizer)))
    assert result is SOURCE


# --- Polar ---


def test_rect_to_polar_maps_top_row_to_center():
    out = polar_remap(solid_white(64, 64), "rect_to_polar")

    assert out[32, 32, 3] == 255
    # Corners are further than half the canvas from the center
    assert out[0, 0, 3] == 0
    assert out[63, 63, 3] == 0


def test_polar_to_rect_unrolls_rings_into_bands():
    out = polar_remap(disk_pixels(64, 64, radius=0.25), "polar_to_rect")

    # Rows map to distance from the center: near rows fall inside the disk
    assert np.all(out[:24, :, 3] == 255)
    assert np.all(out[40:, :, 3] == 0)


def test_polar_offset_moves_center():
    out = polar_remap(solid_white(64, 64), "rect_to_polar", offset_x=1.0, offset_y=1.0)
    # The center is now the bottom-right corner
    assert out[63, 63, 3] == 255
    assert out[0, 0, 3] == 0


def test_polar_node(make_ctx, failing_rasterizer):
    rasterizer = FakeRasterizer(solid_white)
    result = asyncio.run(
        process_polar_node({"type": "rect_to_polar"}, 32, {"in": SOURCE}, make_ctx(rasterizer))
    )
    assert image_pixels(result)[16, 16, 3] == 255

    passthrough = asyncio.run(process_polar_node({}, 32, {"in": SOURCE}, make_ctx(failing_rasterizer)))
    assert passthrough is SOURCE
    assert asyncio.run(process_polar_node({}, 32, {}, make_ctx(rasterizer))).is_empty


def test_png_data_uri_round_trips_pixels():
    pixels = disk_pixels(8, 8, color=(10, 200, 30))
    assert np.array_equal(np.asarray(decode_data_uri(png_data_uri(pixels))), pixels)
