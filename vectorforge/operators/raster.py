"""Operators that bake their input into pixels.

Each one rasterizes the input through the context's rasterizer, works on
the RGBA array with numpy/Pillow and re-embeds the result as a PNG image.
On rasterization failure the input passes through unchanged.
"""

import math

import numpy as np
from PIL import Image, ImageFilter

from ..errors import RasterizationError
from ..models import VectorFragment
from .params import LayerBlurParams, PixelateParams, PolarParams
from .utils import raster_fragment


def _input(inputs) -> VectorFragment:
    return inputs.get("in") if inputs else None


async def process_pixelate_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Render at resolution / pixelSize and upscale with hard edges.

    AIDEV-NOTE: pixelSize 1 renders at full resolution, which bakes the
    upstream vector content into a bitmap.
    """
    source = _input(inputs)
    if source is None:
        return VectorFragment.empty()

    p = PixelateParams.from_params(params)
    size = max(1, int(math.floor(resolution / p.pixel_size)))

    try:
        pixels = await ctx.rasterize(source, size, size, resolution)
    except RasterizationError as e:
        ctx.warn("Pixelation failed", e)
        return source

    return raster_fragment(pixels, resolution, pixelated=True)


# --- Layer blur ---


def _premultiplied(rgba: np.ndarray) -> np.ndarray:
    pixels = rgba.astype(np.float64) / 255
    pixels[..., :3] *= pixels[..., 3:4]
    return pixels


def _unpremultiplied(pixels: np.ndarray) -> np.ndarray:
    alpha = pixels[..., 3:4]
    rgb = np.divide(
        pixels[..., :3], alpha, out=np.zeros_like(pixels[..., :3]), where=alpha > 0
    )
    result = np.concatenate([rgb, alpha], axis=-1)
    return np.clip(np.round(result * 255), 0, 255).astype(np.uint8)


def gaussian_blur(rgba: np.ndarray, radius: float) -> np.ndarray:
    """Blur an RGBA array, returned premultiplied in [0, 1].

    Blurring in premultiplied space keeps transparent pixels from bleeding
    their (meaningless) color into the edges.
    """
    image = Image.fromarray(rgba).convert("RGBa")
    blurred = image.filter(ImageFilter.GaussianBlur(radius))
    return np.asarray(blurred, dtype=np.float64) / 255


def axis_ramp(
    resolution: int,
    start: "tuple[float, float]",
    end: "tuple[float, float]",
    t_start: float,
    t_end: float,
) -> np.ndarray:
    """Linear mask along start -> end: 0 before t_start, 1 after t_end.

    Points are in pixels; t is the normalized position along the axis.
    """
    x1, y1 = start
    dx = end[0] - x1
    dy = end[1] - y1
    length_sq = dx * dx + dy * dy

    ys, xs = np.mgrid[0:resolution, 0:resolution].astype(np.float64)
    t = ((xs + 0.5 - x1) * dx + (ys + 0.5 - y1) * dy) / length_sq
    return np.clip((t - t_start) / (t_end - t_start), 0.0, 1.0)


def layer_blur(
    rgba: np.ndarray,
    radius: float,
    point_a: "tuple[float, float]",
    point_b: "tuple[float, float]",
    steps: int,
) -> np.ndarray:
    """Blur that grows from point_a (sharp) to point_b (blurred by radius).

    Args:
        rgba: Sharp source, (res, res, 4) uint8
        radius: Blur radius reached at point_b
        point_a: Sharp end in pixels
        point_b: Blurry end in pixels
        steps: Number of stacked layers

    Returns:
        Composited (res, res, 4) uint8 array; rgba itself when the points
        are less than one pixel apart or radius < 0.5

    AIDEV-NOTE: Layer i (1-based) shows the source blurred by (i/steps) *
    radius, faded in from transparent at (i-1)/steps to opaque at i/steps
    along the axis. Stacking the layers in order over the sharp base avoids
    visible seams between blur levels.
    """
    resolution = rgba.shape[0]
    dist = math.hypot(point_b[0] - point_a[0], point_b[1] - point_a[1])
    if dist < 1 or radius < 0.5:
        return rgba

    out = _premultiplied(rgba)
    for i in range(1, steps + 1):
        mask = axis_ramp(resolution, point_a, point_b, (i - 1) / steps, i / steps)
        layer = gaussian_blur(rgba, (i / steps) * radius) * mask[..., np.newaxis]
        # Source-over
        out = layer + out * (1 - layer[..., 3:4])

    return _unpremultiplied(out)


async def process_layer_blur_node(params, resolution, inputs, ctx) -> VectorFragment:
    source = _input(inputs)
    if source is None:
        return VectorFragment.empty()

    p = LayerBlurParams.from_params(params)

    try:
        pixels = await ctx.rasterize(source, resolution, resolution, resolution)
    except RasterizationError as e:
        ctx.warn("Layer Blur rasterization failed", e)
        return source

    point_a = (p.point_a["x"] * resolution, p.point_a["y"] * resolution)
    point_b = (p.point_b["x"] * resolution, p.point_b["y"] * resolution)
    result = layer_blur(pixels, p.radius, point_a, point_b, ctx.config.blur_steps)
    return raster_fragment(result, resolution)


# --- Polar coordinates ---


def polar_remap(
    rgba: np.ndarray,
    mode: str = "rect_to_polar",
    offset_x: float = 0.0,
    offset_y: float = 0.0,
    radial_scale: float = 1.0,
    angular_scale: float = 1.0,
) -> np.ndarray:
    """Nearest-neighbour remap between rectangular and polar layouts.

    rect_to_polar wraps the source's x axis around the center (angle, from
    12 o'clock clockwise) and maps its y axis to the distance from the
    center, turning horizontal bands into rings. polar_to_rect unrolls rings
    around the center into horizontal bands. The offsets move the center
    by up to half the canvas.
    """
    height, width = rgba.shape[:2]
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
    u = (xs + 0.5) / width
    v = (ys + 0.5) / height
    cx = 0.5 + offset_x * 0.5
    cy = 0.5 + offset_y * 0.5

    if mode == "polar_to_rect":
        angle = u * math.pi * 2 / angular_scale - math.pi / 2
        radius = v * 0.5 / radial_scale
        su = cx + radius * np.cos(angle)
        sv = cy + radius * np.sin(angle)
    else:
        dx = u - cx
        dy = v - cy
        angle = (np.arctan2(dy, dx) + math.pi / 2) / (math.pi * 2)
        su = np.mod(np.mod(angle, 1.0) * angular_scale, 1.0)
        sv = np.sqrt(dx * dx + dy * dy) * 2 * radial_scale

    sx = np.floor(su * width).astype(np.int64)
    sy = np.floor(sv * height).astype(np.int64)
    valid = (sx >= 0) & (sx < width) & (sy >= 0) & (sy < height)

    out = np.zeros_like(rgba)
    out[valid] = rgba[sy[valid], sx[valid]]
    return out


async def process_polar_node(params, resolution, inputs, ctx) -> VectorFragment:
    source = _input(inputs)
    if source is None:
        return VectorFragment.empty()

    p = PolarParams.from_params(params)

    try:
        pixels = await ctx.rasterize(source, resolution, resolution, resolution)
    except RasterizationError as e:
        ctx.warn("Polar remap rasterization failed", e)
        return source

    result = polar_remap(
        pixels, p.mode, p.x, p.y, p.radial_scale, p.angular_scale
    )
    return raster_fragment(result, resolution)
