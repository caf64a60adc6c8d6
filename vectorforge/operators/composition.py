"""Input, transform, combination and output operators.

AIDEV-NOTE: Combinations are coverage compositing (groups and masks), not
polygon booleans. B's coverage is turned into a mask by recoloring it solid
white (or black, for "everything but B") with a color-matrix filter while
keeping its alpha.
"""

import re

import svg

from ..models import VectorFragment
from ..rasterizer import RawMarkup
from ..shape_paths import fmt
from .params import (
    AlphaParams,
    ColorParams,
    GradientParams,
    ImageParams,
    RotateParams,
    ScaleParams,
    TranslateParams,
    ValueParams,
)
from .utils import decode_data_uri, image_markup, wrap

HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

# Color matrices that replace RGB with a constant and keep alpha
WHITE_MATRIX = "0 0 0 0 1 0 0 0 0 1 0 0 0 0 1 0 0 0 1 0"
BLACK_MATRIX = "0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 1 0"


def _input(inputs, port: str = "in") -> VectorFragment:
    return inputs.get(port) if inputs else None


# --- Inputs ---


async def process_image_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Embed an already-decoded image data URI, stretched over the canvas."""
    p = ImageParams.from_params(params)
    if not p.image_src:
        return VectorFragment.empty()

    try:
        decode_data_uri(p.image_src)
    except (ValueError, OSError) as e:
        ctx.warn("Image node source is not a readable image", e)
        return VectorFragment.empty()

    return VectorFragment(image_markup(p.image_src, resolution), ())


def parse_stops(raw) -> "list[tuple[float, str, float]]":
    """Filter gradient stops to (offset, color, opacity), sorted by offset.

    Stops without a numeric offset are dropped. Invalid colors fall back to
    black and invalid opacities to 1.
    """
    stops = []
    for stop in raw:
        if not isinstance(stop, dict):
            continue
        offset = stop.get("offset")
        if not isinstance(offset, (int, float)) or isinstance(offset, bool):
            continue

        color = stop.get("color")
        if not (isinstance(color, str) and HEX_COLOR.match(color)):
            color = "#000000"

        opacity = stop.get("opacity", 1)
        if not isinstance(opacity, (int, float)) or isinstance(opacity, bool):
            opacity = 1

        stops.append(
            (min(1.0, max(0.0, float(offset))), color, min(1.0, max(0.0, float(opacity))))
        )
    return sorted(stops, key=lambda s: s[0])


async def process_gradient_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Full-bleed rectangle filled with a linear gradient along (x, y)."""
    p = GradientParams.from_params(params)

    stops = parse_stops(p.stops) or parse_stops(GradientParams().stops)
    dx, dy = p.x, p.y
    if dx == 0 and dy == 0:
        dx = 1.0

    grad_id = ctx.ids("grad")
    definition = svg.LinearGradient(
        id=grad_id,
        x1=fmt(0.5 - dx / 2),
        y1=fmt(0.5 - dy / 2),
        x2=fmt(0.5 + dx / 2),
        y2=fmt(0.5 + dy / 2),
        elements=[
            svg.Stop(offset=f"{fmt(offset * 100)}%", stop_color=color, stop_opacity=fmt(opacity))
            for offset, color, opacity in stops
        ],
    )
    return VectorFragment(_full_bleed(resolution, f"url(#{grad_id})"), (definition.as_str(),))


def _full_bleed(resolution: int, fill: str, **attributes) -> str:
    return svg.Rect(
        x=0, y=0, width=resolution, height=resolution, fill=fill, **attributes
    ).as_str()


def _rgb(r: int, g: int, b: int) -> str:
    return f"rgb({r},{g},{b})"


async def process_color_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Recolor the input to a flat RGB color, or emit a full-bleed swatch.

    AIDEV-NOTE: the recolor matrix replaces RGB with the chosen color and
    keeps the input's alpha, the same trick the coverage masks use.
    """
    p = ColorParams.from_params(params)
    source = _input(inputs)
    if source is None:
        return VectorFragment(_full_bleed(resolution, _rgb(p.r, p.g, p.b)), ())

    r, g, b = (fmt(c / 255) for c in (p.r, p.g, p.b))
    filter_id = ctx.ids("color")
    matrix = f"0 0 0 0 {r} 0 0 0 0 {g} 0 0 0 0 {b} 0 0 0 1 0"
    return VectorFragment(
        wrap(source.markup, filter=f"url(#{filter_id})"),
        source.with_defs(_recolor_filter(filter_id, matrix)),
    )


async def process_value_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Full-bleed gray swatch at the given brightness."""
    p = ValueParams.from_params(params)
    v = round(p.value * 255)
    return VectorFragment(_full_bleed(resolution, _rgb(v, v, v)), ())


async def process_alpha_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Apply a uniform opacity to the input, or emit a translucent white swatch."""
    p = AlphaParams.from_params(params)
    opacity = fmt(p.value)
    source = _input(inputs)
    if source is None:
        return VectorFragment(_full_bleed(resolution, "white", opacity=opacity), ())
    return VectorFragment(wrap(source.markup, opacity=opacity), source.shared_defs)


# --- Transforms ---


def _transformed(source: VectorFragment, transform: str) -> VectorFragment:
    return VectorFragment(wrap(source.markup, transform=transform), source.shared_defs)


async def process_translate_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Offset by (x, y) given as fractions of the resolution."""
    p = TranslateParams.from_params(params)
    return _transformed(
        _input(inputs),
        f"translate({fmt(p.x * resolution)}, {fmt(p.y * resolution)})",
    )


async def process_rotate_node(params, resolution, inputs, ctx) -> VectorFragment:
    p = RotateParams.from_params(params)
    center = fmt(resolution / 2)
    return _transformed(_input(inputs), f"rotate({fmt(p.angle)} {center} {center})")


async def process_scale_node(params, resolution, inputs, ctx) -> VectorFragment:
    p = ScaleParams.from_params(params)
    center = fmt(resolution / 2)
    return _transformed(
        _input(inputs),
        f"translate({center}, {center}) scale({fmt(p.scale)}) "
        f"translate(-{center}, -{center})",
    )


# --- Combinations ---


def _recolor_filter(filter_id: str, matrix: str) -> str:
    return svg.Filter(
        id=filter_id,
        elements=[svg.FeColorMatrix(in_="SourceGraphic", type="matrix", values=matrix)],
    ).as_str()


def coverage_mask(
    mask_id: str, filter_id: str, shape: VectorFragment, resolution: int, inverted: bool
) -> "tuple[str, str]":
    """Mask (plus its recolor filter) from a fragment's coverage.

    Args:
        mask_id: Id for the <mask>
        filter_id: Id for the recolor <filter>
        shape: Fragment whose alpha defines the coverage
        resolution: Canvas size
        inverted: Mask everything except the shape

    Returns:
        (filter definition, mask definition)
    """
    coverage = svg.G(filter=f"url(#{filter_id})", elements=[RawMarkup(shape.markup)])
    if inverted:
        content = [
            svg.Rect(x=0, y=0, width=resolution, height=resolution, fill="white"),
            coverage,
        ]
        matrix = BLACK_MATRIX
    else:
        content = [coverage]
        matrix = WHITE_MATRIX

    mask = svg.Mask(
        id=mask_id,
        maskUnits="userSpaceOnUse",
        x=0,
        y=0,
        width=resolution,
        height=resolution,
        elements=content,
    )
    return _recolor_filter(filter_id, matrix), mask.as_str()


def _masked(
    source: VectorFragment,
    shape: VectorFragment,
    resolution: int,
    inverted: bool,
    ctx,
) -> "tuple[str, tuple[str, ...]]":
    """source's markup masked by shape's coverage, plus the new defs."""
    mask_id = ctx.ids("mask")
    filter_id = ctx.ids("coverage")
    filter_def, mask_def = coverage_mask(mask_id, filter_id, shape, resolution, inverted)
    return wrap(source.markup, mask=f"url(#{mask_id})"), (filter_def, mask_def)


def _combined_defs(a: VectorFragment, b: VectorFragment, *extra: str) -> "tuple[str, ...]":
    return a.with_defs(*b.shared_defs, *extra)


async def process_union_node(params, resolution, inputs, ctx) -> VectorFragment:
    a, b = _input(inputs, "a"), _input(inputs, "b")
    if b is None:
        return a
    return VectorFragment(wrap(a.markup + b.markup), _combined_defs(a, b))


async def process_difference_node(params, resolution, inputs, ctx) -> VectorFragment:
    """A with B's coverage cut out."""
    a, b = _input(inputs, "a"), _input(inputs, "b")
    if b is None:
        return a
    markup, defs = _masked(a, b, resolution, True, ctx)
    return VectorFragment(markup, _combined_defs(a, b, *defs))


async def process_intersection_node(params, resolution, inputs, ctx) -> VectorFragment:
    """A restricted to B's coverage."""
    a, b = _input(inputs, "a"), _input(inputs, "b")
    if b is None:
        return a
    markup, defs = _masked(a, b, resolution, False, ctx)
    return VectorFragment(markup, _combined_defs(a, b, *defs))


async def process_exclusion_node(params, resolution, inputs, ctx) -> VectorFragment:
    """(A - B) + (B - A)."""
    a, b = _input(inputs, "a"), _input(inputs, "b")
    if b is None:
        return a
    a_only, a_defs = _masked(a, b, resolution, True, ctx)
    b_only, b_defs = _masked(b, a, resolution, True, ctx)
    return VectorFragment(
        wrap(a_only + b_only), _combined_defs(a, b, *a_defs, *b_defs)
    )


# --- Output ---


async def process_output_node(params, resolution, inputs, ctx) -> VectorFragment:
    return _input(inputs)
