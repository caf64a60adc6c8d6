"""Style and filter operators.

These never rasterize: they rewrite markup (fill, stroke) or wrap it in a
group that references a freshly minted filter, gradient or mask definition.
"""

import svg

from ..models import VectorFragment
from ..shape_paths import fmt
from .params import (
    FillParams,
    GlowParams,
    GradientFadeParams,
    NeonParams,
    SoftBlurParams,
    StrokeParams,
)
from .utils import insert_attributes, strip_attributes, wrap


def _input(inputs) -> VectorFragment:
    return inputs.get("in") if inputs else None


async def process_fill_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Replace fill/stroke paint on every drawable element."""
    source = _input(inputs)
    if source is None:
        return VectorFragment.empty()

    p = FillParams.from_params(params)
    fill = "white" if p.fill_enabled else "none"
    # A disabled fill keeps a hairline outline so the shape stays visible
    stroke = "white" if (p.stroke_width > 0 or not p.fill_enabled) else "none"
    width = p.stroke_width if p.stroke_width > 0 else 1

    markup = strip_attributes(source.markup, ("fill", "stroke", "stroke-width"))
    markup = insert_attributes(
        markup, f'fill="{fill}" stroke="{stroke}" stroke-width="{fmt(width)}"'
    )
    return VectorFragment(markup, source.shared_defs)


async def process_stroke_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Replace stroke paint on every drawable element, keeping fills."""
    source = _input(inputs)
    if source is None:
        return VectorFragment.empty()

    p = StrokeParams.from_params(params)
    markup = strip_attributes(
        source.markup, ("stroke", "stroke-width", "stroke-opacity")
    )
    markup = insert_attributes(
        markup,
        f'stroke="white" stroke-width="{fmt(p.width)}" stroke-opacity="{fmt(p.opacity)}"',
    )
    return VectorFragment(markup, source.shared_defs)


def glow_filter(filter_id: str, blur_wide: float, blur_tight: float, intensity: float) -> str:
    """Two merged blurs with amplified alpha, drawn under the source graphic.

    Args:
        filter_id: Id of the <filter> element
        blur_wide: stdDeviation of the wide blur
        blur_tight: stdDeviation of the tight blur
        intensity: Alpha multiplier applied to the merged blurs

    Returns:
        Filter definition markup
    """
    amplify = f"1 0 0 0 0 0 1 0 0 0 0 0 1 0 0 0 0 0 {fmt(intensity)} 0"
    return svg.Filter(
        id=filter_id,
        x="-200%",
        y="-200%",
        width="500%",
        height="500%",
        elements=[
            svg.FeGaussianBlur(in_="SourceGraphic", stdDeviation=fmt(blur_wide), result="blur1"),
            svg.FeGaussianBlur(in_="SourceGraphic", stdDeviation=fmt(blur_tight), result="blur2"),
            svg.FeMerge(
                result="mergedBlurs",
                elements=[svg.FeMergeNode(in_="blur1"), svg.FeMergeNode(in_="blur2")],
            ),
            svg.FeColorMatrix(
                in_="mergedBlurs", type="matrix", values=amplify, result="amplifiedBlur"
            ),
            svg.FeMerge(
                elements=[svg.FeMergeNode(in_="amplifiedBlur"), svg.FeMergeNode(in_="SourceGraphic")]
            ),
        ],
    ).as_str()


def _filtered(source: VectorFragment, filter_id: str, definition: str) -> VectorFragment:
    return VectorFragment(
        wrap(source.markup, filter=f"url(#{filter_id})"),
        source.with_defs(definition),
    )


async def process_glow_node(params, resolution, inputs, ctx) -> VectorFragment:
    source = _input(inputs)
    if source is None:
        return VectorFragment.empty()

    p = GlowParams.from_params(params)
    filter_id = ctx.ids("glow")
    definition = glow_filter(filter_id, 10 + p.radius, p.radius / 3, p.intensity)
    return _filtered(source, filter_id, definition)


async def process_neon_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Tighter, brighter variant of glow."""
    source = _input(inputs)
    if source is None:
        return VectorFragment.empty()

    p = NeonParams.from_params(params)
    filter_id = ctx.ids("neon")
    definition = glow_filter(filter_id, p.radius, p.radius / 4, p.intensity)
    return _filtered(source, filter_id, definition)


async def process_soft_blur_node(params, resolution, inputs, ctx) -> VectorFragment:
    source = _input(inputs)
    if source is None:
        return VectorFragment.empty()

    p = SoftBlurParams.from_params(params)
    filter_id = ctx.ids("blur")
    definition = svg.Filter(
        id=filter_id,
        x="-50%",
        y="-50%",
        width="200%",
        height="200%",
        elements=[svg.FeGaussianBlur(in_="SourceGraphic", stdDeviation=fmt(p.radius))],
    ).as_str()
    return _filtered(source, filter_id, definition)


async def process_gradient_fade_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Fade the input along a direction with a gradient-filled mask.

    AIDEV-NOTE: direction 90 is a left-to-right fade (the gradient's natural
    axis), so the gradient is rotated by direction - 90 around its center.
    """
    source = _input(inputs)
    if source is None:
        return VectorFragment.empty()

    p = GradientFadeParams.from_params(params)
    mask_id = ctx.ids("fadeMask")
    grad_id = ctx.ids("fadeGrad")

    gradient = svg.LinearGradient(
        id=grad_id,
        gradientTransform=[svg.Rotate(fmt(p.direction - 90), 0.5, 0.5)],
        elements=[
            svg.Stop(offset="0%", stop_color="white", stop_opacity=fmt(p.start)),
            svg.Stop(offset="100%", stop_color="white", stop_opacity=fmt(p.end)),
        ],
    )
    mask = svg.Mask(
        id=mask_id,
        elements=[
            svg.Rect(x="-100%", y="-100%", width="300%", height="300%", fill=f"url(#{grad_id})")
        ],
    )
    return VectorFragment(
        wrap(source.markup, mask=f"url(#{mask_id})"),
        source.with_defs(gradient.as_str() + mask.as_str()),
    )
