"""Procedural pattern operators."""

from ..errors import RasterizationError
from ..models import VectorFragment
from ..noise import luminance_alpha, make_oscillators, wave_alpha_field, white_rgba
from .params import WaveParams
from .utils import raster_fragment


async def process_wave_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Soft-thresholded oscillator waves, emitted as an embedded bitmap.

    The base field is a vertical 1 -> 0 gradient, or the luminance x alpha
    of the optional input when one is connected and rasterizes.
    """
    p = WaveParams.from_params(params)
    oscillators = make_oscillators(p.seed, p.generators)

    base = None
    source = inputs.get("in") if inputs else None
    if source is not None:
        try:
            pixels = await ctx.rasterize(source, resolution, resolution, resolution)
            base = luminance_alpha(pixels)
        except RasterizationError as e:
            # Fall back to the default gradient
            ctx.warn("Wave node input rasterization failed", e)

    alpha = wave_alpha_field(
        resolution,
        oscillators,
        frequency=p.frequency,
        amplitude=p.amplitude / 100,
        threshold=p.threshold / 100,
        softness=p.softness / 100,
        wave_type=p.wave_type,
        base=base,
    )
    return raster_fragment(white_rgba(alpha), resolution)
