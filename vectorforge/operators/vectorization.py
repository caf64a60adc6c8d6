"""Bitmap to outline vectorizer (marching squares plus segment stitching).

AIDEV-NOTE: The case table is oriented so every contour runs clockwise with
the filled side on its right, which lets the caller fill the traced path
without caring about fill rules. Saddle cases (5 and 10) emit two
independent segments; no center-sample disambiguation is done.
"""

import numpy as np
import svg

from ..errors import RasterizationError
from ..models import VectorFragment
from .params import TraceParams

# Segments per case as (x1, y1, x2, y2) offsets inside the cell.
# Case index = tl * 8 + tr * 4 + br * 2 + bl
CASES = (
    (),  # 0: empty
    ((0, 0.5, 0.5, 1),),  # 1 (BL): left -> bottom
    ((0.5, 1, 1, 0.5),),  # 2 (BR): bottom -> right
    ((0, 0.5, 1, 0.5),),  # 3 (BL+BR): left -> right
    ((1, 0.5, 0.5, 0),),  # 4 (TR): right -> top
    ((0, 0.5, 0.5, 1), (1, 0.5, 0.5, 0)),  # 5 (BL+TR): saddle
    ((0.5, 1, 0.5, 0),),  # 6 (BR+TR): bottom -> top
    ((0, 0.5, 0.5, 0),),  # 7 (not TL): left -> top
    ((0.5, 0, 0, 0.5),),  # 8 (TL): top -> left
    ((0.5, 0, 0.5, 1),),  # 9 (TL+BL): top -> bottom
    ((0.5, 0, 0, 0.5), (0.5, 1, 1, 0.5)),  # 10 (TL+BR): saddle
    ((0.5, 0, 1, 0.5),),  # 11 (not TR): top -> right
    ((1, 0.5, 0, 0.5),),  # 12 (TL+TR): right -> left
    ((1, 0.5, 0.5, 1),),  # 13 (not BR): right -> bottom
    ((0.5, 1, 0, 0.5),),  # 14 (not BL): bottom -> left
    (),  # 15: full
)


def binarize(rgba: np.ndarray, threshold: float = 0.5, invert: bool = False) -> np.ndarray:
    """Binary corner states from an RGBA bitmap.

    Luminance (0.299 R + 0.587 G + 0.114 B) is weighted by alpha, so
    transparent pixels count as dark.

    Returns:
        uint8 array of 0/1 with the bitmap's (height, width) shape
    """
    pixels = rgba.astype(np.float64)
    lum = (pixels[..., 0] * 0.299 + pixels[..., 1] * 0.587 + pixels[..., 2] * 0.114) / 255
    lum = lum * (pixels[..., 3] / 255)
    states = lum < threshold if invert else lum > threshold
    return states.astype(np.uint8)


def _key(x: float, y: float) -> str:
    return f"{x:.2f},{y:.2f}"


def march_squares(states: np.ndarray, scale: float = 1.0) -> "dict[str, str]":
    """Classify grid cells and collect their directed boundary segments.

    Args:
        states: 0/1 array indexed [y, x]
        scale: Factor from grid units to output units

    Returns:
        Mapping start point key -> end point key, in row-major cell order
        (a later segment starting at the same point replaces an earlier one)
    """
    if states.ndim != 2 or min(states.shape) < 2:
        return {}

    s = states.astype(np.uint8)
    tl = s[:-1, :-1]
    tr = s[:-1, 1:]
    br = s[1:, 1:]
    bl = s[1:, :-1]
    cases = tl * 8 + tr * 4 + br * 2 + bl

    next_map: dict[str, str] = {}
    active = (cases != 0) & (cases != 15)
    for y, x in zip(*np.nonzero(active)):
        for x1, y1, x2, y2 in CASES[cases[y, x]]:
            start = _key((x + x1) * scale, (y + y1) * scale)
            end = _key((x + x2) * scale, (y + y2) * scale)
            next_map[start] = end
    return next_map


def stitch_segments(next_map: "dict[str, str]", max_steps: int) -> str:
    """Join directed segments into subpaths.

    Each walk starts at an unvisited segment and follows next pointers until
    it returns to its own start (closed with Z), reaches a point already
    used by another subpath, or dead-ends (left open).

    Args:
        next_map: start key -> end key (see march_squares)
        max_steps: Upper bound on steps per walk

    Returns:
        Path description, "" when there are no segments
    """
    tokens: list[str] = []
    visited: set[str] = set()

    for start, end in next_map.items():
        if start in visited:
            continue

        sx, sy = start.split(",")
        tokens.append(f"M {sx} {sy}")
        visited.add(start)

        current = end
        steps = 0
        while current and steps < max_steps:
            cx, cy = current.split(",")
            tokens.append(f"L {cx} {cy}")

            if current == start:
                tokens.append("Z")
                break
            if current in visited:
                break
            visited.add(current)

            current = next_map.get(current)
            steps += 1

    return " ".join(tokens)


def trace_bitmap(
    rgba: np.ndarray, resolution: int, threshold: float = 0.5, invert: bool = False
) -> str:
    """Trace a square fidelity x fidelity bitmap into a path at output resolution."""
    fidelity = rgba.shape[0]
    states = binarize(rgba, threshold, invert)
    next_map = march_squares(states, resolution / fidelity)
    return stitch_segments(next_map, max_steps=fidelity * fidelity * 2)


async def process_trace_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Rasterize the input at the trace fidelity and emit its filled outline."""
    source = inputs.get("in") if inputs else None
    if source is None:
        return VectorFragment.empty()

    p = TraceParams.from_params(params)
    fidelity = p.fidelity if p.fidelity is not None else ctx.config.default_fidelity

    try:
        pixels = await ctx.rasterize(source, fidelity, fidelity, resolution)
    except RasterizationError as e:
        ctx.warn("Trace node failed to rasterize input", e)
        return VectorFragment.empty()

    path_d = trace_bitmap(pixels, resolution, p.threshold, p.invert)
    if not path_d:
        return VectorFragment.empty()

    return VectorFragment(svg.Path(d=path_d, fill="white", stroke="none").as_str(), ())
