"""Shape generator operators.

Shapes take no inputs. Sizes are authored against the preview resolution
and scaled by resolution / preview_resolution; path and pen shapes use
normalized (0-1) coordinates and are scaled by the resolution directly.
"""

from typing import Optional

import svg

from ..models import VectorFragment
from ..shape_paths import (
    RoleTension,
    SplinePoint,
    fmt,
    get_beam_path,
    get_bezier_path,
    get_ellipse_path,
    get_rect_path,
    get_spline_path,
    get_star_path,
    get_wavy_path,
    parse_bezier_points,
    parse_spline_points,
)
from .params import (
    BeamParams,
    CircleParams,
    PathParams,
    PenParams,
    PolygonParams,
    RectangleParams,
    WavyRingParams,
)
from .utils import OperatorContext

# Triangle drawn by a path node that has no points yet (normalized coordinates)
DEFAULT_PATH_POINTS = (
    (0.5, 0.2, "outer"),
    (0.8, 0.8, "inner"),
    (0.2, 0.8, "inner"),
)

SOLID_PAINT = {"fill": "white", "stroke": "none"}
OUTLINE_PAINT = {
    "fill": "white",
    "stroke": "white",
    "stroke_width": 2,
    "stroke_linejoin": "round",
}


def shape_fragment(
    path_d: str,
    transform: Optional[str],
    paint: dict,
    defs: "tuple[str, ...]" = (),
) -> VectorFragment:
    """Wrap a path description in a (possibly transformed) group."""
    path = svg.Path(d=path_d, **paint)
    group = svg.G(transform=transform, elements=[path])
    return VectorFragment(group.as_str(), tuple(defs))


def _scale(resolution: int, ctx: OperatorContext) -> float:
    return resolution / ctx.config.preview_resolution


def _centered(resolution: int) -> str:
    center = resolution / 2
    return f"translate({fmt(center)}, {fmt(center)})"


async def process_rectangle_node(params, resolution, inputs, ctx) -> VectorFragment:
    p = RectangleParams.from_params(params)
    scale = _scale(resolution, ctx)
    w = p.width * scale
    h = p.height * scale

    path_d = get_rect_path(
        w,
        h,
        {
            "tl": p.radius_tl * scale,
            "tr": p.radius_tr * scale,
            "br": p.radius_br * scale,
            "bl": p.radius_bl * scale,
        },
    )

    # The rect path starts at its top-left corner, offset it so it is centered
    center = resolution / 2
    transform = f"translate({fmt(center - w / 2)}, {fmt(center - h / 2)})"
    return shape_fragment(path_d, transform, SOLID_PAINT)


async def process_circle_node(params, resolution, inputs, ctx) -> VectorFragment:
    p = CircleParams.from_params(params)
    scale = _scale(resolution, ctx)
    path_d = get_ellipse_path(0, 0, p.width * scale / 2, p.height * scale / 2)
    return shape_fragment(path_d, _centered(resolution), SOLID_PAINT)


async def process_polygon_node(params, resolution, inputs, ctx) -> VectorFragment:
    p = PolygonParams.from_params(params)
    scale = _scale(resolution, ctx)
    path_d = get_star_path(
        0, 0, p.points, p.outer_radius * scale, p.inner_radius * scale
    )
    return shape_fragment(path_d, _centered(resolution), SOLID_PAINT)


async def process_wavy_ring_node(params, resolution, inputs, ctx) -> VectorFragment:
    p = WavyRingParams.from_params(params)
    scale = _scale(resolution, ctx)
    path_d = get_wavy_path(p.radius * scale, p.frequency, p.amplitude * scale)
    return shape_fragment(path_d, _centered(resolution), SOLID_PAINT)


async def process_beam_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Trapezoid beam filled with a top-to-bottom fading gradient."""
    p = BeamParams.from_params(params)
    scale = _scale(resolution, ctx)
    path_d = get_beam_path(p.length * scale, p.top_width * scale, p.bottom_width * scale)

    grad_id = ctx.ids("beamGrad")
    gradient = svg.LinearGradient(
        id=grad_id,
        x1=0,
        y1=0,
        x2=0,
        y2=1,
        elements=[
            svg.Stop(offset=offset, stop_color="white", stop_opacity=opacity)
            for offset, opacity in (("0%", 1), ("60%", 0.2), ("100%", 0))
        ],
    )
    paint = {"fill": f"url(#{grad_id})", "stroke": "none"}
    return shape_fragment(path_d, _centered(resolution), paint, (gradient.as_str(),))


def _path_tension(p: PathParams):
    if p.tension_inner is None and p.tension_outer is None:
        return p.tension
    return RoleTension(
        inner=p.tension_inner if p.tension_inner is not None else p.tension,
        outer=p.tension_outer if p.tension_outer is not None else p.tension,
    )


async def process_path_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Closed tension spline through normalized points.

    AIDEV-NOTE: An empty points list draws the default triangle. A non-empty
    list whose entries are all malformed draws nothing.
    """
    p = PathParams.from_params(params)

    if p.points:
        points = parse_spline_points(p.points, scale=resolution)
    else:
        points = [
            SplinePoint(x * resolution, y * resolution, role)
            for x, y, role in DEFAULT_PATH_POINTS
        ]

    path_d = get_spline_path(points, _path_tension(p), closed=True)
    return shape_fragment(path_d, None, OUTLINE_PAINT)


async def process_pen_node(params, resolution, inputs, ctx) -> VectorFragment:
    """Closed free bezier through normalized anchors and handles."""
    p = PenParams.from_params(params)
    points = parse_bezier_points(p.points, scale=resolution)
    path_d = get_bezier_path(points, closed=True)
    return shape_fragment(path_d, None, OUTLINE_PAINT)
