"""Outline geometry for the shape operators.

AIDEV-NOTE: Pure functions, no I/O. Every function returns an SVG path
description string (M/L/A/C/Z commands) in the caller's coordinate space.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

# Number of angular samples used for the wavy ring outline
WAVY_RING_STEPS = 360

# Tensions at or below this value produce straight segments
LINEAR_TENSION = 0.01


@dataclass
class SplinePoint:
    """Spline control point. role is "inner" or "outer" (None counts as outer)."""

    x: float
    y: float
    role: Optional[str] = None


@dataclass
class RoleTension:
    """Separate tensions for inner and outer spline points."""

    inner: float = 0.0
    outer: float = 0.0


@dataclass
class Handle:
    x: float
    y: float


@dataclass
class BezierPoint:
    """Anchor with explicit incoming/outgoing cubic handles."""

    x: float
    y: float
    handle_in: Optional[Handle] = field(default=None)
    handle_out: Optional[Handle] = field(default=None)


def fmt(value: float) -> str:
    """Format a coordinate compactly: integers without a decimal point."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    text = f"{value:.4f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def get_rect_path(w: float, h: float, radii: Optional[dict] = None) -> str:
    """Rectangle with four independent corner radii.

    Args:
        w: Width
        h: Height
        radii: Mapping with optional "tl", "tr", "br", "bl" radii (default 0)

    Returns:
        Closed path starting at the top-left corner, one arc per corner
    """
    radii = radii or {}
    tl = radii.get("tl", 0) or 0
    tr = radii.get("tr", 0) or 0
    br = radii.get("br", 0) or 0
    bl = radii.get("bl", 0) or 0

    return " ".join(
        [
            f"M {fmt(tl)} 0",
            f"L {fmt(w - tr)} 0",
            f"A {fmt(tr)} {fmt(tr)} 0 0 1 {fmt(w)} {fmt(tr)}",
            f"L {fmt(w)} {fmt(h - br)}",
            f"A {fmt(br)} {fmt(br)} 0 0 1 {fmt(w - br)} {fmt(h)}",
            f"L {fmt(bl)} {fmt(h)}",
            f"A {fmt(bl)} {fmt(bl)} 0 0 1 0 {fmt(h - bl)}",
            f"L 0 {fmt(tl)}",
            f"A {fmt(tl)} {fmt(tl)} 0 0 1 {fmt(tl)} 0",
            "Z",
        ]
    )


def get_ellipse_path(cx: float, cy: float, rx: float, ry: float) -> str:
    """Ellipse drawn as two mirrored elliptical arcs."""
    return (
        f"M {fmt(cx - rx)} {fmt(cy)} "
        f"A {fmt(rx)} {fmt(ry)} 0 1 0 {fmt(cx + rx)} {fmt(cy)} "
        f"A {fmt(rx)} {fmt(ry)} 0 1 0 {fmt(cx - rx)} {fmt(cy)} Z"
    )


def star_vertices(
    cx: float, cy: float, points: int, outer_r: float, inner_r: float
) -> "list[tuple[float, float]]":
    """Vertices of a star/polygon, alternating outer and inner radius.

    AIDEV-NOTE: Vertex 0 points straight up (angle -pi/2).
    """
    total = points * 2
    vertices = []
    for i in range(total):
        r = outer_r if i % 2 == 0 else inner_r
        angle = (math.pi * 2 * i) / total - math.pi / 2
        vertices.append((cx + r * math.cos(angle), cy + r * math.sin(angle)))
    return vertices


def get_star_path(
    cx: float, cy: float, points: int, outer_r: float, inner_r: float
) -> str:
    """Star (or regular polygon when inner_r == outer_r) path, closed with Z."""
    vertices = star_vertices(cx, cy, points, outer_r, inner_r)
    return _polyline(vertices, closed=True)


def get_wavy_path(r: float, freq: float, amp: float) -> str:
    """Ring whose radius is modulated by amp * sin(angle * freq)."""
    vertices = []
    for i in range(WAVY_RING_STEPS + 1):
        angle = (i / WAVY_RING_STEPS) * math.pi * 2
        cur_r = r + math.sin(angle * freq) * amp
        vertices.append((cur_r * math.cos(angle), cur_r * math.sin(angle)))
    return _polyline(vertices, closed=True)


def get_beam_path(length: float, top_w: float, bottom_w: float) -> str:
    """Trapezoid centered on the origin, narrow edge at the top."""
    h_len = length / 2
    h_top = top_w / 2
    h_btm = bottom_w / 2
    return (
        f"M {fmt(-h_top)} {fmt(-h_len)} L {fmt(h_top)} {fmt(-h_len)} "
        f"L {fmt(h_btm)} {fmt(h_len)} L {fmt(-h_btm)} {fmt(h_len)} Z"
    )


def _polyline(vertices: "Iterable[tuple[float, float]]", closed: bool) -> str:
    parts = [f"{fmt(x)} {fmt(y)}" for x, y in vertices]
    if not parts:
        return ""
    path = "M " + " L ".join(parts)
    return path + " Z" if closed else path


def get_spline_path(
    points: "list[SplinePoint]",
    tension: Union[float, RoleTension] = 0.5,
    closed: bool = True,
) -> str:
    """Catmull-Rom style spline where each point carries its own tension.

    Args:
        points: Control points in drawing order
        tension: One tension for all points, or a RoleTension resolved per
            point by its role
        closed: Close the loop back to the first point

    Returns:
        Path string, or "" when fewer than two points are given

    AIDEV-NOTE: The tangent leaving p0 is (p1 - p_prev) * t(p0) * 0.25 and the
    tangent arriving at p1 is (p2 - p0) * t(p1) * 0.25. Neighbour indices wrap
    around, also for open splines.
    """
    if not points or len(points) < 2:
        return ""

    if isinstance(tension, RoleTension):
        is_linear = tension.inner <= LINEAR_TENSION and tension.outer <= LINEAR_TENSION
    else:
        is_linear = tension <= LINEAR_TENSION

    if is_linear:
        return _polyline(((p.x, p.y) for p in points), closed)

    def tension_of(p: SplinePoint) -> float:
        if not isinstance(tension, RoleTension):
            return tension
        return tension.inner if p.role == "inner" else tension.outer

    count = len(points)

    def point(idx: int) -> SplinePoint:
        return points[idx % count]

    segments = [f"M {fmt(points[0].x)} {fmt(points[0].y)}"]
    for i in range(count):
        if not closed and i == count - 1:
            break

        p_prev = point(i - 1)
        p0 = point(i)
        p1 = point(i + 1)
        p2 = point(i + 2)

        t0 = tension_of(p0)
        t1 = tension_of(p1)

        t0x = (p1.x - p_prev.x) * t0 * 0.25
        t0y = (p1.y - p_prev.y) * t0 * 0.25
        t1x = (p2.x - p0.x) * t1 * 0.25
        t1y = (p2.y - p0.y) * t1 * 0.25

        segments.append(
            f"C {fmt(p0.x + t0x)} {fmt(p0.y + t0y)}, "
            f"{fmt(p1.x - t1x)} {fmt(p1.y - t1y)}, {fmt(p1.x)} {fmt(p1.y)}"
        )

    if closed:
        segments.append("Z")
    return " ".join(segments)


def _valid_point(p) -> bool:
    return p is not None and _is_number(getattr(p, "x", None)) and _is_number(
        getattr(p, "y", None)
    )


def get_bezier_path(points: "list[Optional[BezierPoint]]", closed: bool = True) -> str:
    """Path through anchors using their explicit cubic handles.

    Malformed points (None, or non-numeric x/y) are skipped and the path
    continues from the previous valid point. A missing handle falls back to
    its anchor, which makes that side of the segment straight. The closing
    segment uses the last point's outgoing and the first point's incoming
    handle.
    """
    anchors = [p for p in points or () if _valid_point(p)]
    if not anchors:
        return ""

    def out_handle(p: BezierPoint):
        return p.handle_out if _valid_point(p.handle_out) else p

    def in_handle(p: BezierPoint):
        return p.handle_in if _valid_point(p.handle_in) else p

    def segment(prev: BezierPoint, p: BezierPoint) -> str:
        cp1 = out_handle(prev)
        cp2 = in_handle(p)
        return f"C {fmt(cp1.x)} {fmt(cp1.y)}, {fmt(cp2.x)} {fmt(cp2.y)}, {fmt(p.x)} {fmt(p.y)}"

    first = anchors[0]
    d = [f"M {fmt(first.x)} {fmt(first.y)}"]
    for prev, p in zip(anchors, anchors[1:]):
        d.append(segment(prev, p))

    if closed and len(anchors) > 1:
        d.append(segment(anchors[-1], first))
        d.append("Z")

    return " ".join(d)


# --- Parameter parsing ---


def parse_spline_points(raw, scale: float = 1.0) -> "list[SplinePoint]":
    """Convert raw {x, y, type} mappings into SplinePoints, dropping malformed ones."""
    if not isinstance(raw, (list, tuple)):
        return []
    parsed = []
    for p in raw:
        if not isinstance(p, dict):
            continue
        x, y = p.get("x"), p.get("y")
        if not (_is_number(x) and _is_number(y)):
            continue
        role = p.get("type") if p.get("type") in ("inner", "outer") else None
        parsed.append(SplinePoint(x * scale, y * scale, role))
    return parsed


def parse_bezier_points(raw, scale: float = 1.0) -> "list[BezierPoint]":
    """Convert raw {x, y, handleIn, handleOut} mappings into BezierPoints.

    AIDEV-NOTE: Points without numeric x/y are dropped. Handle coordinates
    that are missing or malformed fall back to the anchor coordinate.
    """
    if not isinstance(raw, (list, tuple)):
        return []
    parsed = []
    for p in raw:
        if not isinstance(p, dict):
            continue
        x, y = p.get("x"), p.get("y")
        if not (_is_number(x) and _is_number(y)):
            continue
        px, py = x * scale, y * scale

        handles = []
        for key in ("handleIn", "handleOut"):
            h = p.get(key) if isinstance(p.get(key), dict) else {}
            hx = h.get("x")
            hy = h.get("y")
            handles.append(
                Handle(
                    hx * scale if _is_number(hx) else px,
                    hy * scale if _is_number(hy) else py,
                )
            )
        parsed.append(BezierPoint(px, py, handle_in=handles[0], handle_out=handles[1]))
    return parsed
