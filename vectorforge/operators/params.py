"""Typed parameter sets, one per operator kind.

AIDEV-NOTE: The editing surface hands operators a loose mapping. from_params
reads each field from its editor key (camelCase), falls back to the field
default on anything missing or of the wrong type, and clamps to the field's
min/max. Malformed parameters never raise.
"""

import math
from dataclasses import MISSING, dataclass, field, fields
from typing import Optional, get_args


def param(key: str, default=MISSING, *, minimum=None, maximum=None, factory=None):
    """Declare a parameter field read from the editor key `key`."""
    metadata = {"key": key, "min": minimum, "max": maximum}
    if factory is not None:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


_KINDS = {bool: "bool", int: "int", float: "float", str: "str", list: "list", dict: "point"}


def _coerce(raw, default, kind: str):
    if kind == "bool":
        return raw if isinstance(raw, bool) else default
    if kind == "int":
        return int(raw) if _is_number(raw) else default
    if kind == "float":
        return float(raw) if _is_number(raw) else default
    if kind == "str":
        return raw if isinstance(raw, str) and raw else default
    if kind == "list":
        return list(raw) if isinstance(raw, (list, tuple)) else default
    if kind == "point":
        if isinstance(raw, dict) and _is_number(raw.get("x")) and _is_number(raw.get("y")):
            return {"x": float(raw["x"]), "y": float(raw["y"])}
        return default
    return default


def _kind_of(annotation) -> str:
    args = [a for a in get_args(annotation) if a is not type(None)]
    if args:
        annotation = args[0]
    return _KINDS.get(annotation, "any")


class OperatorParams:
    """Mixin that builds a parameter dataclass from an editor mapping."""

    @classmethod
    def from_params(cls, params) -> "OperatorParams":
        if not isinstance(params, dict):
            params = {}

        values = {}
        for f in fields(cls):
            default = f.default if f.default is not MISSING else f.default_factory()
            raw = params.get(f.metadata.get("key", f.name))
            value = _coerce(raw, default, _kind_of(f.type))

            if value is not None and _is_number(value):
                low = f.metadata.get("min")
                high = f.metadata.get("max")
                if low is not None:
                    value = max(low, value)
                if high is not None:
                    value = min(high, value)
            values[f.name] = value

        return cls(**values)


# --- Shapes ---


@dataclass
class RectangleParams(OperatorParams):
    width: float = param("width", 300.0, minimum=0.0)
    height: float = param("height", 300.0, minimum=0.0)
    radius_tl: float = param("rTL", 0.0, minimum=0.0)
    radius_tr: float = param("rTR", 0.0, minimum=0.0)
    radius_br: float = param("rBR", 0.0, minimum=0.0)
    radius_bl: float = param("rBL", 0.0, minimum=0.0)


@dataclass
class CircleParams(OperatorParams):
    width: float = param("width", 300.0, minimum=0.0)
    height: float = param("height", 300.0, minimum=0.0)


@dataclass
class PolygonParams(OperatorParams):
    points: int = param("points", 5, minimum=1)
    outer_radius: float = param("outerRadius", 100.0)
    inner_radius: float = param("innerRadius", 50.0)


@dataclass
class WavyRingParams(OperatorParams):
    radius: float = param("radius", 100.0)
    frequency: float = param("frequency", 10.0)  # Lobe count, not scaled
    amplitude: float = param("amplitude", 10.0)


@dataclass
class BeamParams(OperatorParams):
    length: float = param("length", 250.0)
    top_width: float = param("topWidth", 5.0)
    bottom_width: float = param("bottomWidth", 100.0)


@dataclass
class PathParams(OperatorParams):
    """Tension spline in normalized (0-1) coordinates."""

    points: list = param("points", factory=list)
    tension: float = param("tension", 0.0, minimum=0.0, maximum=1.0)
    tension_inner: Optional[float] = param("tensionInner", None, minimum=0.0, maximum=1.0)
    tension_outer: Optional[float] = param("tensionOuter", None, minimum=0.0, maximum=1.0)


@dataclass
class PenParams(OperatorParams):
    """Free bezier in normalized (0-1) coordinates."""

    points: list = param("points", factory=list)


# --- Inputs ---


def _default_stops() -> list:
    return [
        {"offset": 0, "color": "#000000", "opacity": 1},
        {"offset": 1, "color": "#ffffff", "opacity": 1},
    ]


@dataclass
class ImageParams(OperatorParams):
    image_src: str = param("imageSrc", "")


@dataclass
class GradientParams(OperatorParams):
    stops: list = param("stops", factory=_default_stops)
    x: float = param("x", 1.0, minimum=-1.0, maximum=1.0)
    y: float = param("y", 0.0, minimum=-1.0, maximum=1.0)
    power: float = param("power", 1.0, minimum=0.1, maximum=5.0)  # Not rendered


@dataclass
class ColorParams(OperatorParams):
    r: int = param("r", 255, minimum=0, maximum=255)
    g: int = param("g", 255, minimum=0, maximum=255)
    b: int = param("b", 255, minimum=0, maximum=255)


@dataclass
class ValueParams(OperatorParams):
    value: float = param("value", 0.5, minimum=0.0, maximum=1.0)


@dataclass
class AlphaParams(OperatorParams):
    value: float = param("value", 1.0, minimum=0.0, maximum=1.0)


# --- Patterns / tools ---


@dataclass
class WaveParams(OperatorParams):
    wave_type: str = param("waveType", "sine")
    generators: int = param("generators", 5, minimum=1, maximum=20)
    frequency: float = param("frequency", 50.0, minimum=0.0)
    amplitude: float = param("amplitude", 60.0)  # Percent
    threshold: float = param("threshold", 50.0)  # Percent
    softness: float = param("softness", 5.0, minimum=0.0)  # Percent
    seed: int = param("seed", 12345)


@dataclass
class TraceParams(OperatorParams):
    threshold: float = param("threshold", 0.5, minimum=0.0, maximum=1.0)
    fidelity: Optional[int] = param("fidelity", None, minimum=2, maximum=1024)
    invert: bool = param("invert", False)


# --- Style ---


@dataclass
class FillParams(OperatorParams):
    fill_enabled: bool = param("fillEnabled", True)
    stroke_width: float = param("strokeWidth", 0.0, minimum=0.0)


@dataclass
class StrokeParams(OperatorParams):
    width: float = param("width", 1.0, minimum=0.0)
    opacity: float = param("opacity", 1.0, minimum=0.0, maximum=1.0)


@dataclass
class GradientFadeParams(OperatorParams):
    direction: float = param("direction", 90.0)  # Degrees
    start: float = param("start", 1.0, minimum=0.0, maximum=1.0)
    end: float = param("end", 0.0, minimum=0.0, maximum=1.0)


# --- Effects ---


@dataclass
class GlowParams(OperatorParams):
    radius: float = param("radius", 20.0, minimum=0.0)
    intensity: float = param("intensity", 1.5, minimum=0.0)


@dataclass
class NeonParams(OperatorParams):
    radius: float = param("radius", 15.0, minimum=0.0)
    intensity: float = param("intensity", 2.0, minimum=0.0)


@dataclass
class SoftBlurParams(OperatorParams):
    radius: float = param("radius", 5.0, minimum=0.0)


@dataclass
class PixelateParams(OperatorParams):
    pixel_size: float = param("pixelSize", 1.0, minimum=1.0)


@dataclass
class LayerBlurParams(OperatorParams):
    radius: float = param("radius", 20.0, minimum=0.0)
    point_a: dict = param("pointA", factory=lambda: {"x": 0.5, "y": 0.0})  # Sharp end
    point_b: dict = param("pointB", factory=lambda: {"x": 0.5, "y": 1.0})  # Blurry end


# --- Transforms ---


@dataclass
class TranslateParams(OperatorParams):
    x: float = param("x", 0.0)  # Fraction of resolution
    y: float = param("y", 0.0)


@dataclass
class RotateParams(OperatorParams):
    angle: float = param("angle", 0.0)  # Degrees, around the canvas center


@dataclass
class ScaleParams(OperatorParams):
    scale: float = param("scale", 1.0)  # Around the canvas center


@dataclass
class PolarParams(OperatorParams):
    mode: str = param("type", "rect_to_polar")
    x: float = param("x", 0.0)
    y: float = param("y", 0.0)
    radial_scale: float = param("radialScale", 1.0, minimum=0.01)
    angular_scale: float = param("angularScale", 1.0, minimum=0.01)
