"""Operator library: one async transform per node kind.

Every operator has the signature

    async def process_x(params, resolution, inputs, ctx) -> VectorFragment

where inputs maps port names to upstream fragments (unconnected ports are
absent) and ctx is an OperatorContext.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable

from ..models import NodeKind, VectorFragment
from .composition import (
    process_alpha_node,
    process_color_node,
    process_difference_node,
    process_exclusion_node,
    process_gradient_node,
    process_image_node,
    process_intersection_node,
    process_output_node,
    process_rotate_node,
    process_scale_node,
    process_translate_node,
    process_union_node,
    process_value_node,
)
from .filters import (
    process_fill_node,
    process_glow_node,
    process_gradient_fade_node,
    process_neon_node,
    process_soft_blur_node,
    process_stroke_node,
)
from .patterns import process_wave_node
from .raster import process_layer_blur_node, process_pixelate_node, process_polar_node
from .shapes import (
    process_beam_node,
    process_circle_node,
    process_path_node,
    process_pen_node,
    process_polygon_node,
    process_rectangle_node,
    process_wavy_ring_node,
)
from .utils import IdGenerator, OperatorContext
from .vectorization import process_trace_node

Operator = Callable[..., Awaitable[VectorFragment]]


@dataclass(frozen=True)
class Port:
    name: str
    required: bool = False


@dataclass(frozen=True)
class OperatorSpec:
    """An operator callable and the input ports it reads."""

    process: Operator
    ports: "tuple[Port, ...]" = ()

    @property
    def required_ports(self) -> "list[str]":
        return [port.name for port in self.ports if port.required]


NO_PORTS = ()
OPTIONAL_IN = (Port("in"),)
REQUIRED_IN = (Port("in", required=True),)
BINARY = (Port("a", required=True), Port("b"))


OPERATORS: "dict[NodeKind, OperatorSpec]" = {
    # Shapes
    NodeKind.RECTANGLE: OperatorSpec(process_rectangle_node, NO_PORTS),
    NodeKind.CIRCLE: OperatorSpec(process_circle_node, NO_PORTS),
    NodeKind.POLYGON: OperatorSpec(process_polygon_node, NO_PORTS),
    NodeKind.WAVY_RING: OperatorSpec(process_wavy_ring_node, NO_PORTS),
    NodeKind.BEAM: OperatorSpec(process_beam_node, NO_PORTS),
    NodeKind.PATH: OperatorSpec(process_path_node, NO_PORTS),
    NodeKind.PEN: OperatorSpec(process_pen_node, NO_PORTS),
    # Inputs
    NodeKind.IMAGE: OperatorSpec(process_image_node, NO_PORTS),
    NodeKind.GRADIENT: OperatorSpec(process_gradient_node, NO_PORTS),
    NodeKind.COLOR: OperatorSpec(process_color_node, OPTIONAL_IN),
    NodeKind.VALUE: OperatorSpec(process_value_node, NO_PORTS),
    NodeKind.ALPHA: OperatorSpec(process_alpha_node, OPTIONAL_IN),
    # Patterns / tools
    NodeKind.WAVE: OperatorSpec(process_wave_node, OPTIONAL_IN),
    NodeKind.TRACE: OperatorSpec(process_trace_node, OPTIONAL_IN),
    # Style
    NodeKind.FILL: OperatorSpec(process_fill_node, OPTIONAL_IN),
    NodeKind.STROKE: OperatorSpec(process_stroke_node, OPTIONAL_IN),
    NodeKind.GRADIENT_FADE: OperatorSpec(process_gradient_fade_node, OPTIONAL_IN),
    # Effects
    NodeKind.GLOW: OperatorSpec(process_glow_node, OPTIONAL_IN),
    NodeKind.NEON: OperatorSpec(process_neon_node, OPTIONAL_IN),
    NodeKind.SOFT_BLUR: OperatorSpec(process_soft_blur_node, OPTIONAL_IN),
    NodeKind.PIXELATE: OperatorSpec(process_pixelate_node, OPTIONAL_IN),
    NodeKind.LAYER_BLUR: OperatorSpec(process_layer_blur_node, OPTIONAL_IN),
    # Transforms
    NodeKind.TRANSLATE: OperatorSpec(process_translate_node, REQUIRED_IN),
    NodeKind.ROTATE: OperatorSpec(process_rotate_node, REQUIRED_IN),
    NodeKind.SCALE: OperatorSpec(process_scale_node, REQUIRED_IN),
    NodeKind.POLAR: OperatorSpec(process_polar_node, OPTIONAL_IN),
    # Combinations
    NodeKind.UNION: OperatorSpec(process_union_node, BINARY),
    NodeKind.DIFFERENCE: OperatorSpec(process_difference_node, BINARY),
    NodeKind.INTERSECTION: OperatorSpec(process_intersection_node, BINARY),
    NodeKind.EXCLUSION: OperatorSpec(process_exclusion_node, BINARY),
    NodeKind.OUTPUT: OperatorSpec(process_output_node, REQUIRED_IN),
}

__all__ = [
    "OPERATORS",
    "IdGenerator",
    "Operator",
    "OperatorContext",
    "OperatorSpec",
    "Port",
]
