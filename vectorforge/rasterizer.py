"""Interface to the external vector-to-bitmap rasterizer.

AIDEV-NOTE: The compiler never rasterizes by itself. Whatever renders SVG to
pixels (a headless browser, resvg, cairosvg, ...) is injected as an object
satisfying the Rasterizer protocol and is awaited, never called synchronously.
"""

from dataclasses import dataclass
from typing import Protocol, Sequence, Union, runtime_checkable

import numpy as np
import svg

from .errors import RasterizationError
from .models import VectorFragment

PixelBuffer = Union[np.ndarray, bytes, bytearray]


@runtime_checkable
class Rasterizer(Protocol):
    """Renders fragment markup into an RGBA pixel buffer."""

    async def rasterize(
        self,
        markup: str,
        shared_defs: Sequence[str],
        width: int,
        height: int,
        viewport_size: int,
    ) -> PixelBuffer:
        """Render markup, viewed through a viewport_size square, at width x height.

        Returns:
            RGBA pixels, row-major, width x height (numpy array or raw bytes)

        Raises:
            RasterizationError: If the markup cannot be decoded or rendered
        """
        ...


@dataclass(frozen=True)
class RasterRequest:
    """One rasterization call, as seen by a rasterizer back-end."""

    markup: str
    shared_defs: "tuple[str, ...]"
    width: int
    height: int
    viewport_size: int

    def document(self) -> str:
        return build_svg_document(
            self.markup,
            self.shared_defs,
            self.viewport_size,
            width=self.width,
            height=self.height,
        )


class RawMarkup(svg.Element):
    """Pre-serialized markup embedded verbatim in an svg.py element tree."""

    element_name = "g"

    def __init__(self, markup: str):
        super().__init__()
        self.markup = markup

    def as_str(self) -> str:
        return self.markup

    def __str__(self) -> str:
        return self.markup


def build_svg_document(
    markup: str,
    shared_defs: Sequence[str],
    resolution: int,
    width: int = None,
    height: int = None,
) -> str:
    """Wrap markup and its defs in a root <svg> element.

    Args:
        markup: Fragment markup
        shared_defs: Definition strings placed inside one <defs> block
        resolution: Side length of the (square) viewBox
        width: Rendered width (defaults to resolution)
        height: Rendered height (defaults to resolution)

    Returns:
        Complete SVG document string
    """
    elements: list[svg.Element] = []
    if shared_defs:
        elements.append(svg.Defs(elements=[RawMarkup("".join(shared_defs))]))
    elements.append(RawMarkup(markup))

    document = svg.SVG(
        width=width if width is not None else resolution,
        height=height if height is not None else resolution,
        viewBox=svg.ViewBoxSpec(0, 0, resolution, resolution),
        elements=elements,
    )
    return document.as_str()


def as_rgba_array(buffer: PixelBuffer, width: int, height: int) -> np.ndarray:
    """Normalize a rasterizer result to a (height, width, 4) uint8 array.

    Raises:
        RasterizationError: If the buffer does not hold width x height RGBA pixels
    """
    if isinstance(buffer, (bytes, bytearray, memoryview)):
        array = np.frombuffer(bytes(buffer), dtype=np.uint8)
    elif isinstance(buffer, np.ndarray):
        array = buffer
    else:
        raise RasterizationError(
            f"Unsupported pixel buffer type: {type(buffer).__name__}"
        )

    expected = width * height * 4
    if array.size != expected:
        raise RasterizationError(
            f"Pixel buffer has {array.size} values, expected {expected} "
            f"({width}x{height} RGBA)"
        )

    if array.dtype != np.uint8:
        array = np.clip(array, 0, 255).astype(np.uint8)
    return array.reshape((height, width, 4))


async def rasterize_fragment(
    rasterizer: Rasterizer,
    fragment: VectorFragment,
    width: int,
    height: int,
    viewport_size: int,
) -> np.ndarray:
    """Rasterize a fragment and return its pixels as a (height, width, 4) array.

    Raises:
        RasterizationError: On any failure of the back-end, including
            unexpected exceptions, so callers only have one thing to catch
    """
    try:
        buffer = await rasterizer.rasterize(
            fragment.markup,
            tuple(fragment.shared_defs),
            width,
            height,
            viewport_size,
        )
    except RasterizationError:
        raise
    except Exception as e:
        raise RasterizationError(f"Rasterizer failed: {e}") from e

    return as_rgba_array(buffer, width, height)
