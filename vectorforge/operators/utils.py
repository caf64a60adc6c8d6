"""Shared helpers for operator implementations."""

import base64
import io
import re
import secrets
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import svg
from PIL import Image

from ..errors import RasterizationError
from ..models import EngineConfig, VectorFragment
from ..rasterizer import RawMarkup, Rasterizer, rasterize_fragment

# Drawable tags whose paint attributes the style operators rewrite
DRAWABLE_TAGS = ("path", "rect", "circle", "polygon", "ellipse")


class IdGenerator:
    """Mints definition ids that are unique within one evaluation pass.

    AIDEV-NOTE: The salt is drawn once per generator (one generator per
    pass). The evaluator carries the counter over between passes so cached
    fragments from earlier passes never share ids with new ones.
    """

    def __init__(
        self, salt_length: int = 4, salt: Optional[str] = None, start: int = 0
    ):
        if salt is None:
            salt = secrets.token_hex((salt_length + 1) // 2)[:salt_length]
        self.salt = salt
        self.counter = start

    def __call__(self, prefix: str) -> str:
        self.counter += 1
        return f"{prefix}_{self.counter}_{self.salt}"


@dataclass
class OperatorContext:
    """Everything an operator may use besides its params and inputs."""

    rasterizer: Optional[Rasterizer]
    ids: IdGenerator = field(default_factory=IdGenerator)
    config: EngineConfig = field(default_factory=EngineConfig)
    node_id: str = ""

    async def rasterize(
        self, fragment: VectorFragment, width: int, height: int, viewport: int
    ) -> np.ndarray:
        """Rasterize through the injected back-end (see rasterize_fragment)."""
        if self.rasterizer is None:
            raise RasterizationError("No rasterizer configured")
        return await rasterize_fragment(self.rasterizer, fragment, width, height, viewport)

    def warn(self, message: str, error: Exception = None):
        suffix = f": {error}" if error is not None else ""
        print(f"Warning: {message} (node {self.node_id or '?'}){suffix}")


def png_data_uri(rgba: np.ndarray) -> str:
    """Encode an (h, w, 4) uint8 array as a base64 PNG data URI."""
    image = Image.fromarray(np.ascontiguousarray(rgba, dtype=np.uint8))
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def decode_data_uri(uri: str) -> Image.Image:
    """Decode a base64 image data URI into an RGBA PIL image.

    Raises:
        ValueError: If the URI is not a base64 data URI or not an image
    """
    match = re.match(r"data:image/[\w.+-]+;base64,(.*)$", uri, re.DOTALL)
    if not match:
        raise ValueError("Not a base64 image data URI")
    data = base64.b64decode(match.group(1))
    with Image.open(io.BytesIO(data)) as image:
        return image.convert("RGBA")


def image_markup(href: str, resolution: int, pixelated: bool = False) -> str:
    """Full-bleed <image> element stretched over the resolution square."""
    element = svg.Image(
        href=href,
        x=0,
        y=0,
        width=resolution,
        height=resolution,
        preserveAspectRatio="none",
        style="image-rendering: pixelated" if pixelated else None,
    )
    return element.as_str()


def raster_fragment(rgba: np.ndarray, resolution: int, pixelated: bool = False) -> VectorFragment:
    """Raster-backed fragment: pixels embedded as a PNG <image>."""
    return VectorFragment(image_markup(png_data_uri(rgba), resolution, pixelated), ())


def wrap(markup: str, **attributes) -> str:
    """Wrap markup in a <g> carrying the given svg.G attributes (None values dropped)."""
    return svg.G(elements=[RawMarkup(markup)], **attributes).as_str()


def strip_attributes(markup: str, names: "tuple[str, ...]") -> str:
    """Remove every occurrence of the named attributes from markup."""
    for name in names:
        markup = re.sub(rf'\s{re.escape(name)}="[^"]*"', " ", markup)
    return markup


def insert_attributes(markup: str, attributes: str) -> str:
    """Insert an attribute string right after the tag name of drawable elements."""
    for tag in DRAWABLE_TAGS:
        markup = re.sub(rf"<{tag}(\s|/|>)", rf"<{tag} {attributes}\1", markup)
    return markup
