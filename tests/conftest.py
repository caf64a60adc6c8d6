"""Shared fixtures: in-memory rasterizers that paint with numpy."""

import asyncio

import numpy as np
import pytest

from vectorforge.errors import RasterizationError
from vectorforge.models import EngineConfig
from vectorforge.operators import IdGenerator, OperatorContext
from vectorforge.rasterizer import RasterRequest


def disk_pixels(width, height, center=(0.5, 0.5), radius=0.3125, color=(255, 255, 255)):
    """White disk on a transparent background; center/radius are fractions of width.

    Pixel (x, y) is inside when its center (x + 0.5, y + 0.5) is within the radius.
    """
    ys, xs = np.mgrid[0:height, 0:width]
    cx, cy = center[0] * width, center[1] * height
    inside = (xs + 0.5 - cx) ** 2 + (ys + 0.5 - cy) ** 2 <= (radius * width) ** 2

    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[inside, 0] = color[0]
    pixels[inside, 1] = color[1]
    pixels[inside, 2] = color[2]
    pixels[inside, 3] = 255
    return pixels


class FakeRasterizer:
    """Records every request and paints with a callable(width, height) -> RGBA array."""

    def __init__(self, painter=disk_pixels, delay: float = 0.0):
        self.painter = painter
        self.delay = delay
        self.requests: list[RasterRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def rasterize(self, markup, shared_defs, width, height, viewport_size):
        self.requests.append(
            RasterRequest(markup, tuple(shared_defs), width, height, viewport_size)
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)
        return self.painter(width, height)


class FailingRasterizer:
    def __init__(self):
        self.calls = 0

    async def rasterize(self, markup, shared_defs, width, height, viewport_size):
        self.calls += 1
        await asyncio.sleep(0)
        raise RasterizationError("cannot decode markup")


@pytest.fixture
def disk_rasterizer():
    return FakeRasterizer()


@pytest.fixture
def failing_rasterizer():
    return FailingRasterizer()


@pytest.fixture
def make_ctx():
    """Build an OperatorContext around a rasterizer with a fixed id salt."""

    def factory(rasterizer=None, **config_overrides):
        return OperatorContext(
            rasterizer=rasterizer,
            ids=IdGenerator(salt="test"),
            config=EngineConfig(**config_overrides),
            node_id="n",
        )

    return factory
