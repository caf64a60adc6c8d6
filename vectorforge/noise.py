"""Seeded oscillator noise and the wave alpha field.

The wave operator sums a handful of seeded sine (or square) oscillators
along the x axis, adds them to a base field and soft-thresholds the result
into an alpha mask.
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

UINT32_MASK = 0xFFFFFFFF
MULBERRY_INCREMENT = 0x6D2B79F5


def _imul(a: int, b: int) -> int:
    """32-bit wrapping multiply."""
    return (a * b) & UINT32_MASK


class Mulberry32:
    """Counter-based 32-bit PRNG.

    AIDEV-NOTE: Output must match the reference sequence bit for bit
    (seed 12345 -> 0.9797282677609473 first), saved graphs depend on it.
    """

    def __init__(self, seed: int):
        self.state = int(seed) & UINT32_MASK

    def next(self) -> float:
        """Next value in [0, 1)."""
        self.state = (self.state + MULBERRY_INCREMENT) & UINT32_MASK
        t = self.state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & UINT32_MASK
        return ((t ^ (t >> 14)) & UINT32_MASK) / 4294967296

    __call__ = next


@dataclass
class Oscillator:
    phase: float  # radians
    speed: float  # frequency multiplier, 0.5 - 2.0


def make_oscillators(seed: int, count: int) -> "list[Oscillator]":
    """Draw count oscillators from a Mulberry32 stream.

    Phase is drawn before speed for each oscillator.
    """
    rand = Mulberry32(seed)
    oscillators = []
    for _ in range(max(0, int(count))):
        phase = rand() * math.pi * 2
        speed = 0.5 + rand() * 1.5
        oscillators.append(Oscillator(phase, speed))
    return oscillators


def column_noise(
    oscillators: "list[Oscillator]",
    width: int,
    frequency: float,
    wave_type: str = "sine",
) -> np.ndarray:
    """Combined oscillator signal for every column x in [0, width).

    Args:
        oscillators: Seeded oscillators
        width: Number of columns
        frequency: Base frequency in cycles across the width
        wave_type: "sine" or "square" (sign of the sine)

    Returns:
        float64 array of shape (width,), normalized by max(1, 0.6 * count)
    """
    norm_x = np.arange(width, dtype=np.float64) / width
    total = np.zeros(width, dtype=np.float64)

    for osc in oscillators:
        k = norm_x * frequency * math.pi * 2 * osc.speed + osc.phase
        value = np.sin(k)
        if wave_type == "square":
            value = np.sign(value)
        total += value

    return total / max(1.0, len(oscillators) * 0.6)


def soft_threshold(field: np.ndarray, threshold: float, softness: float) -> np.ndarray:
    """Map a field to [0, 1] coverage.

    Linear ramp over [threshold - softness, threshold + softness]; a hard
    step (strictly greater than threshold) when softness <= 0.001.
    """
    if softness <= 0.001:
        return (field > threshold).astype(np.float64)

    lower = threshold - softness
    upper = threshold + softness
    return np.clip((field - lower) / (upper - lower), 0.0, 1.0)


def luminance_alpha(rgba: np.ndarray) -> np.ndarray:
    """Per-pixel luminance weighted by alpha, in [0, 1]."""
    rgba = rgba.astype(np.float64)
    lum = (rgba[..., 0] * 0.299 + rgba[..., 1] * 0.587 + rgba[..., 2] * 0.114) / 255
    return lum * (rgba[..., 3] / 255)


def vertical_gradient(resolution: int) -> np.ndarray:
    """Default base field: 1 at the top row falling to 1/res at the bottom."""
    rows = 1 - np.arange(resolution, dtype=np.float64) / resolution
    return np.repeat(rows[:, np.newaxis], resolution, axis=1)


def wave_alpha_field(
    resolution: int,
    oscillators: "list[Oscillator]",
    frequency: float,
    amplitude: float,
    threshold: float,
    softness: float,
    wave_type: str = "sine",
    base: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Alpha channel (uint8, resolution x resolution) of the wave pattern.

    Args:
        resolution: Output side length in pixels
        oscillators: Seeded oscillators (see make_oscillators)
        frequency: Base frequency
        amplitude: Noise amplitude, 0 - 1
        threshold: Threshold, 0 - 1
        softness: Threshold softness, 0 - 0.5
        wave_type: "sine" or "square"
        base: Optional base field of shape (resolution, resolution); the
            vertical gradient when omitted

    Returns:
        uint8 alpha array of shape (resolution, resolution)
    """
    if base is None:
        base = vertical_gradient(resolution)

    noise = column_noise(oscillators, resolution, frequency, wave_type) * amplitude
    mix = base + noise[np.newaxis, :]
    coverage = soft_threshold(mix, threshold, softness)
    return np.clip(np.round(coverage * 255), 0, 255).astype(np.uint8)


def white_rgba(alpha: np.ndarray) -> np.ndarray:
    """White RGBA image with the given alpha channel."""
    rgba = np.full(alpha.shape + (4,), 255, dtype=np.uint8)
    rgba[..., 3] = alpha
    return rgba
