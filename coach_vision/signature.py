"""Cheap scalar frame digest used to decide whether the screen changed.

The digest samples a coarse grid (about 32x32 points) and averages the
R+G+B sum of the sampled pixels. The average is kept in fixed point with
four decimal digits so a single integer carries enough resolution for the
change threshold the coach loop uses (900,000 units is a mean shift of 90 in
R+G+B, roughly 30 levels per channel).

It is a change detector only; two different screens can share a signature.
"""
from __future__ import annotations

from PIL import Image

SIGNATURE_GRID = 32
SIGNATURE_SCALE = 10_000


def _ceil_div(value: int, divisor: int) -> int:
    return -(-value // divisor)


def compute_signature(frame: Image.Image) -> int:
    """Return the deterministic, non-negative signature of `frame`."""

    width = max(1, frame.width)
    height = max(1, frame.height)
    step_x = max(1, _ceil_div(width, SIGNATURE_GRID))
    step_y = max(1, _ceil_div(height, SIGNATURE_GRID))

    pixels = frame.load()
    total = 0
    count = 0
    for y in range(0, frame.height, step_y):
        for x in range(0, frame.width, step_x):
            value = pixels[x, y]
            if isinstance(value, int):  # single-band images
                total += value * 3
            else:
                total += value[0] + value[1] + value[2]
            count += 1

    if count == 0:
        return 0
    return (total * SIGNATURE_SCALE) // count


def signature_delta(current: int, previous: int) -> int:
    return abs(current - previous)


__all__ = ["SIGNATURE_GRID", "SIGNATURE_SCALE", "compute_signature", "signature_delta"]
