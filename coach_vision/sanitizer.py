"""Turns a normalised locator box into an on-screen ring target."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from coach_os.config import ScreenMetrics

from .locator import LocatedBox

DEFAULT_MAX_BOX_WIDTH = 0.55
DEFAULT_MAX_BOX_HEIGHT = 0.35


@dataclass(frozen=True, slots=True)
class Target:
    """Ring placement in screen pixels."""

    cx: int
    cy: int
    diameter_px: int


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def is_plausible_box(
    box: LocatedBox,
    *,
    max_width: float = DEFAULT_MAX_BOX_WIDTH,
    max_height: float = DEFAULT_MAX_BOX_HEIGHT,
) -> bool:
    """Boxes wider or taller than a control usually mean a whole region was boxed."""

    return box.w <= max_width and box.h <= max_height


def sanitize_box(
    box: LocatedBox,
    screen: ScreenMetrics,
    *,
    ring_min_dp: float = 44.0,
    ring_max_dp: float = 140.0,
    max_width: float = DEFAULT_MAX_BOX_WIDTH,
    max_height: float = DEFAULT_MAX_BOX_HEIGHT,
) -> Optional[Target]:
    """Return the ring target for `box`, or None when the box is implausible."""

    if not is_plausible_box(box, max_width=max_width, max_height=max_height):
        return None

    width_px = max(1, screen.width_px)
    height_px = max(1, screen.height_px)

    center_x = _clamp(box.x + box.w / 2.0, 0.0, 1.0)
    center_y = _clamp(box.y + box.h / 2.0, 0.0, 1.0)
    cx = min(int(round(center_x * width_px)), width_px - 1)
    cy = min(int(round(center_y * height_px)), height_px - 1)

    box_w_px = max(1, int(box.w * width_px))
    box_h_px = max(1, int(box.h * height_px))
    diameter = max(screen.dp(ring_min_dp), max(box_w_px, box_h_px))
    diameter = min(diameter, screen.dp(ring_max_dp))

    return Target(cx=cx, cy=cy, diameter_px=diameter)


__all__ = ["Target", "is_plausible_box", "sanitize_box"]
