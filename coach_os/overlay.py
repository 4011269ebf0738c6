"""Non-interactive pointer overlay: a ring around the next tap target plus a status strip."""
from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol, Tuple

from PIL import Image, ImageDraw, ImageFont

from .config import ScreenMetrics

Logger = logging.Logger

STATUS_PREFIX = "Coach: "
RING_COLOR = (255, 0, 0, 230)
STATUS_BACKGROUND = (0, 0, 0, 0xAA)
STATUS_TEXT_COLOR = (255, 255, 255, 255)


class OverlaySurface(Protocol):
    """Drawing backend for the overlay. Surfaces never receive input."""

    def draw_ring(self, left: int, top: int, size: int) -> None: ...

    def clear_ring(self) -> None: ...

    def draw_status(self, text: str) -> None: ...

    def remove(self) -> None: ...


class OverlayRenderer:
    """Keeps ring and status state and forwards only real changes to the surface."""

    def __init__(
        self,
        surface: OverlaySurface,
        screen: ScreenMetrics,
        *,
        ring_min_dp: float = 44.0,
        status_max_chars: int = 80,
        logger: Optional[Logger] = None,
    ) -> None:
        self._surface = surface
        self._screen = screen
        self._ring_min_px = screen.dp(ring_min_dp)
        self._status_max_chars = status_max_chars
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._ring: Optional[Tuple[int, int, int]] = None
        self._status: Optional[str] = None
        self._removed = False

    @property
    def ring_visible(self) -> bool:
        return self._ring is not None

    @property
    def ring(self) -> Optional[Tuple[int, int, int]]:
        """Current ring as (left, top, size) in screen pixels, or None when hidden."""

        return self._ring

    @property
    def status(self) -> Optional[str]:
        return self._status

    def show_at(self, cx: int, cy: int, diameter: int) -> None:
        size = max(int(diameter), self._ring_min_px)
        left = max(int(cx) - size // 2, 0)
        top = max(int(cy) - size // 2, 0)
        with self._lock:
            if self._removed or self._ring == (left, top, size):
                return
            self._ring = (left, top, size)
            try:
                self._surface.draw_ring(left, top, size)
            except Exception as exc:
                self._logger.warning("Overlay ring update failed: %s", exc)

    def hide(self) -> None:
        with self._lock:
            if self._ring is None:
                return
            self._ring = None
            try:
                self._surface.clear_ring()
            except Exception as exc:
                self._logger.warning("Overlay hide failed: %s", exc)

    def set_status(self, text: str) -> None:
        with self._lock:
            if self._removed or text == self._status:
                return
            self._status = text
            line = STATUS_PREFIX + text[: self._status_max_chars]
            try:
                self._surface.draw_status(line)
            except Exception as exc:
                self._logger.warning("Overlay status update failed: %s", exc)

    def remove(self) -> None:
        """Tear the overlay down; safe to call repeatedly."""

        with self._lock:
            if self._removed:
                return
            self._removed = True
            self._ring = None
            self._status = None
            try:
                self._surface.remove()
            except Exception as exc:
                self._logger.warning("Overlay removal failed: %s", exc)


class ImageOverlaySurface:
    """Pillow canvas at display size that a compositor (or the web mirror) can show."""

    def __init__(self, screen: ScreenMetrics) -> None:
        self._screen = screen
        self._lock = threading.Lock()
        self._ring: Optional[Tuple[int, int, int]] = None
        self._status: str = ""
        self._removed = False
        self._stroke = max(screen.dp(4), 3)
        self._padding = (screen.dp(12), screen.dp(8))
        self._font = ImageFont.load_default()
        self._canvas = Image.new("RGBA", (screen.width_px, screen.height_px), (0, 0, 0, 0))

    def draw_ring(self, left: int, top: int, size: int) -> None:
        with self._lock:
            self._ring = (left, top, size)
            self._redraw()

    def clear_ring(self) -> None:
        with self._lock:
            self._ring = None
            self._redraw()

    def draw_status(self, text: str) -> None:
        with self._lock:
            self._status = text
            self._redraw()

    def remove(self) -> None:
        with self._lock:
            self._removed = True
            self._ring = None
            self._status = ""
            self._redraw()

    def snapshot(self) -> Image.Image:
        with self._lock:
            return self._canvas.copy()

    def _redraw(self) -> None:
        canvas = Image.new("RGBA", self._canvas.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(canvas)

        if self._status and not self._removed:
            pad_x, pad_y = self._padding
            text_box = draw.textbbox((pad_x, pad_y), self._status, font=self._font)
            strip_height = text_box[3] + pad_y
            draw.rectangle((0, 0, canvas.width, strip_height), fill=STATUS_BACKGROUND)
            draw.text((pad_x, pad_y), self._status, fill=STATUS_TEXT_COLOR, font=self._font)

        if self._ring is not None and not self._removed:
            left, top, size = self._ring
            draw.ellipse(
                (left, top, left + size - 1, top + size - 1),
                outline=RING_COLOR,
                width=self._stroke,
            )

        previous = self._canvas
        self._canvas = canvas
        previous.close()


__all__ = ["ImageOverlaySurface", "OverlayRenderer", "OverlaySurface", "STATUS_PREFIX"]
