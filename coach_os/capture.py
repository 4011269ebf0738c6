"""Framebuffer capture for the coach loop.

The frame source polls the display with `mss`, converts each grab into a
Pillow RGBA image and downscales it (preserving aspect ratio) before handing
it to the consumer. Smaller frames keep vision payloads light and reduce
coordinate drift caused by on-screen decorations and rotation.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol, Tuple, TypeVar

from PIL import Image

from .config import CaptureConfig, ScreenMetrics

try:  # pragma: no cover - import validated at runtime
    import mss
except Exception:  # pragma: no cover
    mss = None

Logger = logging.Logger
FrameCallback = Callable[[Image.Image], None]
T = TypeVar("T")

MIN_CAPTURE_HEIGHT = 360


class CaptureError(RuntimeError):
    """Raised when the screen capture session cannot be initialised."""


class FrameSource(Protocol):
    """Anything that can push RGBA frames to a callback."""

    def start(self, on_frame: FrameCallback) -> None: ...

    def stop(self) -> None: ...


def capture_size(screen_w: int, screen_h: int, min_width: int = 360) -> Tuple[int, int]:
    """Return the (width, height) frames are captured at for a given display.

    Width is half the display width (at least `min_width`), height keeps the
    display aspect ratio (at least 360), and neither exceeds the display.
    """

    screen_w = max(1, screen_w)
    screen_h = max(1, screen_h)
    width = max(screen_w // 2, min_width)
    height = max((width * screen_h) // screen_w, MIN_CAPTURE_HEIGHT)
    return min(width, screen_w), min(height, screen_h)


def downscale_frame(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Convert to RGBA and resize to `size` if needed."""

    frame = image if image.mode == "RGBA" else image.convert("RGBA")
    if frame.size != size:
        resized = frame.resize(size, Image.BILINEAR)
        if frame is not image:
            frame.close()
        frame = resized
    return frame


class FrameSlot:
    """Single-producer / single-consumer holder for the most recent frame.

    The producer hands over ownership on `put`; the consumer only ever gets
    copies via `clone`, so the stored frame can be replaced at any time.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame: Optional[Image.Image] = None

    def put(self, frame: Image.Image) -> None:
        with self._lock:
            previous = self._frame
            self._frame = frame
        if previous is not None and previous is not frame:
            previous.close()

    def apply(self, fn: Callable[[Image.Image], T]) -> Optional[T]:
        """Run `fn` on the stored frame while holding the slot lock."""

        with self._lock:
            if self._frame is None:
                return None
            return fn(self._frame)

    def clone(self) -> Optional[Image.Image]:
        with self._lock:
            if self._frame is None:
                return None
            try:
                return self._frame.copy()
            except (OSError, ValueError):
                return None

    def clear(self) -> None:
        with self._lock:
            previous = self._frame
            self._frame = None
        if previous is not None:
            previous.close()


class MssFrameSource:
    """Polls a monitor with mss on a dedicated capture thread."""

    def __init__(
        self,
        config: CaptureConfig,
        *,
        on_error: Optional[Callable[[str], None]] = None,
        max_consecutive_failures: int = 10,
        logger: Optional[Logger] = None,
    ) -> None:
        self._config = config
        self._on_error = on_error
        self._max_failures = max(1, max_consecutive_failures)
        self._logger = logger or logging.getLogger(__name__)
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._on_frame: Optional[FrameCallback] = None
        self._screen: Optional[ScreenMetrics] = config.screen
        self._capture_size: Optional[Tuple[int, int]] = None

    @property
    def screen(self) -> ScreenMetrics:
        """Display metrics; probes the monitor if no override was configured."""

        if self._screen is None:
            self._screen = self._probe_monitor()
        return self._screen

    @property
    def capture_size(self) -> Tuple[int, int]:
        if self._capture_size is None:
            screen = self.screen
            self._capture_size = capture_size(
                screen.width_px, screen.height_px, self._config.min_capture_width
            )
        return self._capture_size

    def start(self, on_frame: FrameCallback) -> None:
        if self._thread is not None:
            return

        self._screen = self._probe_monitor()
        size = self.capture_size
        self._logger.info(
            "Starting capture of monitor %d at %dx%d", self._config.monitor, size[0], size[1]
        )
        self._on_frame = on_frame
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="coach-capture", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        self._on_frame = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(1.0, self._config.interval_s * 5))

    def _probe_monitor(self) -> ScreenMetrics:
        if mss is None:
            raise CaptureError("mss library is not available; install dependency before capturing")
        try:
            with mss.mss() as sct:
                monitor = sct.monitors[self._config.monitor]
        except IndexError as exc:
            raise CaptureError(f"Monitor {self._config.monitor} does not exist") from exc
        except Exception as exc:
            raise CaptureError(f"Screen capture init failed: {exc}") from exc
        if self._config.screen is not None:
            return self._config.screen
        return ScreenMetrics(width_px=int(monitor["width"]), height_px=int(monitor["height"]))

    def _run(self) -> None:
        size = self.capture_size
        failures = 0
        try:
            sct = mss.mss()
            monitor = sct.monitors[self._config.monitor]
        except Exception as exc:
            self._logger.error("Capture thread could not open the display: %s", exc)
            self._fail(exc)
            return

        with sct:
            while not self._stop_event.is_set():
                try:
                    shot = sct.grab(monitor)
                    raw = Image.frombytes("RGB", shot.size, shot.rgb)
                    frame = downscale_frame(raw, size)
                except Exception as exc:
                    failures += 1
                    self._logger.warning("Frame grab failed (%d in a row): %s", failures, exc)
                    if failures >= self._max_failures:
                        self._fail(exc)
                        break
                else:
                    failures = 0
                    callback = self._on_frame
                    if callback is None:
                        frame.close()
                        break
                    try:
                        callback(frame)
                    except Exception:
                        self._logger.exception("Frame handling failed")
                self._stop_event.wait(self._config.interval_s)

    def _fail(self, exc: Exception) -> None:
        self._stop_event.set()
        if self._on_error is not None:
            self._on_error(f"screen capture failed: {exc}")


__all__ = [
    "CaptureError",
    "FrameSource",
    "FrameSlot",
    "MssFrameSource",
    "capture_size",
    "downscale_frame",
]
