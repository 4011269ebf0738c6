"""OS layer for the screen coach.

This package covers everything that touches the host: configuration and the
preference store, framebuffer capture, the non-interactive pointer overlay,
and the executors that keep overlay updates ordered while vision calls run
in the background.
"""

from .capture import CaptureError, FrameSlot, MssFrameSource, capture_size
from .config import CaptureConfig, CoachConfig, ScreenMetrics, VisionConfig, load_configs
from .dispatch import UiDispatcher, WorkerPool
from .overlay import ImageOverlaySurface, OverlayRenderer
from .preferences import CoachContext, Preferences, load_preferences

__all__ = [
    "CaptureConfig",
    "CaptureError",
    "CoachConfig",
    "CoachContext",
    "FrameSlot",
    "ImageOverlaySurface",
    "MssFrameSource",
    "OverlayRenderer",
    "Preferences",
    "ScreenMetrics",
    "UiDispatcher",
    "VisionConfig",
    "WorkerPool",
    "capture_size",
    "load_configs",
    "load_preferences",
]
