"""Coach session: owns one run of the pipeline from start to stop."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from coach_os.capture import CaptureError, FrameSource
from coach_os.config import CoachConfig, ScreenMetrics
from coach_os.dispatch import UiDispatcher, WorkerPool
from coach_os.overlay import OverlayRenderer
from coach_os.preferences import CoachContext, Preferences

from .controller import Executor, Locator, LoopController, Planner, monotonic_ms
from .phases import PhaseKind, PipelinePhase
from .state_bus import StateBus

Logger = logging.Logger


class SessionError(RuntimeError):
    """Raised when a session is used after it has been closed."""


class CoachSession:
    """Wires frame source, controller, overlay, and state bus for one coach run.

    Every session owns its own state bus, controller state and executors, so
    tests and repeated runs never share mutable globals.
    """

    def __init__(
        self,
        *,
        frame_source: FrameSource,
        overlay: OverlayRenderer,
        planner: Planner,
        locator: Locator,
        preferences: Preferences,
        screen: ScreenMetrics,
        config: Optional[CoachConfig] = None,
        context: Optional[CoachContext] = None,
        bus: Optional[StateBus] = None,
        worker: Optional[Executor] = None,
        ui: Optional[Executor] = None,
        clock: Callable[[], int] = monotonic_ms,
        logger: Optional[Logger] = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._config = config or CoachConfig()
        self._frame_source = frame_source
        self._overlay = overlay
        self._bus = bus or StateBus(logger=self._logger)
        self._owns_worker = worker is None
        self._owns_ui = ui is None
        self._worker = worker or WorkerPool(max_workers=self._config.worker_threads)
        self._ui = ui or UiDispatcher(logger=self._logger)
        self._lock = threading.Lock()
        self._running = False
        self._closed = False

        self._controller = LoopController(
            config=self._config,
            screen=screen,
            planner=planner,
            locator=locator,
            overlay=overlay,
            bus=self._bus,
            preferences=preferences,
            context=context,
            worker=self._worker,
            ui=self._ui,
            clock=clock,
            logger=self._logger,
        )

    @property
    def bus(self) -> StateBus:
        return self._bus

    @property
    def controller(self) -> LoopController:
        return self._controller

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start capturing and analysing. Raises CaptureError if capture cannot start."""

        with self._lock:
            if self._closed:
                raise SessionError("session has been closed")
            if self._running:
                return
            self._running = True

        self._bus.set_running(True)
        self._bus.update(PipelinePhase.requesting_capture())
        self._controller.activate()
        self._controller.set_status("Coach started.")
        self._bus.update(PipelinePhase.starting())

        try:
            self._frame_source.start(self._controller.on_frame)
        except CaptureError as exc:
            self._logger.error("Screen capture init failed: %s", exc)
            self._controller.set_status(f"Screen capture init failed: {exc}")
            self._bus.update(PipelinePhase.error(str(exc)))
            self._teardown(final_phase=None)
            raise

        self._bus.update(PipelinePhase.scanning())
        self._controller.set_status("Scanning…")
        self._logger.info("Coach session started")

    def report_capture_failure(self, detail: str) -> None:
        """Fatal capture error after start: surface it and stop the pipeline."""

        self._logger.error("Screen capture failed: %s", detail)
        self._controller.set_status(f"Screen capture failed: {detail}")
        self._bus.update(PipelinePhase.error(detail))
        self._teardown(final_phase=None)

    def update_context(self, context: CoachContext) -> None:
        self._controller.update_context(context)

    def stop(self) -> None:
        """Stop the session; safe to call more than once."""

        self._teardown(final_phase=PipelinePhase.idle())

    def close(self) -> None:
        """Stop and release executors; the session cannot be restarted afterwards."""

        self.stop()
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._ui.submit(self._overlay.remove)
        if self._owns_ui:
            self._ui.shutdown()
        if self._owns_worker:
            self._worker.shutdown()

    def _teardown(self, final_phase: Optional[PipelinePhase]) -> None:
        with self._lock:
            was_running = self._running
            self._running = False

        if was_running:
            self._controller.deactivate()
            try:
                self._frame_source.stop()
            except Exception:
                self._logger.exception("Frame source stop failed")
            self._controller.frame_slot.clear()
            self._ui.submit(self._overlay.hide)
            self._logger.info("Coach session stopped")

        if final_phase is not None and self._bus.phase.kind is not PhaseKind.IDLE:
            self._bus.update(final_phase)
            self._bus.clear()
        elif final_phase is None:
            self._bus.set_running(False)

    def __enter__(self) -> "CoachSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["CoachSession", "SessionError"]
