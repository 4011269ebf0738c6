"""Coach loop controller: capture → signature → planner → locator → overlay.

Frames arrive on the capture thread. A cheap signature decides whether a new
analysis is worth running; analyses run one at a time on the worker pool and
post overlay updates to the UI dispatcher. Once a target is locked, the ring
stays put until the screen changes visibly.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from PIL import Image

from coach_os.capture import FrameSlot
from coach_os.config import CoachConfig, ScreenMetrics
from coach_os.overlay import OverlayRenderer
from coach_os.preferences import PREF_GEMINI_API_KEY, PREF_OPENAI_API_KEY, CoachContext, Preferences
from coach_vision.locator import LocatedBox
from coach_vision.planner import PlanInsufficientQuota, PlanOk, PlanResult
from coach_vision.sanitizer import Target, sanitize_box
from coach_vision.signature import compute_signature
from coach_vision.validator import matches_instruction

from .phases import PipelinePhase
from .state_bus import StateBus

Logger = logging.Logger


class Planner(Protocol):
    def plan(self, frame: Image.Image, context: CoachContext, api_key: str) -> PlanResult: ...


class Locator(Protocol):
    def locate(
        self, frame: Image.Image, instruction: str, api_key: str, model: Optional[str] = None
    ) -> Optional[LocatedBox]: ...

    def in_backoff(self) -> bool: ...


class Executor(Protocol):
    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any: ...


@dataclass(frozen=True, slots=True)
class TargetLock:
    """The ring currently on screen and when it was established (clock ms)."""

    target: Target
    instruction: str
    locked_at_ms: int


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class LoopController:
    """Schedules analyses and turns their outcome into overlay and bus updates."""

    def __init__(
        self,
        *,
        config: CoachConfig,
        screen: ScreenMetrics,
        planner: Planner,
        locator: Locator,
        overlay: OverlayRenderer,
        bus: StateBus,
        preferences: Preferences,
        context: Optional[CoachContext] = None,
        worker: Executor,
        ui: Executor,
        frame_slot: Optional[FrameSlot] = None,
        clock: Callable[[], int] = monotonic_ms,
        signature_fn: Callable[[Image.Image], int] = compute_signature,
        logger: Optional[Logger] = None,
    ) -> None:
        self._config = config
        self._screen = screen
        self._planner = planner
        self._locator = locator
        self._overlay = overlay
        self._bus = bus
        self._preferences = preferences
        self._context = context or preferences.coach_context()
        self._worker = worker
        self._ui = ui
        self._slot = frame_slot or FrameSlot()
        self._clock = clock
        self._signature_fn = signature_fn
        self._logger = logger or logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._in_flight = threading.Lock()
        self._active = False
        self._generation = 0
        self._status_text: Optional[str] = None
        self._reset_state()

    # ------------------------------------------------------------------
    # Lifecycle

    @property
    def frame_slot(self) -> FrameSlot:
        return self._slot

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    @property
    def lock(self) -> Optional[TargetLock]:
        with self._lock:
            return self._target_lock

    @property
    def context(self) -> CoachContext:
        return self._context

    @property
    def planner_blocked(self) -> bool:
        return self._planner_blocked

    @property
    def last_signature(self) -> int:
        return self._last_signature

    def activate(self) -> None:
        with self._lock:
            self._generation += 1
            self._active = True
            self._reset_state()

    def deactivate(self) -> None:
        """Stop scheduling; results of an analysis still running are discarded."""

        with self._lock:
            self._generation += 1
            self._active = False
            self._reset_state()

    def update_context(self, context: CoachContext) -> None:
        """Swap the coach context; lifts a planner quota block and forgets the held instruction."""

        with self._lock:
            self._context = context
            self._planner_blocked = False
            self._locating_instruction = None
            self._locating_until_ms = 0

    def set_status(self, text: str) -> None:
        """Publish a hint on the bus and the overlay status strip; repeats are ignored."""

        with self._lock:
            if text == self._status_text:
                return
            self._status_text = text
        self._bus.set_hint(text)
        self._ui.submit(self._overlay.set_status, text)

    def _reset_state(self) -> None:
        self._last_signature = 0
        self._last_signature_at_ms: Optional[int] = None
        self._last_api_at_ms: Optional[int] = None
        self._last_lock_at_ms: Optional[int] = None
        self._target_lock: Optional[TargetLock] = None
        self._did_initial = False
        self._planner_blocked = False
        self._locating_instruction: Optional[str] = None
        self._locating_until_ms = 0
        self._last_instruction: Optional[str] = None
        self._status_text = None

    # ------------------------------------------------------------------
    # Capture thread

    def on_frame(self, frame: Image.Image) -> None:
        """Frame source callback: store the frame, then maybe schedule an analysis."""

        self._slot.put(frame)
        self.maybe_analyze()

    def maybe_analyze(self) -> None:
        now = self._clock()
        with self._lock:
            if not self._active:
                return
            last_at = self._last_signature_at_ms
            if last_at is not None and now - last_at < self._config.min_analyze_gap_ms:
                return
            self._last_signature_at_ms = now

        sig = self._slot.apply(self._signature_fn)
        if sig is None:
            return

        with self._lock:
            if self._planner_blocked:
                return
            delta = abs(sig - self._last_signature)

            # Run exactly once at the start of a session.
            initial = not self._did_initial
            # With a lock in place only a visible change re-analyses.
            changed = self._last_signature != 0 and delta >= self._config.change_threshold
            # Without a lock, retry slowly so the coach never dead-ends.
            no_lock_retry = (
                self._did_initial
                and self._last_lock_at_ms is None
                and (
                    self._last_api_at_ms is None
                    or now - self._last_api_at_ms >= self._config.no_lock_retry_ms
                )
                and not self.in_flight
            )
            if not (initial or changed or no_lock_retry):
                return

            self._logger.debug(
                "Analysis trigger (initial=%s changed=%s retry=%s delta=%d)",
                initial,
                changed,
                no_lock_retry,
                delta,
            )
            self._last_signature = sig
            self._did_initial = True

        self.dispatch()

    def dispatch(self) -> None:
        now = self._clock()
        with self._lock:
            if not self._active:
                return
            last_api = self._last_api_at_ms
            if last_api is not None and now - last_api < self._config.api_cooldown_ms:
                return
        if not self._in_flight.acquire(blocking=False):
            return

        with self._lock:
            self._last_api_at_ms = now
            generation = self._generation

        frame = self._slot.clone()
        if frame is None:
            self._in_flight.release()
            return

        openai_key = self._preferences.openai_api_key()
        gemini_key = self._preferences.gemini_api_key()
        if not openai_key or not gemini_key:
            frame.close()
            if not openai_key:
                self.set_status(f"Missing OpenAI key in prefs: {PREF_OPENAI_API_KEY}")
                self._publish_unlocked(PipelinePhase.error("missing OpenAI key"))
            else:
                self.set_status(f"Missing Gemini key in prefs: {PREF_GEMINI_API_KEY}")
                self._publish_unlocked(PipelinePhase.error("missing Gemini key"))
            self._in_flight.release()
            return

        self.set_status("Analyzing…")
        self._bus.update(PipelinePhase.scanning())

        try:
            self._worker.submit(
                self._analyze,
                frame,
                generation,
                openai_key,
                gemini_key,
                self._preferences.gemini_model(),
            )
        except RuntimeError as exc:
            self._logger.warning("Could not schedule analysis: %s", exc)
            frame.close()
            self._in_flight.release()

    # ------------------------------------------------------------------
    # Worker thread

    def _analyze(
        self,
        frame: Image.Image,
        generation: int,
        openai_key: str,
        gemini_key: str,
        gemini_model: str,
    ) -> None:
        try:
            self._run_analysis(frame, generation, openai_key, gemini_key, gemini_model)
        except Exception as exc:
            self._logger.exception("Coach analysis failed")
            if self._is_current(generation):
                self.set_status(f"Analysis failed: {exc}")
                self._publish_unlocked(PipelinePhase.error(f"analysis failed: {exc}"))
        finally:
            frame.close()
            self._in_flight.release()

    def _run_analysis(
        self,
        frame: Image.Image,
        generation: int,
        openai_key: str,
        gemini_key: str,
        gemini_model: str,
    ) -> None:
        started = self._clock()
        instruction = self._held_instruction(started)

        if instruction is None:
            result = self._planner.plan(frame, self._context, openai_key)
            if not self._is_current(generation):
                return
            if isinstance(result, PlanOk):
                instruction = result.instruction.strip()
                with self._lock:
                    # Locating hold: keep this idea while the locator searches for it.
                    self._locating_instruction = instruction
                    self._locating_until_ms = started + self._config.locating_hold_ms
                    self._last_instruction = instruction
            elif isinstance(result, PlanInsufficientQuota):
                with self._lock:
                    self._planner_blocked = True
                self.set_status("OpenAI quota exceeded.")
                self._publish_unlocked(PipelinePhase.error("OpenAI quota exceeded"))
                return
            else:
                self.set_status(f"OpenAI error: {result.detail}")
                self._publish_unlocked(PipelinePhase.error(f"OpenAI: {result.detail}"))
                return

        if not instruction:
            self.set_status("No instruction.")
            self._publish_unlocked(PipelinePhase.lost())
            return

        label = instruction[: self._config.instruction_label_chars]
        box = self._locator.locate(frame, instruction, gemini_key, gemini_model)
        if not self._is_current(generation):
            return

        if box is None:
            self._publish_locating(label)
            return

        if not matches_instruction(instruction, box.matched_text):
            self._logger.info("Locator matched %r for %r; rejecting", box.matched_text, instruction)
            self._publish_locating(label)
            return

        target = sanitize_box(
            box,
            self._screen,
            ring_min_dp=self._config.ring_min_dp,
            ring_max_dp=self._config.ring_max_dp,
            max_width=self._config.max_box_width,
            max_height=self._config.max_box_height,
        )
        if target is None:
            self._logger.info("Locator box %.2fx%.2f too large; rejecting", box.w, box.h)
            self._publish_locating(label)
            return

        self._ui.submit(self._show_target, generation, target)
        self.set_status(instruction)
        locked_at = self._clock()
        with self._lock:
            if not self._active or generation != self._generation:
                return
            self._last_lock_at_ms = locked_at
            # The hold only applies while locating.
            self._locating_instruction = None
            self._target_lock = TargetLock(target=target, instruction=instruction, locked_at_ms=locked_at)
        self._bus.update(PipelinePhase.locked(f"{label}@{target.cx},{target.cy}"))

    def _show_target(self, generation: int, target: Target) -> None:
        # Runs on the UI dispatcher; a stop may have happened since it was queued.
        if self._is_current(generation):
            self._overlay.show_at(target.cx, target.cy, target.diameter_px)

    def _held_instruction(self, now: int) -> Optional[str]:
        """Instruction to reuse instead of asking the planner again, if any."""

        with self._lock:
            if self._locating_instruction is not None and now < self._locating_until_ms:
                return self._locating_instruction.strip()
            last = self._last_instruction
        # No point re-planning while the locator cannot be asked anyway.
        if last is not None and self._locator.in_backoff():
            return last.strip()
        return None

    def _publish_locating(self, label: str) -> None:
        self.set_status(f"Locating: {label}")
        self._publish_unlocked(PipelinePhase.candidate(f"locating:{label}"))

    def _publish_unlocked(self, phase: PipelinePhase) -> None:
        """Hide the ring, drop the lock, and publish a non-locked phase."""

        self._ui.submit(self._overlay.hide)
        with self._lock:
            self._target_lock = None
            self._last_lock_at_ms = None
        self._bus.update(phase)

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return self._active and generation == self._generation


__all__ = ["LoopController", "TargetLock", "monotonic_ms"]
