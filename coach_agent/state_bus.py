"""In-process state bus for coach mode.

The loop controller is the only writer; UI code and the web mirror observe.
There is no queueing: readers always see the most recent write.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from .phases import PipelinePhase

Logger = logging.Logger


@dataclass(frozen=True, slots=True)
class CoachSnapshot:
    phase: PipelinePhase
    hint: str
    running: bool


Listener = Callable[[CoachSnapshot], None]


class StateBus:
    def __init__(self, logger: Optional[Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._phase = PipelinePhase.idle()
        self._hint = ""
        self._running = False
        self._listeners: List[Listener] = []

    @property
    def phase(self) -> PipelinePhase:
        with self._lock:
            return self._phase

    @property
    def hint(self) -> str:
        with self._lock:
            return self._hint

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def snapshot(self) -> CoachSnapshot:
        with self._lock:
            return CoachSnapshot(self._phase, self._hint, self._running)

    def update(self, phase: PipelinePhase) -> None:
        with self._lock:
            self._phase = phase
        self._logger.debug("Coach phase -> %s %s", phase.kind.value, phase.detail)
        self._notify()

    def set_hint(self, text: str) -> None:
        with self._lock:
            self._hint = text
        self._notify()

    def set_running(self, running: bool) -> None:
        with self._lock:
            self._running = running
        self._notify()

    def clear(self) -> None:
        with self._lock:
            self._hint = ""
            self._running = False
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; returns a callable that unsubscribes it."""

        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
            snapshot = CoachSnapshot(self._phase, self._hint, self._running)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                self._logger.exception("State bus listener failed")


__all__ = ["CoachSnapshot", "StateBus"]
