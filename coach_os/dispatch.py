"""Executors used by the coach loop.

Overlay updates go through a single-thread UI dispatcher so they are applied
in order; network calls and image encoding run on a small worker pool.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

Logger = logging.Logger


class UiDispatcher:
    """Ordered, single-threaded queue for overlay and status updates."""

    def __init__(self, name: str = "coach-ui", logger: Optional[Logger] = None) -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
        with self._lock:
            if self._closed:
                self._logger.debug("UI dispatcher closed; dropping %s", getattr(fn, "__name__", fn))
                return None
            future = self._executor.submit(fn, *args, **kwargs)
        future.add_done_callback(self._log_failure)
        return future

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait)

    def _log_failure(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self._logger.error("UI task failed: %s", exc, exc_info=exc)


class WorkerPool:
    """Thread pool for blocking vision calls."""

    def __init__(self, max_workers: int = 2, name: str = "coach-worker") -> None:
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix=name)
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        with self._lock:
            if self._closed:
                raise RuntimeError("worker pool has been shut down")
            return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        # queued analyses still run so their cleanup releases frames and guards
        self._executor.shutdown(wait=wait)


__all__ = ["UiDispatcher", "WorkerPool"]
