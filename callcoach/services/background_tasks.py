"""
One-shot background tasks for work that must not block a request.

Each submitted callable runs once on its own daemon thread.  Nothing joins
the thread on the request path; errors are logged and dropped.  There is no
cancellation and no bound on how many tasks may run at once.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Any, Callable, Optional

_logger = logging.getLogger(__name__)


class BackgroundTask:
    """Handle for a single dispatched callable."""

    def __init__(self, name: str, fn: Callable[..., Any], args: tuple, on_exit: Callable[["BackgroundTask"], None]) -> None:
        self.name = name
        self.error: Optional[BaseException] = None
        self._fn = fn
        self._args = args
        self._on_exit = on_exit
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    def _run(self) -> None:
        start = time.perf_counter()
        try:
            self._fn(*self._args)
        except Exception as exc:
            self.error = exc
            _logger.exception("Background task %s failed: %s", self.name, exc)
        finally:
            _logger.debug(
                "Background task %s finished in %.0fms",
                self.name,
                (time.perf_counter() - start) * 1000,
            )
            self._done.set()
            self._on_exit(self)


class BackgroundTaskRunner:
    """Dispatches BackgroundTasks and tracks the ones still in flight."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._inflight: set[BackgroundTask] = set()
        self._counter = itertools.count(1)

    def submit(self, name: str, fn: Callable[..., Any], *args: Any) -> BackgroundTask:
        task = BackgroundTask(f"{name}-{next(self._counter)}", fn, args, self._forget)
        with self._lock:
            self._inflight.add(task)
        task.start()
        _logger.debug("Background task dispatched: %s", task.name)
        return task

    def _forget(self, task: BackgroundTask) -> None:
        with self._lock:
            self._inflight.discard(task)

    @property
    def inflight(self) -> int:
        with self._lock:
            return len(self._inflight)

    def join_all(self, timeout: Optional[float] = None) -> bool:
        """Wait for every in-flight task; returns False if the timeout expired first."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                pending = list(self._inflight)
            if not pending:
                return True
            for task in pending:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                if not task.join(remaining):
                    return False
