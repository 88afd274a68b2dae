from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchContext:
    """Deadline and stop signal handed to every background batch."""

    deadline: float
    stop_event: threading.Event

    def remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        return self.stop_event.is_set() or time.monotonic() >= self.deadline

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; False when stopped or the deadline hits first."""
        if seconds <= 0:
            return not self.expired()
        if seconds >= self.remaining():
            self.stop_event.wait(self.remaining())
            return False
        return not self.stop_event.wait(seconds)


class BatchDispatcher:
    """Runs batches on a fixed-size thread pool with a cap on queued work.

    Callers take a slot with `reserve()` before committing to a batch, so an
    overloaded pool is detected before any state is changed.
    """

    def __init__(self, max_workers: int, max_pending: int, timeout_seconds: float):
        if max_workers <= 0 or max_pending <= 0:
            raise ValueError("max_workers and max_pending must be positive.")
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="digest-batch")
        self._slots = threading.BoundedSemaphore(max_pending)
        self._timeout = timeout_seconds
        self._stop = threading.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def reserve(self) -> bool:
        if self._closed:
            return False
        return self._slots.acquire(blocking=False)

    def release(self) -> None:
        self._slots.release()

    def dispatch(self, fn: Callable[..., Any], *args: Any, on_cancel: Optional[Callable[[], None]] = None) -> Future:
        """Run `fn(ctx, *args)` in the pool. A slot must already be reserved.

        `on_cancel` runs instead when the batch is dropped by `shutdown()` before it started.
        """
        ctx = BatchContext(deadline=time.monotonic() + self._timeout, stop_event=self._stop)
        try:
            future = self._executor.submit(fn, ctx, *args)
        except RuntimeError:
            self.release()
            raise
        future.add_done_callback(lambda done: self._on_done(done, on_cancel))
        return future

    def _on_done(self, future: Future, on_cancel: Optional[Callable[[], None]]) -> None:
        self.release()
        if future.cancelled():
            logger.warning("Batch cancelled before it started")
            if on_cancel is not None:
                on_cancel()
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Batch failed unexpectedly: %s", exc, exc_info=exc)

    def shutdown(self, wait: bool = True) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop.set()
        logger.info("Shutting down batch pool (wait=%s)", wait)
        self._executor.shutdown(wait=wait, cancel_futures=True)
