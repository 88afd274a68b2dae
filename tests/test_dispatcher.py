from __future__ import annotations

import threading
import time

import pytest

from link_digest.dispatcher import BatchContext, BatchDispatcher


def test_reserve_respects_pending_limit():
    dispatcher = BatchDispatcher(max_workers=1, max_pending=2, timeout_seconds=5)
    try:
        assert dispatcher.reserve()
        assert dispatcher.reserve()
        assert not dispatcher.reserve()
        dispatcher.release()
        assert dispatcher.reserve()
    finally:
        dispatcher.release()
        dispatcher.release()
        dispatcher.shutdown()


def test_dispatch_passes_context_and_frees_slot():
    dispatcher = BatchDispatcher(max_workers=1, max_pending=1, timeout_seconds=5)
    try:
        assert dispatcher.reserve()
        future = dispatcher.dispatch(lambda ctx, value: (isinstance(ctx, BatchContext), value), 42)
        assert future.result(timeout=5) == (True, 42)
        deadline = time.monotonic() + 5
        while not dispatcher.reserve():
            assert time.monotonic() < deadline
            time.sleep(0.01)
        dispatcher.release()
    finally:
        dispatcher.shutdown()


def test_shutdown_stops_waiting_batches_and_refuses_new_work():
    dispatcher = BatchDispatcher(max_workers=1, max_pending=1, timeout_seconds=60)
    started = threading.Event()

    def job(ctx: BatchContext) -> bool:
        started.set()
        return ctx.wait(30)

    assert dispatcher.reserve()
    future = dispatcher.dispatch(job)
    assert started.wait(5)
    dispatcher.shutdown(wait=True)

    assert future.result(timeout=5) is False
    assert dispatcher.closed
    assert not dispatcher.reserve()


def test_context_expires_at_deadline():
    ctx = BatchContext(deadline=time.monotonic() + 0.05, stop_event=threading.Event())
    assert not ctx.expired()
    assert ctx.wait(1) is False
    assert ctx.expired()


def test_invalid_pool_size_is_rejected():
    with pytest.raises(ValueError):
        BatchDispatcher(max_workers=0, max_pending=1, timeout_seconds=1)


def test_shutdown_cancels_queued_batches_and_calls_on_cancel():
    dispatcher = BatchDispatcher(max_workers=1, max_pending=2, timeout_seconds=60)
    started = threading.Event()
    release = threading.Event()
    cancelled = []

    def blocking_job(ctx: BatchContext) -> None:
        started.set()
        release.wait(10)

    assert dispatcher.reserve()
    dispatcher.dispatch(blocking_job)
    assert started.wait(5)
    assert dispatcher.reserve()
    queued = dispatcher.dispatch(lambda ctx: "ran", on_cancel=lambda: cancelled.append(True))

    stopper = threading.Thread(target=dispatcher.shutdown)
    stopper.start()
    deadline = time.monotonic() + 5
    while not cancelled:
        assert time.monotonic() < deadline
        time.sleep(0.01)
    release.set()
    stopper.join(10)

    assert queued.cancelled()
    assert cancelled == [True]
