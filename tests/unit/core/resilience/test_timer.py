"""Tests for InterruptibleTimer."""

from __future__ import annotations

import threading
import time

from opsm.core.resilience.timer import InterruptibleTimer


class TestInterruptibleTimer:
    def test_wait_elapses(self) -> None:
        timer = InterruptibleTimer()
        assert timer.wait(0.01) is True
        assert not timer.stopped

    def test_zero_wait(self) -> None:
        timer = InterruptibleTimer()
        assert timer.wait(0) is True
        timer.stop()
        assert timer.wait(0) is False

    def test_wait_after_stop_returns_immediately(self) -> None:
        timer = InterruptibleTimer()
        timer.stop()

        start = time.monotonic()
        assert timer.wait(60) is False
        assert time.monotonic() - start < 1.0

    def test_stop_wakes_waiter(self) -> None:
        timer = InterruptibleTimer()
        results: list[bool] = []
        waiter = threading.Thread(target=lambda: results.append(timer.wait(60)))
        waiter.start()

        time.sleep(0.05)
        timer.stop()
        waiter.join(timeout=5)

        assert not waiter.is_alive()
        assert results == [False]

    def test_shared_event(self) -> None:
        event = threading.Event()
        timer = InterruptibleTimer(event)
        event.set()
        assert timer.stopped
