"""Interruptible waits for refresh scheduling and shutdown."""

from __future__ import annotations

import threading


class InterruptibleTimer:
    """A sleep that a stop request can cut short.

    All tasks of an orchestrator share one timer so a single
    :meth:`stop` drains every refresh loop at once.

    Args:
        stop_event: Event signalling shutdown. A private one is created
            when omitted.
    """

    def __init__(self, stop_event: threading.Event | None = None) -> None:
        self._stop_event = stop_event or threading.Event()

    @property
    def stopped(self) -> bool:
        """Return ``True`` once :meth:`stop` has been called."""
        return self._stop_event.is_set()

    def wait(self, seconds: float) -> bool:
        """Block for *seconds*.

        Returns:
            ``True`` if the full interval elapsed, ``False`` if a stop
            was requested before or during the wait.
        """
        if seconds <= 0:
            return not self.stopped
        return not self._stop_event.wait(seconds)

    def stop(self) -> None:
        """Wake every waiter and make future waits return immediately."""
        self._stop_event.set()
