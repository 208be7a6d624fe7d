"""Readiness barrier shared by all provisioning tasks."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

from opsm.core.utils import safe_call

logger = logging.getLogger(__name__)


class ReadinessBarrier:
    """Counts first successful installs against a fixed set of tasks.

    Membership is fixed at construction. The barrier opens once every
    member has registered and never closes again.

    Args:
        task_ids: Identities of every task expected to register.
    """

    def __init__(self, task_ids: Iterable[str]) -> None:
        self._expected: frozenset[str] = frozenset(task_ids)
        self._registered: set[str] = set()
        self._condition = threading.Condition()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def total(self) -> int:
        """Return the number of tasks the barrier waits for."""
        return len(self._expected)

    @property
    def is_ready(self) -> bool:
        """Return ``True`` once every task has registered."""
        with self._condition:
            return self._registered == self._expected

    @property
    def registered(self) -> frozenset[str]:
        """Return the identities registered so far."""
        with self._condition:
            return frozenset(self._registered)

    @property
    def pending(self) -> frozenset[str]:
        """Return the identities that have not registered yet."""
        with self._condition:
            return self._expected - self._registered

    def on_ready(self, callback: Callable[[], None]) -> None:
        """Invoke *callback* once when the barrier opens.

        Runs immediately if the barrier is already open. Exceptions are
        logged, not raised.
        """
        with self._condition:
            if self._registered != self._expected:
                self._callbacks.append(callback)
                return
        safe_call(callback, logger, "Readiness callback %r raised an exception", callback)

    def register(self, task_id: str) -> bool:
        """Record that *task_id* completed its first install.

        Registering twice is a no-op.

        Returns:
            ``True`` if this registration opened the barrier.

        Raises:
            ValueError: If *task_id* is not a member of the barrier.
        """
        with self._condition:
            if task_id not in self._expected:
                raise ValueError(f"Unknown task '{task_id}'")
            if task_id in self._registered:
                return False
            self._registered.add(task_id)
            count = len(self._registered)
            opened = self._registered == self._expected
            if opened:
                callbacks, self._callbacks = self._callbacks, []
                self._condition.notify_all()
            else:
                callbacks = []

        logger.debug("Task '%s' ready (%d/%d)", task_id, count, self.total)
        for callback in callbacks:
            safe_call(callback, logger, "Readiness callback %r raised an exception", callback)
        return opened

    def wait_all(self, timeout: float | None = None) -> bool:
        """Block until every task has registered.

        Args:
            timeout: Maximum seconds to wait; ``None`` waits forever.

        Returns:
            ``True`` if the barrier is open, ``False`` on timeout.
        """
        with self._condition:
            return self._condition.wait_for(lambda: self._registered == self._expected, timeout=timeout)
