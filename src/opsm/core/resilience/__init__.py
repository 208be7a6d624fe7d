"""Resilience patterns: bounded retry and interruptible waits."""

from opsm.core.resilience.retry import RetryExecutor
from opsm.core.resilience.timer import InterruptibleTimer

__all__ = [
    "InterruptibleTimer",
    "RetryExecutor",
]
