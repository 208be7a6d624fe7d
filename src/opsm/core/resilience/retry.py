"""Bounded retry execution with a fixed or growing delay."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from typing import TypeVar

from opsm.core.config.retry import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExecutor:
    """Runs a callable up to ``config.max_attempts`` times.

    The delays between attempts follow :meth:`schedule`; the final attempt
    is never followed by a sleep, so a four-attempt budget sleeps three
    times.

    Args:
        config: Attempt budget and delays.
        sleep_func: Injectable sleep function for testing. Defaults to ``time.sleep``.
    """

    def __init__(
        self,
        config: RetryConfig,
        sleep_func: Callable[[float], None] | None = None,
    ) -> None:
        self._config = config
        self._sleep = sleep_func or time.sleep

    @property
    def config(self) -> RetryConfig:
        """Return the retry configuration."""
        return self._config

    def calculate_delay(self, attempt: int) -> float:
        """Return the delay after failed attempt number *attempt* (zero-based).

        ``initial * multiplier ** attempt``, capped at ``max_delay_seconds``.
        The default probe budget uses a multiplier of 1, i.e. a fixed delay.
        """
        return min(
            self._config.initial_delay_seconds * self._config.backoff_multiplier ** attempt,
            self._config.max_delay_seconds,
        )

    def schedule(self) -> Iterator[float]:
        """Yield the delay before each retry, one per attempt after the first."""
        for attempt in range(self._config.max_attempts - 1):
            yield self.calculate_delay(attempt)

    def execute(
        self,
        func: Callable[[], T],
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        on_retry: Callable[[int, Exception, float], None] | None = None,
    ) -> T:
        """Call *func* until it returns or the attempt budget is spent.

        Args:
            func: Zero-argument callable to execute.
            retry_on: Exception types that trigger another attempt. Anything
                else propagates immediately.
            on_retry: Called before each sleep with ``(attempt, error, delay)``,
                where attempt is the 1-based number of the attempt that failed.

        Returns:
            The return value of *func*.

        Raises:
            Exception: The error of the final attempt, or any error not
                listed in *retry_on*.
        """
        for attempt, delay in enumerate(self.schedule(), start=1):
            try:
                return func()
            except retry_on as exc:
                logger.debug(
                    "Attempt %d/%d failed (%s), retrying in %.3fs",
                    attempt,
                    self._config.max_attempts,
                    type(exc).__name__,
                    delay,
                )
                if on_retry is not None:
                    on_retry(attempt, exc, delay)  # type: ignore[arg-type]
                self._sleep(delay)

        # Last attempt: errors propagate to the caller
        return func()
