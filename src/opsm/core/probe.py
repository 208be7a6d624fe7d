"""Connectivity gate run before every install."""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from opsm.core.config.retry import ProbeConfig
from opsm.core.errors import ProvisioningError, Unreachable
from opsm.core.resilience.retry import RetryExecutor
from opsm.core.store.base import SecretStore

logger = logging.getLogger(__name__)

# Errors that count as a failed attempt, whoami failures included
_TRANSIENT = (httpx.HTTPError, OSError, ProvisioningError)


class ConnectivityProbe:
    """Checks that the secret store answers before anything is fetched.

    Each attempt resolves the endpoint with the store's identity query and
    then issues a plain HTTP GET against it. A failed query, a transport
    error or an error status all count as a failed attempt.

    Args:
        store: Store whose endpoint is probed.
        config: Attempt budget and request timeout.
        sleep_func: Injectable sleep for testing retry delays.
        check_func: Injectable liveness check for testing; must raise on
            failure. Defaults to an ``httpx`` GET.
    """

    def __init__(
        self,
        store: SecretStore,
        config: ProbeConfig | None = None,
        sleep_func: Callable[[float], None] | None = None,
        check_func: Callable[[str], None] | None = None,
    ) -> None:
        self._store = store
        self._config = config or ProbeConfig()
        self._executor = RetryExecutor(self._config.retry, sleep_func=sleep_func)
        self._check = check_func or self._http_check

    @property
    def config(self) -> ProbeConfig:
        """Return the probe configuration."""
        return self._config

    def probe(self, on_retry: Callable[[int, Exception, float], None] | None = None) -> str:
        """Wait until the store is reachable.

        Args:
            on_retry: Optional callback ``(attempt, error, delay)`` invoked
                before each sleep.

        Returns:
            The endpoint URL that answered.

        Raises:
            Unreachable: If the endpoint cannot be resolved or does not
                answer within the attempt budget. Both count as failed
                attempts.
        """
        attempts = 0
        endpoint: str | None = None

        def attempt() -> str:
            nonlocal attempts, endpoint
            attempts += 1
            endpoint = self._store.whoami()
            self._check(endpoint)
            return endpoint

        def log_retry(attempt_no: int, error: Exception, delay: float) -> None:
            logger.info("Waiting to reach %s (%s)...", endpoint or self._store.provider_name, error)
            if on_retry is not None:
                on_retry(attempt_no, error, delay)

        try:
            return self._executor.execute(attempt, retry_on=_TRANSIENT, on_retry=log_retry)
        except _TRANSIENT as exc:
            logger.error("Could not reach %s", endpoint or self._store.provider_name)
            raise Unreachable(endpoint, attempts, exc) from exc

    def _http_check(self, endpoint: str) -> None:
        response = httpx.get(
            endpoint,
            timeout=self._config.request_timeout_seconds,
            follow_redirects=True,
        )
        response.raise_for_status()
