"""Built-in provisioning hooks: logging and metrics collection."""

from __future__ import annotations

import logging
import threading
from typing import Any

from opsm.core.config.orchestrator import OrchestratorConfig
from opsm.core.metrics.registry import MeterRegistry
from opsm.runner.result import TaskState


class LoggingHooks:
    """Hooks that log provisioning lifecycle events.

    Uses ``%s`` formatting for lazy evaluation. Secret content never
    reaches these callbacks.

    Args:
        logger: Custom logger instance. Defaults to ``logging.getLogger("opsm.provision")``.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("opsm.provision")

    @property
    def logger(self) -> logging.Logger:
        """Return the logger used by this hooks instance."""
        return self._logger

    def before_provisioning(self, config: OrchestratorConfig) -> None:
        self._logger.info(
            "Provisioning %d secret(s) into %s",
            len(config.secrets),
            config.secret_dir,
        )

    def after_provisioning(self, config: OrchestratorConfig, result: Any) -> None:
        self._logger.info("Provisioning finished: %s", result.status.value)

    def on_state_change(self, task_id: str, old_state: TaskState, new_state: TaskState) -> None:
        self._logger.debug("Secret '%s': %s -> %s", task_id, old_state.value, new_state.value)

    def on_probe_retry(
        self,
        task_id: str,
        attempt: int,
        max_attempts: int,
        delay_ms: int,
        error: Exception,
    ) -> None:
        self._logger.warning(
            "Secret '%s' waiting to reach the store, attempt %d/%d failed, retrying in %dms: %s",
            task_id,
            attempt,
            max_attempts,
            delay_ms,
            error,
        )

    def after_install(self, task_id: str, path: str, duration_ms: int) -> None:
        self._logger.info("Secret '%s' installed at %s in %dms", task_id, path, duration_ms)

    def on_task_failure(self, task_id: str, error: Exception) -> None:
        self._logger.error("Secret '%s' failed: %s", task_id, error)

    def on_task_restart(self, task_id: str, restart_count: int, exit_code: int) -> None:
        self._logger.warning(
            "Secret '%s' exited with status %d, restart #%d",
            task_id,
            exit_code,
            restart_count,
        )

    def on_ready(self, total: int) -> None:
        self._logger.info("All %d secret(s) ready", total)


class MetricsHooks:
    """Hooks that collect install, failure and retry metrics.

    Per-secret counts are kept on the instance; when a
    :class:`~opsm.core.metrics.registry.MeterRegistry` is provided they are
    also recorded there for export.

    Args:
        registry: Optional meter registry for structured metrics export.
    """

    def __init__(self, registry: MeterRegistry | None = None) -> None:
        self._registry = registry
        self._lock = threading.Lock()
        self.installs: dict[str, int] = {}
        self.failures: dict[str, int] = {}
        self.probe_retries: dict[str, int] = {}
        self.restarts: dict[str, int] = {}

    @property
    def registry(self) -> MeterRegistry | None:
        """Return the meter registry, if configured."""
        return self._registry

    def before_provisioning(self, config: OrchestratorConfig) -> None:
        if self._registry is not None:
            self._registry.gauge("opsm_secrets_declared", float(len(config.secrets)))
            self._registry.gauge("opsm_ready", 0.0)

    def after_provisioning(self, config: OrchestratorConfig, result: Any) -> None:
        pass

    def on_state_change(self, task_id: str, old_state: TaskState, new_state: TaskState) -> None:
        pass

    def on_probe_retry(
        self,
        task_id: str,
        attempt: int,
        max_attempts: int,
        delay_ms: int,
        error: Exception,
    ) -> None:
        self._bump(self.probe_retries, task_id)
        if self._registry is not None:
            self._registry.counter("opsm_probe_retries_total", tags={"secret": task_id})

    def after_install(self, task_id: str, path: str, duration_ms: int) -> None:
        self._bump(self.installs, task_id)
        if self._registry is not None:
            self._registry.counter("opsm_installs_total", tags={"secret": task_id})
            self._registry.timer("opsm_install_duration_ms", float(duration_ms), tags={"secret": task_id})

    def on_task_failure(self, task_id: str, error: Exception) -> None:
        self._bump(self.failures, task_id)
        if self._registry is not None:
            self._registry.counter(
                "opsm_failures_total",
                tags={"secret": task_id, "error": type(error).__name__},
            )

    def on_task_restart(self, task_id: str, restart_count: int, exit_code: int) -> None:
        self._bump(self.restarts, task_id)
        if self._registry is not None:
            self._registry.counter("opsm_restarts_total", tags={"secret": task_id})

    def on_ready(self, total: int) -> None:
        if self._registry is not None:
            self._registry.gauge("opsm_ready", 1.0)

    def _bump(self, counts: dict[str, int], task_id: str) -> None:
        with self._lock:
            counts[task_id] = counts.get(task_id, 0) + 1
