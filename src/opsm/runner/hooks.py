"""Provisioning lifecycle hooks protocol and infrastructure."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from opsm.core.config.orchestrator import OrchestratorConfig
from opsm.core.utils import call_hook
from opsm.runner.result import TaskState

logger = logging.getLogger(__name__)


class ProvisioningHooks(Protocol):
    """Protocol defining lifecycle callbacks for secret provisioning.

    Task-level callbacks are invoked from the task's own thread, so
    implementations must be thread-safe. This protocol is NOT
    ``@runtime_checkable``; use structural typing.
    """

    def before_provisioning(self, config: OrchestratorConfig) -> None:
        """Called before any task starts."""
        ...

    def after_provisioning(self, config: OrchestratorConfig, result: Any) -> None:
        """Called after every task has finished."""
        ...

    def on_state_change(self, task_id: str, old_state: TaskState, new_state: TaskState) -> None:
        """Called on every task state transition."""
        ...

    def on_probe_retry(
        self,
        task_id: str,
        attempt: int,
        max_attempts: int,
        delay_ms: int,
        error: Exception,
    ) -> None:
        """Called before the probe sleeps between attempts."""
        ...

    def after_install(self, task_id: str, path: str, duration_ms: int) -> None:
        """Called after a secret has been written."""
        ...

    def on_task_failure(self, task_id: str, error: Exception) -> None:
        """Called when a task cycle fails."""
        ...

    def on_task_restart(self, task_id: str, restart_count: int, exit_code: int) -> None:
        """Called when the supervisor restarts a task."""
        ...

    def on_ready(self, total: int) -> None:
        """Called once every secret has been installed at least once."""
        ...


class NoOpHooks:
    """Hooks implementation that does nothing."""

    def before_provisioning(self, config: OrchestratorConfig) -> None:
        pass

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
        pass

    def after_install(self, task_id: str, path: str, duration_ms: int) -> None:
        pass

    def on_task_failure(self, task_id: str, error: Exception) -> None:
        pass

    def on_task_restart(self, task_id: str, restart_count: int, exit_code: int) -> None:
        pass

    def on_ready(self, total: int) -> None:
        pass


class CompositeHooks:
    """Broadcasts lifecycle events to multiple hooks implementations.

    Exceptions raised by individual hooks are caught and logged so that
    one misbehaving hook does not break provisioning.
    """

    def __init__(self, *hooks: ProvisioningHooks) -> None:
        self._hooks: tuple[ProvisioningHooks, ...] = hooks

    def _call_all(self, method: str, *args: Any) -> None:
        for hook in self._hooks:
            call_hook(hook, method, logger, *args)

    def before_provisioning(self, config: OrchestratorConfig) -> None:
        self._call_all("before_provisioning", config)

    def after_provisioning(self, config: OrchestratorConfig, result: Any) -> None:
        self._call_all("after_provisioning", config, result)

    def on_state_change(self, task_id: str, old_state: TaskState, new_state: TaskState) -> None:
        self._call_all("on_state_change", task_id, old_state, new_state)

    def on_probe_retry(
        self,
        task_id: str,
        attempt: int,
        max_attempts: int,
        delay_ms: int,
        error: Exception,
    ) -> None:
        self._call_all("on_probe_retry", task_id, attempt, max_attempts, delay_ms, error)

    def after_install(self, task_id: str, path: str, duration_ms: int) -> None:
        self._call_all("after_install", task_id, path, duration_ms)

    def on_task_failure(self, task_id: str, error: Exception) -> None:
        self._call_all("on_task_failure", task_id, error)

    def on_task_restart(self, task_id: str, restart_count: int, exit_code: int) -> None:
        self._call_all("on_task_restart", task_id, restart_count, exit_code)

    def on_ready(self, total: int) -> None:
        self._call_all("on_ready", total)
