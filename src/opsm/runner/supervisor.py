"""Restart tier: re-runs finished tasks according to a restart policy.

This is the second of the two retry tiers. The connectivity probe retries
a few times inside a task; everything else (fetch errors, write errors,
an exhausted probe) ends the task, and the supervisor decides whether and
when to start a fresh one.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from typing import Any

from opsm.core.config.base import RestartPolicy
from opsm.core.config.retry import RestartConfig
from opsm.core.resilience.timer import InterruptibleTimer
from opsm.core.utils import call_hook
from opsm.runner.hooks import NoOpHooks, ProvisioningHooks
from opsm.runner.result import TaskResult, TaskState
from opsm.runner.task import EXIT_FAILURE, SecretTask

logger = logging.getLogger(__name__)


class Supervisor:
    """Runs a task and restarts it per policy with a fixed backoff.

    A fresh task is built for every start, so no state carries over
    between runs. A stop request on *timer* ends supervision after the
    current run.

    Args:
        policy: When to restart a finished task.
        config: Backoff and restart limit.
        timer: Shared interruptible timer; its stop request ends supervision.
        hooks: Lifecycle hooks (default: ``NoOpHooks``).
    """

    def __init__(
        self,
        policy: RestartPolicy,
        config: RestartConfig | None = None,
        timer: InterruptibleTimer | None = None,
        hooks: ProvisioningHooks | None = None,
    ) -> None:
        self._policy = policy
        self._config = config or RestartConfig()
        self._timer = timer or InterruptibleTimer()
        self._hooks: ProvisioningHooks = hooks or NoOpHooks()

    @property
    def policy(self) -> RestartPolicy:
        """Return the restart policy."""
        return self._policy

    def should_restart(self, result: TaskResult) -> bool:
        """Return ``True`` if *result* warrants another run under the policy."""
        if result.stopped or self._timer.stopped:
            return False
        if self._policy is RestartPolicy.ALWAYS:
            return True
        if self._policy is RestartPolicy.ON_FAILURE:
            return not result.success
        return False

    def supervise(self, task_factory: Callable[[], SecretTask]) -> TaskResult:
        """Run tasks from *task_factory* until the policy says stop.

        Returns:
            The result of the last run, with ``restarts`` set.
        """
        restarts = 0
        while True:
            task = task_factory()
            result = self._run_once(task)

            if not self.should_restart(result):
                return dataclasses.replace(result, restarts=restarts)

            if self._config.max_restarts is not None and restarts >= self._config.max_restarts:
                logger.error(
                    "Secret '%s' reached the restart limit (%d); giving up",
                    result.task_id,
                    self._config.max_restarts,
                )
                return dataclasses.replace(result, restarts=restarts)

            restarts += 1
            self._call_hook("on_task_restart", result.task_id, restarts, result.exit_code)
            if not self._timer.wait(self._config.backoff_seconds):
                return dataclasses.replace(result, restarts=restarts)

    def _run_once(self, task: SecretTask) -> TaskResult:
        try:
            return task.run()
        except Exception as exc:
            logger.exception("Secret '%s' crashed", task.task_id)
            return TaskResult(
                task_id=task.task_id,
                final_state=TaskState.FAILED,
                exit_code=EXIT_FAILURE,
                cycles=task.cycles,
                error=exc,
            )

    def _call_hook(self, method: str, *args: Any) -> None:
        call_hook(self._hooks, method, logger, *args)
