"""Per-secret provisioning task.

State machine::

    WAITING --> PROBING_CONNECTIVITY --[reachable]--> INSTALLING --[written]--> INSTALLED
                    |                                     |                       |
                    +--[budget exhausted]--> FAILED <-----+--[fetch/write error]  |
                                                                                  |
    INSTALLED --[no refresh interval]--> exit 0
    INSTALLED --[refresh interval]--> REFRESHING --[interval elapsed]--> PROBING_CONNECTIVITY
    REFRESHING --[stop requested]--> exit 0
    FAILED --> exit 1

Nothing survives a restart: every run starts in ``WAITING`` and rewrites
the file, since its content may have changed in the store.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from opsm.core.barrier import ReadinessBarrier
from opsm.core.config.orchestrator import OrchestratorConfig
from opsm.core.config.secret import SecretSpec
from opsm.core.errors import ProvisioningError
from opsm.core.installer import SecretInstaller
from opsm.core.probe import ConnectivityProbe
from opsm.core.resilience.timer import InterruptibleTimer
from opsm.core.utils import call_hook
from opsm.runner.hooks import NoOpHooks, ProvisioningHooks
from opsm.runner.result import TaskResult, TaskState

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class SecretTask:
    """Provisions one secret: probe, install, then refresh or exit.

    Args:
        spec: The secret this task owns.
        config: Orchestrator settings shared by every task.
        probe: Connectivity gate run before each install.
        installer: Writes the secret into ``config.secret_dir``.
        barrier: Readiness barrier to register with after the first install.
        timer: Interruptible timer used for the refresh wait.
        hooks: Lifecycle hooks (default: ``NoOpHooks``).
        clock: Injectable monotonic clock for testing.
    """

    def __init__(
        self,
        spec: SecretSpec,
        config: OrchestratorConfig,
        probe: ConnectivityProbe,
        installer: SecretInstaller,
        barrier: ReadinessBarrier | None = None,
        timer: InterruptibleTimer | None = None,
        hooks: ProvisioningHooks | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._spec = spec
        self._config = config
        self._probe = probe
        self._installer = installer
        self._barrier = barrier
        self._timer = timer or InterruptibleTimer()
        self._hooks: ProvisioningHooks = hooks or NoOpHooks()
        self._clock = clock or time.monotonic
        self._state = TaskState.WAITING
        self._cycles = 0

    @property
    def task_id(self) -> str:
        """Return the identity of this task."""
        return self._spec.task_id

    @property
    def state(self) -> TaskState:
        """Return the current state."""
        return self._state

    @property
    def cycles(self) -> int:
        """Return the number of successful installs in this run."""
        return self._cycles

    def run(self) -> TaskResult:
        """Run the task until it exits.

        Returns:
            The task's result. ``exit_code`` is 0 after a single install
            without refresh or after a stop request, 1 after a failure.
        """
        start = self._clock()
        try:
            return self._run_cycles(start)
        except Exception as exc:
            logger.exception("Secret '%s' failed unexpectedly", self.task_id)
            return self._fail(exc, start)

    def _run_cycles(self, start: float) -> TaskResult:
        interval = self._config.refresh_interval_seconds
        self._transition(TaskState.PROBING_CONNECTIVITY)

        while True:
            try:
                self._probe.probe(on_retry=self._on_probe_retry)
            except ProvisioningError as exc:
                return self._fail(exc, start)

            self._transition(TaskState.INSTALLING)
            install_start = self._clock()
            try:
                path = self._installer.install(self._spec, self._config.secret_dir)
            except ProvisioningError as exc:
                return self._fail(exc, start)

            self._cycles += 1
            self._transition(TaskState.INSTALLED)
            self._call_hook("after_install", self.task_id, path, self._elapsed_ms(install_start))
            if self._barrier is not None:
                self._barrier.register(self.task_id)

            if interval is None:
                return self._result(EXIT_SUCCESS, start)

            self._transition(TaskState.REFRESHING)
            if not self._timer.wait(interval):
                logger.info("Secret '%s' stopping during refresh wait", self.task_id)
                return self._result(EXIT_SUCCESS, start, stopped=True)
            self._transition(TaskState.PROBING_CONNECTIVITY)

    def _fail(self, error: Exception, start: float) -> TaskResult:
        self._transition(TaskState.FAILED)
        self._call_hook("on_task_failure", self.task_id, error)
        return self._result(EXIT_FAILURE, start, error=error)

    def _result(
        self,
        exit_code: int,
        start: float,
        error: Exception | None = None,
        stopped: bool = False,
    ) -> TaskResult:
        return TaskResult(
            task_id=self.task_id,
            final_state=self._state,
            exit_code=exit_code,
            cycles=self._cycles,
            duration_ms=self._elapsed_ms(start),
            error=error,
            stopped=stopped,
        )

    def _transition(self, new_state: TaskState) -> None:
        old_state, self._state = self._state, new_state
        self._call_hook("on_state_change", self.task_id, old_state, new_state)

    def _on_probe_retry(self, attempt: int, error: Exception, delay: float) -> None:
        self._call_hook(
            "on_probe_retry",
            self.task_id,
            attempt,
            self._probe.config.retry.max_attempts,
            int(delay * 1000),
            error,
        )

    def _elapsed_ms(self, since: float) -> int:
        return int((self._clock() - since) * 1000)

    def _call_hook(self, method: str, *args: Any) -> None:
        call_hook(self._hooks, method, logger, *args)
