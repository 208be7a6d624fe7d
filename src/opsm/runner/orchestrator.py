"""Orchestrator: one supervised task per declared secret."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from opsm.core.barrier import ReadinessBarrier
from opsm.core.config.loader import load_from_file
from opsm.core.config.orchestrator import OrchestratorConfig
from opsm.core.config.secret import SecretSpec
from opsm.core.config.validator import validate_orchestrator
from opsm.core.errors import ConfigurationError, MountError
from opsm.core.installer import SecretInstaller
from opsm.core.probe import ConnectivityProbe
from opsm.core.resilience.timer import InterruptibleTimer
from opsm.core.store.base import SecretStore
from opsm.core.store.providers import OnePasswordStore
from opsm.core.utils import call_hook
from opsm.core.volatile import VolatileDirectoryPreparer
from opsm.runner.hooks import NoOpHooks, ProvisioningHooks
from opsm.runner.result import ProvisioningResult, ProvisioningStatus, TaskResult
from opsm.runner.supervisor import Supervisor
from opsm.runner.task import SecretTask

logger = logging.getLogger(__name__)

_JOIN_POLL_SECONDS = 0.5


class Orchestrator:
    """Provisions every declared secret in parallel.

    Prepares the secrets directory, checks that the credential file exists,
    then runs one supervised :class:`SecretTask` per secret in its own
    thread. Dependents can wait on :attr:`barrier`, or on the
    ``ready_marker`` file when one is configured.

    Args:
        config: Orchestrator configuration.
        store_factory: Builds a store client per task. Defaults to a
            :class:`OnePasswordStore` reading ``config.token_path``.
        hooks: Lifecycle hooks (default: ``NoOpHooks``).
        timer: Shared interruptible timer; :meth:`stop` triggers it.
        preparer: Volatile directory preparer.
        clock: Injectable monotonic clock for testing.
        sleep_func: Injectable sleep for probe delays.
        check_func: Injectable liveness check for the probe.
        chown_func: Injectable ``os.chown`` replacement for the installer.
        validate_before_run: Run host validation before provisioning
            (default: ``True``).
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        store_factory: Callable[[], SecretStore] | None = None,
        hooks: ProvisioningHooks | None = None,
        timer: InterruptibleTimer | None = None,
        preparer: VolatileDirectoryPreparer | None = None,
        clock: Callable[[], float] | None = None,
        sleep_func: Callable[[float], None] | None = None,
        check_func: Callable[[str], None] | None = None,
        chown_func: Callable[[str, int, int], None] | None = None,
        validate_before_run: bool = True,
    ) -> None:
        self._config = config
        self._store_factory = store_factory or (lambda: OnePasswordStore(config.token_path, config.store))
        self._hooks: ProvisioningHooks = hooks or NoOpHooks()
        self._timer = timer or InterruptibleTimer()
        self._preparer = preparer or VolatileDirectoryPreparer(config.volatile_dir)
        self._clock = clock or time.monotonic
        self._sleep_func = sleep_func
        self._check_func = check_func
        self._chown_func = chown_func
        self._validate_before_run = validate_before_run
        self._barrier = ReadinessBarrier(spec.task_id for spec in config.secrets)

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> Orchestrator:
        """Create an orchestrator from a HOCON configuration file.

        Args:
            path: Path to the HOCON file.
            **kwargs: Forwarded to the constructor.

        Returns:
            Configured ``Orchestrator``.
        """
        config = load_from_file(str(path), OrchestratorConfig)
        return cls(config, **kwargs)

    @property
    def config(self) -> OrchestratorConfig:
        """Return the orchestrator configuration."""
        return self._config

    @property
    def barrier(self) -> ReadinessBarrier:
        """Return the readiness barrier shared by all tasks."""
        return self._barrier

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def prepare(self) -> None:
        """Prepare the secrets directory.

        Mounts the volatile directory when ``use_volatile_dir`` is set;
        otherwise only makes sure the directory exists.

        Raises:
            MountError: If the directory cannot be prepared.
        """
        if self._config.use_volatile_dir:
            self._preparer.prepare(self._config.secret_dir)
            return
        try:
            os.makedirs(self._config.secret_dir, mode=0o751, exist_ok=True)
        except OSError as exc:
            raise MountError(self._config.secret_dir, str(exc)) from exc

    def credentials_present(self) -> bool:
        """Return ``True`` if the token file exists; tasks do not start otherwise."""
        return os.path.exists(self._config.token_path)

    def build_task(self, spec: SecretSpec) -> SecretTask:
        """Build a fresh task for *spec* with its own store client."""
        store = self._store_factory()
        return SecretTask(
            spec,
            self._config,
            probe=ConnectivityProbe(
                store,
                self._config.probe,
                sleep_func=self._sleep_func,
                check_func=self._check_func,
            ),
            installer=SecretInstaller(store, chown_func=self._chown_func),
            barrier=self._barrier,
            timer=self._timer,
            hooks=self._hooks,
            clock=self._clock,
        )

    def run_task(self, name: str) -> TaskResult:
        """Run a single secret's task in the calling thread, without restarts.

        Without a refresh interval the secret is installed once. With one,
        the task keeps refreshing until :meth:`stop`, as it does under
        :meth:`run`. Intended for hosts where an external service manager
        supervises and restarts one process per secret.

        Raises:
            ConfigurationError: If no secret is named *name*.
        """
        spec = self._config.get_secret(name)
        if spec is None:
            raise ConfigurationError(f"No secret named '{name}'")
        return self.build_task(spec).run()

    def run(self) -> ProvisioningResult:
        """Provision every secret and supervise the tasks until they finish.

        With a refresh interval the tasks only finish after :meth:`stop`.

        Returns:
            ``ProvisioningResult`` with per-task outcomes and overall status.
        """
        start = self._clock()

        if self._validate_before_run:
            validation = validate_orchestrator(self._config)
            for w in validation.warnings:
                logger.warning("Validation warning: %s", w)
            if not validation.is_valid:
                errors_msg = "; ".join(e.message for e in validation.errors)
                logger.error("Configuration validation failed: %s", errors_msg)
                return self._aborted(start)

        if not self.credentials_present():
            logger.error("Token file %s does not exist; not starting", self._config.token_path)
            return self._aborted(start)

        try:
            self.prepare()
        except MountError as exc:
            logger.error("%s", exc)
            return self._aborted(start)

        self._clear_ready_marker()
        self._call_hook("before_provisioning", self._config)
        self._barrier.on_ready(self._on_barrier_open)

        results: dict[str, TaskResult] = {}
        supervisor = Supervisor(self._config.restart_policy, self._config.restart, self._timer, self._hooks)
        threads = [
            threading.Thread(
                target=self._supervise,
                args=(supervisor, spec, results),
                name=f"opsm-{spec.task_id}",
                daemon=True,
            )
            for spec in self._config.secrets
        ]
        for thread in threads:
            thread.start()

        self._await_startup(threads)
        for thread in threads:
            while thread.is_alive():
                thread.join(_JOIN_POLL_SECONDS)

        ordered = [results[spec.task_id] for spec in self._config.secrets if spec.task_id in results]
        result = ProvisioningResult.from_tasks(
            ordered,
            total_duration_ms=int((self._clock() - start) * 1000),
            ready=self._barrier.is_ready,
        )
        self._call_hook("after_provisioning", self._config, result)
        return result

    def stop(self) -> None:
        """Ask every task to finish; in-flight installs complete first."""
        logger.info("Stop requested")
        self._timer.stop()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _supervise(self, supervisor: Supervisor, spec: SecretSpec, results: dict[str, TaskResult]) -> None:
        results[spec.task_id] = supervisor.supervise(lambda: self.build_task(spec))

    def _await_startup(self, threads: list[threading.Thread]) -> None:
        """Wait for readiness up to the startup timeout, logging if it passes."""
        deadline = self._clock() + self._config.restart.startup_timeout_seconds
        while not self._barrier.is_ready:
            if self._timer.stopped or not any(t.is_alive() for t in threads):
                return
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.error(
                    "Secrets not ready after %.0fs; still waiting for: %s",
                    self._config.restart.startup_timeout_seconds,
                    ", ".join(sorted(self._barrier.pending)),
                )
                return
            self._barrier.wait_all(timeout=min(remaining, _JOIN_POLL_SECONDS))

    def _aborted(self, start: float) -> ProvisioningResult:
        return ProvisioningResult(
            status=ProvisioningStatus.FAILURE,
            total_duration_ms=int((self._clock() - start) * 1000),
        )

    def _on_barrier_open(self) -> None:
        marker = self._config.ready_marker
        if marker is not None:
            Path(marker).touch(mode=0o644)
            logger.debug("Touched ready marker %s", marker)
        self._call_hook("on_ready", self._barrier.total)

    def _clear_ready_marker(self) -> None:
        marker = self._config.ready_marker
        if marker is not None and os.path.exists(marker):
            os.unlink(marker)

    def _call_hook(self, method: str, *args: Any) -> None:
        call_hook(self._hooks, method, logger, *args)
