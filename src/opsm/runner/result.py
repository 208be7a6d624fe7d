"""Provisioning result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TaskState(str, Enum):
    """Lifecycle states of a per-secret task."""

    WAITING = "waiting"
    PROBING_CONNECTIVITY = "probing_connectivity"
    INSTALLING = "installing"
    INSTALLED = "installed"
    REFRESHING = "refreshing"
    FAILED = "failed"


class ProvisioningStatus(str, Enum):
    """Overall outcome of a provisioning run."""

    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILURE = "failure"


@dataclass
class TaskResult:
    """Outcome of one task run, as reported to the supervisor."""

    task_id: str
    final_state: TaskState
    exit_code: int
    cycles: int = 0
    duration_ms: int = 0
    error: Exception | None = None
    stopped: bool = False
    restarts: int = 0

    @property
    def success(self) -> bool:
        """Return ``True`` if the task exited with status 0."""
        return self.exit_code == 0


@dataclass
class ProvisioningResult:
    """Aggregate result of a full provisioning run."""

    status: ProvisioningStatus
    task_results: list[TaskResult] = field(default_factory=list)
    total_duration_ms: int = 0
    ready: bool = False

    @property
    def installed_secrets(self) -> list[str]:
        """Return identities of tasks that exited successfully."""
        return [r.task_id for r in self.task_results if r.success]

    @property
    def failed_secrets(self) -> list[tuple[str, Exception]]:
        """Return (task_id, error) pairs for tasks that failed."""
        return [(r.task_id, r.error) for r in self.task_results if not r.success and r.error is not None]

    @property
    def exit_code(self) -> int:
        """Return the process exit status for this run."""
        return 0 if self.status is ProvisioningStatus.SUCCESS else 1

    @classmethod
    def from_tasks(
        cls,
        task_results: list[TaskResult],
        total_duration_ms: int = 0,
        ready: bool = False,
    ) -> ProvisioningResult:
        """Aggregate per-task results into an overall status."""
        if all(r.success for r in task_results):
            status = ProvisioningStatus.SUCCESS
        elif not any(r.success for r in task_results):
            status = ProvisioningStatus.FAILURE
        else:
            status = ProvisioningStatus.PARTIAL_SUCCESS
        return cls(
            status=status,
            task_results=task_results,
            total_duration_ms=total_duration_ms,
            ready=ready,
        )
