"""Provisioning runner: tasks, supervision, hooks, and orchestration."""

from opsm.runner.hooks import (
    CompositeHooks,
    NoOpHooks,
    ProvisioningHooks,
)
from opsm.runner.hooks_builtin import (
    LoggingHooks,
    MetricsHooks,
)
from opsm.runner.orchestrator import Orchestrator
from opsm.runner.result import (
    ProvisioningResult,
    ProvisioningStatus,
    TaskResult,
    TaskState,
)
from opsm.runner.supervisor import Supervisor
from opsm.runner.task import SecretTask

__all__ = [
    "CompositeHooks",
    "LoggingHooks",
    "MetricsHooks",
    "NoOpHooks",
    "Orchestrator",
    "ProvisioningHooks",
    "ProvisioningResult",
    "ProvisioningStatus",
    "SecretTask",
    "Supervisor",
    "TaskResult",
    "TaskState",
]
