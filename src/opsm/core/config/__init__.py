"""Configuration models for opsm.

This package provides dataconf-based configuration models for declaring
the secrets to provision in a type-safe, declarative manner using HOCON format.
"""

from opsm.core.config.base import LogLevel, MetricsBackend, RestartPolicy
from opsm.core.config.hooks import LoggingConfig, MetricsConfig
from opsm.core.config.loader import load_from_file, load_from_string
from opsm.core.config.orchestrator import OrchestratorConfig, StoreConfig, VolatileDirConfig
from opsm.core.config.retry import ProbeConfig, RestartConfig, RetryConfig
from opsm.core.config.secret import SecretSpec, derive_task_id
from opsm.core.config.validator import (
    ValidationError,
    ValidationPhase,
    ValidationResult,
    resolve_gid,
    resolve_owner_ids,
    resolve_uid,
    validate_orchestrator,
)

__all__ = [
    "LogLevel",
    "LoggingConfig",
    "MetricsBackend",
    "MetricsConfig",
    "OrchestratorConfig",
    "ProbeConfig",
    "RestartConfig",
    "RestartPolicy",
    "RetryConfig",
    "SecretSpec",
    "StoreConfig",
    "ValidationError",
    "ValidationPhase",
    "ValidationResult",
    "VolatileDirConfig",
    "derive_task_id",
    "load_from_file",
    "load_from_string",
    "resolve_gid",
    "resolve_owner_ids",
    "resolve_uid",
    "validate_orchestrator",
]
