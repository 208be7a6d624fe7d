"""Base enums for configuration models."""

from enum import Enum


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class MetricsBackend(str, Enum):
    """Metrics collection backends."""

    MEMORY = "memory"
    PROMETHEUS = "prometheus"


class RestartPolicy(str, Enum):
    """When the supervisor restarts a finished task."""

    ALWAYS = "always"
    ON_FAILURE = "on-failure"
    NO = "no"
