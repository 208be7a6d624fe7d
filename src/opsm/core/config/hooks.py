"""Logging and metrics configuration models."""

from dataclasses import dataclass

from opsm.core.config.base import LogLevel, MetricsBackend


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for logging behavior."""

    level: LogLevel = LogLevel.INFO
    """Logging level (default: INFO)"""

    output: str = "stderr"
    """Log output destination - stdout, stderr, or file path (default: stderr)"""


@dataclass(frozen=True)
class MetricsConfig:
    """Configuration for metrics collection and export."""

    enabled: bool = True
    """Enable metrics collection (default: True)"""

    backend: MetricsBackend = MetricsBackend.MEMORY
    """Metrics backend to use (default: memory)"""

    port: int | None = None
    """Serve Prometheus metrics over HTTP on this port (optional)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.port is not None and not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        if self.port is not None and self.backend != MetricsBackend.PROMETHEUS:
            raise ValueError("port is only supported with the prometheus backend")
