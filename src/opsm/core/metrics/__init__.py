"""Metrics collection and export abstractions."""

from opsm.core.metrics.exporters import PrometheusRegistry
from opsm.core.metrics.registry import InMemoryRegistry, MeterRegistry

__all__ = [
    "InMemoryRegistry",
    "MeterRegistry",
    "PrometheusRegistry",
]
