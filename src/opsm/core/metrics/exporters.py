"""Prometheus adapter for the meter registry.

Install the optional extra to use it::

    pip install opsm[metrics]
"""

from __future__ import annotations

import threading
from typing import Any


class PrometheusRegistry:
    """Adapter that forwards metrics to ``prometheus_client``.

    Counters map to Prometheus :class:`~prometheus_client.Counter`,
    gauges to :class:`~prometheus_client.Gauge`, and timers to
    :class:`~prometheus_client.Summary` (observed in milliseconds).

    Metrics are created lazily on first use. Label names are derived from
    the tag keys of the first call for a given metric name.

    Args:
        registry: Collector registry to register metrics in. Defaults to
            the ``prometheus_client`` global registry.

    Raises:
        ImportError: If ``prometheus_client`` is not installed.
    """

    def __init__(self, registry: Any = None) -> None:
        try:
            import prometheus_client
        except ImportError:
            raise ImportError(
                "prometheus_client is required for PrometheusRegistry. Install it with: pip install prometheus-client"
            ) from None

        self._registry = registry if registry is not None else prometheus_client.REGISTRY
        self._lock = threading.Lock()
        self._metrics: dict[tuple[str, str], Any] = {}

    @property
    def collector_registry(self) -> Any:
        """Return the underlying ``CollectorRegistry``."""
        return self._registry

    def serve(self, port: int, addr: str = "0.0.0.0") -> None:
        """Expose the registry over HTTP for scraping."""
        from prometheus_client import start_http_server

        start_http_server(port, addr=addr, registry=self._registry)

    def counter(
        self,
        name: str,
        value: float = 1.0,
        tags: dict[str, str] | None = None,
    ) -> None:
        metric = self._get_or_create("counter", name, tags)
        (metric.labels(**tags) if tags else metric).inc(value)

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        metric = self._get_or_create("gauge", name, tags)
        (metric.labels(**tags) if tags else metric).set(value)

    def timer(
        self,
        name: str,
        duration_ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        metric = self._get_or_create("summary", name, tags)
        (metric.labels(**tags) if tags else metric).observe(duration_ms)

    def get_metrics(self) -> dict[str, Any]:
        """Return registered metric names grouped by kind."""
        with self._lock:
            grouped: dict[str, list[str]] = {"counters": [], "gauges": [], "timers": []}
            kinds = {"counter": "counters", "gauge": "gauges", "summary": "timers"}
            for kind, name in self._metrics:
                grouped[kinds[kind]].append(name)
            return grouped

    def _get_or_create(self, kind: str, name: str, tags: dict[str, str] | None) -> Any:
        with self._lock:
            key = (kind, name)
            if key not in self._metrics:
                from prometheus_client import Counter, Gauge, Summary

                factory = {"counter": Counter, "gauge": Gauge, "summary": Summary}[kind]
                label_names = sorted(tags.keys()) if tags else []
                self._metrics[key] = factory(name, f"{kind.title()} {name}", label_names, registry=self._registry)
            return self._metrics[key]
