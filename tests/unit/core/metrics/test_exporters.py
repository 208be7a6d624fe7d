"""Tests for the Prometheus registry adapter."""

from __future__ import annotations

from unittest.mock import patch

import pytest

prometheus_client = pytest.importorskip("prometheus_client")

from opsm.core.metrics.exporters import PrometheusRegistry  # noqa: E402
from opsm.core.metrics.registry import MeterRegistry  # noqa: E402


@pytest.fixture
def registry() -> PrometheusRegistry:
    return PrometheusRegistry(prometheus_client.CollectorRegistry())


class TestPrometheusRegistry:
    def test_implements_protocol(self, registry: PrometheusRegistry) -> None:
        assert isinstance(registry, MeterRegistry)

    def test_counter_with_tags(self, registry: PrometheusRegistry) -> None:
        registry.counter("opsm_installs_total", tags={"secret": "db"})
        registry.counter("opsm_installs_total", value=2.0, tags={"secret": "db"})

        value = registry.collector_registry.get_sample_value("opsm_installs_total", {"secret": "db"})
        assert value == 3.0
        assert "opsm_installs_total" in registry.get_metrics()["counters"]

    def test_gauge_without_tags(self, registry: PrometheusRegistry) -> None:
        registry.gauge("opsm_ready", 1.0)

        assert registry.collector_registry.get_sample_value("opsm_ready") == 1.0
        assert registry.get_metrics()["gauges"] == ["opsm_ready"]

    def test_timer_as_summary(self, registry: PrometheusRegistry) -> None:
        registry.timer("opsm_install_duration_ms", 12.5, {"secret": "db"})
        registry.timer("opsm_install_duration_ms", 7.5, {"secret": "db"})

        labels = {"secret": "db"}
        reg = registry.collector_registry
        assert reg.get_sample_value("opsm_install_duration_ms_count", labels) == 2.0
        assert reg.get_sample_value("opsm_install_duration_ms_sum", labels) == 20.0

    def test_metric_created_once(self, registry: PrometheusRegistry) -> None:
        for _ in range(3):
            registry.counter("opsm_restarts_total", tags={"secret": "a"})
        assert registry.get_metrics()["counters"] == ["opsm_restarts_total"]

    def test_serve_uses_own_registry(self, registry: PrometheusRegistry) -> None:
        with patch("prometheus_client.start_http_server") as start:
            registry.serve(9102)

        start.assert_called_once_with(9102, addr="0.0.0.0", registry=registry.collector_registry)
