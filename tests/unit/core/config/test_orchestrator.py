"""Tests for OrchestratorConfig and its nested models."""

from __future__ import annotations

import pytest

from opsm.core.config.base import MetricsBackend, RestartPolicy
from opsm.core.config.hooks import MetricsConfig
from opsm.core.config.orchestrator import OrchestratorConfig, StoreConfig, VolatileDirConfig
from opsm.core.config.secret import SecretSpec


class TestOrchestratorConfig:
    def test_defaults(self) -> None:
        config = OrchestratorConfig()
        assert config.secret_dir == "/run/secrets"
        assert config.token_path == "/etc/opsm-token"
        assert config.refresh_interval_seconds is None
        assert config.use_volatile_dir is False
        assert config.secrets == []
        assert config.probe.retry.max_attempts == 4
        assert config.probe.retry.initial_delay_seconds == 15.0
        assert config.restart.backoff_seconds == 1.0
        assert config.restart.startup_timeout_seconds == 300.0
        assert config.metrics is None

    def test_restart_policy_follows_refresh(self) -> None:
        assert OrchestratorConfig().restart_policy is RestartPolicy.ON_FAILURE
        assert OrchestratorConfig(refresh_interval_seconds=3600).restart_policy is RestartPolicy.ALWAYS

    def test_duplicate_task_ids_rejected(self) -> None:
        with pytest.raises(ValueError, match="Duplicate secret name 'v-i-f'"):
            OrchestratorConfig(
                secrets=[
                    SecretSpec(reference="op://v/i/f"),
                    SecretSpec(reference="op://other/x/y", name="v-i-f"),
                ]
            )

    def test_same_reference_different_names_allowed(self) -> None:
        config = OrchestratorConfig(
            secrets=[
                SecretSpec(reference="op://v/i/f", name="a"),
                SecretSpec(reference="op://v/i/f", name="b"),
            ]
        )
        assert len(config.secrets) == 2

    def test_relative_secret_dir_rejected(self) -> None:
        with pytest.raises(ValueError, match="absolute"):
            OrchestratorConfig(secret_dir="run/secrets")

    def test_relative_ready_marker_rejected(self) -> None:
        with pytest.raises(ValueError, match="absolute"):
            OrchestratorConfig(ready_marker="ready")

    @pytest.mark.parametrize("interval", [0, -5])
    def test_non_positive_refresh_rejected(self, interval: int) -> None:
        with pytest.raises(ValueError, match="refresh_interval_seconds"):
            OrchestratorConfig(refresh_interval_seconds=interval)

    def test_get_secret_and_path(self) -> None:
        spec = SecretSpec(reference="op://v/i/f", name="api-key")
        config = OrchestratorConfig(secrets=[spec], secret_dir="/run/secrets")
        assert config.get_secret("api-key") is spec
        assert config.get_secret("missing") is None
        assert config.secret_path(spec) == "/run/secrets/api-key"


class TestNestedConfigs:
    def test_volatile_dir_defaults(self) -> None:
        config = VolatileDirConfig()
        assert config.mode == "0751"
        assert config.group == "keys"
        assert config.fs_type == "tmpfs"
        assert config.mount_options == ["nodev", "nosuid"]

    def test_volatile_dir_bad_mode(self) -> None:
        with pytest.raises(ValueError, match="octal"):
            VolatileDirConfig(mode="drwx")

    def test_store_defaults(self) -> None:
        config = StoreConfig()
        assert config.op_path == "op"
        assert config.config_dir == "/root/.config/op"

    def test_store_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="command_timeout_seconds"):
            StoreConfig(command_timeout_seconds=0)

    def test_metrics_port_requires_prometheus(self) -> None:
        with pytest.raises(ValueError, match="prometheus"):
            MetricsConfig(port=9100)
        assert MetricsConfig(backend=MetricsBackend.PROMETHEUS, port=9100).port == 9100

    def test_metrics_port_range(self) -> None:
        with pytest.raises(ValueError, match="port"):
            MetricsConfig(backend=MetricsBackend.PROMETHEUS, port=70000)
