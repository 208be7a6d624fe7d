"""Tests for the Orchestrator."""

from __future__ import annotations

import dataclasses
import logging
import os
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from opsm.core.config.orchestrator import OrchestratorConfig
from opsm.core.config.retry import RestartConfig
from opsm.core.errors import ConfigurationError, MountError
from opsm.runner.orchestrator import Orchestrator
from opsm.runner.result import ProvisioningStatus, TaskState
from tests.factories import (
    ClockTimer,
    FakeStore,
    always_reachable,
    make_orchestrator_config,
    make_secret_spec,
    no_sleep,
)

DB = "op://vault/db/password"
API = "op://vault/api/token"


@pytest.fixture
def token(tmp_path: Path) -> Path:
    path = tmp_path / "token"
    path.write_text("ops_token")
    os.chmod(path, 0o600)
    return path


def _secrets() -> list:
    return [make_secret_spec(DB, "db-password"), make_secret_spec(API, "api-token", mode="0440")]


def _orchestrator(config: OrchestratorConfig, store: FakeStore, **kwargs: object) -> Orchestrator:
    kwargs.setdefault("sleep_func", no_sleep)
    kwargs.setdefault("check_func", always_reachable)
    return Orchestrator(config, store_factory=lambda: store, **kwargs)  # type: ignore[arg-type]


class TestRun:
    def test_installs_every_secret(self, tmp_path: Path, token: Path) -> None:
        secret_dir = tmp_path / "secrets"
        marker = tmp_path / "ready"
        config = make_orchestrator_config(secret_dir, _secrets(), ready_marker=marker)
        store = FakeStore({DB: b"hunter2", API: b"tok"})

        result = _orchestrator(config, store).run()

        assert result.status is ProvisioningStatus.SUCCESS
        assert result.exit_code == 0
        assert result.ready
        assert sorted(result.installed_secrets) == ["api-token", "db-password"]
        assert (secret_dir / "db-password").read_bytes() == b"hunter2"
        assert (secret_dir / "api-token").read_bytes() == b"tok"
        assert marker.exists()

    def test_results_follow_declaration_order(self, tmp_path: Path, token: Path) -> None:
        config = make_orchestrator_config(tmp_path / "secrets", _secrets())
        result = _orchestrator(config, FakeStore({DB: b"a", API: b"b"})).run()

        assert [r.task_id for r in result.task_results] == ["db-password", "api-token"]

    def test_missing_token_starts_nothing(self, tmp_path: Path) -> None:
        config = make_orchestrator_config(tmp_path / "secrets", _secrets())
        store = FakeStore({DB: b"a", API: b"b"})

        result = _orchestrator(config, store, validate_before_run=False).run()

        assert result.status is ProvisioningStatus.FAILURE
        assert result.task_results == []
        assert store.fetches == []
        assert not (tmp_path / "secrets").exists()

    def test_validation_errors_abort(self, tmp_path: Path, token: Path) -> None:
        spec = make_secret_spec(owner="no-such-user-opsm")
        config = make_orchestrator_config(tmp_path / "secrets", [spec])
        store = FakeStore({DB: b"a"})

        result = _orchestrator(config, store).run()

        assert result.status is ProvisioningStatus.FAILURE
        assert store.fetches == []

    def test_one_failure_does_not_block_others(self, tmp_path: Path, token: Path) -> None:
        marker = tmp_path / "ready"
        config = make_orchestrator_config(tmp_path / "secrets", _secrets(), ready_marker=marker)
        store = FakeStore({API: b"tok"})

        result = _orchestrator(config, store).run()

        assert result.status is ProvisioningStatus.PARTIAL_SUCCESS
        assert result.installed_secrets == ["api-token"]
        assert [name for name, _ in result.failed_secrets] == ["db-password"]
        assert not result.ready
        assert not marker.exists()
        assert (tmp_path / "secrets" / "api-token").exists()

    def test_failed_task_restarted_on_failure(self, tmp_path: Path, token: Path) -> None:
        config = make_orchestrator_config(tmp_path / "secrets", [make_secret_spec(DB, "db-password")], max_restarts=2)
        store = FakeStore()

        result = _orchestrator(config, store).run()

        assert result.task_results[0].restarts == 2
        assert len(store.fetches) == 3

    def test_stale_ready_marker_removed(self, tmp_path: Path, token: Path) -> None:
        marker = tmp_path / "ready"
        marker.touch()
        config = make_orchestrator_config(tmp_path / "secrets", _secrets(), ready_marker=marker)

        _orchestrator(config, FakeStore()).run()

        assert not marker.exists()

    def test_hooks_called(self, tmp_path: Path, token: Path) -> None:
        hooks = MagicMock()
        config = make_orchestrator_config(tmp_path / "secrets", _secrets())

        result = _orchestrator(config, FakeStore({DB: b"a", API: b"b"}), hooks=hooks).run()

        hooks.before_provisioning.assert_called_once_with(config)
        hooks.on_ready.assert_called_once_with(2)
        hooks.after_provisioning.assert_called_once_with(config, result)
        assert hooks.after_install.call_count == 2

    def test_no_secrets(self, tmp_path: Path, token: Path) -> None:
        marker = tmp_path / "ready"
        config = make_orchestrator_config(tmp_path / "secrets", [], ready_marker=marker)

        result = _orchestrator(config, FakeStore()).run()

        assert result.status is ProvisioningStatus.SUCCESS
        assert result.ready
        assert marker.exists()


class TestRefresh:
    def test_stop_drains_refresh_loops(self, tmp_path: Path, token: Path) -> None:
        config = make_orchestrator_config(tmp_path / "secrets", _secrets(), refresh_interval_seconds=3600)
        orchestrator = _orchestrator(config, FakeStore({DB: b"a", API: b"b"}))
        results: list = []
        runner = threading.Thread(target=lambda: results.append(orchestrator.run()))
        runner.start()

        assert orchestrator.barrier.wait_all(timeout=10)
        orchestrator.stop()
        runner.join(timeout=10)

        assert not runner.is_alive()
        result = results[0]
        assert result.status is ProvisioningStatus.SUCCESS
        assert all(r.stopped for r in result.task_results)
        assert all(r.final_state is TaskState.REFRESHING for r in result.task_results)
        assert all(r.restarts == 0 for r in result.task_results)


class TestStartupTimeout:
    def test_logs_pending_secrets(self, tmp_path: Path, token: Path, caplog: pytest.LogCaptureFixture) -> None:
        release = threading.Event()

        def slow_check(endpoint: str) -> None:
            release.wait(10)

        config = make_orchestrator_config(tmp_path / "secrets", [make_secret_spec(DB, "db-password")])
        config = dataclasses.replace(
            config, restart=RestartConfig(backoff_seconds=0.0, startup_timeout_seconds=0.05, max_restarts=0)
        )
        orchestrator = _orchestrator(config, FakeStore({DB: b"a"}), check_func=slow_check)

        def release_after_timeout() -> None:
            # Unblock the probe once the timeout has been reported
            for _ in range(200):
                if "not ready" in caplog.text:
                    break
                time.sleep(0.05)
            release.set()

        helper = threading.Thread(target=release_after_timeout)
        with caplog.at_level(logging.ERROR, logger="opsm.runner.orchestrator"):
            helper.start()
            result = orchestrator.run()
        helper.join(timeout=10)

        assert "still waiting for: db-password" in caplog.text
        assert result.status is ProvisioningStatus.SUCCESS


class TestPrepare:
    def test_plain_directory_created(self, tmp_path: Path) -> None:
        config = make_orchestrator_config(tmp_path / "secrets")

        Orchestrator(config).prepare()

        assert (tmp_path / "secrets").is_dir()

    def test_volatile_directory_uses_preparer(self, tmp_path: Path, token: Path) -> None:
        secret_dir = tmp_path / "secrets"
        secret_dir.mkdir()
        preparer = MagicMock()
        config = make_orchestrator_config(secret_dir, use_volatile_dir=True)

        result = _orchestrator(config, FakeStore({DB: b"x"}), preparer=preparer).run()

        preparer.prepare.assert_called_once_with(str(secret_dir))
        assert result.status is ProvisioningStatus.SUCCESS

    def test_mount_error_aborts(self, tmp_path: Path, token: Path) -> None:
        preparer = MagicMock()
        preparer.prepare.side_effect = MountError(str(tmp_path / "secrets"), "permission denied")
        config = make_orchestrator_config(tmp_path / "secrets", use_volatile_dir=True)
        store = FakeStore({DB: b"x"})

        result = _orchestrator(config, store, preparer=preparer).run()

        assert result.status is ProvisioningStatus.FAILURE
        assert store.fetches == []

    def test_unwritable_parent(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        config = make_orchestrator_config(blocker / "secrets", token_path=tmp_path / "token")

        with pytest.raises(MountError):
            Orchestrator(config).prepare()


class TestRunTask:
    def test_single_secret(self, tmp_path: Path, token: Path) -> None:
        secret_dir = tmp_path / "secrets"
        secret_dir.mkdir()
        config = make_orchestrator_config(secret_dir, _secrets())
        store = FakeStore({API: b"tok"})

        result = _orchestrator(config, store).run_task("api-token")

        assert result.success
        assert [ref for ref, _ in store.fetches] == [API]

    def test_single_secret_keeps_refreshing_until_stopped(self, tmp_path: Path, token: Path) -> None:
        secret_dir = tmp_path / "secrets"
        secret_dir.mkdir()
        config = make_orchestrator_config(secret_dir, _secrets(), refresh_interval_seconds=60)
        store = FakeStore({API: b"tok"})
        timer = ClockTimer(max_waits=2)

        result = _orchestrator(config, store, timer=timer, clock=timer.clock).run_task("api-token")

        assert result.success
        assert result.stopped
        assert result.cycles == 3
        assert timer.waits == [60, 60]
        assert len(store.fetches) == 3

    def test_unknown_secret(self, tmp_path: Path) -> None:
        config = make_orchestrator_config(tmp_path / "secrets", _secrets())

        with pytest.raises(ConfigurationError, match="No secret named 'nope'"):
            _orchestrator(config, FakeStore()).run_task("nope")


class TestFromFile:
    def test_loads_hocon(self, tmp_path: Path) -> None:
        conf = tmp_path / "opsm.conf"
        conf.write_text(
            f"""
            {{
              secret_dir: "{tmp_path / 'secrets'}"
              token_path: "{tmp_path / 'token'}"
              secrets: [{{ reference: "{DB}", name: "db-password" }}]
            }}
            """
        )

        orchestrator = Orchestrator.from_file(conf)

        assert orchestrator.config.secret_dir == str(tmp_path / "secrets")
        assert orchestrator.barrier.total == 1

    def test_invalid_file(self, tmp_path: Path) -> None:
        conf = tmp_path / "opsm.conf"
        conf.write_text("{ secret_dir: relative }")

        with pytest.raises(ConfigurationError):
            Orchestrator.from_file(conf)
