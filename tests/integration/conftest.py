"""Shared fixtures for integration tests that run a real ``op`` process.

The ``op`` executable is replaced by a shell script serving secrets from
a directory, and the account endpoint by a local HTTP server, so the
whole provisioning path runs without a 1Password account.
"""

from __future__ import annotations

import os
import signal
import threading
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

_FAKE_OP = """#!/bin/sh
[ -n "$OP_SERVICE_ACCOUNT_TOKEN" ] || {{ echo "[ERROR] no service account token" >&2; exit 1; }}
[ -n "$OP_CONFIG_DIR" ] || {{ echo "[ERROR] OP_CONFIG_DIR is not set" >&2; exit 1; }}
[ "$OP_SERVICE_ACCOUNT_TOKEN" = "revoked" ] && {{ echo "[ERROR] invalid token" >&2; exit 1; }}
case "$1" in
  whoami)
    printf '{{"url": "{url}", "user_type": "SERVICE_ACCOUNT"}}'
    ;;
  read)
    file="{vault}/$(printf '%s' "$3" | sed 's|^op://||; s|[/?= ]|_|g')"
    if [ -f "$file" ]; then
      cat "$file"
    else
      echo "[ERROR] \\"$3\\" isn't an item in any vault" >&2
      exit 1
    fi
    ;;
  *)
    exit 2
    ;;
esac
"""


class _Liveness(BaseHTTPRequestHandler):
    def do_GET(self) -> None:  # noqa: N802
        self.send_response(self.server.status)  # type: ignore[attr-defined]
        self.end_headers()

    def log_message(self, format: str, *args: object) -> None:
        pass


@pytest.fixture
def endpoint(monkeypatch: pytest.MonkeyPatch) -> Iterator[ThreadingHTTPServer]:
    """Local account endpoint; set ``server.status`` to change its answer."""
    for var in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(var, raising=False)
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Liveness)
    server.status = 200  # type: ignore[attr-defined]
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    path = tmp_path / "vault"
    path.mkdir()
    return path


@pytest.fixture
def fake_op(tmp_path: Path, vault: Path, endpoint: ThreadingHTTPServer) -> Path:
    host, port = endpoint.server_address[:2]
    script = tmp_path / "op"
    script.write_text(_FAKE_OP.format(url=f"http://{host}:{port}", vault=vault))
    os.chmod(script, 0o755)
    return script


@pytest.fixture
def token(tmp_path: Path) -> Path:
    path = tmp_path / "token"
    path.write_text("ops_integration_token\n")
    os.chmod(path, 0o600)
    return path


@pytest.fixture(autouse=True)
def _keep_signal_handlers() -> Iterator[None]:
    saved = {sig: signal.getsignal(sig) for sig in (signal.SIGTERM, signal.SIGINT)}
    yield
    for sig, handler in saved.items():
        signal.signal(sig, handler)
