"""Built-in secret store implementations."""

from __future__ import annotations

import json
import logging
import os
import subprocess
import threading
from collections.abc import Callable
from typing import Any

from opsm.core.config.orchestrator import StoreConfig
from opsm.core.errors import FetchError
from opsm.core.store.base import SecretEncoding, SecretStore

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "OP_SERVICE_ACCOUNT_TOKEN"
CONFIG_DIR_ENV_VAR = "OP_CONFIG_DIR"


class OnePasswordStore(SecretStore):
    """Read secrets with the 1Password CLI using a service account token.

    The token is read from *token_path* when a provisioning cycle starts
    (on :meth:`whoami`) and kept in memory only for the lifetime of this
    client. It is handed to ``op`` through its environment, never on the
    command line.

    Args:
        token_path: File holding the service account token.
        config: CLI settings. Defaults to ``StoreConfig()``.
        runner: Injectable ``subprocess.run`` replacement for testing.
    """

    def __init__(
        self,
        token_path: str,
        config: StoreConfig | None = None,
        runner: Callable[..., subprocess.CompletedProcess[bytes]] | None = None,
    ) -> None:
        self._token_path = token_path
        self._config = config or StoreConfig()
        self._run = runner or subprocess.run
        self._token: str | None = None

    @property
    def provider_name(self) -> str:
        return "1password"

    def load_token(self) -> str:
        """Read the service account token from disk, replacing any cached copy."""
        try:
            with open(self._token_path, encoding="utf-8") as fh:
                token = fh.read().strip()
        except OSError as exc:
            raise FetchError("<token>", f"cannot read token file '{self._token_path}': {exc}") from exc
        if not token:
            raise FetchError("<token>", f"token file '{self._token_path}' is empty")
        self._token = token
        return token

    def whoami(self) -> str:
        self.load_token()
        stdout = self._op(["whoami", "--format", "json"], reference="<whoami>")
        try:
            data: dict[str, Any] = json.loads(stdout)
            url = str(data["url"])
        except (ValueError, KeyError, TypeError) as exc:
            raise FetchError("<whoami>", f"unexpected output from op whoami: {exc}") from exc
        if not url.startswith(("http://", "https://")):
            url = f"https://{url}"
        return url

    def fetch(self, reference: str, encoding: SecretEncoding = SecretEncoding.RAW) -> bytes:
        target = reference
        if encoding is SecretEncoding.OPENSSH:
            target = f"{reference}?ssh-format=openssh"
        return self._op(["read", "--no-newline", target], reference=reference)

    def _environment(self) -> dict[str, str]:
        token = self._token if self._token is not None else self.load_token()
        env = dict(os.environ)
        env[TOKEN_ENV_VAR] = token
        env[CONFIG_DIR_ENV_VAR] = self._config.config_dir
        return env

    def _op(self, args: list[str], reference: str) -> bytes:
        command = [self._config.op_path, *args]
        logger.debug("Running %s %s", self._config.op_path, args[0])
        try:
            completed = self._run(
                command,
                env=self._environment(),
                capture_output=True,
                timeout=self._config.command_timeout_seconds,
                check=False,
            )
        except FileNotFoundError as exc:
            raise FetchError(reference, f"'{self._config.op_path}' not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise FetchError(reference, f"op {args[0]} timed out after {exc.timeout}s") from exc

        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            raise FetchError(reference, stderr or f"op {args[0]} exited with status {completed.returncode}")
        return completed.stdout


class InMemorySecretStore(SecretStore):
    """Thread-safe store serving secrets from a dictionary.

    Useful for testing, local dry runs, and demos. Keys are secret
    references; OpenSSH requests are served from the same entry.

    Args:
        secrets: Initial reference-to-content mapping.
        endpoint: URL returned by :meth:`whoami`.
    """

    def __init__(
        self,
        secrets: dict[str, bytes] | None = None,
        endpoint: str = "http://localhost",
    ) -> None:
        self._lock = threading.Lock()
        self._secrets: dict[str, bytes] = dict(secrets or {})
        self._endpoint = endpoint
        self.fetch_count = 0

    @property
    def provider_name(self) -> str:
        return "memory"

    def put(self, reference: str, content: bytes) -> None:
        """Add or replace a secret."""
        with self._lock:
            self._secrets[reference] = content

    def whoami(self) -> str:
        return self._endpoint

    def fetch(self, reference: str, encoding: SecretEncoding = SecretEncoding.RAW) -> bytes:
        with self._lock:
            self.fetch_count += 1
            try:
                return self._secrets[reference]
            except KeyError:
                raise FetchError(reference, "no such secret") from None
