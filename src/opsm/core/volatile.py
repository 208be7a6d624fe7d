"""Idempotent preparation of the memory-backed secrets directory."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from collections.abc import Callable

from opsm.core.config.orchestrator import VolatileDirConfig
from opsm.core.config.validator import resolve_gid
from opsm.core.errors import MountError

logger = logging.getLogger(__name__)

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _unescape_mount_field(field: str) -> str:
    """Decode the ``\\040``-style escapes used in the kernel mount table."""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


class VolatileDirectoryPreparer:
    """Ensures the secrets directory is a tmpfs with fixed ownership and mode.

    Safe to run on every activation: the directory is only created and
    mounted when missing, and mode and group are reapplied each time.
    Callers are responsible for not running two preparations concurrently.

    Args:
        config: Directory mode, group and mount settings.
        runner: Injectable ``subprocess.run`` replacement for testing.
        chown_func: Injectable ``os.chown`` replacement for testing.
    """

    def __init__(
        self,
        config: VolatileDirConfig | None = None,
        runner: Callable[..., subprocess.CompletedProcess[bytes]] | None = None,
        chown_func: Callable[[str, int, int], None] | None = None,
    ) -> None:
        self._config = config or VolatileDirConfig()
        self._run = runner or subprocess.run
        self._chown = chown_func or os.chown

    @property
    def config(self) -> VolatileDirConfig:
        """Return the directory configuration."""
        return self._config

    def is_mounted(self, path: str) -> bool:
        """Return ``True`` if *path* is already a mount of the configured type.

        Raises:
            OSError: If the mount table cannot be read.
        """
        target = os.path.normpath(path)
        with open(self._config.mounts_table, encoding="utf-8") as fh:
            for line in fh:
                fields = line.split()
                if len(fields) < 3:
                    continue
                if _unescape_mount_field(fields[1]) == target and fields[2] == self._config.fs_type:
                    return True
        return False

    def prepare(self, path: str) -> bool:
        """Create, mount and secure *path*.

        Args:
            path: Absolute path of the secrets directory.

        Returns:
            ``True`` if a filesystem was mounted by this call.

        Raises:
            MountError: If any step fails.
        """
        mode = int(self._config.mode, 8)
        mounted = False
        try:
            os.makedirs(path, exist_ok=True)
            os.chmod(path, mode)

            if not self.is_mounted(path):
                self._mount(path)
                mounted = True

            self._chown(path, -1, resolve_gid(self._config.group))
        except KeyError as exc:
            raise MountError(path, f"unknown group '{self._config.group}'") from exc
        except OSError as exc:
            raise MountError(path, str(exc)) from exc

        logger.info(
            "Secrets directory %s ready (%s, mode %s, group %s)",
            path,
            "mounted" if mounted else "already mounted",
            self._config.mode,
            self._config.group,
        )
        return mounted

    def _mount(self, path: str) -> None:
        options = [*self._config.mount_options, f"mode={self._config.mode}"]
        command = ["mount", "-t", self._config.fs_type, "none", path, "-o", ",".join(options)]
        logger.debug("Running %s", " ".join(command))
        completed = self._run(command, capture_output=True, check=False)
        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            raise MountError(path, stderr or f"mount exited with status {completed.returncode}")
