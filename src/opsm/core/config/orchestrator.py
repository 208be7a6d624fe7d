"""Orchestrator configuration models."""

import os
from dataclasses import dataclass, field

from .base import RestartPolicy
from .hooks import LoggingConfig, MetricsConfig
from .retry import ProbeConfig, RestartConfig
from .secret import SecretSpec


@dataclass(frozen=True)
class VolatileDirConfig:
    """Configuration for the memory-backed secrets directory."""

    mode: str = "0751"
    """Permissions of the secrets directory (default: 0751)"""

    group: str = "keys"
    """Group owning the secrets directory (default: keys)"""

    fs_type: str = "tmpfs"
    """Filesystem type to mount (default: tmpfs)"""

    mount_options: list[str] = field(default_factory=lambda: ["nodev", "nosuid"])
    """Mount flags; ``mode=`` is appended automatically (default: [nodev, nosuid])"""

    mounts_table: str = "/proc/mounts"
    """Mount table inspected to detect an existing mount (default: /proc/mounts)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        try:
            int(self.mode, 8)
        except ValueError:
            raise ValueError(f"mode '{self.mode}' is not an octal permission string") from None
        if not self.fs_type:
            raise ValueError("fs_type is required")


@dataclass(frozen=True)
class StoreConfig:
    """Configuration for the 1Password CLI adapter."""

    op_path: str = "op"
    """Path to the ``op`` executable (default: op, looked up on PATH)"""

    config_dir: str = "/root/.config/op"
    """Value exported as ``OP_CONFIG_DIR``; ``op`` refuses to run without one (default: /root/.config/op)"""

    command_timeout_seconds: float = 60.0
    """Timeout for a single ``op`` invocation (default: 60.0)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.op_path:
            raise ValueError("op_path is required")
        if self.command_timeout_seconds <= 0:
            raise ValueError("command_timeout_seconds must be positive")


@dataclass(frozen=True)
class OrchestratorConfig:
    """Top-level configuration for secret provisioning.

    Read once at startup and shared read-only by every task.
    """

    secrets: list[SecretSpec] = field(default_factory=list)
    """Secrets to deploy to the machine (default: [])"""

    secret_dir: str = "/run/secrets"
    """Directory the secrets are installed into (default: /run/secrets)"""

    token_path: str = "/etc/opsm-token"
    """Service account token file, readable by root only (default: /etc/opsm-token)"""

    refresh_interval_seconds: int | None = None
    """Re-read every secret at this interval; install once when unset (default: None)"""

    use_volatile_dir: bool = False
    """Mount a tmpfs on secret_dir before installing anything (default: False)"""

    ready_marker: str | None = None
    """File touched once every secret has been installed (optional)"""

    probe: ProbeConfig = field(default_factory=ProbeConfig)
    """Connectivity probe settings"""

    restart: RestartConfig = field(default_factory=RestartConfig)
    """Supervisor restart settings"""

    volatile_dir: VolatileDirConfig = field(default_factory=VolatileDirConfig)
    """Secrets directory mount settings"""

    store: StoreConfig = field(default_factory=StoreConfig)
    """1Password CLI settings"""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    """Logging configuration"""

    metrics: MetricsConfig | None = None
    """Metrics configuration (optional)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not os.path.isabs(self.secret_dir):
            raise ValueError(f"secret_dir '{self.secret_dir}' must be an absolute path")

        if not self.token_path:
            raise ValueError("token_path is required")

        if self.refresh_interval_seconds is not None and self.refresh_interval_seconds <= 0:
            raise ValueError("refresh_interval_seconds must be positive")

        if self.ready_marker is not None and not os.path.isabs(self.ready_marker):
            raise ValueError(f"ready_marker '{self.ready_marker}' must be an absolute path")

        # Task identities double as filenames, so they must not collide
        seen: set[str] = set()
        for spec in self.secrets:
            if spec.task_id in seen:
                raise ValueError(f"Duplicate secret name '{spec.task_id}'")
            seen.add(spec.task_id)

    @property
    def restart_policy(self) -> RestartPolicy:
        """Return the restart policy implied by the refresh setting."""
        if self.refresh_interval_seconds is not None:
            return RestartPolicy.ALWAYS
        return RestartPolicy.ON_FAILURE

    def get_secret(self, name: str) -> SecretSpec | None:
        """Get a secret by task identity.

        Args:
            name: Task identity to look up.

        Returns:
            SecretSpec if found, None otherwise.
        """
        for spec in self.secrets:
            if spec.task_id == name:
                return spec
        return None

    def secret_path(self, spec: SecretSpec) -> str:
        """Return the destination path of *spec* inside :attr:`secret_dir`."""
        return os.path.join(self.secret_dir, spec.task_id)
