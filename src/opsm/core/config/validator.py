"""Pre-flight validation of an orchestrator configuration.

Checks what the dataclass constructors cannot: the state of the host the
configuration will run on (credential file, `op` binary, user and group
names).
"""

from __future__ import annotations

import enum
import grp
import logging
import os
import pwd
import shutil
import stat
from dataclasses import dataclass, field

from opsm.core.config.orchestrator import OrchestratorConfig

logger = logging.getLogger(__name__)

MIN_REFRESH_INTERVAL_SECONDS = 60
"""Refresh intervals below this risk exhausting the store's request quota."""


class ValidationPhase(str, enum.Enum):
    """Phase in which a validation error occurred."""

    REQUIRED_FIELDS = "required-fields"
    CREDENTIALS = "credentials"
    IDENTITY = "identity"


@dataclass
class ValidationError:
    """A single validation error.

    Args:
        phase: The validation phase that produced this error.
        message: Human-readable error description.
        secret_name: Task identity of the secret involved, if applicable.
    """

    phase: ValidationPhase
    message: str
    secret_name: str | None = None


@dataclass
class ValidationResult:
    """Outcome of a configuration validation.

    Args:
        errors: Fatal issues that would prevent provisioning.
        warnings: Non-fatal concerns worth noting.
    """

    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """Return ``True`` if no errors were found."""
        return len(self.errors) == 0


def resolve_uid(owner: str) -> int:
    """Resolve a user name or numeric string to a uid.

    Raises:
        KeyError: If the user does not exist.
    """
    if owner.isdigit():
        return int(owner)
    return pwd.getpwnam(owner).pw_uid


def resolve_gid(group: str) -> int:
    """Resolve a group name or numeric string to a gid.

    Raises:
        KeyError: If the group does not exist.
    """
    if group.isdigit():
        return int(group)
    return grp.getgrnam(group).gr_gid


def resolve_owner_ids(owner: str, group: str | None) -> tuple[int, int]:
    """Resolve the uid and gid an installed secret is owned by.

    Without an explicit *group* the owner's primary group is used; a
    numeric owner has no account to look up and gets gid 0.

    Raises:
        KeyError: If the user or group does not exist.
    """
    if group is not None:
        return resolve_uid(owner), resolve_gid(group)
    if owner.isdigit():
        return int(owner), 0
    entry = pwd.getpwnam(owner)
    return entry.pw_uid, entry.pw_gid


def validate_orchestrator(config: OrchestratorConfig, check_credentials: bool = True) -> ValidationResult:
    """Validate an orchestrator configuration against the local host.

    Args:
        config: Configuration to validate.
        check_credentials: Inspect the token file (disable when validating
            on a machine other than the target host).

    Returns:
        A ``ValidationResult`` with errors and warnings.
    """
    result = ValidationResult()

    if not config.secrets:
        result.warnings.append("No secrets declared; nothing will be provisioned")

    if (
        config.refresh_interval_seconds is not None
        and config.refresh_interval_seconds < MIN_REFRESH_INTERVAL_SECONDS
    ):
        result.warnings.append(
            f"refresh_interval_seconds={config.refresh_interval_seconds} may exceed the store's request quota"
        )

    if check_credentials:
        _check_token_file(config.token_path, result)
        if shutil.which(config.store.op_path) is None:
            result.warnings.append(f"1Password CLI '{config.store.op_path}' was not found on PATH")

    for spec in config.secrets:
        try:
            resolve_uid(spec.owner)
        except KeyError:
            result.errors.append(
                ValidationError(ValidationPhase.IDENTITY, f"Unknown user '{spec.owner}'", secret_name=spec.task_id)
            )
        if spec.group is not None:
            try:
                resolve_gid(spec.group)
            except KeyError:
                result.errors.append(
                    ValidationError(ValidationPhase.IDENTITY, f"Unknown group '{spec.group}'", secret_name=spec.task_id)
                )
        if spec.mode_bits & stat.S_IROTH:
            result.warnings.append(f"[{spec.task_id}] mode {spec.mode} makes the secret world-readable")

    logger.debug("Validation found %d error(s) and %d warning(s)", len(result.errors), len(result.warnings))
    return result


def _check_token_file(path: str, result: ValidationResult) -> None:
    try:
        st = os.stat(path)
    except FileNotFoundError:
        result.errors.append(ValidationError(ValidationPhase.CREDENTIALS, f"Token file '{path}' does not exist"))
        return
    except OSError as exc:
        result.errors.append(ValidationError(ValidationPhase.CREDENTIALS, f"Cannot stat token file '{path}': {exc}"))
        return

    if stat.S_IMODE(st.st_mode) & (stat.S_IRWXG | stat.S_IRWXO):
        result.warnings.append(
            f"Token file '{path}' has mode {stat.S_IMODE(st.st_mode):04o}; it should only be readable by its owner"
        )
