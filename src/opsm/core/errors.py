"""Provisioning error taxonomy."""

from __future__ import annotations


class ProvisioningError(Exception):
    """Base exception for secret provisioning errors."""

    pass


class ConfigurationError(ProvisioningError):
    """The declared secret set or orchestrator settings are invalid."""

    pass


class MountError(ProvisioningError):
    """Preparing the volatile secrets directory failed."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot prepare secrets directory '{path}': {reason}")


class Unreachable(ProvisioningError):
    """The secret store could not be reached within the probe budget."""

    def __init__(self, endpoint: str | None, attempts: int, cause: Exception | None = None) -> None:
        self.endpoint = endpoint
        self.attempts = attempts
        self.cause = cause
        target = endpoint or "<unresolved>"
        super().__init__(f"Secret store {target} unreachable after {attempts} attempt(s)")
        self.__cause__ = cause


class FetchError(ProvisioningError):
    """The secret store rejected or failed a read."""

    def __init__(self, reference: str, reason: str) -> None:
        self.reference = reference
        self.reason = reason
        super().__init__(f"Failed to fetch '{reference}': {reason}")


class WriteError(ProvisioningError):
    """Writing or securing the destination file failed."""

    def __init__(self, path: str, cause: Exception) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write '{path}': {cause}")
        self.__cause__ = cause
