"""Secret store abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum


class SecretEncoding(str, Enum):
    """Encoding requested from the store for a secret's content."""

    RAW = "raw"
    OPENSSH = "openssh"


class SecretStore(ABC):
    """Base class for secret store clients.

    Subclasses wrap a specific backend. Both operations raise
    :class:`~opsm.core.errors.FetchError` when the store rejects the
    request (authentication failure, unknown reference, transport error).
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique name for this store (e.g. ``"1password"``)."""
        ...

    @abstractmethod
    def whoami(self) -> str:
        """Return the URL of the account endpoint the client talks to."""
        ...

    @abstractmethod
    def fetch(self, reference: str, encoding: SecretEncoding = SecretEncoding.RAW) -> bytes:
        """Return the plaintext content of *reference*."""
        ...
