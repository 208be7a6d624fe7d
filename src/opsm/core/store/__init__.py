"""Secret store clients."""

from opsm.core.store.base import SecretEncoding, SecretStore
from opsm.core.store.providers import InMemorySecretStore, OnePasswordStore

__all__ = [
    "InMemorySecretStore",
    "OnePasswordStore",
    "SecretEncoding",
    "SecretStore",
]
