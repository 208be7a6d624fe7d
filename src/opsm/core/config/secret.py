"""Declared secret models."""

import re
from dataclasses import dataclass

REFERENCE_PATTERN = re.compile(r"^op://([^/?]+)/([^/?]+)/([^?]+)$")
"""Regex matching ``op://vault/item/field`` (or ``vault/item/section/field``)."""

TASK_ID_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]*$")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def derive_task_id(reference: str) -> str:
    """Derive a path-safe task identity from a secret reference.

    ``op://vault/item/field`` becomes ``vault-item-field``; any character
    that is unsafe in a filename is replaced with ``_``.

    Args:
        reference: The secret reference.

    Returns:
        A string usable as a single path component.
    """
    body = reference.split("://", 1)[-1].split("?", 1)[0]
    parts = [p for p in body.split("/") if p]
    task_id = _UNSAFE_CHARS.sub("_", "-".join(parts))
    if task_id.startswith((".", "-")):
        task_id = "_" + task_id[1:]
    return task_id


@dataclass(frozen=True)
class SecretSpec:
    """A single secret to install on the host.

    The task identity (:attr:`task_id`) names both the provisioning task
    and the destination file inside the secrets directory.
    """

    reference: str
    """Reference to the secret in 1Password, e.g. ``op://vault/item/field`` (required)"""

    name: str | None = None
    """Task identity and destination filename (default: derived from the reference)"""

    owner: str = "0"
    """Owner of the installed file, as a user name or numeric uid (default: 0)"""

    group: str | None = None
    """Group of the installed file, as a group name or numeric gid (default: the owner's primary group, 0 for a numeric owner)"""

    mode: str = "0400"
    """Access permissions of the installed file, in a form understood by chmod (default: 0400)"""

    key_material: bool = False
    """Load the secret as an OpenSSH private key and terminate it with a newline (default: False)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.reference:
            raise ValueError("reference is required")

        if not REFERENCE_PATTERN.match(self.reference):
            raise ValueError(f"reference '{self.reference}' must have the form op://vault/item/field")

        try:
            bits = int(self.mode, 8)
        except ValueError:
            raise ValueError(f"mode '{self.mode}' is not an octal permission string") from None
        if not 0 <= bits <= 0o7777:
            raise ValueError(f"mode '{self.mode}' is out of range")

        task_id = self.task_id
        if not TASK_ID_PATTERN.match(task_id):
            raise ValueError(f"name '{task_id}' is not a safe filename")

    @property
    def task_id(self) -> str:
        """Return the unique identity of this secret's task."""
        return self.name or derive_task_id(self.reference)

    @property
    def mode_bits(self) -> int:
        """Return :attr:`mode` parsed as permission bits."""
        return int(self.mode, 8)
