"""Read HOCON documents into configuration dataclasses.

Parsing and dataclass construction are delegated to dataconf. Any error it
raises, including the ``ValueError`` raised by a dataclass ``__post_init__``,
is reported as a single :class:`ConfigurationError`.
"""

from typing import Any, Callable, TypeVar, cast

import dataconf

from opsm.core.errors import ConfigurationError

T = TypeVar("T")


def _parse(reader: Callable[[str, Any], Any], source: str, config_class: type[T], origin: str) -> T:
    try:
        return cast(T, reader(source, config_class))
    except Exception as exc:
        raise ConfigurationError(f"Invalid configuration{origin}: {exc}") from exc


def load_from_file(path: str, config_class: type[T]) -> T:
    """Parse the HOCON file at *path* into *config_class*.

    Raises:
        ConfigurationError: The file is missing, malformed, or a field
            fails validation. The message names *path*.

    Example:
        >>> config = load_from_file("/etc/opsm/secrets.conf", OrchestratorConfig)
    """
    return _parse(dataconf.file, path, config_class, f" in '{path}'")


def load_from_string(hocon_str: str, config_class: type[T]) -> T:
    """Parse an in-memory HOCON document into *config_class*.

    Example:
        >>> config = load_from_string(
        ...     'secret_dir: "/run/secrets", secrets: [{ reference: "op://v/i/f" }]',
        ...     OrchestratorConfig,
        ... )
    """
    return _parse(dataconf.string, hocon_str, config_class, "")
