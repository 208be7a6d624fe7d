"""Shared utility functions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any


def safe_call(
    fn: Callable[[], None],
    call_logger: logging.Logger,
    message: str,
    *message_args: Any,
) -> None:
    """Invoke *fn*; exceptions are logged as warnings, not raised.

    Args:
        fn: Zero-argument callable to invoke.
        call_logger: Logger instance for warning output.
        message: Log message template (``%s``-style).
        *message_args: Arguments interpolated into *message*.
    """
    try:
        fn()
    except Exception:
        call_logger.warning(message, *message_args, exc_info=True)


def call_hook(hooks: Any, method: str, call_logger: logging.Logger, *args: Any) -> None:
    """Invoke ``hooks.<method>(*args)`` through :func:`safe_call`.

    A hook that raises, or lacks *method*, never interrupts provisioning.
    """
    safe_call(
        lambda: getattr(hooks, method)(*args),
        call_logger,
        "Hook %s.%s raised an exception",
        type(hooks).__name__,
        method,
    )
