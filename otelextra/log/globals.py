"""Process-wide loggers that can be swapped at run time."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Optional

from ..trace import Span
from .logger import Logger, LoggerWithCtx, new
from .sugared import SugaredLogger

_lock = threading.RLock()
_logger: Logger = new()
_sugared: SugaredLogger = _logger.sugar()


def global_logger() -> Logger:
    """Return the global Logger; by default it discards everything."""
    with _lock:
        return _logger


def global_sugared_logger() -> SugaredLogger:
    """Return the global SugaredLogger."""
    with _lock:
        return _sugared


def ctx(span: Optional[Span] = None) -> LoggerWithCtx:
    """Bind the global Logger to a span, or to the active span."""
    return global_logger().ctx(span)


def replace_globals(logger: Logger) -> Callable[[], None]:
    """Replace the global loggers and return a function that restores the old ones."""
    global _logger, _sugared
    with _lock:
        previous = _logger
        _logger = logger
        _sugared = logger.sugar()

    def restore() -> None:
        replace_globals(previous)

    return restore