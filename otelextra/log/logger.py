"""A logger that also records its messages as events on the active span."""

from __future__ import annotations

import copy
import logging
import os
import sys
import traceback
from collections.abc import Callable, Iterable
from enum import IntEnum
from types import FrameType
from typing import TYPE_CHECKING, Optional

from ..attribute import KeyValue
from ..trace import Span, StatusCode, current_span
from .fields import Field, field_attributes, string

if TYPE_CHECKING:
    from .sugared import SugaredLogger, SugaredLoggerWithCtx

VERSION = "0.1.9"

LOG_SEVERITY = "log.severity"
LOG_MESSAGE = "log.message"
LOG_TEMPLATE = "log.template"
CODE_FUNCTION = "code.function"
CODE_FILEPATH = "code.filepath"
CODE_LINENO = "code.lineno"
EXCEPTION_STACKTRACE = "exception.stacktrace"

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


class Level(IntEnum):
    """Logging levels, from least to most severe."""

    DEBUG = -1
    INFO = 0
    WARN = 1
    ERROR = 2
    DPANIC = 3
    PANIC = 4
    FATAL = 5

    @property
    def std_level(self) -> int:
        """The matching level of the standard logging module."""
        return _STD_LEVELS[self]

    @property
    def severity(self) -> str:
        """The severity recorded on span events."""
        return "PANIC" if self is Level.DPANIC else self.name


_STD_LEVELS = {
    Level.DEBUG: logging.DEBUG,
    Level.INFO: logging.INFO,
    Level.WARN: logging.WARNING,
    Level.ERROR: logging.ERROR,
    Level.DPANIC: logging.CRITICAL,
    Level.PANIC: logging.CRITICAL,
    Level.FATAL: logging.CRITICAL,
}


def _in_package(frame: FrameType) -> bool:
    return os.path.dirname(os.path.abspath(frame.f_code.co_filename)) == _PACKAGE_DIR


def _external_frame() -> tuple[Optional[FrameType], int]:
    """Return the first frame outside this package and its distance from the caller."""
    frame: Optional[FrameType] = sys._getframe(1)
    depth = 0
    while frame is not None and _in_package(frame):
        frame = frame.f_back
        depth += 1
    return frame, depth


def _nop_logger() -> logging.Logger:
    logger = logging.Logger("otelextra.nop")
    logger.addHandler(logging.NullHandler())
    logger.disabled = True
    return logger


Option = Callable[["Logger"], None]


class Logger:
    """Wraps a standard logger; logging with a span also adds a "log" event to it."""

    def __init__(self, logger: Optional[logging.Logger] = None, *options: Option) -> None:
        self.std_logger = logger if logger is not None else _nop_logger()
        self.min_level = Level.WARN
        self.error_status_level = Level.ERROR
        self.caller = True
        self.stack_trace = False
        self.with_trace_id = False
        self.extra_fields: tuple[Field, ...] = ()
        for option in options:
            option(self)

    def with_fields(self, *fields: Field) -> "Logger":
        """Return a copy that adds these fields to every entry."""
        clone = copy.copy(self)
        clone.extra_fields = (*self.extra_fields, *fields)
        return clone

    def sugar(self) -> "SugaredLogger":
        from .sugared import SugaredLogger

        return SugaredLogger(self)

    def clone(self, *options: Option) -> "Logger":
        """Return a copy with the options applied."""
        clone = copy.copy(self)
        for option in options:
            option(clone)
        return clone

    def ctx(self, span: Optional[Span] = None) -> "LoggerWithCtx":
        """Bind a span; without one the active span is used."""
        return LoggerWithCtx(span if span is not None else current_span(), self)

    # Plain logging, with no span involved.

    def debug(self, msg: str, *fields: Field) -> None:
        self._write(Level.DEBUG, msg, fields)

    def info(self, msg: str, *fields: Field) -> None:
        self._write(Level.INFO, msg, fields)

    def warn(self, msg: str, *fields: Field) -> None:
        self._write(Level.WARN, msg, fields)

    def error(self, msg: str, *fields: Field) -> None:
        self._write(Level.ERROR, msg, fields)

    def dpanic(self, msg: str, *fields: Field) -> None:
        self._write(Level.DPANIC, msg, fields)

    def panic(self, msg: str, *fields: Field) -> None:
        """Log, then raise RuntimeError."""
        self._write(Level.PANIC, msg, fields)

    def fatal(self, msg: str, *fields: Field) -> None:
        """Log, then raise SystemExit(1)."""
        self._write(Level.FATAL, msg, fields)

    # Logging that also records an event on the given span.

    def debug_context(self, span: Span, msg: str, *fields: Field) -> None:
        self._write(Level.DEBUG, msg, self._log_fields(span, Level.DEBUG, msg, fields))

    def info_context(self, span: Span, msg: str, *fields: Field) -> None:
        self._write(Level.INFO, msg, self._log_fields(span, Level.INFO, msg, fields))

    def warn_context(self, span: Span, msg: str, *fields: Field) -> None:
        self._write(Level.WARN, msg, self._log_fields(span, Level.WARN, msg, fields))

    def error_context(self, span: Span, msg: str, *fields: Field) -> None:
        self._write(Level.ERROR, msg, self._log_fields(span, Level.ERROR, msg, fields))

    def dpanic_context(self, span: Span, msg: str, *fields: Field) -> None:
        self._write(Level.DPANIC, msg, self._log_fields(span, Level.DPANIC, msg, fields))

    def panic_context(self, span: Span, msg: str, *fields: Field) -> None:
        self._write(Level.PANIC, msg, self._log_fields(span, Level.PANIC, msg, fields))

    def fatal_context(self, span: Span, msg: str, *fields: Field) -> None:
        self._write(Level.FATAL, msg, self._log_fields(span, Level.FATAL, msg, fields))

    # Internals shared with the sugared logger.

    def _record_fields(self, fields: Iterable[Field]) -> dict:
        return {
            kv.key: kv.value
            for f in (*self.extra_fields, *fields)
            for kv in field_attributes(f)
        }

    def _emit(self, level: Level, msg: str, record_fields: dict) -> None:
        """Write to the standard logger, attributed to the first caller outside this package."""
        _, depth = _external_frame()
        # The frame that called _emit is at depth 1 relative to _external_frame's caller.
        self.std_logger.log(
            level.std_level, msg, extra={"fields": record_fields}, stacklevel=depth + 1
        )
        if level is Level.PANIC:
            raise RuntimeError(msg)
        if level is Level.FATAL:
            raise SystemExit(1)

    def _write(self, level: Level, msg: str, fields: Iterable[Field]) -> None:
        self._emit(level, msg, self._record_fields(fields))

    def _log_fields(
        self, span: Span, level: Level, msg: str, fields: tuple[Field, ...]
    ) -> tuple[Field, ...]:
        if level < self.min_level or not span.is_recording():
            return fields
        attrs = [
            kv for f in (*fields, *self.extra_fields) for kv in field_attributes(f)
        ]
        self._log(span, level, msg, attrs)
        if self.with_trace_id:
            fields = (*fields, string("trace_id", span.trace_id))
        return fields

    def _log(self, span: Span, level: Level, msg: str, attrs: list[KeyValue]) -> None:
        """Add a "log" event to the span and mark it failed at the error status level."""
        attrs = [*attrs, KeyValue(LOG_SEVERITY, level.severity), KeyValue(LOG_MESSAGE, msg)]
        frame, _ = _external_frame()
        if self.caller and frame is not None:
            code = frame.f_code
            name = getattr(code, "co_qualname", code.co_name)
            module = os.path.splitext(os.path.basename(code.co_filename))[0]
            attrs.append(KeyValue(CODE_FUNCTION, f"{module}.{name}" if module else name))
            attrs.append(KeyValue(CODE_FILEPATH, code.co_filename))
            attrs.append(KeyValue(CODE_LINENO, frame.f_lineno))
        if self.stack_trace:
            stack = "".join(traceback.format_stack(frame)) if frame is not None else ""
            attrs.append(KeyValue(EXCEPTION_STACKTRACE, stack))
        span.add_event("log", attrs)
        if level >= self.error_status_level:
            span.set_status(StatusCode.ERROR, msg)


class LoggerWithCtx:
    """A logger bound to a span; every entry is also recorded on that span."""

    __slots__ = ("_span", "_logger")

    def __init__(self, span: Span, logger: Logger) -> None:
        self._span = span
        self._logger = logger

    def context(self) -> Span:
        return self._span

    def logger(self) -> Logger:
        return self._logger

    def std_logger(self) -> logging.Logger:
        return self._logger.std_logger

    def sugar(self) -> "SugaredLoggerWithCtx":
        return self._logger.sugar().ctx(self._span)

    def with_fields(self, *fields: Field) -> "LoggerWithCtx":
        return LoggerWithCtx(self._span, self._logger.with_fields(*fields))

    def clone(self, *options: Option) -> "LoggerWithCtx":
        return LoggerWithCtx(self._span, self._logger.clone(*options))

    def _log_at(self, level: Level, msg: str, fields: tuple[Field, ...]) -> None:
        logger = self._logger
        logger._write(level, msg, logger._log_fields(self._span, level, msg, fields))

    def debug(self, msg: str, *fields: Field) -> None:
        self._log_at(Level.DEBUG, msg, fields)

    def info(self, msg: str, *fields: Field) -> None:
        self._log_at(Level.INFO, msg, fields)

    def warn(self, msg: str, *fields: Field) -> None:
        self._log_at(Level.WARN, msg, fields)

    def error(self, msg: str, *fields: Field) -> None:
        self._log_at(Level.ERROR, msg, fields)

    def dpanic(self, msg: str, *fields: Field) -> None:
        self._log_at(Level.DPANIC, msg, fields)

    def panic(self, msg: str, *fields: Field) -> None:
        """Log, then raise RuntimeError."""
        self._log_at(Level.PANIC, msg, fields)

    def fatal(self, msg: str, *fields: Field) -> None:
        """Log, then raise SystemExit(1)."""
        self._log_at(Level.FATAL, msg, fields)


def new(logger: Optional[logging.Logger] = None, *options: Option) -> Logger:
    """Wrap a standard logger; without one, a logger that discards everything is used."""
    return Logger(logger, *options)


def with_min_level(level: Level) -> Option:
    """Record entries on spans only at this level or above (default WARN)."""

    def apply(logger: Logger) -> None:
        logger.min_level = Level(level)

    return apply


def with_error_status_level(level: Level) -> Option:
    """Mark spans as failed from this level on (default ERROR)."""

    def apply(logger: Logger) -> None:
        logger.error_status_level = Level(level)

    return apply


def with_caller(on: bool) -> Option:
    """Record the calling function, file and line on span events (default on)."""

    def apply(logger: Logger) -> None:
        logger.caller = on

    return apply


def with_stack_trace(on: bool) -> Option:
    """Record a stack trace on span events."""

    def apply(logger: Logger) -> None:
        logger.stack_trace = on

    return apply


def with_trace_id_field(on: bool) -> Option:
    """Add a trace_id field to log entries written with a recording span."""

    def apply(logger: Logger) -> None:
        logger.with_trace_id = on

    return apply


def version() -> str:
    return VERSION