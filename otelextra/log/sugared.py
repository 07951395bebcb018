"""A looser logging API: printf-style and key/value logging, also recorded on spans."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from ..attribute import KeyValue, attribute
from ..trace import Span, current_span
from .fields import (
    Field,
    FieldType,
    boolean,
    duration,
    floating,
    integer,
    reflect,
    string,
    timestamp,
)
from .logger import LOG_TEMPLATE, Level, Logger

_MISSING = object()


def _text(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _sprint(args: Iterable[Any]) -> str:
    """Join operands, with a space between two operands when neither is a string."""
    parts: list[str] = []
    prev_is_str = True
    for position, arg in enumerate(args):
        is_str = isinstance(arg, str)
        if position and not is_str and not prev_is_str:
            parts.append(" ")
        parts.append(_text(arg))
        prev_is_str = is_str
    return "".join(parts)


def _sprintf(template: str, args: tuple) -> str:
    if not args:
        return template
    if not template:
        return _sprint(args)
    try:
        return template % args
    except (TypeError, ValueError):
        return " ".join([template, *map(_text, args)])


def _any_field(key: str, value: Any) -> Field:
    if isinstance(value, Field):
        return value
    if isinstance(value, bool):
        return boolean(key, value)
    if isinstance(value, int):
        return integer(key, value)
    if isinstance(value, float):
        return floating(key, value)
    if isinstance(value, str):
        return string(key, value)
    if isinstance(value, timedelta):
        return duration(key, value)
    if isinstance(value, datetime):
        return timestamp(key, value)
    if isinstance(value, BaseException):
        return Field(key, FieldType.ERROR, value)
    return reflect(key, value)


def _sweeten(args: Iterable[Any]) -> tuple[Field, ...]:
    """Turn a mix of fields and key/value pairs into fields.

    Pairs whose key is not a string are skipped, and a trailing key with no
    value is dropped.
    """
    fields: list[Field] = []
    items = iter(args)
    for item in items:
        if isinstance(item, Field):
            fields.append(item)
            continue
        value = next(items, _MISSING)
        if value is _MISSING:
            break
        if isinstance(item, str):
            fields.append(_any_field(item, value))
    return tuple(fields)


def _kv_attributes(kvs: tuple) -> list[KeyValue]:
    items = iter(kvs)
    return [attribute(key, value) for key, value in zip(items, items) if isinstance(key, str)]


class SugaredLogger:
    """Wraps a Logger with print-, printf- and key/value-style methods."""

    def __init__(self, logger: Logger, fields: Iterable[Field] = ()) -> None:
        self._logger = logger
        self._fields = tuple(fields)

    def desugar(self) -> Logger:
        return self._logger

    def with_values(self, *args: Any) -> "SugaredLogger":
        """Return a copy that adds these fields or key/value pairs to every entry."""
        return SugaredLogger(self._logger, (*self._fields, *_sweeten(args)))

    def ctx(self, span: Optional[Span] = None) -> "SugaredLoggerWithCtx":
        """Bind a span; without one the active span is used."""
        return SugaredLoggerWithCtx(span if span is not None else current_span(), self)

    # Internals.

    def _write(self, level: Level, msg: str, kvs: tuple = ()) -> None:
        record = self._logger._record_fields((*self._fields, *_sweeten(kvs)))
        self._logger._emit(level, msg, record)

    def _log_args(self, span: Span, level: Level, template: str, args: tuple) -> None:
        logger = self._logger
        if level < logger.min_level or not span.is_recording():
            return
        attrs = [KeyValue(LOG_TEMPLATE, template)]
        logger._log(span, level, _sprintf(template, args), attrs)

    def _log_kvs(self, span: Span, level: Level, msg: str, kvs: tuple) -> tuple:
        logger = self._logger
        if level < logger.min_level or not span.is_recording():
            return kvs
        logger._log(span, level, msg, _kv_attributes(kvs))
        if logger.with_trace_id:
            kvs = (*kvs, "trace_id", span.trace_id)
        return kvs

    def _printf_ctx(self, span: Span, level: Level, template: str, args: tuple) -> None:
        self._log_args(span, level, template, args)
        self._write(level, _sprintf(template, args))

    def _printw_ctx(self, span: Span, level: Level, msg: str, kvs: tuple) -> None:
        self._write(level, msg, self._log_kvs(span, level, msg, kvs))

    # Print-style.

    def debug(self, *args: Any) -> None:
        self._write(Level.DEBUG, _sprint(args))

    def info(self, *args: Any) -> None:
        self._write(Level.INFO, _sprint(args))

    def warn(self, *args: Any) -> None:
        self._write(Level.WARN, _sprint(args))

    def error(self, *args: Any) -> None:
        self._write(Level.ERROR, _sprint(args))

    def dpanic(self, *args: Any) -> None:
        self._write(Level.DPANIC, _sprint(args))

    def panic(self, *args: Any) -> None:
        """Log, then raise RuntimeError."""
        self._write(Level.PANIC, _sprint(args))

    def fatal(self, *args: Any) -> None:
        """Log, then raise SystemExit(1)."""
        self._write(Level.FATAL, _sprint(args))

    # Printf-style.

    def debugf(self, template: str, *args: Any) -> None:
        self._write(Level.DEBUG, _sprintf(template, args))

    def infof(self, template: str, *args: Any) -> None:
        self._write(Level.INFO, _sprintf(template, args))

    def warnf(self, template: str, *args: Any) -> None:
        self._write(Level.WARN, _sprintf(template, args))

    def errorf(self, template: str, *args: Any) -> None:
        self._write(Level.ERROR, _sprintf(template, args))

    def dpanicf(self, template: str, *args: Any) -> None:
        self._write(Level.DPANIC, _sprintf(template, args))

    def panicf(self, template: str, *args: Any) -> None:
        """Log, then raise RuntimeError."""
        self._write(Level.PANIC, _sprintf(template, args))

    def fatalf(self, template: str, *args: Any) -> None:
        """Log, then raise SystemExit(1)."""
        self._write(Level.FATAL, _sprintf(template, args))

    # Key/value-style.

    def debugw(self, msg: str, *args: Any) -> None:
        self._write(Level.DEBUG, msg, args)

    def infow(self, msg: str, *args: Any) -> None:
        self._write(Level.INFO, msg, args)

    def warnw(self, msg: str, *args: Any) -> None:
        self._write(Level.WARN, msg, args)

    def errorw(self, msg: str, *args: Any) -> None:
        self._write(Level.ERROR, msg, args)

    def dpanicw(self, msg: str, *args: Any) -> None:
        self._write(Level.DPANIC, msg, args)

    def panicw(self, msg: str, *args: Any) -> None:
        """Log, then raise RuntimeError."""
        self._write(Level.PANIC, msg, args)

    def fatalw(self, msg: str, *args: Any) -> None:
        """Log, then raise SystemExit(1)."""
        self._write(Level.FATAL, msg, args)

    # Printf-style, also recorded on a span.

    def debugf_context(self, span: Span, template: str, *args: Any) -> None:
        self._printf_ctx(span, Level.DEBUG, template, args)

    def infof_context(self, span: Span, template: str, *args: Any) -> None:
        self._printf_ctx(span, Level.INFO, template, args)

    def warnf_context(self, span: Span, template: str, *args: Any) -> None:
        self._printf_ctx(span, Level.WARN, template, args)

    def errorf_context(self, span: Span, template: str, *args: Any) -> None:
        self._printf_ctx(span, Level.ERROR, template, args)

    def dpanicf_context(self, span: Span, template: str, *args: Any) -> None:
        self._printf_ctx(span, Level.DPANIC, template, args)

    def panicf_context(self, span: Span, template: str, *args: Any) -> None:
        self._printf_ctx(span, Level.PANIC, template, args)

    def fatalf_context(self, span: Span, template: str, *args: Any) -> None:
        self._printf_ctx(span, Level.FATAL, template, args)

    # Key/value-style, also recorded on a span.

    def infow_context(self, span: Span, msg: str, *args: Any) -> None:
        self._printw_ctx(span, Level.INFO, msg, args)

    def warnw_context(self, span: Span, msg: str, *args: Any) -> None:
        self._printw_ctx(span, Level.WARN, msg, args)

    def errorw_context(self, span: Span, msg: str, *args: Any) -> None:
        self._printw_ctx(span, Level.ERROR, msg, args)

    def dpanicw_context(self, span: Span, msg: str, *args: Any) -> None:
        self._printw_ctx(span, Level.DPANIC, msg, args)

    def panicw_context(self, span: Span, msg: str, *args: Any) -> None:
        self._printw_ctx(span, Level.PANIC, msg, args)

    def fatalw_context(self, span: Span, msg: str, *args: Any) -> None:
        self._printw_ctx(span, Level.FATAL, msg, args)


class SugaredLoggerWithCtx:
    """A sugared logger bound to a span; every entry is also recorded on that span."""

    __slots__ = ("_span", "_sugared")

    def __init__(self, span: Span, sugared: SugaredLogger) -> None:
        self._span = span
        self._sugared = sugared

    @property
    def span(self) -> Span:
        return self._span

    def desugar(self) -> Logger:
        return self._sugared.desugar()

    def debugf(self, template: str, *args: Any) -> None:
        self._sugared._printf_ctx(self._span, Level.DEBUG, template, args)

    def infof(self, template: str, *args: Any) -> None:
        self._sugared._printf_ctx(self._span, Level.INFO, template, args)

    def warnf(self, template: str, *args: Any) -> None:
        self._sugared._printf_ctx(self._span, Level.WARN, template, args)

    def errorf(self, template: str, *args: Any) -> None:
        self._sugared._printf_ctx(self._span, Level.ERROR, template, args)

    def dpanicf(self, template: str, *args: Any) -> None:
        self._sugared._printf_ctx(self._span, Level.DPANIC, template, args)

    def panicf(self, template: str, *args: Any) -> None:
        """Log, then raise RuntimeError."""
        self._sugared._printf_ctx(self._span, Level.PANIC, template, args)

    def fatalf(self, template: str, *args: Any) -> None:
        """Log, then raise SystemExit(1)."""
        self._sugared._printf_ctx(self._span, Level.FATAL, template, args)

    def debugw(self, msg: str, *args: Any) -> None:
        self._sugared._printw_ctx(self._span, Level.DEBUG, msg, args)

    def infow(self, msg: str, *args: Any) -> None:
        self._sugared._printw_ctx(self._span, Level.INFO, msg, args)

    def warnw(self, msg: str, *args: Any) -> None:
        self._sugared._printw_ctx(self._span, Level.WARN, msg, args)

    def errorw(self, msg: str, *args: Any) -> None:
        self._sugared._printw_ctx(self._span, Level.ERROR, msg, args)

    def dpanicw(self, msg: str, *args: Any) -> None:
        self._sugared._printw_ctx(self._span, Level.DPANIC, msg, args)

    def panicw(self, msg: str, *args: Any) -> None:
        """Log, then raise RuntimeError."""
        self._sugared._printw_ctx(self._span, Level.PANIC, msg, args)

    def fatalw(self, msg: str, *args: Any) -> None:
        """Log, then raise SystemExit(1)."""
        self._sugared._printw_ctx(self._span, Level.FATAL, msg, args)