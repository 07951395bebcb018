"""Tracing and metrics shared by the instrumented database handles."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Optional

from ..metric import BatchObserver, BatchObserverResult, Histogram, Meter, get_meter
from ..trace import (
    Span,
    SpanKind,
    StatusCode,
    Tracer,
    TracerProvider,
    get_tracer_provider,
    use_span,
)

INSTRUM_NAME = "otelextra.sql"

DB_STATEMENT = "db.statement"
DB_SYSTEM = "db.system"
DB_NAME = "db.name"
DB_ROWS_AFFECTED = "db.rows_affected"


class SkipError(Exception):
    """Raised by a driver hook to say that it does not support an operation."""


class NoRowsError(LookupError):
    """Raised when a single-row query finds no rows."""

    def __init__(self, message: str = "no rows in result set") -> None:
        super().__init__(message)


# Errors that end an operation normally and are not recorded on the span.
_IGNORED_ERRORS = (SkipError, NoRowsError, StopIteration)


@dataclass
class Config:
    """Settings gathered from options."""

    provider: Optional[TracerProvider] = None
    tracer: Optional[Tracer] = None
    meter: Optional[Meter] = None
    attrs: dict = field(default_factory=dict)


Option = Callable[[Config], None]


def _new_config(options: Iterable[Option]) -> Config:
    config = Config()
    for option in options:
        option(config)
    return config


class DBInstrum:
    """Creates client spans and records query timings for database operations."""

    def __init__(self, options: Iterable[Option] = ()) -> None:
        config = _new_config(options)
        if config.provider is None:
            config.provider = get_tracer_provider()
        if config.tracer is None:
            config.tracer = config.provider.get_tracer(INSTRUM_NAME)
        if config.meter is None:
            config.meter = get_meter(INSTRUM_NAME)
        self.config = config
        self.query_histogram: Histogram = config.meter.create_histogram(
            "sql.query_timing",
            description="Timing of processed queries",
            unit="milliseconds",
        )

    @property
    def tracer(self) -> Tracer:
        return self.config.tracer

    @property
    def meter(self) -> Meter:
        return self.config.meter

    @property
    def attrs(self) -> dict:
        return dict(self.config.attrs)

    @contextmanager
    def span(self, span_name: str, query: str = "") -> Iterator[Span]:
        """Run the block inside an active client span; errors are recorded and re-raised."""
        start = time.perf_counter()
        attrs = dict(self.config.attrs)
        if query:
            attrs[DB_STATEMENT] = query
        span = self.tracer.start_span(span_name, SpanKind.CLIENT, attrs)
        try:
            with use_span(span):
                yield span
        except Exception as exc:
            if not isinstance(exc, _IGNORED_ERRORS):
                span.record_error(exc)
                span.set_status(StatusCode.ERROR, str(exc))
            raise
        finally:
            span.end()
            if query:
                elapsed_ms = int((time.perf_counter() - start) * 1000)
                self.query_histogram.record(elapsed_ms, self.config.attrs)


def with_tracer_provider(provider: TracerProvider) -> Option:
    """Use this provider to create the tracer."""

    def apply(config: Config) -> None:
        config.provider = provider

    return apply


def with_attributes(*attrs: Any) -> Option:
    """Add attributes, given as key/value pairs or mappings, to every span."""

    def apply(config: Config) -> None:
        for attr in attrs:
            if isinstance(attr, Mapping):
                config.attrs.update(attr)
            else:
                key, value = attr
                config.attrs[key] = value

    return apply


def with_db_system(system: str) -> Option:
    """Set the db.system attribute."""

    def apply(config: Config) -> None:
        config.attrs[DB_SYSTEM] = system

    return apply


def with_db_name(name: str) -> Option:
    """Set the db.name attribute."""

    def apply(config: Config) -> None:
        config.attrs[DB_NAME] = name

    return apply


def with_meter(meter: Meter) -> Option:
    """Use this meter to create instruments."""

    def apply(config: Config) -> None:
        config.meter = meter

    return apply


_STATS_INSTRUMENTS = (
    ("max_open_connections", "gauge", "sql.connections_max_open",
     "Maximum number of open connections to the database", ""),
    ("open_connections", "gauge", "sql.connections_open",
     "The number of established connections both in use and idle", ""),
    ("in_use", "gauge", "sql.connections_in_use",
     "The number of connections currently in use", ""),
    ("idle", "gauge", "sql.connections_idle",
     "The number of idle connections", ""),
    ("wait_count", "counter", "sql.connections_wait_count",
     "The total number of connections waited for", ""),
    ("wait_duration", "counter", "sql.connections_wait_duration",
     "The total time blocked waiting for a new connection", "nanoseconds"),
    ("max_idle_closed", "counter", "sql.connections_closed_max_idle",
     "The total number of connections closed due to the idle connection limit", ""),
    ("max_idle_time_closed", "counter", "sql.connections_closed_max_idle_time",
     "The total number of connections closed due to the idle time limit", ""),
    ("max_lifetime_closed", "counter", "sql.connections_closed_max_lifetime",
     "The total number of connections closed due to the lifetime limit", ""),
)


def report_db_stats_metrics(db: Any, *options: Option) -> BatchObserver:
    """Report the connection pool statistics of ``db.stats()`` as metrics."""
    config = _new_config(options)
    meter = config.meter if config.meter is not None else get_meter(INSTRUM_NAME)
    labels = dict(config.attrs)
    instruments: dict = {}

    def observe(result: BatchObserverResult) -> None:
        stats = db.stats()
        result.observe(
            labels,
            *(
                instrument.observation(int(getattr(stats, attr)))
                for attr, instrument in instruments.items()
            ),
        )

    batch = meter.create_batch_observer(observe)
    for attr, kind, name, description, unit in _STATS_INSTRUMENTS:
        create = batch.create_gauge if kind == "gauge" else batch.create_counter
        instruments[attr] = create(name, description, unit)
    return batch