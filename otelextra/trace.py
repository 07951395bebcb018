"""A small tracing API: spans, tracers, providers and an in-memory span recorder."""

from __future__ import annotations

import contextvars
import secrets
import threading
import time
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol, Union

INVALID_TRACE_ID = "0" * 32
INVALID_SPAN_ID = "0" * 16

Attributes = Union[Mapping[str, Any], Iterable[tuple], None]


class SpanKind(Enum):
    """The role a span plays in a trace."""

    INTERNAL = "internal"
    SERVER = "server"
    CLIENT = "client"
    PRODUCER = "producer"
    CONSUMER = "consumer"


class StatusCode(Enum):
    """The status of a span; OK outranks ERROR, which outranks UNSET."""

    UNSET = 0
    ERROR = 1
    OK = 2


@dataclass(frozen=True)
class Event:
    """A named, timestamped annotation on a span."""

    name: str
    attributes: dict = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class SpanProcessor(Protocol):
    def on_start(self, span: "Span") -> None: ...

    def on_end(self, span: "Span") -> None: ...


def _normalize(attributes: Attributes) -> dict:
    """Turn a mapping or an iterable of key/value pairs into a dict, dropping empty values."""
    if attributes is None:
        return {}
    items = attributes.items() if isinstance(attributes, Mapping) else attributes
    return {key: value for key, value in items if value is not None}


def _error_type(error: BaseException) -> str:
    cls = type(error)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


class Span:
    """A single timed operation. Only a recording span keeps what is set on it."""

    def __init__(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Attributes = None,
        *,
        trace_id: str = INVALID_TRACE_ID,
        span_id: str = INVALID_SPAN_ID,
        parent: Optional["Span"] = None,
        recording: bool = False,
        processors: Iterable[SpanProcessor] = (),
        instrumentation_name: str = "",
    ) -> None:
        self.name = name
        self.kind = kind
        self.trace_id = trace_id
        self.span_id = span_id
        self.parent = parent
        self.instrumentation_name = instrumentation_name
        self.start_time = time.time()
        self.end_time: Optional[float] = None
        self._recording = recording
        self._processors = tuple(processors)
        self._lock = threading.RLock()
        self._attributes = _normalize(attributes) if recording else {}
        self._events: list[Event] = []
        self._status = StatusCode.UNSET
        self._status_description = ""

    def __repr__(self) -> str:
        return f"Span(name={self.name!r}, kind={self.kind.name}, trace_id={self.trace_id})"

    @property
    def is_valid(self) -> bool:
        return self.trace_id != INVALID_TRACE_ID

    @property
    def attributes(self) -> dict:
        with self._lock:
            return dict(self._attributes)

    @property
    def events(self) -> list[Event]:
        with self._lock:
            return list(self._events)

    @property
    def status(self) -> StatusCode:
        return self._status

    @property
    def status_description(self) -> str:
        return self._status_description

    def is_recording(self) -> bool:
        return self._recording and self.end_time is None

    def set_attribute(self, key: str, value: Any) -> None:
        if value is None:
            return
        with self._lock:
            if self.is_recording():
                self._attributes[key] = value

    def set_attributes(self, attributes: Attributes) -> None:
        with self._lock:
            if self.is_recording():
                self._attributes.update(_normalize(attributes))

    def add_event(self, name: str, attributes: Attributes = None) -> None:
        with self._lock:
            if self.is_recording():
                self._events.append(Event(name, _normalize(attributes)))

    def record_error(self, error: BaseException) -> None:
        """Add an exception event describing the error."""
        self.add_event(
            "exception",
            {"exception.type": _error_type(error), "exception.message": str(error)},
        )

    def set_status(self, code: StatusCode, description: str = "") -> None:
        with self._lock:
            if not self.is_recording() or self._status.value > code.value:
                return
            self._status = code
            self._status_description = description if code is StatusCode.ERROR else ""

    def end(self) -> None:
        with self._lock:
            if not self.is_recording():
                return
            self.end_time = time.time()
        for processor in self._processors:
            processor.on_end(self)


INVALID_SPAN = Span("")

_current_span: contextvars.ContextVar[Span] = contextvars.ContextVar(
    "current_span", default=INVALID_SPAN
)


def current_span() -> Span:
    """Return the active span, or a non-recording invalid span."""
    return _current_span.get()


@contextmanager
def use_span(span: Span) -> Iterator[Span]:
    """Make a span the active one for the duration of the block; it is not ended."""
    token = _current_span.set(span)
    try:
        yield span
    finally:
        _current_span.reset(token)


class Tracer:
    """Creates spans on behalf of one instrumentation."""

    def __init__(self, provider: "TracerProvider", name: str = "") -> None:
        self.provider = provider
        self.name = name

    def start_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Attributes = None,
    ) -> Span:
        """Start a span, a child of the active span when there is one."""
        parent = current_span()
        if not self.provider.sampled:
            return Span(
                name,
                kind,
                trace_id=parent.trace_id,
                span_id=parent.span_id,
                parent=parent if parent.is_valid else None,
                instrumentation_name=self.name,
            )
        processors = self.provider.span_processors
        span = Span(
            name,
            kind,
            attributes,
            trace_id=parent.trace_id if parent.is_valid else secrets.token_hex(16),
            span_id=secrets.token_hex(8),
            parent=parent if parent.is_valid else None,
            recording=True,
            processors=processors,
            instrumentation_name=self.name,
        )
        for processor in processors:
            processor.on_start(span)
        return span

    @contextmanager
    def start_as_current_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Attributes = None,
    ) -> Iterator[Span]:
        """Start a span, make it active, and end it when the block exits."""
        span = self.start_span(name, kind, attributes)
        with use_span(span):
            try:
                yield span
            except Exception as exc:
                span.record_error(exc)
                span.set_status(StatusCode.ERROR, str(exc))
                raise
            finally:
                span.end()


class TracerProvider:
    """Hands out tracers; spans are recorded only when the provider samples."""

    def __init__(self, sampled: bool = True) -> None:
        self.sampled = sampled
        self._processors: list[SpanProcessor] = []
        self._lock = threading.Lock()

    @property
    def span_processors(self) -> tuple:
        with self._lock:
            return tuple(self._processors)

    def get_tracer(self, name: str = "") -> Tracer:
        return Tracer(self, name)

    def add_span_processor(self, processor: SpanProcessor) -> None:
        with self._lock:
            self._processors.append(processor)


class SpanRecorder:
    """A span processor that keeps every started and ended span in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started: list[Span] = []
        self._ended: list[Span] = []

    def on_start(self, span: Span) -> None:
        with self._lock:
            self._started.append(span)

    def on_end(self, span: Span) -> None:
        with self._lock:
            self._ended.append(span)

    def started(self) -> list[Span]:
        with self._lock:
            return list(self._started)

    def ended(self) -> list[Span]:
        with self._lock:
            return list(self._ended)


_global_lock = threading.Lock()
_global_provider = TracerProvider(sampled=False)


def get_tracer_provider() -> TracerProvider:
    """Return the global provider; by default it records nothing."""
    with _global_lock:
        return _global_provider


def set_tracer_provider(provider: TracerProvider) -> None:
    global _global_provider
    with _global_lock:
        _global_provider = provider