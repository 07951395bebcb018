"""A small metrics API: histograms and batch-observed gauges and counters."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Union

Attributes = Union[Mapping[str, Any], Iterable[tuple], None]


def _to_dict(attributes: Attributes) -> dict:
    if attributes is None:
        return {}
    items = attributes.items() if isinstance(attributes, Mapping) else attributes
    return {key: value for key, value in items}


@dataclass(frozen=True)
class Measurement:
    """A value taken by a named instrument, with its attributes."""

    instrument: str
    value: Union[int, float]
    attributes: dict = field(default_factory=dict)


class Histogram:
    """An instrument that keeps every recorded value."""

    def __init__(self, name: str, description: str = "", unit: str = "") -> None:
        self.name = name
        self.description = description
        self.unit = unit
        self._lock = threading.Lock()
        self._measurements: list[Measurement] = []

    @property
    def measurements(self) -> list[Measurement]:
        with self._lock:
            return list(self._measurements)

    def record(self, value: Union[int, float], attributes: Attributes = None) -> None:
        measurement = Measurement(self.name, value, _to_dict(attributes))
        with self._lock:
            self._measurements.append(measurement)


class ObservableInstrument:
    """A gauge or counter whose values are reported by a batch observer."""

    def __init__(self, name: str, kind: str, description: str = "", unit: str = "") -> None:
        self.name = name
        self.kind = kind
        self.description = description
        self.unit = unit

    def observation(self, value: Union[int, float]) -> Measurement:
        return Measurement(self.name, value)


class BatchObserverResult:
    """Collects the observations made during one batch callback."""

    def __init__(self) -> None:
        self.measurements: list[Measurement] = []

    def observe(self, attributes: Attributes, *observations: Measurement) -> None:
        """Record observations, all carrying the same attributes."""
        attrs = _to_dict(attributes)
        self.measurements.extend(
            replace(observation, attributes=dict(attrs)) for observation in observations
        )


class BatchObserver:
    """Runs one callback that observes several instruments at once."""

    def __init__(self, callback: Callable[[BatchObserverResult], None]) -> None:
        self.callback = callback
        self.instruments: list[ObservableInstrument] = []

    def _create(self, name: str, kind: str, description: str, unit: str) -> ObservableInstrument:
        instrument = ObservableInstrument(name, kind, description, unit)
        self.instruments.append(instrument)
        return instrument

    def create_gauge(self, name: str, description: str = "", unit: str = "") -> ObservableInstrument:
        return self._create(name, "gauge", description, unit)

    def create_counter(
        self, name: str, description: str = "", unit: str = ""
    ) -> ObservableInstrument:
        return self._create(name, "counter", description, unit)

    def _observe(self) -> list[Measurement]:
        result = BatchObserverResult()
        self.callback(result)
        return result.measurements


class Meter:
    """Creates instruments for one instrumentation."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._lock = threading.Lock()
        self.histograms: list[Histogram] = []
        self.batch_observers: list[BatchObserver] = []

    def create_histogram(self, name: str, description: str = "", unit: str = "") -> Histogram:
        histogram = Histogram(name, description, unit)
        with self._lock:
            self.histograms.append(histogram)
        return histogram

    def create_batch_observer(
        self, callback: Callable[[BatchObserverResult], None]
    ) -> BatchObserver:
        observer = BatchObserver(callback)
        with self._lock:
            self.batch_observers.append(observer)
        return observer

    def collect(self) -> list[Measurement]:
        """Run every batch observer and return the observations they made."""
        with self._lock:
            observers = list(self.batch_observers)
        return [m for observer in observers for m in observer._observe()]


_meters_lock = threading.Lock()
_meters: dict[str, Meter] = {}


def get_meter(name: str) -> Meter:
    """Return the global meter of that name, creating it on first use."""
    with _meters_lock:
        meter = _meters.get(name)
        if meter is None:
            meter = _meters[name] = Meter(name)
        return meter