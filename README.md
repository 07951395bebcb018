# otelextra

Instrumentation helpers that record what an application does as trace
spans, span events and metrics:

- `otelextra.sql.driver` wraps any DB-API database module (for example
  `sqlite3`) so that connecting, pinging, executing, querying, preparing
  statements and ending transactions each produce a client span carrying the
  SQL statement, the number of affected rows and any error. Query timings go
  to a histogram, and connection pool statistics are reported through a
  batch observer.
- `otelextra.sqlx` is the same database wrapper with `get` and `select`,
  which load rows straight into dataclasses, dicts, tuples or scalars.
- `otelextra.log` is a structured logger over the standard `logging`
  module. Given a recording span, it also attaches every entry at or above a
  chosen level to that span as a `log` event with severity, message, fields
  and caller information, and marks the span as failed for errors.

The package carries its own small tracing core (`otelextra.trace`) and
metrics core (`otelextra.metric`), so it has no runtime dependencies.

## Installation

```
pip install otelextra
```

Python 3.10 or later is required.

## Tracing basics

```python
from otelextra.trace import SpanRecorder, TracerProvider, set_tracer_provider

recorder = SpanRecorder()
provider = TracerProvider()
provider.add_span_processor(recorder)
set_tracer_provider(provider)

tracer = provider.get_tracer("my_app")
with tracer.start_as_current_span("root") as span:
    span.set_attribute("user", "alice")

print([s.name for s in recorder.ended()])
```

`Tracer.start_span` starts a span as a child of the active one;
`start_as_current_span` also makes it active, records an escaping exception
on it and ends it. `use_span(span)` makes a span active without ending it,
and `current_span()` returns the active span. A span keeps attributes,
events and status only while it is recording; the default global provider
(`get_tracer_provider()`) records nothing until `set_tracer_provider` is
called, and so does a `TracerProvider(sampled=False)`.

`otelextra.attribute.attribute(key, value)` turns an arbitrary value into a
`KeyValue`: strings, numbers, booleans and homogeneous lists are kept, other
values become JSON or their `str()`.

## Instrumenting a database

```python
import sqlite3

from otelextra.sql import driver
from otelextra.sql.instrum import with_db_name, with_db_system, with_tracer_provider

db = driver.open(
    sqlite3,
    ":memory:",
    with_db_system("sqlite"),
    with_db_name("mydb"),
    with_tracer_provider(provider),
)

db.ping()
db.execute("CREATE TABLE people (id INTEGER, name TEXT)")
(answer,) = db.query_row("SELECT 42")

with db.begin() as tx:
    tx.execute("INSERT INTO people VALUES (?, ?)", 1, "alice")

with db.prepare("SELECT name FROM people WHERE id = ?") as stmt:
    with stmt.query(1) as rows:
        names = [row[0] for row in rows]

db.close()
```

Arguments are passed to the DB-API cursor positionally, or as a single
mapping for named parameters.

- `DB.execute` returns a `Result` with `rows_affected` and
  `last_insert_id`; the statement is committed on success and rolled back
  on error.
- `DB.query` returns `Rows`, an iterator over result rows with a `columns`
  list. It holds its connection until it is exhausted or closed.
- `query_row` returns the first row, or raises `NoRowsError`.
- `DB.begin` returns a `Tx` bound to one connection. Used as a context
  manager it commits on success and rolls back on an exception; `commit`
  and `rollback` may also be called directly, once.
- `DB.prepare` returns a `Stmt` that runs the same statement many times.
- `DB.stats` returns a `DBStats` with the counts of open, in-use and idle
  connections.

Spans are named `db.Connect`, `db.Ping`, `db.Exec`, `db.Query`,
`db.Prepare`, `db.Begin`, `stmt.Exec`, `stmt.Query`, `tx.Commit` and
`tx.Rollback`, all of kind `CLIENT`. Spans for a statement carry a
`db.statement` attribute; execute spans also carry `db.rows_affected`.
Options added with `with_attributes`, `with_db_system` and `with_db_name`
go on every span. `SkipError`, `NoRowsError` and `StopIteration` are not
recorded as span errors; every other exception is, and is raised again.

`driver.open_db(connect, ...)` does the same for any callable that returns
a new DB-API connection. Both register the pool statistics with a meter
(`with_meter(meter)`, or the global meter from `otelextra.metric.get_meter`);
`Meter.collect()` runs the observers and returns their `Measurement`s.
Query timings are recorded in milliseconds on the `sql.query_timing`
histogram.

### Loading rows into objects

```python
from dataclasses import dataclass

from otelextra import sqlx


@dataclass
class Person:
    id: int
    name: str


db = sqlx.connect(sqlite3, ":memory:")
person = db.get(Person, "SELECT 123 AS id, 'hello' AS name")
people = db.select(Person, "SELECT 1 AS id, 'a' AS name UNION SELECT 2, 'b'")
count = db.get(int, "SELECT 7")
```

Column names are matched to dataclass fields without regard to case; a
column with no matching field raises `ValueError`. `sqlx.connect` opens
the database and verifies it with a ping, closing it again if the ping
fails; `sqlx.open` only opens it.

## Logging onto spans

```python
import logging

from otelextra.log import fields, logger as otellog

log = otellog.new(logging.getLogger("my_app"), otellog.with_min_level(otellog.Level.INFO))

span = tracer.start_span("root")
log.ctx(span).error(
    "hello",
    fields.error(ValueError("something failed")),
    fields.string("foo", "bar"),
)
span.end()
```

Levels are `DEBUG`, `INFO`, `WARN`, `ERROR`, `DPANIC`, `PANIC` and
`FATAL`. Entries are written to the standard logger with their fields in
the record's `fields` attribute; `panic` then raises `RuntimeError` and
`fatal` raises `SystemExit(1)`. `new()` without a logger discards
everything written to it.

Fields are built with the functions in `otelextra.log.fields`: `string`,
`strings`, `boolean`, `integer`, `floating`, `complex_`, `duration`,
`durations`, `timestamp`, `error`, `binary`, `stringer`, `reflect`,
`namespace`, `skip`, `array` and `object`. `Logger.with_fields` returns a
logger that adds fields to every entry.

Options for `new` and `Logger.clone`:

- `with_min_level(level)`: lowest level recorded on the span (default WARN).
- `with_error_status_level(level)`: lowest level that sets an error status
  on the span (default ERROR).
- `with_caller(on)`: add function, file and line of the call (default on).
- `with_stack_trace(on)`: add a stack trace to each event.
- `with_trace_id_field(on)`: add a `trace_id` field to the log entry itself.

A sugared, less strictly typed interface is available through
`Logger.sugar()`, with print-style (`info`), printf-style (`infof`) and
key/value (`infow`) methods:

```python
log.sugar().ctx(span).errorf("hello %s", "world")
log.sugar().errorw_context(span, "hello", "foo", "bar")
```

Process-wide loggers live in `otelextra.log.globals`: `global_logger()`,
`global_sugared_logger()`, `ctx(span)` and `replace_globals(logger)`,
which returns a function that restores the previous globals.

## What it does not do

- Spans and measurements stay in memory. There is no exporter: nothing is
  sent to a collector or written out, beyond what a `SpanRecorder` or a
  `Meter` holds for you to inspect.
- The database pool has no limits on open or idle connections and no
  connection lifetimes, so the wait and closed-connection counts in
  `DBStats` are always zero.
- The logger has no output of its own; where entries go is decided by the
  standard `logging` configuration.

## Running the tests

```
pip install -e ".[test]"
pytest
```