import sqlite3

import pytest

from otelextra.metric import Meter
from otelextra.sql import driver
from otelextra.sql.instrum import NoRowsError, with_meter, with_tracer_provider
from otelextra.trace import SpanKind, SpanRecorder, StatusCode, TracerProvider


@pytest.fixture
def recorder():
    return SpanRecorder()


@pytest.fixture
def meter():
    return Meter()


@pytest.fixture
def db(recorder, meter):
    provider = TracerProvider()
    provider.add_span_processor(recorder)
    handle = driver.open(sqlite3, ":memory:", with_tracer_provider(provider), with_meter(meter))
    yield handle
    handle.close()


def names(recorder):
    return [span.name for span in recorder.ended()]


def check_statements(spans, wanted):
    assert len(spans) >= len(wanted)
    for span, (name, stmt) in zip(spans, wanted):
        assert span.name == name
        assert ("db.statement" in span.attributes) == (stmt != "")
        assert span.attributes.get("db.statement", "") == stmt


def assert_client_spans(recorder):
    assert all(span.kind is SpanKind.CLIENT for span in recorder.ended())


def test_ping(db, recorder):
    db.ping()
    assert names(recorder) == ["db.Connect", "db.Ping"]
    assert_client_spans(recorder)


def test_exec(db, recorder):
    db.execute("SELECT 1")
    spans = recorder.ended()
    assert names(recorder) == ["db.Connect", "db.Exec"]
    assert spans[1].attributes["db.statement"] == "SELECT 1"
    assert spans[1].attributes["db.rows_affected"] == 0
    assert_client_spans(recorder)


def test_query_row(db, recorder):
    assert db.query_row("SELECT 1") == (1,)
    spans = recorder.ended()
    assert names(recorder) == ["db.Connect", "db.Query"]
    assert spans[1].attributes["db.statement"] == "SELECT 1"
    assert_client_spans(recorder)


def test_prepared_statement(db, recorder):
    stmt = db.prepare("SELECT 1")
    stmt.execute()
    assert stmt.query_row() == (1,)
    check_statements(
        recorder.ended(),
        [
            ("db.Connect", ""),
            ("db.Prepare", "SELECT 1"),
            ("stmt.Exec", "SELECT 1"),
            ("stmt.Query", "SELECT 1"),
        ],
    )
    assert_client_spans(recorder)


def test_transaction(db, recorder):
    tx = db.begin()
    tx.execute("SELECT 1")
    assert tx.query_row("SELECT 1") == (1,)
    tx.rollback()
    spans = recorder.ended()
    assert len(spans) == 5
    check_statements(
        spans,
        [
            ("db.Connect", ""),
            ("db.Begin", ""),
            ("db.Exec", "SELECT 1"),
            ("db.Query", "SELECT 1"),
            ("tx.Rollback", ""),
        ],
    )
    assert_client_spans(recorder)


def test_connection_is_reused(db, recorder):
    db.ping()
    db.execute("SELECT 1")
    assert names(recorder).count("db.Connect") == 1


def test_rows_affected_and_insert_id(db, recorder):
    db.execute("CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT)")
    result = db.execute("INSERT INTO people (name) VALUES (?)", "alice")
    assert result.rows_affected == 1
    assert result.last_insert_id == 1
    assert recorder.ended()[-1].attributes["db.rows_affected"] == 1


def test_query_rows_and_columns(db):
    db.execute("CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT)")
    db.execute("INSERT INTO people (name) VALUES (?)", "alice")
    db.execute("INSERT INTO people (name) VALUES (:name)", {"name": "bob"})
    with db.query("SELECT id, name FROM people ORDER BY id") as rows:
        assert rows.columns == ["id", "name"]
        assert list(rows) == [(1, "alice"), (2, "bob")]


def test_query_row_without_rows(db):
    db.execute("CREATE TABLE empty (id INTEGER)")
    with pytest.raises(NoRowsError):
        db.query_row("SELECT id FROM empty")
    assert db.stats().in_use == 0


def test_error_is_recorded_on_span(db, recorder):
    with pytest.raises(sqlite3.OperationalError):
        db.execute("SELEC 1")
    span = recorder.ended()[-1]
    assert span.name == "db.Exec"
    assert span.status is StatusCode.ERROR
    assert [event.name for event in span.events] == ["exception"]


def test_commit_persists(db, recorder):
    db.execute("CREATE TABLE items (value INTEGER)")
    with db.begin() as tx:
        tx.execute("INSERT INTO items VALUES (?)", 7)
    assert db.query_row("SELECT value FROM items") == (7,)
    assert "tx.Commit" in names(recorder)


def test_rollback_on_exception_discards(db):
    db.execute("CREATE TABLE items (value INTEGER)")
    with pytest.raises(KeyError):
        with db.begin() as tx:
            tx.execute("INSERT INTO items VALUES (?)", 7)
            raise KeyError("stop")
    assert db.query_row("SELECT COUNT(*) FROM items") == (0,)


def test_finished_transaction_rejects_use(db):
    tx = db.begin()
    tx.commit()
    assert tx.done is True
    with pytest.raises(ValueError):
        tx.execute("SELECT 1")
    with pytest.raises(ValueError):
        tx.rollback()


def test_tx_spans_use_parent_from_begin(db, recorder):
    provider = TracerProvider()
    provider.add_span_processor(recorder)
    tracer = provider.get_tracer("test")
    with tracer.start_as_current_span("root") as root:
        tx = db.begin()
    tx.rollback()
    rollback = next(s for s in recorder.ended() if s.name == "tx.Rollback")
    assert rollback.parent is root


def test_stats_track_connections(db):
    db.ping()
    assert db.stats() == driver.DBStats(open_connections=1, in_use=0, idle=1)
    rows = db.query("SELECT 1")
    assert db.stats().in_use == 1
    rows.close()
    assert db.stats().in_use == 0


def test_stats_reported_as_metrics(db, meter):
    db.ping()
    values = {m.instrument: m.value for m in meter.collect()}
    assert values["sql.connections_open"] == 1
    assert values["sql.connections_idle"] == 1


def test_query_timing_histogram(db, meter):
    db.execute("SELECT 1")
    (histogram,) = meter.histograms
    assert len(histogram.measurements) == 1


def test_closed_statement_rejects_use(db):
    stmt = db.prepare("SELECT 1")
    stmt.close()
    with pytest.raises(ValueError):
        stmt.execute()


def test_closed_db_rejects_use(db):
    db.ping()
    db.close()
    with pytest.raises(ValueError):
        db.ping()
    assert db.stats().open_connections == 0


def test_open_requires_connect():
    with pytest.raises(TypeError):
        driver.open(object(), ":memory:")


def test_open_db_with_connector(recorder, meter):
    provider = TracerProvider()
    provider.add_span_processor(recorder)
    calls = []

    def connect():
        calls.append(1)
        return sqlite3.connect(":memory:")

    with driver.open_db(connect, with_tracer_provider(provider), with_meter(meter)) as handle:
        assert handle.query_row("SELECT 2") == (2,)
    assert calls == [1]
    assert names(recorder) == ["db.Connect", "db.Query"]


def test_connect_failure_is_raised_and_recorded(recorder, meter):
    provider = TracerProvider()
    provider.add_span_processor(recorder)

    def connect():
        raise ConnectionError("refused")

    handle = driver.open_db(connect, with_tracer_provider(provider), with_meter(meter))
    with pytest.raises(ConnectionError):
        handle.ping()
    (span,) = recorder.ended()
    assert span.name == "db.Connect"
    assert span.status is StatusCode.ERROR
    assert handle.stats().open_connections == 0


def test_version():
    assert driver.version() == "0.1.9"