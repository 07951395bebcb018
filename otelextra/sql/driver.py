"""Database handles over DB-API connections whose operations are traced as client spans."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Optional

from ..trace import Span, current_span, use_span
from .instrum import (
    DB_ROWS_AFFECTED,
    DBInstrum,
    NoRowsError,
    Option,
    report_db_stats_metrics,
    with_meter,
)

VERSION = "0.1.9"

Connector = Callable[[], Any]


@dataclass(frozen=True)
class Result:
    """The outcome of a statement that returns no rows."""

    rows_affected: Optional[int]
    last_insert_id: Optional[int]


@dataclass(frozen=True)
class DBStats:
    """Connection pool statistics."""

    max_open_connections: int = 0
    open_connections: int = 0
    in_use: int = 0
    idle: int = 0
    wait_count: int = 0
    wait_duration: int = 0
    max_idle_closed: int = 0
    max_idle_time_closed: int = 0
    max_lifetime_closed: int = 0


class Rows:
    """An iterator over the rows of a query; it holds its connection until closed."""

    def __init__(self, cursor: Any, release: Optional[Callable[[], None]] = None) -> None:
        self._cursor = cursor
        self._release = release
        self._closed = False

    @property
    def columns(self) -> list[str]:
        description = self._cursor.description or ()
        return [column[0] for column in description]

    def __iter__(self) -> "Rows":
        return self

    def __next__(self) -> Any:
        if self._closed:
            raise StopIteration
        row = self._cursor.fetchone()
        if row is None:
            self.close()
            raise StopIteration
        return row

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._cursor.close()
        finally:
            if self._release is not None:
                self._release()

    def __enter__(self) -> "Rows":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def _params(args: tuple) -> Any:
    if len(args) == 1 and isinstance(args[0], Mapping):
        return args[0]
    return tuple(args)


def _exec(instrum: DBInstrum, span_name: str, conn: Any, query: str, args: tuple) -> Result:
    with instrum.span(span_name, query) as span:
        cursor = conn.cursor()
        try:
            cursor.execute(query, _params(args))
            rowcount = getattr(cursor, "rowcount", None)
            result = Result(
                rows_affected=None if rowcount is None else max(rowcount, 0),
                last_insert_id=getattr(cursor, "lastrowid", None),
            )
        finally:
            cursor.close()
        if result.rows_affected is not None:
            span.set_attribute(DB_ROWS_AFFECTED, result.rows_affected)
    return result


def _query(
    instrum: DBInstrum,
    span_name: str,
    conn: Any,
    query: str,
    args: tuple,
    release: Optional[Callable[[], None]],
) -> Rows:
    with instrum.span(span_name, query):
        cursor = conn.cursor()
        try:
            cursor.execute(query, _params(args))
        except BaseException:
            cursor.close()
            raise
    return Rows(cursor, release)


def _first_row(rows: Rows) -> Any:
    with rows:
        row = next(rows, None)
    if row is None:
        raise NoRowsError()
    return row


class Stmt:
    """A statement prepared on a database; it may run many times."""

    def __init__(self, db: "DB", statement: str) -> None:
        self.db = db
        self.statement = statement
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("statement is closed")

    def execute(self, *args: Any) -> Result:
        self._check_open()
        return self.db._execute("stmt.Exec", self.statement, args)

    def query(self, *args: Any) -> Rows:
        self._check_open()
        return self.db._query("stmt.Query", self.statement, args)

    def query_row(self, *args: Any) -> Any:
        """Return the first row; raise NoRowsError when there is none."""
        return _first_row(self.query(*args))

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> "Stmt":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class Tx:
    """A transaction bound to one connection until it is committed or rolled back."""

    def __init__(
        self, conn: Any, parent: Span, instrum: DBInstrum, release: Callable[[], None]
    ) -> None:
        self._conn = conn
        self._parent = parent
        self._instrum = instrum
        self._release = release
        self._lock = threading.Lock()
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def _check_active(self) -> Any:
        if self._done:
            raise ValueError("transaction has already been committed or rolled back")
        return self._conn

    def execute(self, query: str, *args: Any) -> Result:
        return _exec(self._instrum, "db.Exec", self._check_active(), query, args)

    def query(self, query: str, *args: Any) -> Rows:
        return _query(self._instrum, "db.Query", self._check_active(), query, args, None)

    def query_row(self, query: str, *args: Any) -> Any:
        """Return the first row; raise NoRowsError when there is none."""
        return _first_row(self.query(query, *args))

    def commit(self) -> None:
        self._finish("tx.Commit", "commit")

    def rollback(self) -> None:
        self._finish("tx.Rollback", "rollback")

    def _finish(self, span_name: str, method: str) -> None:
        with self._lock:
            self._check_active()
            self._done = True
        try:
            with use_span(self._parent):
                with self._instrum.span(span_name):
                    getattr(self._conn, method)()
        finally:
            self._release()

    def __enter__(self) -> "Tx":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self._done:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()


class DB:
    """A pool of connections made by a connector, with every operation traced."""

    def __init__(self, connector: Connector, instrum: DBInstrum) -> None:
        self._connector = connector
        self._instrum = instrum
        self._lock = threading.Lock()
        self._idle: list[Any] = []
        self._open = 0
        self._in_use = 0
        self._closed = False

    @property
    def instrum(self) -> DBInstrum:
        return self._instrum

    def _acquire(self) -> Any:
        with self._lock:
            if self._closed:
                raise ValueError("database is closed")
            self._in_use += 1
            if self._idle:
                return self._idle.pop()
            self._open += 1
        try:
            with self._instrum.span("db.Connect"):
                return self._connector()
        except BaseException:
            with self._lock:
                self._open -= 1
                self._in_use -= 1
            raise

    def _release(self, conn: Any) -> None:
        with self._lock:
            self._in_use -= 1
            if not self._closed:
                self._idle.append(conn)
                return
            self._open -= 1
        conn.close()

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        conn = self._acquire()
        try:
            yield conn
        finally:
            self._release(conn)

    def _execute(self, span_name: str, query: str, args: tuple) -> Result:
        with self._connection() as conn:
            try:
                result = _exec(self._instrum, span_name, conn, query, args)
            except Exception:
                conn.rollback()
                raise
            conn.commit()
        return result

    def _query(self, span_name: str, query: str, args: tuple) -> Rows:
        conn = self._acquire()
        try:
            return _query(
                self._instrum, span_name, conn, query, args, lambda: self._release(conn)
            )
        except BaseException:
            self._release(conn)
            raise

    def ping(self) -> None:
        """Check that a connection to the database can be used."""
        with self._connection() as conn:
            with self._instrum.span("db.Ping"):
                ping = getattr(conn, "ping", None)
                if callable(ping):
                    ping()
                    return
                cursor = conn.cursor()
                try:
                    cursor.execute("SELECT 1")
                    cursor.fetchall()
                finally:
                    cursor.close()

    def execute(self, query: str, *args: Any) -> Result:
        return self._execute("db.Exec", query, args)

    def query(self, query: str, *args: Any) -> Rows:
        return self._query("db.Query", query, args)

    def query_row(self, query: str, *args: Any) -> Any:
        """Return the first row; raise NoRowsError when there is none."""
        return _first_row(self.query(query, *args))

    def prepare(self, query: str) -> Stmt:
        with self._connection() as conn:
            with self._instrum.span("db.Prepare", query):
                prepare = getattr(conn, "prepare", None)
                if callable(prepare):
                    prepare(query)
        return Stmt(self, query)

    def begin(self) -> Tx:
        parent = current_span()
        conn = self._acquire()
        try:
            with self._instrum.span("db.Begin"):
                begin = getattr(conn, "begin", None)
                if callable(begin):
                    begin()
        except BaseException:
            self._release(conn)
            raise
        return Tx(conn, parent, self._instrum, lambda: self._release(conn))

    def stats(self) -> DBStats:
        with self._lock:
            return DBStats(
                open_connections=self._open,
                in_use=self._in_use,
                idle=len(self._idle),
            )

    def close(self) -> None:
        """Close idle connections; connections in use close when released."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            idle, self._idle = self._idle, []
            self._open -= len(idle)
        for conn in idle:
            conn.close()

    def __enter__(self) -> "DB":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def open(module: Any, dsn: str, *options: Option) -> DB:
    """Open a traced database through a DB-API module's ``connect(dsn)``."""
    connect = getattr(module, "connect", None)
    if not callable(connect):
        raise TypeError(f"{module!r} has no connect function")
    return open_db(lambda: connect(dsn), *options)


def open_db(connect: Connector, *options: Option) -> DB:
    """Open a traced database whose connections come from ``connect()``."""
    instrum = DBInstrum(options)
    db = DB(connect, instrum)
    report_db_stats_metrics(db, with_meter(instrum.meter))
    return db


def version() -> str:
    return VERSION