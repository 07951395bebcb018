"""Traced databases that also map result rows onto Python objects."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from .sql.driver import DB, Connector
from .sql.instrum import DBInstrum, NoRowsError, Option, report_db_stats_metrics, with_meter

T = TypeVar("T")

_SCALARS = (int, float, str, bytes, bool)


def _row_builder(cls: Any, columns: Sequence[str]) -> Callable[[Any], Any]:
    """Return a function that turns one row of these columns into a ``cls``."""
    columns = list(columns)
    if cls is dict:
        return lambda row: dict(zip(columns, row))
    if cls is tuple:
        return tuple
    if cls in _SCALARS:
        if len(columns) != 1:
            raise ValueError(
                f"scannable dest type {cls.__name__} with >1 columns "
                f"({len(columns)}) in result"
            )
        return lambda row: cls(row[0])
    if dataclasses.is_dataclass(cls) and isinstance(cls, type):
        names = {f.name.lower(): f.name for f in dataclasses.fields(cls) if f.init}
        targets = []
        for column in columns:
            name = names.get(column.lower())
            if name is None:
                raise ValueError(f"missing destination name {column} in {cls.__name__}")
            targets.append(name)
        return lambda row: cls(**dict(zip(targets, row)))
    return lambda row: cls(**dict(zip(columns, row)))


class ExtDB(DB):
    """A traced database that can load rows straight into objects."""

    def __init__(self, connector: Connector, instrum: DBInstrum, driver_name: str = "") -> None:
        super().__init__(connector, instrum)
        self.driver_name = driver_name

    def get(self, cls: Any, query: str, *args: Any) -> Any:
        """Load the first row as a ``cls``; raise NoRowsError when there is none."""
        with self.query(query, *args) as rows:
            build = _row_builder(cls, rows.columns)
            row = next(rows, None)
        if row is None:
            raise NoRowsError()
        return build(row)

    def select(self, cls: Any, query: str, *args: Any) -> list:
        """Load every row as a ``cls``."""
        with self.query(query, *args) as rows:
            build = _row_builder(cls, rows.columns)
            return [build(row) for row in rows]


def open(module: Any, dsn: str, *options: Option) -> ExtDB:
    """Open a traced database through a DB-API module's ``connect(dsn)``."""
    connect_fn = getattr(module, "connect", None)
    if not callable(connect_fn):
        raise TypeError(f"{module!r} has no connect function")
    instrum = DBInstrum(options)
    db = ExtDB(lambda: connect_fn(dsn), instrum, getattr(module, "__name__", ""))
    report_db_stats_metrics(db, with_meter(instrum.meter))
    return db


def connect(module: Any, dsn: str, *options: Option) -> ExtDB:
    """Open a database and check it with a ping; it is closed again if the ping fails."""
    db = open(module, dsn, *options)
    try:
        db.ping()
    except BaseException:
        db.close()
        raise
    return db