# src/probity/engine/backends/sql_backend.py
"""
Base class for query-backed tables (DuckDB, PostgreSQL).

Each predicate is pushed down as two small queries:
  1) a single-row aggregate returning (n_units, n_pass)
  2) a bounded sample of failing rows for the extract (only when failures exist)

Nothing is materialized beyond those rows. Subclasses provide connection
handling and schema introspection for their dialect.
"""

from __future__ import annotations

import threading
from abc import abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import polars as pl

from probity.connectors.handle import Precondition, PredicateOutcome, TableHandle
from probity.engine.sql_utils import (
    STATUS,
    Dialect,
    count_query,
    esc_table,
    extract_query,
    filter_query,
    status_sql,
)
from probity.engine.sql_validator import parse_boolean_expression, transpile_expression, validate_select
from probity.rules.predicates import Predicate


def _rows(cur: Any) -> Tuple[List[str], List[tuple]]:
    rows = cur.fetchall()
    cols = [d[0] for d in cur.description] if cur.description else []
    return cols, rows


class SqlTable(TableHandle):
    """
    A relation inside a SQL engine.

    `relation` is anything that can follow FROM and take an alias: a quoted
    table reference, a table function call (read_parquet(...)) or a
    parenthesized SELECT for derived (precondition) tables.
    """

    dialect: Dialect

    def __init__(
        self,
        conn: Any,
        relation: str,
        label: str,
        row_id: Optional[str] = None,
        owned: bool = False,
    ):
        self._conn = conn
        self.relation = relation
        self.owned = owned
        self._active: set = set()
        self._active_lock = threading.Lock()
        super().__init__(label, row_id)

    @staticmethod
    def table_relation(table: str) -> str:
        return esc_table(table)

    # --------------------------- Connection helpers ---------------------------

    def _cursor(self) -> Any:
        return self._conn.cursor()

    def _on_error(self) -> None:
        """Hook for dialects that must reset connection state after a failed query."""
        return None

    def _run(self, sql: str, read: Callable[[Any], Any], params: Optional[Sequence[Any]] = None) -> Any:
        """Run one query on a private cursor and hand the cursor to `read`."""
        cur = self._cursor()
        with self._active_lock:
            self._active.add(cur)
        try:
            if params is None:
                cur.execute(sql)
            else:
                cur.execute(sql, params)
            return read(cur)
        except Exception:
            self._on_error()
            raise
        finally:
            with self._active_lock:
                self._active.discard(cur)
            try:
                cur.close()
            except Exception:
                pass

    def _execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> Tuple[List[str], List[tuple]]:
        """Run one query; return (column names, rows)."""
        return self._run(sql, _rows, params)

    def _fetch_frame(self, sql: str) -> pl.DataFrame:
        cols, rows = self._execute(sql)
        if rows:
            return pl.DataFrame(rows, schema=cols, orient="row")
        return pl.DataFrame(schema={name: pl.Utf8 for name in cols})

    def _interrupt_cursor(self, cursor: Any) -> None:
        return None

    def interrupt(self) -> None:
        with self._active_lock:
            active = list(self._active)
        for cur in active:
            try:
                self._interrupt_cursor(cur)
            except Exception:
                pass

    def close(self) -> None:
        if self.owned:
            self._conn.close()

    # ------------------------------ Engine hooks ------------------------------

    @abstractmethod
    def _introspect(self) -> Dict[str, str]:
        ...

    @abstractmethod
    def _derive(self, relation: str) -> "SqlTable":
        ...

    def _count_rows(self) -> int:
        _, rows = self._execute(f"SELECT COUNT(*) FROM {self.relation} AS _t")
        return int(rows[0][0]) if rows else 0

    def evaluate(self, predicate: Predicate, extract_limit: int = 5) -> PredicateOutcome:
        status = status_sql(predicate, self.dialect)

        _, rows = self._execute(count_query(self.relation, status))
        n_units, n_pass = rows[0] if rows else (0, 0)
        n_units, n_pass = int(n_units or 0), int(n_pass or 0)

        extract = None
        if extract_limit > 0 and n_pass < n_units:
            sample = self._fetch_frame(
                extract_query(self.relation, status, extract_limit, row_id=self.row_id, dialect=self.dialect)
            )
            extract = sample.drop(STATUS) if STATUS in sample.columns else sample

        return PredicateOutcome(n_units=n_units, n_pass=n_pass, extract=extract)

    def apply(self, precondition: Precondition) -> "SqlTable":
        if isinstance(precondition, str):
            parsed = parse_boolean_expression(precondition)
            condition = transpile_expression(parsed.sql, self.dialect)
            sql = filter_query(self.relation, condition)
        elif callable(precondition):
            sql = precondition(self.relation)
            if not isinstance(sql, str):
                raise TypeError(
                    f"Precondition on a SQL table must return a SELECT string, got {type(sql).__name__}"
                )
            check = validate_select(sql, self.dialect)
            if not check.is_safe:
                raise ValueError(f"Precondition SQL rejected: {check.reason}")
            sql = sql.strip().rstrip(";")
        else:
            raise TypeError(f"Unsupported precondition type {type(precondition).__name__}")
        return self._derive(f"({sql})")
