# src/probity/connectors/handle.py
"""
TableHandle — one interface over in-memory and query-backed tables.

What a handle guarantees
------------------------
  - `schema`:       ordered {column: native type}, resolved ONCE at construction.
                    Failure raises SchemaUnavailable right there.
  - `row_count()`:  lazy, memoized per handle instance.
  - `evaluate()`:   run a declarative Predicate and return counts plus a small
                    sample of failing rows (the extract).
  - `apply()`:      derive a new handle for a precondition; the original handle
                    is never touched.

Handles are read-only and safe to share between the threads of one
interrogation.

Concrete handles live with their engines:
  - PolarsTable   (engine/backends/polars_backend.py)
  - DuckDBTable   (engine/backends/duckdb_backend.py)
  - PostgresTable (engine/backends/postgres_backend.py)

`resolve_table()` picks the right one for whatever the caller passed in.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from probity.connectors.types import LogicalType, to_logical
from probity.errors import InvalidDataError, SchemaUnavailable

if TYPE_CHECKING:
    import polars as pl

    from probity.rules.predicates import Predicate

# str: portable SQL filter; callable: native relation -> native relation
Precondition = Union[str, Callable[[Any], Any]]

ROW_INDEX = "_row_index"


@dataclass(frozen=True)
class PredicateOutcome:
    """Counts for one predicate over one handle. `n_units` excludes skipped units."""

    n_units: int
    n_pass: int
    extract: Optional["pl.DataFrame"] = None

    @property
    def n_fail(self) -> int:
        return self.n_units - self.n_pass


class TableHandle(ABC):
    # Human-readable engine identifier ("polars", "duckdb", "postgres")
    source: str = "unknown"

    def __init__(self, label: str, row_id: Optional[str] = None):
        self.label = label
        self._row_count: Optional[int] = None
        self._count_lock = threading.Lock()
        try:
            schema = self._introspect()
        except SchemaUnavailable:
            raise
        except Exception as e:
            raise SchemaUnavailable(label, f"{type(e).__name__}: {e}") from e
        self._schema: Mapping[str, str] = MappingProxyType(dict(schema))
        # a row_id the (derived) table no longer carries is silently dropped
        self.row_id = row_id if row_id in self._schema else None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.label!r}, {len(self._schema)} columns)"

    # ------------------------------ Schema ------------------------------------

    @property
    def schema(self) -> Mapping[str, str]:
        return self._schema

    def resolve_schema(self) -> Dict[str, str]:
        """Ordered {column: native type} copy of the schema resolved at construction."""
        return dict(self._schema)

    @property
    def columns(self) -> List[str]:
        return list(self._schema)

    def missing_columns(self, columns: Iterable[str]) -> List[str]:
        return [c for c in columns if c not in self._schema]

    def logical_type(self, column: str) -> Optional[LogicalType]:
        return to_logical(self._schema[column])

    # ------------------------------ Counting ----------------------------------

    def row_count(self) -> int:
        """Row count, computed on first call and cached for this handle."""
        if self._row_count is None:
            with self._count_lock:
                if self._row_count is None:
                    self._row_count = int(self._count_rows())
        return self._row_count

    # ------------------------------ Engine hooks ------------------------------

    @abstractmethod
    def _introspect(self) -> Dict[str, str]:
        ...

    @abstractmethod
    def _count_rows(self) -> int:
        ...

    @abstractmethod
    def evaluate(self, predicate: "Predicate", extract_limit: int = 5) -> PredicateOutcome:
        """
        Evaluate a row-level predicate.

        Raises on backend failure or TranslationError; the interrogator turns
        that into an eval_error on the step.
        """
        ...

    @abstractmethod
    def apply(self, precondition: Precondition) -> "TableHandle":
        """Return a derived handle with the precondition applied."""
        ...

    def interrupt(self) -> None:
        """Best-effort cancellation of in-flight queries (used on step timeout)."""
        return None

    def close(self) -> None:
        return None


# ------------------------------ Resolution -----------------------------------


def _is_pandas_dataframe(obj: Any) -> bool:
    return type(obj).__module__.startswith("pandas") and type(obj).__name__ == "DataFrame"


def resolve_table(
    source: Any,
    *,
    table: Optional[str] = None,
    row_id: Optional[str] = None,
    label: Optional[str] = None,
) -> TableHandle:
    """
    Wrap whatever the caller passed in a TableHandle.

    Accepts:
      - TableHandle                     -> returned unchanged
      - polars DataFrame / LazyFrame    -> PolarsTable
      - pandas DataFrame                -> PolarsTable (via pl.from_pandas)
      - list[dict] / dict               -> PolarsTable
      - str path/URI (.parquet, .csv)   -> DuckDBTable over the file
      - str postgres:// URI             -> PostgresTable
      - DuckDB or PostgreSQL connection + `table` -> DuckDBTable / PostgresTable

    Raises:
      InvalidDataError:  unsupported source object
      SchemaUnavailable: the source exists but cannot be introspected
    """
    import polars as pl

    from probity.connectors.detection import detect_connection_dialect

    if isinstance(source, TableHandle):
        return source

    if source is None:
        raise InvalidDataError("NoneType", detail="A table is required")

    if isinstance(source, (pl.DataFrame, pl.LazyFrame)):
        from probity.engine.backends.polars_backend import PolarsTable

        return PolarsTable(source, label=label or "dataframe", row_id=row_id)

    if _is_pandas_dataframe(source):
        from probity.engine.backends.polars_backend import PolarsTable

        return PolarsTable(pl.from_pandas(source), label=label or "dataframe", row_id=row_id)

    if isinstance(source, dict):
        source = [source]
    if isinstance(source, list):
        from probity.engine.backends.polars_backend import PolarsTable

        if source and not all(isinstance(r, dict) for r in source):
            raise InvalidDataError("list", detail="Expected a list of row dicts")
        return PolarsTable(pl.DataFrame(source), label=label or "records", row_id=row_id)

    if isinstance(source, str):
        from probity.connectors.postgres import is_postgres_uri

        if is_postgres_uri(source):
            from probity.engine.backends.postgres_backend import PostgresTable

            return PostgresTable.from_uri(source, row_id=row_id, label=label)

        from probity.engine.backends.duckdb_backend import DuckDBTable

        return DuckDBTable.from_file(source, row_id=row_id, label=label)

    dialect = detect_connection_dialect(source)
    if dialect is not None:
        if not table:
            raise InvalidDataError(type(source).__name__, detail="A `table` is required with a connection")
        if dialect == "duckdb":
            from probity.engine.backends.duckdb_backend import DuckDBTable

            return DuckDBTable(source, table, row_id=row_id, label=label)
        from probity.engine.backends.postgres_backend import PostgresTable

        return PostgresTable(source, table, row_id=row_id, label=label)

    raise InvalidDataError(type(source).__name__)
