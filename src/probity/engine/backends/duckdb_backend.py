# src/probity/engine/backends/duckdb_backend.py
"""
DuckDB tables: caller-supplied connections and local/remote files.

Every query runs on `conn.cursor()`, which DuckDB hands out as a separate
connection to the same database, so concurrent step evaluations never share
a cursor. Extracts come back through Arrow.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

import polars as pl

from probity.engine.backends.duckdb_session import create_duckdb_connection, read_function
from probity.engine.backends.sql_backend import SqlTable
from probity.engine.sql_utils import lit_str


class DuckDBTable(SqlTable):
    source = "duckdb"
    dialect = "duckdb"

    def __init__(
        self,
        conn: Any,
        table: Optional[str] = None,
        *,
        relation: Optional[str] = None,
        row_id: Optional[str] = None,
        label: Optional[str] = None,
        owned: bool = False,
    ):
        if relation is None:
            if not table:
                raise ValueError("DuckDBTable needs a table name or a relation")
            relation = self.table_relation(table)
        super().__init__(conn, relation, label or table or relation, row_id=row_id, owned=owned)

    @classmethod
    def from_file(
        cls,
        uri: str,
        *,
        row_id: Optional[str] = None,
        label: Optional[str] = None,
    ) -> "DuckDBTable":
        """Open a parquet/CSV file (local, http(s) or s3) on a private connection."""
        conn = create_duckdb_connection(uri)
        relation = f"{read_function(uri)}({lit_str(uri)})"
        try:
            return cls(
                conn,
                relation=relation,
                row_id=row_id,
                label=label or os.path.basename(uri.rstrip("/")) or uri,
                owned=True,
            )
        except Exception:
            conn.close()
            raise

    def _introspect(self) -> Dict[str, str]:
        _, rows = self._execute(f"DESCRIBE SELECT * FROM {self.relation} AS _t")
        # DESCRIBE rows: (column_name, column_type, null, key, default, extra)
        return {str(r[0]): str(r[1]) for r in rows}

    def _derive(self, relation: str) -> "DuckDBTable":
        # derived tables share the parent's connection; only the parent closes it
        return DuckDBTable(
            self._conn,
            relation=relation,
            row_id=self.row_id,
            label=f"{self.label} (precondition)",
        )

    def _fetch_frame(self, sql: str) -> pl.DataFrame:
        return self._run(sql, lambda cur: pl.from_arrow(cur.fetch_arrow_table()))

    def _interrupt_cursor(self, cursor: Any) -> None:
        cursor.interrupt()
