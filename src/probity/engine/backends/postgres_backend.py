# src/probity/engine/backends/postgres_backend.py
"""
PostgreSQL tables over a caller-supplied psycopg connection (or a postgres:// URI).

Column types are read from a zero-row SELECT: the driver reports type OIDs,
which are resolved to names through pg_type once per handle.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from probity.engine.backends.sql_backend import SqlTable


class PostgresTable(SqlTable):
    source = "postgres"
    dialect = "postgres"

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
                raise ValueError("PostgresTable needs a table name or a relation")
            relation = self.table_relation(table)
        super().__init__(conn, relation, label or table or relation, row_id=row_id, owned=owned)

    @classmethod
    def from_uri(
        cls,
        uri: str,
        *,
        row_id: Optional[str] = None,
        label: Optional[str] = None,
    ) -> "PostgresTable":
        from probity.connectors.postgres import get_connection, resolve_connection_params

        params = resolve_connection_params(uri)
        conn = get_connection(params)
        try:
            return cls(
                conn,
                params.qualified_table,
                row_id=row_id,
                label=label or params.qualified_table,
                owned=True,
            )
        except Exception:
            conn.close()
            raise

    def _on_error(self) -> None:
        # a failed statement aborts the open transaction
        try:
            self._conn.rollback()
        except Exception:
            pass

    def _introspect(self) -> Dict[str, str]:
        description = self._run(
            f"SELECT * FROM {self.relation} AS _t LIMIT 0",
            lambda cur: list(cur.description or []),
        )
        oids = sorted({int(d[1]) for d in description})
        names: Dict[int, str] = {}
        if oids:
            _, rows = self._execute(
                "SELECT oid, format_type(oid, NULL) FROM pg_type WHERE oid = ANY(%s)",
                (oids,),
            )
            names = {int(oid): str(name) for oid, name in rows}
        return {str(d[0]): names.get(int(d[1]), str(d[1])) for d in description}

    def _derive(self, relation: str) -> "PostgresTable":
        return PostgresTable(
            self._conn,
            relation=relation,
            row_id=self.row_id,
            label=f"{self.label} (precondition)",
        )

    def interrupt(self) -> None:
        # cancellation is per connection in libpq
        with self._active_lock:
            busy = bool(self._active)
        if busy:
            try:
                self._conn.cancel()
            except Exception:
                pass
