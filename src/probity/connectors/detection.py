# src/probity/connectors/detection.py
"""
Identify the SQL dialect behind a caller-supplied connection object.

Detection is by module name so that optional drivers are never imported here.
"""

from __future__ import annotations

from typing import Any, Optional


def detect_connection_dialect(conn: Any) -> Optional[str]:
    """Return "duckdb" | "postgres" for known connection types, else None."""
    module = type(conn).__module__ or ""
    name = type(conn).__name__

    if module.startswith("duckdb") or name == "DuckDBPyConnection":
        return "duckdb"
    if module.startswith(("psycopg", "psycopg2")) and hasattr(conn, "cursor"):
        return "postgres"
    return None


def is_database_connection(obj: Any) -> bool:
    return detect_connection_dialect(obj) is not None
