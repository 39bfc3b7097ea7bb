# src/probity/engine/backends/duckdb_session.py
from __future__ import annotations

import os
from typing import Any
from urllib.parse import urlparse

import duckdb

# --- Public API ---


def create_duckdb_connection(uri: str) -> duckdb.DuckDBPyConnection:
    """
    Create an in-process DuckDB connection able to read `uri`.

    Local paths need no setup; http(s):// loads httpfs; s3:// loads httpfs and
    takes credentials from the standard AWS_* environment variables.
    """
    con = duckdb.connect()
    _configure_threads(con)

    match urlparse(uri).scheme:
        case "s3":
            _configure_s3(con)
        case "http" | "https":
            _configure_http(con)
        case _:
            pass

    return con


def read_function(uri: str) -> str:
    """Pick the DuckDB table function for a file by extension (parquet by default)."""
    path = urlparse(uri).path.lower() if "://" in uri else uri.lower()
    if path.endswith((".csv", ".csv.gz", ".tsv", ".txt")):
        return "read_csv_auto"
    return "read_parquet"


# --- Internal Helpers ---


def _safe_set(con: duckdb.DuckDBPyConnection, key: str, value: Any) -> None:
    """
    Safely execute a DuckDB SET command, ignoring errors.
    """
    try:
        con.execute(f"SET {key} = ?", [str(value)])
    except Exception:
        # setting unknown to this DuckDB version
        pass


def _configure_threads(con: duckdb.DuckDBPyConnection) -> None:
    env_threads = os.getenv("DUCKDB_THREADS")
    if not env_threads:
        return
    try:
        con.execute(f"SET threads = {int(env_threads)};")
    except (ValueError, duckdb.Error):
        pass


def _configure_http(con: duckdb.DuckDBPyConnection) -> None:
    con.execute("INSTALL httpfs;")
    con.execute("LOAD httpfs;")
    _safe_set(con, "enable_object_cache", "true")


def _configure_s3(con: duckdb.DuckDBPyConnection) -> None:
    """
    Configure httpfs for S3-compatible storage (AWS, MinIO, R2).

    Reads AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_SESSION_TOKEN,
    AWS_REGION and AWS_ENDPOINT_URL.
    """
    _configure_http(con)

    if ak := os.getenv("AWS_ACCESS_KEY_ID"):
        _safe_set(con, "s3_access_key_id", ak)
    if sk := os.getenv("AWS_SECRET_ACCESS_KEY"):
        _safe_set(con, "s3_secret_access_key", sk)
    if st := os.getenv("AWS_SESSION_TOKEN"):
        _safe_set(con, "s3_session_token", st)
    if region := os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION"):
        _safe_set(con, "s3_region", region)

    if endpoint := os.getenv("AWS_ENDPOINT_URL"):
        parsed = urlparse(endpoint)
        _safe_set(con, "s3_endpoint", parsed.netloc or parsed.path or endpoint)
        _safe_set(con, "s3_use_ssl", "true" if parsed.scheme == "https" else "false")
        # path-style for custom endpoints (MinIO)
        _safe_set(con, "s3_url_style", "path")
