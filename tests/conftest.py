# tests/conftest.py
"""Shared fixtures: small Polars frames and in-process DuckDB tables with the same rows."""

from __future__ import annotations

from pathlib import Path

import duckdb
import polars as pl
import pytest


@pytest.fixture
def numbers_df() -> pl.DataFrame:
    """Five rows; x has one NULL (row 2) and one out-of-range value 12 (row 3)."""
    return pl.DataFrame(
        {
            "id": [1, 2, 3, 4, 5],
            "x": [1, 5, None, 12, 7],
            "y": ["a", "b", "c", None, "e"],
        }
    )


@pytest.fixture
def conjoint_df() -> pl.DataFrame:
    """Six rows satisfying a > 6 and b < 10; c is NULL in row 4 only."""
    return pl.DataFrame(
        {
            "a": [7, 8, 9, 10, 11, 12],
            "b": [1, 2, 3, 4, 5, 6],
            "c": ["x", "y", "z", None, "v", "w"],
        }
    )


@pytest.fixture
def hundred_df() -> pl.DataFrame:
    """100 rows, v = 0..99."""
    return pl.DataFrame({"v": list(range(100))})


@pytest.fixture
def duck():
    """In-memory DuckDB with `numbers` and `conj` tables mirroring the frames above."""
    conn = duckdb.connect()
    conn.execute("CREATE TABLE numbers (id INTEGER, x INTEGER, y VARCHAR)")
    conn.execute(
        "INSERT INTO numbers VALUES (1, 1, 'a'), (2, 5, 'b'), (3, NULL, 'c'), (4, 12, NULL), (5, 7, 'e')"
    )
    conn.execute("CREATE TABLE conj (a INTEGER, b INTEGER, c VARCHAR)")
    conn.execute(
        "INSERT INTO conj VALUES (7, 1, 'x'), (8, 2, 'y'), (9, 3, 'z'), (10, 4, NULL), (11, 5, 'v'), (12, 6, 'w')"
    )
    yield conn
    conn.close()


@pytest.fixture
def numbers_parquet(tmp_path: Path, numbers_df: pl.DataFrame) -> str:
    path = tmp_path / "numbers.parquet"
    numbers_df.write_parquet(str(path))
    return str(path)


@pytest.fixture
def numbers_csv(tmp_path: Path, numbers_df: pl.DataFrame) -> str:
    path = tmp_path / "numbers.csv"
    numbers_df.write_csv(str(path))
    return str(path)
