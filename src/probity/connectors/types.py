# src/probity/connectors/types.py
"""
Logical type vocabulary.

Handles report native types (Polars dtype names, SQL type names). Type and
schema checks compare *logical* types so that the same expectation holds for
a Parquet file, a Polars frame and a Postgres table.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional


class LogicalType(str, Enum):
    INTEGER = "integer"
    FLOATING = "floating"
    TEXT = "text"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "LogicalType":
        """Parse a user-facing type name, accepting a few common aliases."""
        key = (value or "").strip().lower()
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            allowed = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown logical type '{value}' (expected one of: {allowed})") from None


_ALIASES = {
    "int": "integer",
    "numeric": "floating",
    "float": "floating",
    "double": "floating",
    "string": "text",
    "str": "text",
    "character": "text",
    "bool": "boolean",
    "logical": "boolean",
    "timestamp": "datetime",
    "posixct": "datetime",
}

# Native names, normalized: lower-case, parameters stripped ("decimal(18,3)" -> "decimal").
_NATIVE = {
    # integers (polars, duckdb, postgres)
    "int8": LogicalType.INTEGER, "int16": LogicalType.INTEGER,
    "int32": LogicalType.INTEGER, "int64": LogicalType.INTEGER,
    "int128": LogicalType.INTEGER,
    "uint8": LogicalType.INTEGER, "uint16": LogicalType.INTEGER,
    "uint32": LogicalType.INTEGER, "uint64": LogicalType.INTEGER,
    "tinyint": LogicalType.INTEGER, "smallint": LogicalType.INTEGER,
    "integer": LogicalType.INTEGER, "int": LogicalType.INTEGER,
    "bigint": LogicalType.INTEGER, "hugeint": LogicalType.INTEGER,
    "utinyint": LogicalType.INTEGER, "usmallint": LogicalType.INTEGER,
    "uinteger": LogicalType.INTEGER, "ubigint": LogicalType.INTEGER,
    "int2": LogicalType.INTEGER, "int4": LogicalType.INTEGER,
    "serial": LogicalType.INTEGER, "bigserial": LogicalType.INTEGER,
    # floating / decimal
    "float32": LogicalType.FLOATING, "float64": LogicalType.FLOATING,
    "float": LogicalType.FLOATING, "double": LogicalType.FLOATING,
    "real": LogicalType.FLOATING, "float4": LogicalType.FLOATING,
    "double precision": LogicalType.FLOATING, "decimal": LogicalType.FLOATING,
    "numeric": LogicalType.FLOATING,
    # text
    "string": LogicalType.TEXT, "utf8": LogicalType.TEXT,
    "categorical": LogicalType.TEXT, "enum": LogicalType.TEXT,
    "varchar": LogicalType.TEXT, "text": LogicalType.TEXT,
    "char": LogicalType.TEXT, "bpchar": LogicalType.TEXT,
    "character": LogicalType.TEXT, "character varying": LogicalType.TEXT,
    "name": LogicalType.TEXT,
    # boolean
    "boolean": LogicalType.BOOLEAN, "bool": LogicalType.BOOLEAN,
    # temporal
    "date": LogicalType.DATE,
    "datetime": LogicalType.DATETIME, "timestamp": LogicalType.DATETIME,
    "timestamptz": LogicalType.DATETIME, "timestamp_s": LogicalType.DATETIME,
    "timestamp_ms": LogicalType.DATETIME, "timestamp_ns": LogicalType.DATETIME,
    "timestamp with time zone": LogicalType.DATETIME,
    "timestamp without time zone": LogicalType.DATETIME,
}

_PARAMS = re.compile(r"\(.*\)")


def to_logical(native: str) -> Optional[LogicalType]:
    """
    Map a native type name to the logical vocabulary.

    Returns None for types outside it (lists, structs, blobs, intervals, ...);
    callers treat that as an evaluation error rather than a silent pass.
    """
    key = _PARAMS.sub("", str(native)).strip().lower()
    # "timestamp(6) with time zone" -> "timestamp with time zone"
    key = re.sub(r"\s+", " ", key)
    return _NATIVE.get(key)
