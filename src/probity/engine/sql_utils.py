# src/probity/engine/sql_utils.py
"""
Shared SQL utilities for query-backed tables.

Escaping helpers plus the predicate → SQL translator. Every row-level
predicate becomes a single *status* expression:

    1     unit passes
    0     unit fails
    NULL  unit skipped (na_handling="skip")

Counts and extracts are then plain aggregates/filters over that column, so
the null policy is applied exactly once, before counting, the same way the
Polars backend does it.
"""

from __future__ import annotations

import datetime as _dt
from decimal import Decimal
from typing import Any, List, Literal, Optional

from probity.connectors.handle import ROW_INDEX
from probity.engine.sql_validator import transpile_expression
from probity.errors import TranslationError
from probity.rules.predicates import (
    COMPARE_OPS,
    AllOf,
    Between,
    ColumnRef,
    Compare,
    Distinct,
    Expression,
    InSet,
    NaPolicy,
    NullCheck,
    Predicate,
    Regex,
)

Dialect = Literal["duckdb", "postgres"]

STATUS = "__status"


# =============================================================================
# Identifier and Literal Escaping
# =============================================================================

def esc_ident(name: str, dialect: Dialect = "duckdb") -> str:
    """Escape a SQL identifier: "name" with " doubled (DuckDB and PostgreSQL)."""
    return '"' + name.replace('"', '""') + '"'


def esc_table(ref: str, dialect: Dialect = "duckdb") -> str:
    """Quote each part of a dotted table reference: db.schema.table."""
    return ".".join(esc_ident(part, dialect) for part in ref.split("."))


def lit_str(value: str, dialect: Dialect = "duckdb") -> str:
    """Escape a string literal for SQL. All dialects use single quotes."""
    return "'" + value.replace("'", "''") + "'"


def lit_value(value: Any, dialect: Dialect = "duckdb") -> str:
    """Convert a Python value to a SQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float, Decimal)):
        return repr(value) if isinstance(value, float) else str(value)
    if isinstance(value, str):
        return lit_str(value, dialect)
    if isinstance(value, _dt.datetime):
        return f"TIMESTAMP {lit_str(value.isoformat(sep=' '), dialect)}"
    if isinstance(value, _dt.date):
        return f"DATE {lit_str(value.isoformat(), dialect)}"
    raise TranslationError(f"Cannot express literal of type {type(value).__name__} in SQL")


def _operand(value: Any, dialect: Dialect) -> str:
    if isinstance(value, ColumnRef):
        return esc_ident(value.name, dialect)
    return lit_value(value, dialect)


def _null_test(column: str, *operands: Any, dialect: Dialect) -> str:
    parts = [f"{esc_ident(column, dialect)} IS NULL"]
    for o in operands:
        if isinstance(o, ColumnRef):
            parts.append(f"{esc_ident(o.name, dialect)} IS NULL")
    return " OR ".join(parts)


def _na_value(na: NaPolicy) -> str:
    return {NaPolicy.PASS: "1", NaPolicy.FAIL: "0", NaPolicy.SKIP: "NULL"}[na]


def _case(null_cond: Optional[str], ok_cond: str, na: NaPolicy) -> str:
    if null_cond:
        return f"CASE WHEN {null_cond} THEN {_na_value(na)} WHEN {ok_cond} THEN 1 ELSE 0 END"
    return f"CASE WHEN {ok_cond} THEN 1 ELSE 0 END"


# =============================================================================
# Predicate Translation
# =============================================================================

def status_sql(pred: Predicate, dialect: Dialect = "duckdb") -> str:
    """
    Translate a predicate into a status expression (1 / 0 / NULL).

    Raises:
        TranslationError: operator or literal the dialect cannot express
    """
    if isinstance(pred, Compare):
        if pred.op not in COMPARE_OPS:
            raise TranslationError(f"Unsupported comparison operator '{pred.op}'")
        c = esc_ident(pred.column, dialect)
        ok = f"{c} {COMPARE_OPS[pred.op]} {_operand(pred.value, dialect)}"
        return _case(_null_test(pred.column, pred.value, dialect=dialect), ok, pred.na)

    if isinstance(pred, Between):
        c = esc_ident(pred.column, dialect)
        conds: List[str] = []
        if pred.left is not None:
            conds.append(f"{c} {'>=' if pred.inclusive[0] else '>'} {_operand(pred.left, dialect)}")
        if pred.right is not None:
            conds.append(f"{c} {'<=' if pred.inclusive[1] else '<'} {_operand(pred.right, dialect)}")
        within = " AND ".join(conds) if conds else "1 = 1"
        ok = f"({within})" if pred.inside else f"NOT ({within})"
        null_cond = _null_test(pred.column, pred.left, pred.right, dialect=dialect)
        return _case(null_cond, ok, pred.na)

    if isinstance(pred, InSet):
        c = esc_ident(pred.column, dialect)
        values = pred.non_null_values
        if values:
            listed = ", ".join(lit_value(v, dialect) for v in values)
            ok = f"{c} {'NOT IN' if pred.negate else 'IN'} ({listed})"
        else:
            ok = "1 = 1" if pred.negate else "1 = 0"
        if pred.has_null:
            # NULL is an explicit member of the set
            return f"CASE WHEN {c} IS NULL THEN {'0' if pred.negate else '1'} WHEN {ok} THEN 1 ELSE 0 END"
        return _case(f"{c} IS NULL", ok, pred.na)

    if isinstance(pred, Regex):
        c = esc_ident(pred.column, dialect)
        pattern = lit_str(pred.pattern, dialect)
        if dialect == "duckdb":
            ok = f"regexp_matches(CAST({c} AS VARCHAR), {pattern})"
        elif dialect == "postgres":
            ok = f"CAST({c} AS TEXT) ~ {pattern}"
        else:
            raise TranslationError(f"Regex matching is not supported for dialect '{dialect}'")
        return _case(f"{c} IS NULL", ok, pred.na)

    if isinstance(pred, NullCheck):
        c = esc_ident(pred.column, dialect)
        return f"CASE WHEN {c} IS {'' if pred.expect_null else 'NOT '}NULL THEN 1 ELSE 0 END"

    if isinstance(pred, Distinct):
        if not pred.keys:
            raise TranslationError("rows_distinct needs at least one key column")
        keys = [esc_ident(k, dialect) for k in pred.keys]
        null_cond = " OR ".join(f"{k} IS NULL" for k in keys)
        ok = f"COUNT(*) OVER (PARTITION BY {', '.join(keys)}) = 1"
        return _case(null_cond, ok, pred.na)

    if isinstance(pred, Expression):
        try:
            expr = transpile_expression(pred.sql, dialect)
        except Exception as e:
            raise TranslationError(f"Cannot translate expression '{pred.sql}': {e}") from e
        return _case(f"({expr}) IS NULL", f"({expr})", pred.na)

    if isinstance(pred, AllOf):
        parts = [status_sql(p, dialect) for p in pred.parts]
        if not parts:
            raise TranslationError("conjointly needs at least one sub-step")
        any_null = " OR ".join(f"({p}) IS NULL" for p in parts)
        all_ok = " AND ".join(f"({p}) = 1" for p in parts)
        return f"CASE WHEN {any_null} THEN NULL WHEN {all_ok} THEN 1 ELSE 0 END"

    raise TranslationError(f"No SQL translation for predicate {type(pred).__name__}")


# =============================================================================
# Query Builders
# =============================================================================

def count_query(relation: str, status: str) -> str:
    """Single-row query: (n_units, n_pass)."""
    return (
        f"SELECT COUNT({STATUS}) AS n_units, COALESCE(SUM({STATUS}), 0) AS n_pass "
        f"FROM (SELECT {status} AS {STATUS} FROM {relation} AS _t) AS _probity_eval"
    )


def extract_query(
    relation: str,
    status: str,
    limit: int,
    row_id: Optional[str] = None,
    dialect: Dialect = "duckdb",
) -> str:
    """
    Failing rows, capped at `limit`, with a zero-based `_row_index`
    giving the position in the evaluated relation.

    Ordered by the stable row identifier when the table has one, otherwise by
    scan (evaluation) order.
    """
    order_by = esc_ident(row_id, dialect) if row_id else ROW_INDEX
    return (
        f"SELECT * FROM ("
        f"SELECT ROW_NUMBER() OVER () - 1 AS {ROW_INDEX}, _t.*, {status} AS {STATUS} "
        f"FROM {relation} AS _t"
        f") AS _probity_eval WHERE {STATUS} = 0 ORDER BY {order_by} LIMIT {int(limit)}"
    )


def filter_query(relation: str, condition: str) -> str:
    return f"SELECT * FROM {relation} AS _t WHERE {condition}"
