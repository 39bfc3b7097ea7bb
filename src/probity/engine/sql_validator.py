# src/probity/engine/sql_validator.py
"""
SQL text checks using sqlglot.

User-supplied SQL reaches a validated table in two places:
  - boolean expressions (`col_vals_expr` steps, string preconditions)
  - SELECT statements returned by callable preconditions on SQL tables

Both are parsed and rejected unless they are read-only. Expressions are
written in DuckDB syntax and transpiled for other dialects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Optional, Set

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError

# Statement types that are NOT allowed anywhere in the tree
FORBIDDEN_STATEMENT_TYPES: Set[type] = {
    exp.Insert,
    exp.Update,
    exp.Delete,
    exp.Drop,
    exp.Create,
    exp.Alter,
    exp.Merge,
    exp.Grant,
    exp.Command,
}

# Function names that could have side effects (case-insensitive)
FORBIDDEN_FUNCTIONS: Set[str] = {
    "pg_sleep",
    "pg_terminate_backend",
    "pg_cancel_backend",
    "pg_reload_conf",
    "set_config",
    "dblink",
    "dblink_exec",
    "lo_import",
    "lo_export",
    "pg_read_file",
    "pg_ls_dir",
    "exec",
    "execute",
    "call",
    "sleep",
}

_DIALECTS = {"postgres": "postgres", "postgresql": "postgres", "duckdb": "duckdb"}

# Expressions are authored in this dialect
EXPRESSION_DIALECT = "duckdb"


@dataclass(frozen=True)
class ParsedExpression:
    sql: str
    columns: FrozenSet[str]


@dataclass
class ValidationResult:
    """Result of SQL statement validation."""

    is_safe: bool
    reason: Optional[str] = None
    parsed_sql: Optional[str] = None


def _forbidden_in(tree: exp.Expression) -> Optional[str]:
    for node in tree.walk():
        if type(node) in FORBIDDEN_STATEMENT_TYPES:
            return f"Forbidden operation: {type(node).__name__}"
        if isinstance(node, (exp.Func, exp.Anonymous)):
            name = (node.name or "").lower()
            if name in FORBIDDEN_FUNCTIONS:
                return f"Forbidden function: {name}"
    return None


def parse_boolean_expression(sql: str) -> ParsedExpression:
    """
    Parse a row-level boolean expression such as "a + b < c OR d IS NULL".

    Raises:
        ValueError: empty, unparsable, a statement, a subquery, or unsafe.
    """
    text = (sql or "").strip()
    if not text:
        raise ValueError("Empty expression")

    try:
        trees = sqlglot.parse(text, read=EXPRESSION_DIALECT)
    except ParseError as e:
        raise ValueError(f"Expression parse error: {e}") from None

    if len(trees) != 1 or trees[0] is None:
        raise ValueError("Expected exactly one expression")
    tree = trees[0]

    if isinstance(tree, (exp.Select, exp.Union, exp.With)) or tree.find(exp.Select, exp.Subquery):
        raise ValueError("Expressions may not contain queries")
    reason = _forbidden_in(tree)
    if reason:
        raise ValueError(reason)
    if tree.find(exp.Star):
        raise ValueError("Expressions may not use '*'")

    columns = frozenset(c.name for c in tree.find_all(exp.Column) if c.name)
    return ParsedExpression(sql=tree.sql(dialect=EXPRESSION_DIALECT), columns=columns)


def transpile_expression(sql: str, dialect: str) -> str:
    """Rewrite an expression for the target dialect."""
    dst = _DIALECTS.get(dialect.lower(), dialect)
    if dst == EXPRESSION_DIALECT:
        return sql
    out = sqlglot.transpile(sql, read=EXPRESSION_DIALECT, write=dst)
    if not out:
        raise ValueError("Transpilation returned empty result")
    return out[0]


def validate_select(sql: str, dialect: str = "duckdb") -> ValidationResult:
    """
    Check that `sql` is a single read-only SELECT (CTEs allowed).
    """
    sql = (sql or "").strip().rstrip(";")
    if not sql:
        return ValidationResult(is_safe=False, reason="Empty SQL statement")

    src = _DIALECTS.get(dialect.lower(), "duckdb")
    try:
        statements = sqlglot.parse(sql, read=src)
    except ParseError as e:
        return ValidationResult(is_safe=False, reason=f"SQL parse error: {e}")

    if len(statements) != 1 or statements[0] is None:
        return ValidationResult(
            is_safe=False,
            reason=f"Expected 1 statement, found {len(statements)}. Multiple statements not allowed.",
        )
    stmt = statements[0]

    if not isinstance(stmt, (exp.Select, exp.Union, exp.With)):
        return ValidationResult(
            is_safe=False, reason=f"Only SELECT statements allowed, found: {type(stmt).__name__}"
        )

    reason = _forbidden_in(stmt)
    if reason:
        return ValidationResult(is_safe=False, reason=reason)

    return ValidationResult(is_safe=True, parsed_sql=sql)
