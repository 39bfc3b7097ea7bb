# src/probity/api/steps.py
"""
Step helper functions for inline step definitions.

Usage:
    import probity
    from probity import steps

    agent = probity.create_agent(df).add_steps([
        steps.col_vals_gt(["a", "b"], 6),
        steps.col_vals_between("score", left=0, right=100, na_handling="skip"),
        steps.rows_distinct(["order_id"]),
        steps.conjointly(
            steps.col_vals_gt("a", 6),
            steps.col_vals_not_null("c"),
        ),
    ])

Every helper only builds a step dict; validation happens in Agent.add_step.
Common keyword arguments:
    na_handling: "pass" | "fail" | "skip"
    precondition: SQL filter string or callable
    actions: ActionLevels (or its dict form) overriding the agent default
    brief / label: free-text description and short label
    active: False keeps the step (and its id) but skips evaluation
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

Columns = Union[str, Sequence[str]]


def _build_step(
    kind: str,
    columns: Optional[Columns],
    params: Dict[str, Any],
    na_handling: Optional[str] = None,
    precondition: Any = None,
    actions: Any = None,
    brief: Optional[str] = None,
    label: Optional[str] = None,
    active: bool = True,
) -> Dict[str, Any]:
    """Build a step dict, leaving out unset options."""
    step: Dict[str, Any] = {"kind": kind}
    if columns is not None:
        step["columns"] = [columns] if isinstance(columns, str) else list(columns)
    if params:
        step["params"] = params
    if na_handling is not None:
        step["na_handling"] = na_handling
    if precondition is not None:
        step["precondition"] = precondition
    if actions is not None:
        step["actions"] = actions
    if brief is not None:
        step["brief"] = brief
    if label is not None:
        step["label"] = label
    if not active:
        step["active"] = False
    return step


# ----- Structure -----


def col_exists(columns: Columns, **options: Any) -> Dict[str, Any]:
    """Each column must exist (one test unit per column)."""
    return _build_step("col_exists", columns, {}, **options)


def col_is_type(columns: Columns, type: str, **options: Any) -> Dict[str, Any]:
    """
    Each column must have the given logical type.

    Args:
        type: "integer" | "floating" | "text" | "boolean" | "date" | "datetime"
    """
    return _build_step("col_is_type", columns, {"type": type}, **options)


def col_schema_match(
    schema: Union[Mapping[str, str], Sequence[Tuple[str, str]]],
    in_order: bool = True,
    per_column: bool = False,
    **options: Any,
) -> Dict[str, Any]:
    """
    The table's schema must match `schema` ({column: logical type}).

    Args:
        in_order: column order must match too
        per_column: one test unit per expected column instead of one for the table
    """
    return _build_step(
        "col_schema_match",
        None,
        {"schema": dict(schema), "in_order": in_order, "per_column": per_column},
        **options,
    )


def row_count_match(
    count: Any = None,
    min: Optional[int] = None,
    max: Optional[int] = None,
    **options: Any,
) -> Dict[str, Any]:
    """Row count equals `count` (an int, or another table's row count), or lies in [min, max]."""
    params: Dict[str, Any] = {"count": count} if count is not None else {"min": min, "max": max}
    return _build_step("row_count_match", None, params, **options)


def col_count_match(
    count: Any = None,
    min: Optional[int] = None,
    max: Optional[int] = None,
    **options: Any,
) -> Dict[str, Any]:
    """Column count equals `count` (an int, or another table's column count), or lies in [min, max]."""
    params: Dict[str, Any] = {"count": count} if count is not None else {"min": min, "max": max}
    return _build_step("col_count_match", None, params, **options)


# ----- Row-level values -----


def col_vals_compare(columns: Columns, op: str, value: Any, **options: Any) -> Dict[str, Any]:
    """
    Compare each value against a literal or another column.

    Args:
        op: "gt" | "gte" | "lt" | "lte" | "eq" | "neq" (or >, >=, <, <=, ==, !=)
        value: literal, or probity.col("other") / {"column": "other"}
    """
    return _build_step("col_vals_compare", columns, {"op": op, "value": value}, **options)


def col_vals_gt(columns: Columns, value: Any, **options: Any) -> Dict[str, Any]:
    return col_vals_compare(columns, "gt", value, **options)


def col_vals_gte(columns: Columns, value: Any, **options: Any) -> Dict[str, Any]:
    return col_vals_compare(columns, "gte", value, **options)


def col_vals_lt(columns: Columns, value: Any, **options: Any) -> Dict[str, Any]:
    return col_vals_compare(columns, "lt", value, **options)


def col_vals_lte(columns: Columns, value: Any, **options: Any) -> Dict[str, Any]:
    return col_vals_compare(columns, "lte", value, **options)


def col_vals_eq(columns: Columns, value: Any, **options: Any) -> Dict[str, Any]:
    return col_vals_compare(columns, "eq", value, **options)


def col_vals_ne(columns: Columns, value: Any, **options: Any) -> Dict[str, Any]:
    return col_vals_compare(columns, "neq", value, **options)


def col_vals_between(
    columns: Columns,
    left: Any = None,
    right: Any = None,
    inclusive: Union[bool, Tuple[bool, bool]] = True,
    **options: Any,
) -> Dict[str, Any]:
    """
    Values must lie within [left, right]; either bound may be omitted.

    Args:
        inclusive: bool for both ends, or (left_inclusive, right_inclusive)
    """
    params = {"left": left, "right": right, "inclusive": _pair(inclusive), "inside": True}
    return _build_step("col_vals_between", columns, params, **options)


def col_vals_outside(
    columns: Columns,
    left: Any = None,
    right: Any = None,
    inclusive: Union[bool, Tuple[bool, bool]] = True,
    **options: Any,
) -> Dict[str, Any]:
    """Values must lie outside the range (the negation of col_vals_between)."""
    params = {"left": left, "right": right, "inclusive": _pair(inclusive), "inside": False}
    return _build_step("col_vals_between", columns, params, **options)


def _pair(inclusive: Union[bool, Tuple[bool, bool]]) -> List[bool]:
    if isinstance(inclusive, bool):
        return [inclusive, inclusive]
    return list(inclusive)


def col_vals_in_set(columns: Columns, values: Sequence[Any], **options: Any) -> Dict[str, Any]:
    """Values must be members of `values` (None in the set makes NULL a member)."""
    return _build_step("col_vals_in_set", columns, {"values": list(values), "negate": False}, **options)


def col_vals_not_in_set(columns: Columns, values: Sequence[Any], **options: Any) -> Dict[str, Any]:
    return _build_step("col_vals_in_set", columns, {"values": list(values), "negate": True}, **options)


def col_vals_regex(columns: Columns, pattern: str, **options: Any) -> Dict[str, Any]:
    """Values (cast to text) must contain a match for `pattern`."""
    return _build_step("col_vals_regex", columns, {"pattern": pattern}, **options)


def col_vals_null(columns: Columns, **options: Any) -> Dict[str, Any]:
    """Every value must be NULL."""
    return _build_step("col_vals_null", columns, {"expect": "null"}, **options)


def col_vals_not_null(columns: Columns, **options: Any) -> Dict[str, Any]:
    """No value may be NULL."""
    return _build_step("col_vals_null", columns, {"expect": "not_null"}, **options)


def col_vals_expr(expr: str, **options: Any) -> Dict[str, Any]:
    """
    Rows must satisfy a SQL boolean expression, e.g. "a + b < c".

    A NULL result is handled by `na_handling`.
    """
    return _build_step("col_vals_expr", None, {"expr": expr}, **options)


def rows_distinct(columns: Optional[Columns] = None, **options: Any) -> Dict[str, Any]:
    """No two rows may share the key formed by `columns` (all columns when omitted)."""
    return _build_step("rows_distinct", columns, {}, **options)


def conjointly(*steps: Dict[str, Any], **options: Any) -> Dict[str, Any]:
    """
    Each row must pass every sub-step.

    Sub-steps are row-level helpers (col_vals_*) without preconditions; a row
    any sub-step skips is excluded.
    """
    return _build_step("conjointly", None, {"steps": list(steps)}, **options)
