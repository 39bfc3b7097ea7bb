# src/probity/rules/steps.py
"""
Validation steps: immutable descriptions of one assertion each.

Steps are built (and validated) by `StepFactory`; the interrogator only
reads them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Optional, Tuple

from probity.rules.predicates import NaPolicy, Predicate

if TYPE_CHECKING:
    from probity.actions.levels import ActionLevels
    from probity.connectors.handle import Precondition


class StepKind(str, Enum):
    COL_EXISTS = "col_exists"
    COL_IS_TYPE = "col_is_type"
    COL_VALS_COMPARE = "col_vals_compare"
    COL_VALS_IN_SET = "col_vals_in_set"
    COL_VALS_REGEX = "col_vals_regex"
    COL_VALS_BETWEEN = "col_vals_between"
    COL_VALS_NULL = "col_vals_null"
    ROWS_DISTINCT = "rows_distinct"
    COL_SCHEMA_MATCH = "col_schema_match"
    CONJOINTLY = "conjointly"
    COL_VALS_EXPR = "col_vals_expr"
    ROW_COUNT_MATCH = "row_count_match"
    COL_COUNT_MATCH = "col_count_match"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> "StepKind":
        """Accept the enum, its value, or a descriptive alias ("range", "uniqueness", ...)."""
        if isinstance(value, StepKind):
            return value
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            pass
        if key in _ALIASES:
            return _ALIASES[key]
        raise ValueError(f"Unknown step kind '{value}'")

    @property
    def per_column(self) -> bool:
        """Kinds that expand a multi-column selector into one step per column."""
        return self in PER_COLUMN_KINDS

    @property
    def row_level(self) -> bool:
        """Kinds whose test unit is a row and that compile to a single predicate."""
        return self in ROW_LEVEL_KINDS


_ALIASES = {
    "existence": StepKind.COL_EXISTS,
    "exists": StepKind.COL_EXISTS,
    "type": StepKind.COL_IS_TYPE,
    "comparison": StepKind.COL_VALS_COMPARE,
    "compare": StepKind.COL_VALS_COMPARE,
    "set_membership": StepKind.COL_VALS_IN_SET,
    "in_set": StepKind.COL_VALS_IN_SET,
    "pattern_match": StepKind.COL_VALS_REGEX,
    "regex": StepKind.COL_VALS_REGEX,
    "range": StepKind.COL_VALS_BETWEEN,
    "between": StepKind.COL_VALS_BETWEEN,
    "null_check": StepKind.COL_VALS_NULL,
    "null": StepKind.COL_VALS_NULL,
    "uniqueness": StepKind.ROWS_DISTINCT,
    "distinct": StepKind.ROWS_DISTINCT,
    "schema_match": StepKind.COL_SCHEMA_MATCH,
    "schema": StepKind.COL_SCHEMA_MATCH,
    "conjoint": StepKind.CONJOINTLY,
    "custom_expression": StepKind.COL_VALS_EXPR,
    "expression": StepKind.COL_VALS_EXPR,
    "expr": StepKind.COL_VALS_EXPR,
    "row_count": StepKind.ROW_COUNT_MATCH,
    "column_count": StepKind.COL_COUNT_MATCH,
    "col_count": StepKind.COL_COUNT_MATCH,
}

PER_COLUMN_KINDS = frozenset(
    {
        StepKind.COL_EXISTS,
        StepKind.COL_IS_TYPE,
        StepKind.COL_VALS_COMPARE,
        StepKind.COL_VALS_IN_SET,
        StepKind.COL_VALS_REGEX,
        StepKind.COL_VALS_BETWEEN,
        StepKind.COL_VALS_NULL,
    }
)

ROW_LEVEL_KINDS = frozenset(
    {
        StepKind.COL_VALS_COMPARE,
        StepKind.COL_VALS_IN_SET,
        StepKind.COL_VALS_REGEX,
        StepKind.COL_VALS_BETWEEN,
        StepKind.COL_VALS_NULL,
        StepKind.COL_VALS_EXPR,
        StepKind.ROWS_DISTINCT,
        StepKind.CONJOINTLY,
    }
)

# Kinds allowed inside a conjoint step
CONJOINT_KINDS = frozenset(
    {
        StepKind.COL_VALS_COMPARE,
        StepKind.COL_VALS_IN_SET,
        StepKind.COL_VALS_REGEX,
        StepKind.COL_VALS_BETWEEN,
        StepKind.COL_VALS_NULL,
        StepKind.COL_VALS_EXPR,
    }
)


@dataclass(frozen=True)
class ValidationStep:
    """
    One assertion, as appended to an Agent.

    `params` holds the normalized, serializable parameters (what a YAML plan
    would contain). `predicate` is the compiled form for row-level kinds and
    None otherwise.
    """

    id: int
    kind: StepKind
    columns: Tuple[str, ...]
    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    predicate: Optional[Predicate] = None
    precondition: Optional["Precondition"] = None
    na_handling: NaPolicy = NaPolicy.FAIL
    actions: Optional["ActionLevels"] = None
    active: bool = True
    brief: str = ""
    label: Optional[str] = None

    def __repr__(self) -> str:
        cols = ", ".join(self.columns)
        flag = "" if self.active else ", inactive"
        return f"ValidationStep({self.id}, {self.kind.value}[{cols}]{flag})"
