# src/probity/rules/predicates.py
"""
Predicates as data.

A predicate describes a per-row check declaratively: an operator, its
operand(s) and a null policy. Backends translate it (Polars expression, SQL
CASE expression); nothing here is executable.

Every row-level predicate evaluates to a *status* per row:
    True  -> the unit passes
    False -> the unit fails
    null  -> the unit is skipped (excluded from n_units)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Optional, Tuple, Union


class NaPolicy(str, Enum):
    """What a null operand does to a test unit."""

    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"

    def __str__(self) -> str:
        return self.value


COMPARE_OPS = {"gt": ">", "gte": ">=", "lt": "<", "lte": "<=", "eq": "=", "neq": "<>"}


@dataclass(frozen=True)
class ColumnRef:
    """Operand that refers to another column of the same row."""

    name: str

    def __str__(self) -> str:
        return f"col({self.name})"


Operand = Union[ColumnRef, Any]


def col(name: str) -> ColumnRef:
    """Reference a column as a comparison operand: `compare("a", "gt", col("b"))`."""
    return ColumnRef(name)


def _ref_columns(*operands: Any) -> Tuple[str, ...]:
    return tuple(o.name for o in operands if isinstance(o, ColumnRef))


@dataclass(frozen=True)
class Predicate:
    """Base class; `columns` lists every column the predicate reads."""

    na: NaPolicy = field(default=NaPolicy.FAIL, kw_only=True)

    @property
    def columns(self) -> Tuple[str, ...]:
        raise NotImplementedError


@dataclass(frozen=True)
class Compare(Predicate):
    column: str
    op: str
    value: Operand

    @property
    def columns(self) -> Tuple[str, ...]:
        return (self.column,) + _ref_columns(self.value)


@dataclass(frozen=True)
class Between(Predicate):
    column: str
    left: Optional[Operand] = None
    right: Optional[Operand] = None
    inclusive: Tuple[bool, bool] = (True, True)
    inside: bool = True

    @property
    def columns(self) -> Tuple[str, ...]:
        return (self.column,) + _ref_columns(self.left, self.right)


@dataclass(frozen=True)
class InSet(Predicate):
    column: str
    values: Tuple[Any, ...]
    negate: bool = False

    @property
    def columns(self) -> Tuple[str, ...]:
        return (self.column,)

    @property
    def non_null_values(self) -> Tuple[Any, ...]:
        return tuple(v for v in self.values if v is not None)

    @property
    def has_null(self) -> bool:
        return any(v is None for v in self.values)


@dataclass(frozen=True)
class Regex(Predicate):
    column: str
    pattern: str

    @property
    def columns(self) -> Tuple[str, ...]:
        return (self.column,)


@dataclass(frozen=True)
class NullCheck(Predicate):
    """Null check; `expect_null=False` means the column must be non-null. Ignores `na`."""

    column: str
    expect_null: bool = False

    @property
    def columns(self) -> Tuple[str, ...]:
        return (self.column,)


@dataclass(frozen=True)
class Distinct(Predicate):
    """Row fails when its key (one or more columns) occurs more than once."""

    keys: Tuple[str, ...]

    @property
    def columns(self) -> Tuple[str, ...]:
        return self.keys


@dataclass(frozen=True)
class Expression(Predicate):
    """
    Boolean SQL expression over the row, e.g. "a + b < c".

    `refs` is filled by the step factory from the parsed expression.
    """

    sql: str
    refs: FrozenSet[str] = frozenset()

    @property
    def columns(self) -> Tuple[str, ...]:
        return tuple(sorted(self.refs))


@dataclass(frozen=True)
class AllOf(Predicate):
    """Conjoint predicate: a unit passes when every part passes."""

    parts: Tuple[Predicate, ...]

    @property
    def columns(self) -> Tuple[str, ...]:
        seen: list[str] = []
        for p in self.parts:
            for c in p.columns:
                if c not in seen:
                    seen.append(c)
        return tuple(seen)


def describe(pred: Predicate) -> str:
    """Short human-readable rendering, used for auto-generated briefs."""
    if isinstance(pred, Compare):
        return f"{pred.column} {COMPARE_OPS[pred.op]} {pred.value}"
    if isinstance(pred, Between):
        lo = "[" if pred.inclusive[0] else "("
        hi = "]" if pred.inclusive[1] else ")"
        rng = f"{lo}{pred.left}, {pred.right}{hi}"
        return f"{pred.column} {'in' if pred.inside else 'not in'} {rng}"
    if isinstance(pred, InSet):
        return f"{pred.column} {'not in' if pred.negate else 'in'} {list(pred.values)}"
    if isinstance(pred, Regex):
        return f"{pred.column} matches /{pred.pattern}/"
    if isinstance(pred, NullCheck):
        return f"{pred.column} is {'null' if pred.expect_null else 'not null'}"
    if isinstance(pred, Distinct):
        return f"rows distinct on {', '.join(pred.keys)}"
    if isinstance(pred, Expression):
        return pred.sql
    if isinstance(pred, AllOf):
        return " & ".join(f"({describe(p)})" for p in pred.parts)
    return type(pred).__name__
