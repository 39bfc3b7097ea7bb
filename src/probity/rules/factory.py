# src/probity/rules/factory.py
"""
StepFactory: turns step specs (dicts, StepSpec models) into ValidationSteps.

All validation of a step happens here, at append time, so that a malformed
step raises InvalidStepSpec from `Agent.add_step` and never reaches the
interrogator.
"""

from __future__ import annotations

import datetime as _dt
import re
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from probity.actions.levels import ActionLevels
from probity.config.models import ActionLevelsSpec, StepSpec
from probity.connectors.handle import TableHandle, resolve_table
from probity.connectors.types import LogicalType
from probity.engine.sql_validator import parse_boolean_expression
from probity.errors import InvalidStepSpec, ProbityError
from probity.rules.predicates import (
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
    describe,
)
from probity.rules.steps import CONJOINT_KINDS, StepKind, ValidationStep

_OPS = {
    "gt": "gt", ">": "gt", "greater_than": "gt",
    "gte": "gte", ">=": "gte", "ge": "gte",
    "lt": "lt", "<": "lt", "less_than": "lt",
    "lte": "lte", "<=": "lte", "le": "lte",
    "eq": "eq", "==": "eq", "=": "eq", "equal": "eq",
    "neq": "neq", "!=": "neq", "<>": "neq", "ne": "neq",
}

_SCALARS = (int, float, Decimal, str, bool, _dt.date, _dt.datetime)

_TABLE_KINDS = (StepKind.COL_SCHEMA_MATCH, StepKind.ROW_COUNT_MATCH, StepKind.COL_COUNT_MATCH)


def default_na(kind: StepKind) -> NaPolicy:
    # NULL keys are never duplicates
    return NaPolicy.PASS if kind is StepKind.ROWS_DISTINCT else NaPolicy.FAIL


# ----- Helpers -----


def _coerce_spec(spec: Any) -> StepSpec:
    if isinstance(spec, StepSpec):
        return spec
    if not isinstance(spec, Mapping):
        raise InvalidStepSpec(f"Step spec must be a mapping or StepSpec, got {type(spec).__name__}")
    try:
        return StepSpec.model_validate(dict(spec))
    except ValidationError as e:
        raise InvalidStepSpec(str(e), kind=str(spec.get("kind")) if spec.get("kind") else None) from None


def coerce_levels(actions: Any, kind: str) -> Optional[ActionLevels]:
    if actions is None or isinstance(actions, ActionLevels):
        return actions
    try:
        if isinstance(actions, ActionLevelsSpec):
            return actions.to_levels()
        if isinstance(actions, Mapping):
            return ActionLevelsSpec.model_validate(dict(actions)).to_levels()
    except (ValidationError, ValueError) as e:
        raise InvalidStepSpec(f"invalid actions: {e}", kind) from None
    raise InvalidStepSpec(f"actions must be ActionLevels or a mapping, got {type(actions).__name__}", kind)


def _operand(value: Any, key: str, kind: str) -> Any:
    """Literal scalar or column reference ({"column": name} or col(name))."""
    if isinstance(value, ColumnRef):
        return value
    if isinstance(value, Mapping):
        if set(value) != {"column"} or not isinstance(value["column"], str):
            raise InvalidStepSpec(f"'{key}' as a mapping must be {{column: name}}", kind)
        return ColumnRef(value["column"])
    if value is None:
        raise InvalidStepSpec(f"'{key}' must not be null", kind)
    if not isinstance(value, _SCALARS):
        raise InvalidStepSpec(f"'{key}' must be a scalar or a column reference, got {type(value).__name__}", kind)
    return value


def _plain(value: Any) -> Any:
    """Serializable form of an operand."""
    if isinstance(value, ColumnRef):
        return {"column": value.name}
    return value


def _bool(params: Mapping[str, Any], key: str, default: bool, kind: str) -> bool:
    value = params.get(key, default)
    if not isinstance(value, bool):
        raise InvalidStepSpec(f"'{key}' must be a boolean", kind)
    return value


def _check_keys(params: Mapping[str, Any], allowed: Tuple[str, ...], kind: str) -> None:
    unknown = sorted(set(params) - set(allowed))
    if unknown:
        raise InvalidStepSpec(f"unknown parameter(s) {unknown}; allowed: {list(allowed)}", kind)


def _count(value: Any, key: str, kind: str) -> Any:
    if isinstance(value, bool):
        raise InvalidStepSpec(f"'{key}' must be an integer", kind)
    if isinstance(value, int):
        if value < 0:
            raise InvalidStepSpec(f"'{key}' must be >= 0", kind)
        return value
    return None


def _bound(params: Mapping[str, Any], key: str, kind: str) -> Optional[int]:
    value = params.get(key)
    if value is None:
        return None
    bound = _count(value, key, kind)
    if bound is None:
        raise InvalidStepSpec(f"'{key}' must be an integer", kind)
    return bound


class StepFactory:
    """
    Validates step specs and produces ValidationSteps.

    A per-column kind given several columns expands into one step per
    column, in column order, before ids are assigned.
    """

    def build(self, spec: Any, start_id: int) -> List[ValidationStep]:
        s = _coerce_spec(spec)
        try:
            kind = StepKind.parse(s.kind)
        except ValueError as e:
            raise InvalidStepSpec(str(e)) from None
        k = kind.value

        na = NaPolicy(s.na_handling) if s.na_handling else default_na(kind)
        actions = coerce_levels(s.actions, k)
        precondition = self._precondition(s.precondition, k)
        columns = list(s.columns)

        if kind.per_column:
            if not columns:
                raise InvalidStepSpec("at least one column is required", k)
            targets: List[Tuple[str, ...]] = [(c,) for c in columns]
        elif kind in _TABLE_KINDS:
            if columns:
                raise InvalidStepSpec("this kind takes no columns", k)
            targets = [()]
        else:
            targets = [tuple(columns)]

        steps: List[ValidationStep] = []
        for offset, cols in enumerate(targets):
            params, predicate, cols = self._params(kind, cols, dict(s.params), na)
            brief = s.brief or self._brief(kind, cols, params, predicate)
            steps.append(
                ValidationStep(
                    id=start_id + offset,
                    kind=kind,
                    columns=cols,
                    params=MappingProxyType(params),
                    predicate=predicate,
                    precondition=precondition,
                    na_handling=na,
                    actions=actions,
                    active=s.active,
                    brief=brief,
                    label=s.label,
                )
            )
        return steps

    # ----- Precondition -----

    @staticmethod
    def _precondition(value: Any, kind: str) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            try:
                parse_boolean_expression(value)
            except ValueError as e:
                raise InvalidStepSpec(f"invalid precondition: {e}", kind) from None
            return value
        if callable(value):
            return value
        raise InvalidStepSpec(
            f"precondition must be a SQL filter string or a callable, got {type(value).__name__}", kind
        )

    # ----- Parameters per kind -----

    def _params(
        self, kind: StepKind, cols: Tuple[str, ...], params: Dict[str, Any], na: NaPolicy
    ) -> Tuple[Dict[str, Any], Optional[Predicate], Tuple[str, ...]]:
        k = kind.value
        column = cols[0] if cols else None

        match kind:
            case StepKind.COL_EXISTS:
                _check_keys(params, (), k)
                return {}, None, cols

            case StepKind.COL_IS_TYPE:
                _check_keys(params, ("type",), k)
                if "type" not in params:
                    raise InvalidStepSpec("'type' is required", k)
                try:
                    expected = LogicalType.parse(str(params["type"]))
                except ValueError as e:
                    raise InvalidStepSpec(str(e), k) from None
                return {"type": expected.value}, None, cols

            case StepKind.ROWS_DISTINCT:
                _check_keys(params, (), k)
                return {}, Distinct(keys=cols, na=na), cols

            case StepKind.COL_VALS_EXPR:
                _check_keys(params, ("expr",), k)
                sql = params.get("expr")
                if not isinstance(sql, str):
                    raise InvalidStepSpec("'expr' (a SQL boolean expression) is required", k)
                try:
                    parsed = parse_boolean_expression(sql)
                except ValueError as e:
                    raise InvalidStepSpec(f"invalid expression: {e}", k) from None
                if not parsed.columns:
                    raise InvalidStepSpec("expression must reference at least one column", k)
                pred = Expression(sql=parsed.sql, refs=parsed.columns, na=na)
                return {"expr": sql}, pred, cols or pred.columns

            case StepKind.CONJOINTLY:
                return self._conjoint(params, k)

            case StepKind.COL_SCHEMA_MATCH:
                return self._schema(params, k), None, ()

            case StepKind.ROW_COUNT_MATCH | StepKind.COL_COUNT_MATCH:
                return self._count_match(params, k), None, ()

            case _:
                pred, norm = self._row_predicate(kind, column, params, na)
                return norm, pred, cols

    def _row_predicate(
        self, kind: StepKind, column: str, params: Dict[str, Any], na: NaPolicy
    ) -> Tuple[Predicate, Dict[str, Any]]:
        """Predicate for a single-column row-level kind, plus its normalized params."""
        k = kind.value

        match kind:
            case StepKind.COL_VALS_COMPARE:
                _check_keys(params, ("op", "value"), k)
                op = _OPS.get(str(params.get("op", "")).strip().lower())
                if op is None:
                    raise InvalidStepSpec(f"unknown or missing operator {params.get('op')!r}", k)
                if "value" not in params:
                    raise InvalidStepSpec("'value' is required", k)
                value = _operand(params["value"], "value", k)
                return Compare(column, op, value, na=na), {"op": op, "value": _plain(value)}

            case StepKind.COL_VALS_BETWEEN:
                _check_keys(params, ("left", "right", "inclusive", "inside"), k)
                left = params.get("left")
                right = params.get("right")
                if left is None and right is None:
                    raise InvalidStepSpec("at least one of 'left' or 'right' is required", k)
                left = _operand(left, "left", k) if left is not None else None
                right = _operand(right, "right", k) if right is not None else None
                if (
                    isinstance(left, (int, float, Decimal))
                    and isinstance(right, (int, float, Decimal))
                    and not isinstance(left, bool)
                    and left > right
                ):
                    raise InvalidStepSpec(f"left bound {left} is greater than right bound {right}", k)
                inclusive = params.get("inclusive", (True, True))
                if isinstance(inclusive, bool):
                    inclusive = (inclusive, inclusive)
                if (
                    not isinstance(inclusive, (list, tuple))
                    or len(inclusive) != 2
                    or not all(isinstance(b, bool) for b in inclusive)
                ):
                    raise InvalidStepSpec("'inclusive' must be a boolean or a pair of booleans", k)
                inside = _bool(params, "inside", True, k)
                pred = Between(column, left, right, inclusive=tuple(inclusive), inside=inside, na=na)
                norm = {"left": _plain(left), "right": _plain(right), "inclusive": list(inclusive), "inside": inside}
                return pred, norm

            case StepKind.COL_VALS_IN_SET:
                _check_keys(params, ("values", "negate"), k)
                values = params.get("values")
                if isinstance(values, (str, bytes)) or not isinstance(values, (list, tuple, set, frozenset)):
                    raise InvalidStepSpec("'values' must be a list", k)
                values = list(values)
                for v in values:
                    if v is not None and not isinstance(v, _SCALARS):
                        raise InvalidStepSpec(f"set member {v!r} is not a scalar", k)
                negate = _bool(params, "negate", False, k)
                return InSet(column, tuple(values), negate=negate, na=na), {"values": values, "negate": negate}

            case StepKind.COL_VALS_REGEX:
                _check_keys(params, ("pattern",), k)
                pattern = params.get("pattern")
                if not isinstance(pattern, str) or not pattern:
                    raise InvalidStepSpec("'pattern' is required", k)
                try:
                    re.compile(pattern)
                except re.error as e:
                    raise InvalidStepSpec(f"invalid pattern: {e}", k) from None
                return Regex(column, pattern, na=na), {"pattern": pattern}

            case StepKind.COL_VALS_NULL:
                _check_keys(params, ("expect",), k)
                expect = params.get("expect", "not_null")
                if expect not in ("null", "not_null"):
                    raise InvalidStepSpec("'expect' must be 'null' or 'not_null'", k)
                return NullCheck(column, expect_null=expect == "null", na=na), {"expect": expect}

        raise InvalidStepSpec("not a single-column row-level kind", k)

    def _conjoint(self, params: Dict[str, Any], k: str) -> Tuple[Dict[str, Any], Predicate, Tuple[str, ...]]:
        _check_keys(params, ("steps",), k)
        subs = params.get("steps")
        if not isinstance(subs, (list, tuple)) or not subs:
            raise InvalidStepSpec("'steps' must be a non-empty list of step specs", k)

        parts: List[Predicate] = []
        plain: List[Dict[str, Any]] = []
        for raw in subs:
            sub = _coerce_spec(raw)
            try:
                sub_kind = StepKind.parse(sub.kind)
            except ValueError as e:
                raise InvalidStepSpec(str(e), k) from None
            if sub_kind not in CONJOINT_KINDS:
                raise InvalidStepSpec(f"sub-step kind '{sub_kind.value}' is not allowed in a conjoint step", k)
            if sub.precondition is not None:
                raise InvalidStepSpec("sub-steps may not carry their own precondition", k)
            if sub.actions is not None:
                raise InvalidStepSpec("sub-steps may not carry their own actions", k)
            sub_na = NaPolicy(sub.na_handling) if sub.na_handling else default_na(sub_kind)

            if sub_kind is StepKind.COL_VALS_EXPR:
                norm, pred, _ = self._params(sub_kind, tuple(sub.columns), dict(sub.params), sub_na)
                parts.append(pred)
                plain.append({"kind": sub_kind.value, "params": norm, "na_handling": sub_na.value})
                continue

            if not sub.columns:
                raise InvalidStepSpec(f"sub-step '{sub_kind.value}' needs a column", k)
            for column in sub.columns:
                pred, norm = self._row_predicate(sub_kind, column, dict(sub.params), sub_na)
                parts.append(pred)
                plain.append(
                    {"kind": sub_kind.value, "columns": [column], "params": norm, "na_handling": sub_na.value}
                )

        pred = AllOf(tuple(parts))
        return {"steps": plain}, pred, pred.columns

    @staticmethod
    def _schema(params: Dict[str, Any], k: str) -> Dict[str, Any]:
        _check_keys(params, ("schema", "in_order", "per_column"), k)
        raw = params.get("schema")
        if isinstance(raw, Mapping):
            pairs = list(raw.items())
        elif isinstance(raw, (list, tuple)):
            pairs = []
            for item in raw:
                if isinstance(item, Mapping) and len(item) == 1:
                    pairs.extend(item.items())
                elif isinstance(item, (list, tuple)) and len(item) == 2:
                    pairs.append((item[0], item[1]))
                else:
                    raise InvalidStepSpec(f"schema entry {item!r} is not a (column, type) pair", k)
        else:
            raise InvalidStepSpec("'schema' must map column names to logical types", k)
        if not pairs:
            raise InvalidStepSpec("'schema' must list at least one column", k)

        expected: Dict[str, str] = {}
        for name, type_name in pairs:
            if not isinstance(name, str) or not name:
                raise InvalidStepSpec(f"schema column name {name!r} is not a string", k)
            if name in expected:
                raise InvalidStepSpec(f"column '{name}' appears twice in schema", k)
            try:
                expected[name] = LogicalType.parse(str(type_name)).value
            except ValueError as e:
                raise InvalidStepSpec(str(e), k) from None

        return {
            "schema": expected,
            "in_order": _bool(params, "in_order", True, k),
            "per_column": _bool(params, "per_column", False, k),
        }

    @staticmethod
    def _count_match(params: Dict[str, Any], k: str) -> Dict[str, Any]:
        _check_keys(params, ("count", "min", "max"), k)
        if "count" in params:
            if "min" in params or "max" in params:
                raise InvalidStepSpec("use either 'count' or 'min'/'max', not both", k)
            value = params["count"]
            exact = _count(value, "count", k)
            if exact is not None:
                return {"count": exact}
            if value is None:
                raise InvalidStepSpec("'count' must not be null", k)
            # another table: compare against its row / column count
            try:
                other = value if isinstance(value, TableHandle) else resolve_table(value)
            except ProbityError as e:
                raise InvalidStepSpec(f"'count' is neither an integer nor a table: {e}", k) from None
            return {"count": other}

        lo = _bound(params, "min", k)
        hi = _bound(params, "max", k)
        if lo is None and hi is None:
            raise InvalidStepSpec("'count' (integer or table) or 'min'/'max' is required", k)
        if lo is not None and hi is not None and lo > hi:
            raise InvalidStepSpec(f"min {lo} is greater than max {hi}", k)
        return {"min": lo, "max": hi}

    # ----- Briefs -----

    @staticmethod
    def _brief(
        kind: StepKind, cols: Tuple[str, ...], params: Mapping[str, Any], predicate: Optional[Predicate]
    ) -> str:
        what = "row count" if kind is StepKind.ROW_COUNT_MATCH else "column count"
        match kind:
            case StepKind.COL_EXISTS:
                return f"Expect that column {cols[0]} exists"
            case StepKind.COL_IS_TYPE:
                return f"Expect that column {cols[0]} is of type {params['type']}"
            case StepKind.ROWS_DISTINCT:
                on = ", ".join(cols) if cols else "all columns"
                return f"Expect entirely distinct rows across {on}"
            case StepKind.CONJOINTLY:
                return f"Expect conjointly that {describe(predicate)}"
            case StepKind.COL_SCHEMA_MATCH:
                order = "in order" if params["in_order"] else "in any order"
                return f"Expect that the schema matches {len(params['schema'])} columns {order}"
            case StepKind.ROW_COUNT_MATCH | StepKind.COL_COUNT_MATCH:
                if "count" in params:
                    count = params["count"]
                    target = count if isinstance(count, int) else f"that of {count.label}"
                    return f"Expect that the {what} is {target}"
                return f"Expect that the {what} is within [{params['min']}, {params['max']}]"
            case _:
                return f"Expect that {describe(predicate)}"
