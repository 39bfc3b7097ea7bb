# src/probity/engine/backends/polars_backend.py
from __future__ import annotations

"""
Polars Backend

In-memory tables. Predicates compile to a single boolean *status* expression
(True = pass, False = fail, null = skipped unit); counting and the extract are
one lazy pass each over the frame.
"""

from typing import Any, Dict, Optional

import polars as pl

from probity.connectors.handle import ROW_INDEX, Precondition, PredicateOutcome, TableHandle
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
)

_STATUS = "__status"


# ------------------------------- Compilation ---------------------------------


def _operand(value: Any) -> pl.Expr:
    if isinstance(value, ColumnRef):
        return pl.col(value.name)
    return pl.lit(value)


def _null_mask(column: str, *operands: Any) -> pl.Expr:
    mask = pl.col(column).is_null()
    for o in operands:
        if isinstance(o, ColumnRef):
            mask = mask | pl.col(o.name).is_null()
    return mask


def _with_na(ok: pl.Expr, null_mask: pl.Expr, na: NaPolicy) -> pl.Expr:
    fill = {NaPolicy.PASS: True, NaPolicy.FAIL: False, NaPolicy.SKIP: None}[na]
    return pl.when(null_mask).then(pl.lit(fill, dtype=pl.Boolean)).otherwise(ok)


def compile_status(pred: Predicate) -> pl.Expr:
    """Translate a predicate into a Polars status expression."""
    if isinstance(pred, Compare):
        c, v = pl.col(pred.column), _operand(pred.value)
        ok = {
            "gt": lambda: c > v,
            "gte": lambda: c >= v,
            "lt": lambda: c < v,
            "lte": lambda: c <= v,
            "eq": lambda: c == v,
            "neq": lambda: c != v,
        }[pred.op]()
        return _with_na(ok, _null_mask(pred.column, pred.value), pred.na)

    if isinstance(pred, Between):
        c = pl.col(pred.column)
        within = pl.lit(True)
        if pred.left is not None:
            lo = _operand(pred.left)
            within = within & (c >= lo if pred.inclusive[0] else c > lo)
        if pred.right is not None:
            hi = _operand(pred.right)
            within = within & (c <= hi if pred.inclusive[1] else c < hi)
        ok = within if pred.inside else ~within
        return _with_na(ok, _null_mask(pred.column, pred.left, pred.right), pred.na)

    if isinstance(pred, InSet):
        c = pl.col(pred.column)
        ok = c.is_in(list(pred.non_null_values))
        if pred.negate:
            ok = ~ok
        if pred.has_null:
            # NULL is an explicit member of the set
            return pl.when(c.is_null()).then(pl.lit(not pred.negate)).otherwise(ok)
        return _with_na(ok, c.is_null(), pred.na)

    if isinstance(pred, Regex):
        c = pl.col(pred.column)
        ok = c.cast(pl.Utf8).str.contains(pred.pattern)
        return _with_na(ok, c.is_null(), pred.na)

    if isinstance(pred, NullCheck):
        c = pl.col(pred.column)
        return c.is_null() if pred.expect_null else c.is_not_null()

    if isinstance(pred, Distinct):
        keys = list(pred.keys)
        # SQL semantics: keys with a NULL never count as duplicates; the null policy decides
        ok = ~pl.struct(keys).is_duplicated()
        null_mask = pl.any_horizontal([pl.col(k).is_null() for k in keys])
        return _with_na(ok, null_mask, pred.na)

    if isinstance(pred, Expression):
        ok = pl.sql_expr(pred.sql).cast(pl.Boolean)
        return _with_na(ok, ok.is_null(), pred.na)

    if isinstance(pred, AllOf):
        parts = [compile_status(p) for p in pred.parts]
        any_skipped = pl.any_horizontal([p.is_null() for p in parts])
        return (
            pl.when(any_skipped)
            .then(pl.lit(None, dtype=pl.Boolean))
            .otherwise(pl.all_horizontal(parts))
        )

    raise TypeError(f"No Polars translation for predicate {type(pred).__name__}")


# ------------------------------- Handle --------------------------------------


class PolarsTable(TableHandle):
    """In-memory table backed by a Polars DataFrame."""

    source = "polars"

    def __init__(self, df: pl.DataFrame | pl.LazyFrame, label: str = "dataframe", row_id: Optional[str] = None):
        if isinstance(df, pl.LazyFrame):
            df = df.collect()
        self._df = df
        super().__init__(label, row_id)

    @property
    def frame(self) -> pl.DataFrame:
        return self._df

    def _introspect(self) -> Dict[str, str]:
        return {name: str(dtype) for name, dtype in self._df.schema.items()}

    def _count_rows(self) -> int:
        return self._df.height

    def evaluate(self, predicate: Predicate, extract_limit: int = 5) -> PredicateOutcome:
        status = compile_status(predicate).alias(_STATUS)
        lf = self._df.lazy()
        if ROW_INDEX not in self._df.columns:
            lf = lf.with_row_index(ROW_INDEX)
        lf = lf.with_columns(status)

        n_units, n_pass = (
            lf.select(
                pl.col(_STATUS).count().alias("n_units"),
                pl.col(_STATUS).sum().alias("n_pass"),
            )
            .collect()
            .row(0)
        )
        n_units = int(n_units or 0)
        n_pass = int(n_pass or 0)

        extract = None
        if extract_limit > 0 and n_pass < n_units:
            failing = lf.filter(pl.col(_STATUS).not_())
            if self.row_id:
                failing = failing.sort(self.row_id, maintain_order=True)
            extract = failing.head(extract_limit).drop(_STATUS).collect()

        return PredicateOutcome(n_units=n_units, n_pass=n_pass, extract=extract)

    def apply(self, precondition: Precondition) -> "PolarsTable":
        if isinstance(precondition, str):
            out = self._df.filter(pl.sql_expr(precondition))
        elif callable(precondition):
            out = precondition(self._df)
            if isinstance(out, pl.LazyFrame):
                out = out.collect()
            if not isinstance(out, pl.DataFrame):
                raise TypeError(
                    f"Precondition must return a polars DataFrame, got {type(out).__name__}"
                )
        else:
            raise TypeError(f"Unsupported precondition type {type(precondition).__name__}")
        return PolarsTable(out, label=f"{self.label} (precondition)", row_id=self.row_id)
