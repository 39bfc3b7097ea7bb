# src/probity/api/results.py
"""
Result types for an interrogation.

A StepResult is built once per step and never changes afterwards. Counting
invariants:

    n_pass + n_fail == n_units      (unless eval_error)
    f_fail == n_fail / n_units      (0.0 when n_units == 0)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Optional, Tuple

if TYPE_CHECKING:
    import polars as pl

    from probity.errors import ReactionError


def _fractions(n_units: int, n_pass: int, n_fail: int) -> Tuple[float, float]:
    if n_units == 0:
        return 0.0, 0.0
    return n_pass / n_units, n_fail / n_units


@dataclass(frozen=True)
class StepResult:
    """
    Outcome of one validation step.

    Properties:
        step_id: 1-based step id
        kind: step kind value (e.g. "col_vals_between")
        passed: no failing units and no evaluation error
        warn / stop / notify: whether that action state triggered
        extract: up to `extract_limit` failing rows (with `_row_index`), or None
    """

    step_id: int
    kind: str
    brief: str
    columns: Tuple[str, ...] = ()
    label: Optional[str] = None
    active: bool = True
    n_units: int = 0
    n_pass: int = 0
    n_fail: int = 0
    f_pass: float = 0.0
    f_fail: float = 0.0
    triggered_states: FrozenSet[str] = frozenset()
    eval_error: bool = False
    error: Optional[str] = None
    reaction_errors: Tuple["ReactionError", ...] = ()
    source: Optional[str] = None
    details: Optional[Dict[str, Any]] = field(default=None, compare=False)
    extract: Optional["pl.DataFrame"] = field(default=None, compare=False, repr=False)
    elapsed_ms: float = field(default=0.0, compare=False)

    # ----- Constructors -----

    @classmethod
    def counted(
        cls,
        step_id: int,
        kind: str,
        brief: str,
        n_units: int,
        n_pass: int,
        **kwargs: Any,
    ) -> "StepResult":
        n_fail = n_units - n_pass
        f_pass, f_fail = _fractions(n_units, n_pass, n_fail)
        return cls(
            step_id=step_id,
            kind=kind,
            brief=brief,
            n_units=n_units,
            n_pass=n_pass,
            n_fail=n_fail,
            f_pass=f_pass,
            f_fail=f_fail,
            **kwargs,
        )

    @classmethod
    def failed_evaluation(cls, step_id: int, kind: str, brief: str, error: str, **kwargs: Any) -> "StepResult":
        """Result for a step that could not be evaluated: zero counts, no states."""
        return cls(step_id=step_id, kind=kind, brief=brief, eval_error=True, error=error, **kwargs)

    @classmethod
    def inactive(cls, step_id: int, kind: str, brief: str, **kwargs: Any) -> "StepResult":
        return cls(step_id=step_id, kind=kind, brief=brief, active=False, **kwargs)

    # ----- Properties -----

    @property
    def passed(self) -> bool:
        return self.active and not self.eval_error and self.n_fail == 0

    @property
    def warn(self) -> bool:
        return "warn" in self.triggered_states

    @property
    def stop(self) -> bool:
        return "stop" in self.triggered_states

    @property
    def notify(self) -> bool:
        return "notify" in self.triggered_states

    @property
    def status(self) -> str:
        if not self.active:
            return "INACTIVE"
        if self.eval_error:
            return "ERROR"
        return "PASS" if self.n_fail == 0 else "FAIL"

    def __repr__(self) -> str:
        base = f"StepResult({self.step_id}, {self.kind}) {self.status}"
        if self.eval_error:
            return f"{base} - {self.error}"
        if self.n_fail > 0:
            base += f" - {self.n_fail:,}/{self.n_units:,} failing"
        if self.triggered_states:
            base += f" [{', '.join(sorted(self.triggered_states))}]"
        return base

    # ----- Serialization -----

    def to_dict(self, include_timing: bool = False) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary (extract rows included)."""
        d: Dict[str, Any] = {
            "step_id": self.step_id,
            "kind": self.kind,
            "brief": self.brief,
            "columns": list(self.columns),
            "active": self.active,
            "n_units": self.n_units,
            "n_pass": self.n_pass,
            "n_fail": self.n_fail,
            "f_pass": self.f_pass,
            "f_fail": self.f_fail,
            "triggered_states": sorted(self.triggered_states),
            "eval_error": self.eval_error,
        }
        if self.label:
            d["label"] = self.label
        if self.error:
            d["error"] = self.error
        if self.reaction_errors:
            d["reaction_errors"] = [e.to_dict() for e in self.reaction_errors]
        if self.source:
            d["source"] = self.source
        if self.details:
            d["details"] = self.details
        d["extract"] = self.extract.to_dicts() if self.extract is not None else None
        if include_timing:
            d["elapsed_ms"] = self.elapsed_ms
        return d

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)


def summarize(results: List[StepResult]) -> Dict[str, Any]:
    """Aggregate counts over a result list (used by Agent.summary)."""
    active = [r for r in results if r.active]
    return {
        "steps": len(results),
        "active": len(active),
        "passed": sum(1 for r in active if r.passed),
        "failed": sum(1 for r in active if not r.eval_error and r.n_fail > 0),
        "errors": sum(1 for r in active if r.eval_error),
        "warn": sum(1 for r in results if r.warn),
        "stop": sum(1 for r in results if r.stop),
        "notify": sum(1 for r in results if r.notify),
    }
