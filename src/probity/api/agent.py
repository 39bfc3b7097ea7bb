# src/probity/api/agent.py
"""
Agent: a validation session over one table.

Usage:
    import probity
    from probity import steps

    agent = (
        probity.create_agent(df, actions=probity.action_levels(warn_at=0.02, stop_at=0.05))
        .add_step(steps.col_vals_between("a", left=0, right=10))
        .add_step(steps.col_vals_not_null(["a", "b"]))
        .interrogate()
    )
    agent.results()
    agent.get_extract(1)
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

import polars as pl
import yaml

from probity.actions.levels import ActionLevels
from probity.api.results import StepResult, summarize
from probity.config.settings import Settings
from probity.connectors.handle import TableHandle, resolve_table
from probity.engine.engine import Interrogator
from probity.errors import ProbityError, StopTriggered
from probity.logging import get_logger
from probity.rules.factory import StepFactory, coerce_levels, default_na
from probity.rules.steps import StepKind, ValidationStep

_logger = get_logger(__name__)


class Agent:
    """
    Owns the table handle, the append-only step list, default action levels
    and the results of the latest interrogation.

    Args:
        tbl: Polars/pandas DataFrame, list of dicts, file path/URI, DuckDB or
            psycopg connection (with `table`), or a TableHandle
        table: table name when `tbl` is a connection
        name: label used in logs and reports
        actions: default ActionLevels for steps without their own
        mode: "report" (run every step) or "pipeline" (halt after the first
            step whose `stop` state triggers)
        extract_limit: failing rows kept per step
        step_timeout: seconds before a step evaluation is abandoned
        workers: concurrent step evaluations
        row_id: stable row identifier used to order extracts

    Raises:
        SchemaUnavailable: the table cannot be introspected
        InvalidDataError: `tbl` is not a supported source
    """

    def __init__(
        self,
        tbl: Any,
        *,
        table: Optional[str] = None,
        name: Optional[str] = None,
        actions: Any = None,
        mode: Optional[str] = None,
        extract_limit: Optional[int] = None,
        step_timeout: Optional[float] = None,
        workers: Optional[int] = None,
        row_id: Optional[str] = None,
    ):
        self.settings = Settings.from_env(
            mode=mode, extract_limit=extract_limit, step_timeout=step_timeout, workers=workers
        )
        self.handle: TableHandle = resolve_table(tbl, table=table, row_id=row_id)
        self.name = name or self.handle.label
        self.actions: Optional[ActionLevels] = coerce_levels(actions, "agent")

        self._factory = StepFactory()
        self._steps: List[ValidationStep] = []
        self._results: Optional[List[StepResult]] = None
        self._stopped_at: Optional[int] = None
        self._lock = threading.RLock()
        self._running = False

    def __repr__(self) -> str:
        state = "interrogated" if self._results is not None else "pending"
        return f"Agent({self.name!r}, {len(self._steps)} steps, {state})"

    @property
    def mode(self) -> str:
        return self.settings.mode

    # ----- Building -----

    def add_step(self, spec: Any = None, **kwargs: Any) -> "Agent":
        """
        Validate and append a step (or several, for multi-column selectors).

        Accepts a step dict, a StepSpec, or the same fields as keywords:
            agent.add_step(kind="col_vals_compare", columns="a", params={"op": "gt", "value": 6})

        Raises:
            InvalidStepSpec: malformed step
            ProbityError: called while an interrogation is running
        """
        if spec is None:
            spec = kwargs
        elif kwargs:
            raise TypeError("Pass either a step spec or keyword fields, not both")
        with self._lock:
            if self._running:
                raise ProbityError("Cannot add steps while an interrogation is running")
            built = self._factory.build(spec, start_id=len(self._steps) + 1)
            self._steps.extend(built)
        _logger.debug("Added step(s) %s to %s", [s.id for s in built], self.name)
        return self

    def add_steps(self, specs: Iterable[Any]) -> "Agent":
        for spec in specs:
            self.add_step(spec)
        return self

    @property
    def steps(self) -> List[ValidationStep]:
        with self._lock:
            return list(self._steps)

    # ----- Running -----

    def interrogate(self) -> "Agent":
        """
        Evaluate every step in id order and replace the previous results.

        Evaluation errors are recorded on results, never raised. The only
        exception is a Halt reaction, raised as StopTriggered after the
        results are published.
        """
        with self._lock:
            if self._running:
                raise ProbityError("An interrogation is already running")
            self._running = True
            snapshot = list(self._steps)
        try:
            run = Interrogator(
                self.handle,
                snapshot,
                actions=self.actions,
                mode=self.settings.mode,
                extract_limit=self.settings.extract_limit,
                step_timeout=self.settings.step_timeout,
                workers=self.settings.workers,
            ).run()
            with self._lock:
                self._results = run.results
                self._stopped_at = run.stopped_at
        finally:
            with self._lock:
                self._running = False

        if run.halt is not None:
            raise run.halt
        return self

    # ----- Results -----

    def results(self) -> List[StepResult]:
        """Results of the latest interrogation in step order ([] before the first)."""
        with self._lock:
            return list(self._results or [])

    def get_extract(self, step_id: int) -> pl.DataFrame:
        """
        Failing rows captured for a step; an empty frame when none were captured.

        Raises:
            ValueError: no step has this id
        """
        with self._lock:
            if not any(s.id == step_id for s in self._steps):
                raise ValueError(f"No step with id {step_id}")
            for r in self._results or []:
                if r.step_id == step_id and r.extract is not None:
                    return r.extract
        return pl.DataFrame()

    def overall_state(self) -> FrozenSet[str]:
        """Union of the triggered states across all results."""
        states: set = set()
        for r in self.results():
            states |= r.triggered_states
        return frozenset(states)

    def all_passed(self) -> bool:
        results = self.results()
        if self._results is None:
            return False
        return all(r.passed for r in results if r.active)

    @property
    def stop_signal(self) -> Optional[StopTriggered]:
        """StopTriggered for the first step whose `stop` state triggered, else None."""
        for r in self.results():
            if r.stop:
                return StopTriggered(r.step_id, r.kind, r.brief, result=r)
        return None

    def raise_on_stop(self) -> "Agent":
        """Raise StopTriggered if any step reached its stop threshold."""
        signal = self.stop_signal
        if signal is not None:
            raise signal
        return self

    def summary(self) -> Dict[str, Any]:
        out = summarize(self.results())
        out.update(
            {
                "name": self.name,
                "mode": self.mode,
                "interrogated": self._results is not None,
                "overall_state": sorted(self.overall_state()),
                "stopped_at": self._stopped_at,
            }
        )
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "table": self.handle.label,
            "source": self.handle.source,
            "summary": self.summary(),
            "results": [r.to_dict() for r in self.results()],
        }

    # ----- Plans -----

    def to_plan(self) -> Dict[str, Any]:
        """
        Serializable plan (the YAML shape read by `load_agent`).

        Reactions and callables cannot be exported.

        Raises:
            ProbityError: a step uses a callable precondition or a table operand
        """
        plan: Dict[str, Any] = {"name": self.name, "mode": self.mode}
        if self.handle.row_id:
            plan["row_id"] = self.handle.row_id
        if self.settings.extract_limit != 5:
            plan["extract_limit"] = self.settings.extract_limit
        if self.settings.step_timeout:
            plan["step_timeout"] = self.settings.step_timeout
        if self.settings.workers != 1:
            plan["workers"] = self.settings.workers
        if self.actions is not None:
            plan["actions"] = self.actions.to_dict()
        plan["steps"] = [_step_to_plan(s) for s in self.steps]
        return plan

    def to_yaml(self, path: Optional[Union[str, Path]] = None) -> str:
        text = yaml.safe_dump(self.to_plan(), default_flow_style=False, sort_keys=False)
        if path is not None:
            Path(path).write_text(text, encoding="utf-8")
        return text

    # ----- Lifecycle -----

    def close(self) -> None:
        self.handle.close()

    def __enter__(self) -> "Agent":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def _step_to_plan(step: ValidationStep) -> Dict[str, Any]:
    if step.precondition is not None and not isinstance(step.precondition, str):
        raise ProbityError(f"Step {step.id}: a callable precondition cannot be exported")
    params = dict(step.params)
    if isinstance(params.get("count"), TableHandle):
        raise ProbityError(f"Step {step.id}: a table operand cannot be exported")

    out: Dict[str, Any] = {"kind": step.kind.value}
    if step.columns and step.kind not in (StepKind.COL_VALS_EXPR, StepKind.CONJOINTLY):
        out["columns"] = list(step.columns)
    if params:
        out["params"] = params
    if step.na_handling is not default_na(step.kind):
        out["na_handling"] = step.na_handling.value
    if step.precondition is not None:
        out["precondition"] = step.precondition
    if step.actions is not None:
        out["actions"] = step.actions.to_dict()
    if not step.active:
        out["active"] = False
    out["brief"] = step.brief
    if step.label:
        out["label"] = step.label
    return out


def create_agent(tbl: Any, **kwargs: Any) -> Agent:
    """Shorthand for `Agent(tbl, **kwargs)`."""
    return Agent(tbl, **kwargs)
