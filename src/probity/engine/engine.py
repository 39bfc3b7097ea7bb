# src/probity/engine/engine.py
from __future__ import annotations

"""
Interrogator — runs an Agent's steps against its table.

Flow per step (ascending id)
----------------------------
  1) Inactive step         -> placeholder result, nothing evaluated
  2) Precondition          -> ephemeral derived handle for this step only
  3) Column resolution     -> missing column is an eval_error, never a crash
  4) Per-kind evaluation   -> counts (+ extract for row-level kinds)
  5) Action levels         -> triggered states (none on eval_error)
  6) Reactions             -> synchronous; failures attached as ReactionErrors
  7) Fail-fast             -> in pipeline mode a triggered `stop` ends the run

Principles
----------
- Deterministic: identical inputs -> identical results, in id order
- Contained: evaluation errors become results; interrogate() does not raise
- Concurrency only changes *when* evaluations run, never the order in which
  results, states and reactions are applied
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence

import polars as pl

from probity.actions.effects import ReactionContext, fire
from probity.actions.levels import ActionLevels
from probity.api.results import StepResult, summarize
from probity.connectors.handle import TableHandle
from probity.connectors.types import LogicalType
from probity.errors import StopTriggered
from probity.logging import get_logger, log_exception
from probity.rules.predicates import Distinct
from probity.rules.steps import StepKind, ValidationStep

_logger = get_logger(__name__)

Mode = Literal["report", "pipeline"]


class StepEvaluationError(Exception):
    """Internal: a step could not be evaluated; the message goes on the result."""


@dataclass
class _Evaluation:
    n_units: int = 0
    n_pass: int = 0
    extract: Optional[pl.DataFrame] = None
    details: Optional[Dict[str, Any]] = None
    source: Optional[str] = None
    error: Optional[str] = None
    elapsed_ms: float = 0.0


@dataclass
class _Probe:
    """Handle currently in use by an evaluation (the derived one under a precondition)."""

    current: Optional[TableHandle] = None


@dataclass
class Interrogation:
    results: List[StepResult] = field(default_factory=list)
    halt: Optional[StopTriggered] = None
    stopped_at: Optional[int] = None


# ----- Timeout -----


def call_with_timeout(fn: Callable[[], Any], timeout: Optional[float], on_timeout: Callable[[], None]) -> Any:
    """
    Run `fn` on a daemon thread and wait at most `timeout` seconds.

    On timeout `on_timeout` is called (to interrupt in-flight queries) and
    TimeoutError is raised; the worker thread is abandoned.
    """
    if not timeout:
        return fn()

    box: Dict[str, Any] = {}

    def target() -> None:
        try:
            box["value"] = fn()
        except BaseException as e:  # re-raised on the calling thread
            box["error"] = e

    worker = threading.Thread(target=target, name="probity-step", daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        on_timeout()
        raise TimeoutError(f"Step evaluation timed out after {timeout:g}s")
    if "error" in box:
        raise box["error"]
    return box.get("value")


# ----- Interrogator -----


class Interrogator:
    def __init__(
        self,
        handle: TableHandle,
        steps: Sequence[ValidationStep],
        *,
        actions: Optional[ActionLevels] = None,
        mode: Mode = "report",
        extract_limit: int = 5,
        step_timeout: Optional[float] = None,
        workers: int = 1,
    ):
        self.handle = handle
        self.steps = list(steps)
        self.actions = actions
        self.mode = mode
        self.extract_limit = extract_limit
        self.step_timeout = step_timeout
        self.workers = max(1, int(workers))

    # ----- Public -----

    def run(self) -> Interrogation:
        t0 = time.perf_counter()
        if self.workers > 1 and len(self.steps) > 1:
            out = self._run_concurrent()
        else:
            out = self._run_sequential()

        counts = summarize(out.results)
        _logger.info(
            "Interrogated %s: %d steps, %d passed, %d failed, %d errors in %.1f ms",
            self.handle.label,
            counts["steps"],
            counts["passed"],
            counts["failed"],
            counts["errors"],
            (time.perf_counter() - t0) * 1000,
        )
        return out

    def _run_sequential(self) -> Interrogation:
        out = Interrogation()
        for step in self.steps:
            if self._record(out, step, self.evaluate_step(step)):
                break
        return out

    def _run_concurrent(self) -> Interrogation:
        out = Interrogation()
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="probity")
        try:
            futures: List[Future] = [executor.submit(self.evaluate_step, s) for s in self.steps]
            for step, fut in zip(self.steps, futures):
                if self._record(out, step, fut.result()):
                    break
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
        return out

    def _record(self, out: Interrogation, step: ValidationStep, ev: Optional[_Evaluation]) -> bool:
        """Finalize one step in id order; True when the run must stop here."""
        result, halt = self.finalize(step, ev)
        out.results.append(result)
        if halt is not None and out.halt is None:
            out.halt = halt
        if self.mode == "pipeline" and result.stop:
            out.stopped_at = step.id
            _logger.error(
                "Stop threshold reached at step %d (%s): %d/%d failing; halting",
                step.id,
                step.kind.value,
                result.n_fail,
                result.n_units,
            )
            return True
        return False

    # ----- Evaluation (thread-safe, no side effects) -----

    def evaluate_step(self, step: ValidationStep) -> Optional[_Evaluation]:
        """Counts for one step, or None for an inactive step."""
        if not step.active:
            return None

        probe = _Probe(current=self.handle)
        t0 = time.perf_counter()

        def interrupt() -> None:
            for h in {id(probe.current): probe.current, id(self.handle): self.handle}.values():
                if h is not None:
                    h.interrupt()

        cause: Optional[BaseException] = None
        try:
            ev = call_with_timeout(lambda: self._evaluate(step, probe), self.step_timeout, interrupt)
        except StepEvaluationError as e:
            ev = _Evaluation(error=str(e))
            cause = e.__cause__
        except TimeoutError as e:
            ev = _Evaluation(error=str(e))
        except Exception as e:
            ev = _Evaluation(error=f"Step evaluation failed: {type(e).__name__}: {e}")
            cause = e

        ev.elapsed_ms = (time.perf_counter() - t0) * 1000
        if ev.source is None and probe.current is not None:
            ev.source = probe.current.source
        if cause is not None:
            log_exception(_logger, f"Step {step.id} ({step.kind.value}) could not be evaluated", cause)
        elif ev.error:
            _logger.warning("Step %d (%s) could not be evaluated: %s", step.id, step.kind.value, ev.error)
        return ev

    def _evaluate(self, step: ValidationStep, probe: _Probe) -> _Evaluation:
        tbl = self.handle
        if step.precondition is not None:
            try:
                tbl = tbl.apply(step.precondition)
            except Exception as e:
                raise StepEvaluationError(f"Precondition failed: {type(e).__name__}: {e}") from e
            probe.current = tbl

        match step.kind:
            case StepKind.COL_EXISTS:
                present = step.columns[0] in tbl.schema
                return _Evaluation(n_units=1, n_pass=int(present), source=tbl.source)

            case StepKind.COL_IS_TYPE:
                column = step.columns[0]
                self._require(tbl, [column])
                observed = self._logical(tbl, column)
                ok = observed.value == step.params["type"]
                return _Evaluation(
                    n_units=1,
                    n_pass=int(ok),
                    details={"expected": step.params["type"], "observed": observed.value},
                    source=tbl.source,
                )

            case StepKind.COL_SCHEMA_MATCH:
                return self._schema_match(tbl, step)

            case StepKind.ROW_COUNT_MATCH:
                return self._count_match(step, tbl.row_count(), lambda other: other.row_count(), tbl)

            case StepKind.COL_COUNT_MATCH:
                return self._count_match(step, len(tbl.columns), lambda other: len(other.columns), tbl)

            case _:
                pred = step.predicate
                if isinstance(pred, Distinct) and not pred.keys:
                    pred = replace(pred, keys=tuple(tbl.columns))
                self._require(tbl, pred.columns)
                outcome = tbl.evaluate(pred, self.extract_limit)
                _logger.debug(
                    "Step %d (%s): %d/%d units failing",
                    step.id,
                    step.kind.value,
                    outcome.n_fail,
                    outcome.n_units,
                )
                return _Evaluation(
                    n_units=outcome.n_units,
                    n_pass=outcome.n_pass,
                    extract=outcome.extract,
                    source=tbl.source,
                )

    # ----- Per-kind helpers -----

    @staticmethod
    def _require(tbl: TableHandle, columns: Sequence[str]) -> None:
        missing = tbl.missing_columns(columns)
        if missing:
            raise StepEvaluationError(f"Missing column(s): {', '.join(missing)}")

    @staticmethod
    def _logical(tbl: TableHandle, column: str) -> LogicalType:
        logical = tbl.logical_type(column)
        if logical is None:
            raise StepEvaluationError(
                f"Column '{column}' has type {tbl.schema[column]}, which has no logical equivalent"
            )
        return logical

    def _schema_match(self, tbl: TableHandle, step: ValidationStep) -> _Evaluation:
        expected: Dict[str, str] = dict(step.params["schema"])
        in_order: bool = step.params["in_order"]
        observed_names = tbl.columns

        if step.params["per_column"]:
            mismatches: List[str] = []
            for pos, (name, type_name) in enumerate(expected.items()):
                if name not in tbl.schema:
                    mismatches.append(f"{name}: missing")
                    continue
                observed = self._logical(tbl, name).value
                if observed != type_name:
                    mismatches.append(f"{name}: expected {type_name}, found {observed}")
                elif in_order and observed_names.index(name) != pos:
                    mismatches.append(f"{name}: expected at position {pos}, found at {observed_names.index(name)}")
            n_units = len(expected)
            return _Evaluation(
                n_units=n_units,
                n_pass=n_units - len(mismatches),
                details={"mismatches": mismatches},
                source=tbl.source,
            )

        observed_pairs = [(name, self._logical(tbl, name).value) for name in observed_names]
        expected_pairs = list(expected.items())
        if in_order:
            ok = observed_pairs == expected_pairs
        else:
            ok = len(observed_pairs) == len(expected_pairs) and set(observed_pairs) == set(expected_pairs)
        return _Evaluation(
            n_units=1,
            n_pass=int(ok),
            details={"expected": expected_pairs, "observed": observed_pairs},
            source=tbl.source,
        )

    @staticmethod
    def _count_match(
        step: ValidationStep,
        observed: int,
        measure: Callable[[TableHandle], int],
        tbl: TableHandle,
    ) -> _Evaluation:
        params = step.params
        if "count" in params:
            target = params["count"]
            expected = target if isinstance(target, int) else measure(target)
            ok = observed == expected
            details: Dict[str, Any] = {"observed": observed, "expected": expected}
        else:
            lo, hi = params.get("min"), params.get("max")
            ok = (lo is None or observed >= lo) and (hi is None or observed <= hi)
            details = {"observed": observed, "min": lo, "max": hi}
        return _Evaluation(n_units=1, n_pass=int(ok), details=details, source=tbl.source)

    # ----- Finalization (calling thread, id order) -----

    def finalize(self, step: ValidationStep, ev: Optional[_Evaluation]):
        """Build the StepResult, evaluate action levels and fire reactions."""
        common = dict(columns=step.columns, label=step.label)
        if ev is None:
            return StepResult.inactive(step.id, step.kind.value, step.brief, **common), None
        if ev.error:
            result = StepResult.failed_evaluation(
                step.id,
                step.kind.value,
                step.brief,
                ev.error,
                source=ev.source,
                elapsed_ms=ev.elapsed_ms,
                **common,
            )
            return result, None

        result = StepResult.counted(
            step.id,
            step.kind.value,
            step.brief,
            ev.n_units,
            ev.n_pass,
            source=ev.source,
            details=ev.details,
            extract=ev.extract,
            elapsed_ms=ev.elapsed_ms,
            **common,
        )

        levels = step.actions or self.actions
        if levels is None:
            return result, None
        states = levels.evaluate(result.n_fail, result.f_fail)
        if not states:
            return result, None
        result = replace(result, triggered_states=states)

        def make_context(state: str) -> ReactionContext:
            return ReactionContext(
                step_id=step.id,
                kind=step.kind.value,
                brief=step.brief,
                label=step.label,
                columns=step.columns,
                state=state,
                result=result,
                table=self.handle,
            )

        errors, halt = fire(levels, states, make_context)
        if errors:
            result = replace(result, reaction_errors=tuple(errors))
        if halt is not None and halt.result is None:
            halt.result = result
        return result, halt
