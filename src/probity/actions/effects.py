# src/probity/actions/effects.py
"""
Reactions fired when a step triggers an action state.

A reaction is any callable taking a `ReactionContext`. Three built-in effect
descriptors cover the common cases:

    Warn()            -> Python warning + log record
    Halt()            -> stop signal, raised as StopTriggered once the
                         interrogation has published its results
    Notify(sink=...)  -> hand a JSON-ready payload to a sink callable

Reactions run synchronously, in state order (warn, stop, notify). A raising
reaction never aborts the interrogation; it becomes a ReactionError on the
step's result.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from probity.actions.levels import STATE_ORDER, ActionLevels
from probity.errors import ReactionError, StopTriggered
from probity.logging import get_logger

if TYPE_CHECKING:
    from probity.api.results import StepResult
    from probity.connectors.handle import TableHandle

_logger = get_logger(__name__)


@dataclass(frozen=True)
class ReactionContext:
    """Read-only view of the triggering step handed to each reaction."""

    step_id: int
    kind: str
    brief: str
    label: Optional[str]
    columns: Tuple[str, ...]
    state: str
    result: "StepResult"
    table: Optional["TableHandle"] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "kind": self.kind,
            "brief": self.brief,
            "label": self.label,
            "columns": list(self.columns),
            "state": self.state,
            "n_units": self.result.n_units,
            "n_fail": self.result.n_fail,
            "f_fail": self.result.f_fail,
            "table": self.table.label if self.table is not None else None,
        }


# ----- Effect descriptors -----


@dataclass(frozen=True)
class Warn:
    """Emit a UserWarning (and a log record) describing the failing step."""

    category: type = UserWarning

    def __call__(self, ctx: ReactionContext) -> None:
        msg = (
            f"Step {ctx.step_id} ({ctx.kind}) reached '{ctx.state}': "
            f"{ctx.result.n_fail}/{ctx.result.n_units} failing units - {ctx.brief}"
        )
        _logger.warning(msg)
        warnings.warn(msg, self.category, stacklevel=2)


@dataclass(frozen=True)
class Halt:
    """Request that the interrogation end with StopTriggered."""

    def __call__(self, ctx: ReactionContext) -> None:
        raise StopTriggered(ctx.step_id, ctx.kind, ctx.brief, result=ctx.result)


@dataclass(frozen=True)
class Notify:
    """
    Deliver `ctx.to_dict()` (merged with a static `payload`) to `sink`.

    Without a sink the notification is only logged.
    """

    sink: Optional[Callable[[Dict[str, Any]], Any]] = None
    payload: Optional[Dict[str, Any]] = None

    def __call__(self, ctx: ReactionContext) -> None:
        message = ctx.to_dict()
        if self.payload:
            message.update(self.payload)
        if self.sink is None:
            _logger.warning("Notification for step %s: %s", ctx.step_id, message)
            return
        self.sink(message)


# ----- Dispatch -----


def fire(
    levels: ActionLevels,
    states: FrozenSet[str],
    make_context: Callable[[str], ReactionContext],
) -> Tuple[List[ReactionError], Optional[StopTriggered]]:
    """
    Run the reactions of every triggered state.

    Returns the reaction errors and the first halt request (if any).
    """
    errors: List[ReactionError] = []
    halt: Optional[StopTriggered] = None
    for state in STATE_ORDER:
        if state.value not in states:
            continue
        for reaction in levels.reactions_for(state.value):
            ctx = make_context(state.value)
            try:
                reaction(ctx)
            except StopTriggered as e:
                if halt is None:
                    halt = e
            except Exception as e:
                err = ReactionError(state.value, ctx.step_id, e)
                _logger.warning(str(err))
                errors.append(err)
    return errors, halt
