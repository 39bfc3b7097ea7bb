# src/probity/errors.py
"""
Probity exception hierarchy.

Construction-time problems (bad step specs, unreadable tables) raise
immediately. Evaluation-time problems never raise out of an interrogation:
they are recorded on the step's result (`eval_error=True`).
"""

from __future__ import annotations

from typing import Any, Optional


class ProbityError(Exception):
    """Base class for all Probity errors."""


class InvalidStepSpec(ProbityError, ValueError):
    """A validation step was declared with malformed or inconsistent parameters."""

    def __init__(self, message: str, kind: Optional[str] = None):
        self.kind = kind
        prefix = f"{kind}: " if kind else ""
        super().__init__(f"{prefix}{message}")


class SchemaUnavailable(ProbityError):
    """The table's schema could not be introspected (missing table, dead connection, ...)."""

    def __init__(self, source: str, detail: Optional[str] = None):
        self.source = source
        self.detail = detail
        msg = f"Schema unavailable for {source}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class InvalidDataError(ProbityError, TypeError):
    """The object passed as a table is not something Probity can wrap."""

    def __init__(self, data_type: str, detail: Optional[str] = None):
        self.data_type = data_type
        msg = f"Unsupported table source of type '{data_type}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class TranslationError(ProbityError):
    """A predicate cannot be expressed in the target backend (e.g. an operator unknown to the dialect)."""


class ReactionError(ProbityError):
    """
    A reaction callback failed.

    Never raised by the interrogator; attached to the triggering StepResult.
    """

    def __init__(self, state: str, step_id: int, cause: BaseException):
        self.state = state
        self.step_id = step_id
        self.cause = cause
        super().__init__(
            f"Reaction for '{state}' on step {step_id} failed: "
            f"{type(cause).__name__}: {cause}"
        )

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "step_id": self.step_id,
            "error": f"{type(self.cause).__name__}: {self.cause}",
        }

    def _key(self) -> tuple:
        return (self.state, self.step_id, type(self.cause).__name__, str(self.cause))

    # equal by content, so reruns give equal StepResults
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReactionError):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())


class StopTriggered(ProbityError):
    """
    Halting signal: a step crossed its `stop` threshold.

    Raised by `Agent.raise_on_stop()` and by the `Halt` reaction effect.
    """

    def __init__(self, step_id: int, kind: str, brief: str, result: Any = None):
        self.step_id = step_id
        self.kind = kind
        self.brief = brief
        self.result = result
        super().__init__(f"Stop threshold reached at step {step_id} ({kind}): {brief}")
