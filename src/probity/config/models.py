# src/probity/config/models.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from probity.actions.effects import Halt, Notify, Warn
from probity.actions.levels import ActionLevels, action_levels

# Built-in effects addressable by name from a YAML plan
EFFECTS = {"warn": Warn, "halt": Halt, "notify": Notify}


class ActionLevelsSpec(BaseModel):
    """
    Declarative thresholds, e.g. {warn_at: 0.02, stop_at: 0.05}.

    `fns` maps a state to built-in effect names ("warn", "halt", "notify").
    """

    model_config = ConfigDict(extra="forbid")

    warn_at: Optional[Any] = None
    stop_at: Optional[Any] = None
    notify_at: Optional[Any] = None
    fns: Dict[Literal["warn", "stop", "notify"], List[str]] = Field(default_factory=dict)

    @field_validator("fns")
    @classmethod
    def _known_effects(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        for state, names in v.items():
            for name in names:
                if name.lower() not in EFFECTS:
                    raise ValueError(f"Unknown effect '{name}' for '{state}' (expected one of: {sorted(EFFECTS)})")
        return v

    def to_levels(self) -> ActionLevels:
        fns = {state: [EFFECTS[n.lower()]() for n in names] for state, names in self.fns.items()}
        return action_levels(self.warn_at, self.stop_at, self.notify_at, fns=fns or None)


class StepSpec(BaseModel):
    """
    Declarative specification of one validation step (dict, YAML or code).

    `columns` may be a single name or a list; per-column kinds expand a list
    into one step per column.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    kind: str = Field(..., description="Step kind, e.g. col_vals_between or its alias 'range'.")
    columns: List[str] = Field(default_factory=list)
    params: Dict[str, Any] = Field(default_factory=dict, description="Kind-specific parameters.")
    na_handling: Optional[Literal["pass", "fail", "skip"]] = None
    precondition: Optional[Any] = Field(None, description="SQL filter string or callable.")
    actions: Optional[Any] = Field(None, description="ActionLevels, ActionLevelsSpec or its dict form.")
    active: bool = True
    brief: Optional[str] = None
    label: Optional[str] = None

    @field_validator("columns", mode="before")
    @classmethod
    def _columns_as_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        if isinstance(v, tuple):
            return list(v)
        return v

    @field_validator("na_handling", mode="before")
    @classmethod
    def _lower_na(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return getattr(v, "value", v)


class AgentPlan(BaseModel):
    """A YAML plan: table location, defaults and the ordered steps."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    data: Optional[str] = Field(None, description="File path or URI of the table.")
    table: Optional[str] = Field(None, description="Table name inside a database source.")
    row_id: Optional[str] = None
    mode: Optional[Literal["report", "pipeline"]] = None
    extract_limit: Optional[int] = Field(None, ge=0)
    step_timeout: Optional[float] = Field(None, gt=0)
    workers: Optional[int] = Field(None, ge=1)
    actions: Optional[ActionLevelsSpec] = None
    steps: List[StepSpec] = Field(default_factory=list)
