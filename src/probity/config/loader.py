# src/probity/config/loader.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from probity.config.models import AgentPlan
from probity.errors import InvalidStepSpec


class PlanLoader:
    """
    Reads an agent plan from YAML.

    Plan shape:
        name: orders
        data: data/orders.parquet     # optional; a table can be passed instead
        mode: pipeline
        actions: {warn_at: 0.02, stop_at: 0.05}
        steps:
          - kind: col_vals_between
            columns: [amount]
            params: {left: 0, right: 10000}
    """

    @staticmethod
    def from_path(path: Union[str, Path]) -> AgentPlan:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Plan file not found: {p}")
        try:
            raw = yaml.safe_load(p.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ValueError(f"Plan {p} is not valid YAML: {e}") from None
        return PlanLoader.from_dict(raw or {}, origin=str(p))

    @staticmethod
    def from_dict(raw: Any, origin: str = "<dict>") -> AgentPlan:
        if not isinstance(raw, dict):
            raise ValueError(f"Plan {origin} must be a mapping, got {type(raw).__name__}")
        try:
            return AgentPlan.model_validate(raw)
        except ValidationError as e:
            raise InvalidStepSpec(f"Plan {origin} is invalid: {e}") from None


def load_agent(
    plan: Union[str, Path, Dict[str, Any]],
    tbl: Any = None,
    **overrides: Any,
):
    """
    Build an Agent (steps appended, not yet interrogated) from a YAML plan.

    Args:
        plan: path to a YAML file, or the plan as a dict
        tbl: table to validate; defaults to the plan's `data`
        overrides: Agent keyword arguments that win over the plan's values

    Raises:
        FileNotFoundError: plan file missing
        ValueError / InvalidStepSpec: malformed plan or step
    """
    from probity.api.agent import Agent

    spec = PlanLoader.from_dict(plan) if isinstance(plan, dict) else PlanLoader.from_path(plan)
    source = tbl if tbl is not None else spec.data
    if source is None:
        raise ValueError("No table given and the plan has no `data` entry")

    kwargs: Dict[str, Any] = {
        "table": spec.table,
        "name": spec.name,
        "actions": spec.actions,
        "mode": spec.mode,
        "extract_limit": spec.extract_limit,
        "step_timeout": spec.step_timeout,
        "workers": spec.workers,
        "row_id": spec.row_id,
    }
    kwargs.update({k: v for k, v in overrides.items() if v is not None})
    agent = Agent(source, **kwargs)
    return agent.add_steps(spec.steps)
