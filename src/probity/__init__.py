# src/probity/__init__.py
"""
Probity - interrogate tabular data against ordered validation steps

Usage:
    # CLI
    $ probity interrogate plan.yml --data orders.parquet

    # Python API
    import probity
    from probity import steps

    agent = probity.create_agent(
        df,
        actions=probity.action_levels(warn_at=0.02, stop_at=0.05),
        mode="pipeline",
    )
    agent.add_step(steps.col_vals_gt(["a", "b"], 6))
    agent.add_step(steps.col_vals_not_null("c", precondition="a > 0"))
    agent.interrogate()

    agent.results()          # one StepResult per step, in id order
    agent.get_extract(1)     # failing rows of step 1
    agent.overall_state()    # e.g. frozenset({"warn"})

    # From a YAML plan
    agent = probity.load_agent("plan.yml", tbl=df).interrogate()
"""

from probity.version import VERSION as __version__

# Agent and plans
from probity.api.agent import Agent, create_agent
from probity.config.loader import load_agent

# Step helpers
from probity.api import steps
from probity.rules.predicates import col
from probity.rules.steps import StepKind, ValidationStep

# Actions
from probity.actions.effects import Halt, Notify, ReactionContext, Warn
from probity.actions.levels import ActionLevels, action_levels

# Results
from probity.api.results import StepResult

# Tables
from probity.connectors.handle import TableHandle, resolve_table

# Errors
from probity.errors import (
    InvalidDataError,
    InvalidStepSpec,
    ProbityError,
    ReactionError,
    SchemaUnavailable,
    StopTriggered,
    TranslationError,
)

__all__ = [
    "__version__",
    # Agent
    "Agent",
    "create_agent",
    "load_agent",
    # Steps
    "steps",
    "col",
    "StepKind",
    "ValidationStep",
    # Actions
    "ActionLevels",
    "action_levels",
    "Warn",
    "Halt",
    "Notify",
    "ReactionContext",
    # Results
    "StepResult",
    # Tables
    "TableHandle",
    "resolve_table",
    # Errors
    "ProbityError",
    "InvalidStepSpec",
    "SchemaUnavailable",
    "TranslationError",
    "ReactionError",
    "StopTriggered",
    "InvalidDataError",
]
