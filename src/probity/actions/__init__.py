# src/probity/actions/__init__.py
from probity.actions.effects import Halt, Notify, ReactionContext, Warn
from probity.actions.levels import ActionLevels, State, Threshold, action_levels

__all__ = [
    "ActionLevels",
    "Threshold",
    "State",
    "action_levels",
    "Warn",
    "Halt",
    "Notify",
    "ReactionContext",
]
