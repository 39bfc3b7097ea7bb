# src/probity/actions/levels.py
"""
Action levels: failure thresholds for the warn / stop / notify states.

A threshold holds an absolute failing-unit count and/or a failing fraction;
it is met when EITHER is reached. States are evaluated independently and
only from the step's own counts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple, Union


class State(str, Enum):
    WARN = "warn"
    STOP = "stop"
    NOTIFY = "notify"

    def __str__(self) -> str:
        return self.value


# Evaluation order for states and their reactions
STATE_ORDER: Tuple[State, ...] = (State.WARN, State.STOP, State.NOTIFY)


@dataclass(frozen=True)
class Threshold:
    """`count`: failing units (>= 1). `fraction`: failing share in (0, 1)."""

    count: Optional[int] = None
    fraction: Optional[float] = None

    def __post_init__(self):
        if self.count is None and self.fraction is None:
            raise ValueError("Threshold needs a count or a fraction")
        if self.count is not None and (isinstance(self.count, bool) or self.count < 1):
            raise ValueError(f"Threshold count must be an integer >= 1, got {self.count!r}")
        if self.fraction is not None and not (0.0 < self.fraction < 1.0):
            raise ValueError(f"Threshold fraction must be in (0, 1), got {self.fraction!r}")

    @classmethod
    def parse(cls, value: Any) -> Optional["Threshold"]:
        """
        Build a threshold from the user-facing shorthand.

          3            -> count 3
          0.05         -> fraction 0.05
          1.0, 2.0     -> count 1, count 2
          {"count": 3, "fraction": 0.1}
        """
        if value is None or isinstance(value, Threshold):
            return value
        if isinstance(value, Mapping):
            unknown = set(value) - {"count", "fraction"}
            if unknown:
                raise ValueError(f"Unknown threshold keys: {sorted(unknown)}")
            count = value.get("count")
            fraction = value.get("fraction")
            return cls(
                count=int(count) if count is not None else None,
                fraction=float(fraction) if fraction is not None else None,
            )
        if isinstance(value, bool):
            raise ValueError(f"Invalid threshold {value!r}")
        if isinstance(value, int):
            return cls(count=value)
        if isinstance(value, float):
            if value >= 1.0:
                if not value.is_integer():
                    raise ValueError(f"Threshold {value} is neither a fraction below 1 nor a whole count")
                return cls(count=int(value))
            return cls(fraction=value)
        raise ValueError(f"Invalid threshold {value!r}")

    def met(self, n_fail: int, f_fail: float) -> bool:
        if self.count is not None and n_fail >= self.count:
            return True
        if self.fraction is not None and f_fail >= self.fraction:
            return True
        return False

    def to_value(self) -> Union[int, float, Dict[str, Any]]:
        if self.fraction is None:
            return self.count
        if self.count is None:
            return self.fraction
        return {"count": self.count, "fraction": self.fraction}


Reaction = Callable[..., Any]


@dataclass(frozen=True)
class ActionLevels:
    warn: Optional[Threshold] = None
    stop: Optional[Threshold] = None
    notify: Optional[Threshold] = None
    # state name -> reactions fired (in order) when that state triggers
    reactions: Mapping[str, Tuple[Reaction, ...]] = field(default_factory=lambda: MappingProxyType({}))

    def threshold(self, state: State) -> Optional[Threshold]:
        return getattr(self, state.value)

    def evaluate(self, n_fail: int, f_fail: float) -> FrozenSet[str]:
        """Triggered state names for one step's failure counts."""
        return frozenset(
            s.value for s in STATE_ORDER if (t := self.threshold(s)) is not None and t.met(n_fail, f_fail)
        )

    def reactions_for(self, state: str) -> Tuple[Reaction, ...]:
        return self.reactions.get(state, ())

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for s in STATE_ORDER:
            t = self.threshold(s)
            if t is not None:
                out[f"{s.value}_at"] = t.to_value()
        return out


def _normalize_reactions(fns: Any) -> Mapping[str, Tuple[Reaction, ...]]:
    if not fns:
        return MappingProxyType({})
    if not isinstance(fns, Mapping):
        raise ValueError("fns must map a state ('warn', 'stop', 'notify') to reactions")
    out: Dict[str, Tuple[Reaction, ...]] = {}
    for state, handlers in fns.items():
        name = State(str(state).lower()).value
        if callable(handlers):
            handlers = (handlers,)
        handlers = tuple(handlers)
        for h in handlers:
            if not callable(h):
                raise ValueError(f"Reaction for '{name}' is not callable: {h!r}")
        out[name] = handlers
    return MappingProxyType(out)


def action_levels(
    warn_at: Any = None,
    stop_at: Any = None,
    notify_at: Any = None,
    fns: Optional[Mapping[str, Union[Reaction, Iterable[Reaction]]]] = None,
) -> ActionLevels:
    """
    Build ActionLevels from shorthand thresholds.

    Args:
        warn_at / stop_at / notify_at: int count, float fraction in (0, 1),
            or {"count": n, "fraction": f}
        fns: {"warn"|"stop"|"notify": callable or list of callables}; the
            effect descriptors Warn(), Halt() and Notify() are callables too.

    Raises:
        ValueError: malformed threshold or reaction
    """
    return ActionLevels(
        warn=Threshold.parse(warn_at),
        stop=Threshold.parse(stop_at),
        notify=Threshold.parse(notify_at),
        reactions=_normalize_reactions(fns),
    )
