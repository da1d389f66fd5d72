"""Behavior strategies and the factory that selects one by name."""

from __future__ import annotations

from terrarium.strategies.base import BehaviorStrategy, InferenceContext
from terrarium.strategies.event_driven import EventDrivenStrategy
from terrarium.strategies.layered import LayeredStrategy
from terrarium.strategies.legacy import LegacyStrategy
from terrarium.strategies.plan_queue import PlanQueueStrategy

STRATEGIES: dict[str, type[BehaviorStrategy]] = {
    LegacyStrategy.name: LegacyStrategy,
    PlanQueueStrategy.name: PlanQueueStrategy,
    EventDrivenStrategy.name: EventDrivenStrategy,
    LayeredStrategy.name: LayeredStrategy,
}


class UnknownStrategyError(ValueError):
    """Raised when a strategy name is not one of the known variants."""


def create_strategy(name: str, **kwargs) -> BehaviorStrategy:
    try:
        cls = STRATEGIES[name]
    except KeyError:
        raise UnknownStrategyError(
            f"Unknown strategy {name!r}; expected one of {', '.join(STRATEGIES)}"
        ) from None
    return cls(**kwargs)


__all__ = [
    "BehaviorStrategy",
    "EventDrivenStrategy",
    "InferenceContext",
    "LayeredStrategy",
    "LegacyStrategy",
    "PlanQueueStrategy",
    "STRATEGIES",
    "UnknownStrategyError",
    "create_strategy",
]
