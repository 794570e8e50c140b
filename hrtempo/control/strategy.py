from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Dict, Type, List, Optional

from hrtempo.io.types import HeartRateReading
from hrtempo.control.types import AlgorithmConfig, AlgorithmState, StrategyResult


class Strategy(ABC):
    """
    Interface every target strategy implements.

    Strategies are pure: no subscriptions, no I/O, no mutation of the state
    they are given. compute() returns a new state and, sometimes, a target.
    """

    name: str = ""

    @abstractmethod
    def initial_state(self, config: AlgorithmConfig, now_ms: Optional[int] = None) -> AlgorithmState:
        ...

    @abstractmethod
    def compute(self, reading: HeartRateReading, state: AlgorithmState,
                config: AlgorithmConfig) -> StrategyResult:
        ...


_STRATEGY_REGISTRY: Dict[str, Type[Strategy]] = {}

def register_strategy(name: str):
    """Decorator to register a concrete Strategy under its config identifier."""
    def deco(cls: Type[Strategy]) -> Type[Strategy]:
        cls.name = name.lower()
        _STRATEGY_REGISTRY[cls.name] = cls
        return cls
    return deco

def _load_builtin_strategies() -> None:
    import hrtempo.control.linear  # noqa: F401  registers "linear"

def get_strategy(name: str) -> Strategy:
    _load_builtin_strategies()
    key = (name or "").lower()
    if key not in _STRATEGY_REGISTRY:
        raise ValueError(f"Unknown strategy '{name}'. Available: {available_strategies()}")
    return _STRATEGY_REGISTRY[key]()

def available_strategies() -> List[str]:
    _load_builtin_strategies()
    return sorted(_STRATEGY_REGISTRY.keys())
