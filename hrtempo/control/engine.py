# hrtempo/control/engine.py
from __future__ import annotations
from typing import Callable, Optional

from hrtempo.core.event_bus import EventBus
from hrtempo.core.events import HR_READING, ALGO_MODE, ALGO_STATE, ALGO_TARGET
from hrtempo.core.formatters import now_ms
from hrtempo.io.types import HeartRateReading
from hrtempo.control.strategy import get_strategy
from hrtempo.control.types import AlgorithmConfig, AlgorithmState, ModeChange


class AdaptiveBPMEngine:
    """
    Owns the live (strategy, state, config) triple and drives the strategy from
    the hr:reading stream.

    Per reading it publishes, in this order: algo:modeChanged (only when the
    mode moved), algo:stateChanged (always), algo:target (only when the
    strategy produced one). Subscribers downstream depend on that order.
    """

    def __init__(self, bus: EventBus, config: AlgorithmConfig,
                 clock: Optional[Callable[[], int]] = None):
        self.bus = bus
        self._clock = clock or now_ms
        self._config = config
        self._strategy = get_strategy(config.strategy_name)
        self._state = self._strategy.initial_state(config, now_ms=self._clock())
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self.bus.subscribe(HR_READING, self.handle_reading)

    def stop(self) -> None:
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None

    def get_state(self) -> AlgorithmState:
        return self._state

    def get_config(self) -> AlgorithmConfig:
        return self._config

    @property
    def strategy_name(self) -> str:
        return self._strategy.name

    def update_config(self, config: AlgorithmConfig) -> None:
        """Takes effect on the next reading. A different strategy discards history."""
        if config.strategy_name.lower() != self._strategy.name:
            strategy = get_strategy(config.strategy_name)   # raises before anything changes
            self._config = config
            self._strategy = strategy
            self._state = strategy.initial_state(config, now_ms=self._clock())
        else:
            self._config = config

    def set_strategy(self, name: str) -> None:
        strategy = get_strategy(name)
        self._strategy = strategy
        self._state = strategy.initial_state(self._config, now_ms=self._clock())

    def handle_reading(self, reading: HeartRateReading) -> None:
        previous_mode = self._state.current_mode
        result = self._strategy.compute(reading, self._state, self._config)
        self._state = result.next_state

        if result.next_state.current_mode != previous_mode:
            self.bus.publish(ALGO_MODE, ModeChange(
                from_mode=previous_mode,
                to_mode=result.next_state.current_mode,
                timestamp=reading.timestamp,
            ))
        self.bus.publish(ALGO_STATE, self._state)
        if result.target is not None:
            self.bus.publish(ALGO_TARGET, result.target)
