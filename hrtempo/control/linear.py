# hrtempo/control/linear.py
from __future__ import annotations
import math
from typing import Optional, Sequence

import numpy as np

from hrtempo.core.formatters import round_half_up, now_ms as wall_clock_ms
from hrtempo.io.types import HeartRateReading
from hrtempo.control.strategy import Strategy, register_strategy
from hrtempo.control.types import (
    AlgorithmConfig, AlgorithmState, BPMTarget, HRZone, StrategyResult,
    MAINTAIN, RAISE, LOWER, BELOW, IN_ZONE, ABOVE,
)

# error is measured in half-zone-widths and capped here
MAX_ERROR_MAGNITUDE = 2.0


def smoothed_hr(history: Sequence[HeartRateReading]) -> float:
    """Unweighted mean BPM of the buffered readings (0.0 for an empty buffer)."""
    if not history:
        return 0.0
    return float(np.mean([r.bpm for r in history], dtype=np.float64))


def classify_zone_position(hr: float, zone: HRZone) -> str:
    if hr < zone.min_bpm:
        return BELOW
    if hr > zone.max_bpm:
        return ABOVE
    return IN_ZONE


def consecutive_in_zone_ms(history: Sequence[HeartRateReading], zone: HRZone) -> float:
    """
    Walk the buffer backwards from the newest reading, summing the gaps between
    neighbours until the first out-of-zone reading. Needs two readings to
    measure anything.
    """
    if len(history) < 2:
        return 0
    duration = 0
    for i in range(len(history) - 1, 0, -1):
        reading = history[i]
        if reading.bpm < zone.min_bpm or reading.bpm > zone.max_bpm:
            break
        duration += reading.timestamp - history[i - 1].timestamp
    return duration


def error_magnitude(hr: float, zone: HRZone) -> float:
    return min(abs(hr - zone.mid) / (zone.width / 2), MAX_ERROR_MAGNITUDE)


@register_strategy("linear")
class LinearStrategy(Strategy):
    """
    Hysteresis state machine (MAINTAIN / RAISE / LOWER) stepping the music
    target linearly in proportion to how far smoothed HR sits from the zone
    midpoint.
    """

    def initial_state(self, config: AlgorithmConfig, now_ms: Optional[int] = None) -> AlgorithmState:
        neutral_bpm = config.min_music_bpm + (config.max_music_bpm - config.min_music_bpm) / 2
        return AlgorithmState(
            current_mode=MAINTAIN,
            mode_entered_at=wall_clock_ms() if now_ms is None else int(now_ms),
            smoothed_hr=config.target_zone.mid,
            hr_history=(),
            consecutive_out_of_zone_ms=0,
            current_target_bpm=neutral_bpm,
            ms_since_last_target_change=math.inf,
        )

    def _next_mode(self, state: AlgorithmState, position: str, out_of_zone_ms: float,
                   history: Sequence[HeartRateReading], config: AlgorithmConfig) -> str:
        dwell_met = out_of_zone_ms >= config.dwell_time_ms
        mode = state.current_mode

        if state.current_mode == MAINTAIN:
            if position == ABOVE and dwell_met:
                return LOWER
            if position == BELOW and dwell_met:
                return RAISE
            return MAINTAIN

        if position == IN_ZONE:
            if consecutive_in_zone_ms(history, config.target_zone) >= config.return_to_maintain_ms:
                mode = MAINTAIN
        # reversal is checked after the return and overwrites it
        if state.current_mode == RAISE and position == ABOVE and dwell_met:
            mode = LOWER
        elif state.current_mode == LOWER and position == BELOW and dwell_met:
            mode = RAISE
        return mode

    def compute(self, reading: HeartRateReading, state: AlgorithmState,
                config: AlgorithmConfig) -> StrategyResult:
        zone = config.target_zone
        history = (state.hr_history + (reading,))[-config.smoothing_window:]
        previous = state.hr_history[-1] if state.hr_history else None
        dt = reading.timestamp - previous.timestamp if previous is not None else 0

        hr = smoothed_hr(history)
        position = classify_zone_position(hr, zone)

        if position == IN_ZONE:
            out_of_zone_ms = 0
        else:
            out_of_zone_ms = state.consecutive_out_of_zone_ms + dt
        since_change = state.ms_since_last_target_change + dt

        mode = self._next_mode(state, position, out_of_zone_ms, history, config)
        mode_entered_at = reading.timestamp if mode != state.current_mode else state.mode_entered_at

        base_step = (config.max_music_bpm - config.min_music_bpm) / 100
        err = error_magnitude(hr, zone)
        step = base_step * config.responsiveness * err

        next_target = state.current_target_bpm
        if mode == RAISE:
            next_target = min(state.current_target_bpm + step, config.max_music_bpm)
        elif mode == LOWER:
            next_target = max(state.current_target_bpm - step, config.min_music_bpm)

        emit = (abs(next_target - state.current_target_bpm) >= 1
                and since_change >= config.cooldown_seconds * 1000)
        rounded = round_half_up(next_target)

        next_state = AlgorithmState(
            current_mode=mode,
            mode_entered_at=mode_entered_at,
            smoothed_hr=hr,
            hr_history=history,
            consecutive_out_of_zone_ms=out_of_zone_ms,
            current_target_bpm=rounded if emit else next_target,
            ms_since_last_target_change=0 if emit else since_change,
        )

        target = None
        if emit:
            side = {BELOW: "below", ABOVE: "above"}.get(position, "in")
            target = BPMTarget(
                target_bpm=rounded,
                triggering_hr=reading.bpm,
                timestamp=reading.timestamp,
                reason=(f"Mode {mode}: HR {round_half_up(hr)} {side} zone "
                        f"[{zone.min_bpm:g}-{zone.max_bpm:g}]"),
                urgency=min(err / 2, 1.0),
                mode=mode,
            )
        return StrategyResult(next_state=next_state, target=target)
