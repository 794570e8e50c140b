# tests/test_linear_strategy.py
import math
from dataclasses import replace

import pytest

from hrtempo.control.linear import (
    LinearStrategy, smoothed_hr, classify_zone_position, consecutive_in_zone_ms, error_magnitude,
)
from hrtempo.control.strategy import get_strategy, available_strategies
from hrtempo.control.types import MAINTAIN, RAISE, LOWER, BELOW, IN_ZONE, ABOVE
from hrtempo.io.types import HeartRateReading


def run(strategy, config, rs, state=None):
    """Feed readings; returns (states, targets) with targets aligned per reading."""
    state = state or strategy.initial_state(config, now_ms=0)
    states, targets = [], []
    for r in rs:
        result = strategy.compute(r, state, config)
        state = result.next_state
        states.append(state)
        targets.append(result.target)
    return states, targets


def test_registry_resolves_linear():
    assert "linear" in available_strategies()
    assert isinstance(get_strategy("Linear"), LinearStrategy)
    with pytest.raises(ValueError, match="Unknown strategy"):
        get_strategy("pid")


def test_initial_state(make_config):
    cfg = make_config(min_music_bpm=120, max_music_bpm=180)
    s = LinearStrategy().initial_state(cfg, now_ms=42)
    assert s.current_mode == MAINTAIN
    assert s.mode_entered_at == 42
    assert s.current_target_bpm == 150
    assert s.smoothed_hr == 150     # zone midpoint
    assert s.hr_history == ()
    assert s.ms_since_last_target_change == math.inf


def test_helpers(zone, make_readings):
    assert smoothed_hr([]) == 0.0
    assert smoothed_hr(make_readings([140, 150, 160])) == 150.0
    assert classify_zone_position(139.9, zone) == BELOW
    assert classify_zone_position(140, zone) == IN_ZONE
    assert classify_zone_position(160, zone) == IN_ZONE
    assert classify_zone_position(160.1, zone) == ABOVE
    assert error_magnitude(150, zone) == 0
    assert error_magnitude(155, zone) == 0.5
    assert error_magnitude(100, zone) == 2.0


def test_in_zone_walk_stops_at_first_out_of_zone_sample(zone, make_readings):
    assert consecutive_in_zone_ms(make_readings([150]), zone) == 0
    assert consecutive_in_zone_ms(make_readings([150, 150, 150]), zone) == 2000
    # newest is out of zone: nothing accumulated
    assert consecutive_in_zone_ms(make_readings([150, 150, 170]), zone) == 0
    # walk stops once it reaches the out-of-zone sample at index 1
    assert consecutive_in_zone_ms(make_readings([150, 170, 150, 150]), zone) == 2000


def test_raise_scenario_steps_towards_max(make_config, make_readings):
    cfg = make_config()
    strategy = LinearStrategy()
    state = replace(strategy.initial_state(cfg, now_ms=0), current_mode=RAISE, current_target_bpm=150)
    result = strategy.compute(make_readings([120])[0], state, cfg)
    assert result.target is not None
    assert 150 < result.target.target_bpm < 200
    assert isinstance(result.target.target_bpm, int)
    assert result.target.target_bpm == 152      # base 1 * responsiveness 1 * capped error 2
    assert result.target.mode == RAISE
    assert result.target.urgency == 1.0
    assert result.next_state.current_mode == RAISE
    assert result.next_state.current_target_bpm == 152
    assert result.next_state.ms_since_last_target_change == 0


def test_compute_does_not_mutate_input_state(make_config, make_readings):
    cfg = make_config()
    strategy = LinearStrategy()
    state = strategy.initial_state(cfg, now_ms=0)
    before = replace(state)
    strategy.compute(make_readings([120])[0], state, cfg)
    assert state == before


@pytest.mark.parametrize("bpm,expected", [(120, RAISE), (180, LOWER)])
def test_dwell_holds_maintain_until_elapsed(make_config, make_readings, bpm, expected):
    cfg = make_config(dwell_time_ms=3000)
    states, _ = run(LinearStrategy(), cfg, make_readings([bpm] * 6))
    # cumulative out-of-zone time is 0, 1000, 2000, 3000, ...
    assert [s.current_mode for s in states[:3]] == [MAINTAIN] * 3
    assert states[3].current_mode == expected
    assert states[3].mode_entered_at == states[3].hr_history[-1].timestamp
    assert states[4].mode_entered_at == states[3].mode_entered_at


def test_out_of_zone_counter_resets_in_zone(make_config, make_readings):
    cfg = make_config(dwell_time_ms=10_000)
    states, _ = run(LinearStrategy(), cfg, make_readings([120, 120, 150, 120]))
    assert [s.consecutive_out_of_zone_ms for s in states] == [0, 1000, 0, 1000]


def test_target_is_monotone_and_clamped(make_config, make_readings):
    cfg = make_config(min_music_bpm=100, max_music_bpm=160, smoothing_window=3)
    strategy = LinearStrategy()
    states, targets = run(strategy, cfg, make_readings([100] * 40))
    values = [s.current_target_bpm for s in states]
    assert all(b >= a for a, b in zip(values, values[1:]))
    assert max(values) == 160
    assert all(t.target_bpm <= 160 for t in targets if t)

    states, _ = run(strategy, cfg, make_readings([200] * 40))
    values = [s.current_target_bpm for s in states]
    assert all(b <= a for a, b in zip(values, values[1:]))
    assert min(values) == 100


def test_higher_responsiveness_takes_bigger_step(make_config, make_readings):
    strategy = LinearStrategy()
    deltas = []
    for resp in (0.25, 0.5, 1.0):
        cfg = make_config(responsiveness=resp)
        state = replace(strategy.initial_state(cfg, now_ms=0), current_mode=RAISE, current_target_bpm=150)
        nxt = strategy.compute(make_readings([125])[0], state, cfg).next_state
        deltas.append(nxt.current_target_bpm - 150)
    assert deltas[0] < deltas[1] < deltas[2]


def test_sub_unit_steps_accumulate_without_emitting(make_config, make_readings):
    # step = 1 * 0.2 * 2.0 = 0.4 per reading, always under the 1 BPM gate
    cfg = make_config(responsiveness=0.2)
    strategy = LinearStrategy()
    state = replace(strategy.initial_state(cfg, now_ms=0), current_mode=RAISE, current_target_bpm=150)
    states, targets = run(strategy, cfg, make_readings([125] * 4), state=state)
    assert targets == [None] * 4
    assert states[-1].current_target_bpm == pytest.approx(151.6)
    assert states[-1].ms_since_last_target_change == math.inf


def test_cooldown_blocks_emission(make_config, make_readings):
    cfg = make_config(cooldown_seconds=3)
    strategy = LinearStrategy()
    state = replace(strategy.initial_state(cfg, now_ms=0), current_mode=RAISE, current_target_bpm=150)
    _, targets = run(strategy, cfg, make_readings([120] * 8), state=state)
    emitted = [i for i, t in enumerate(targets) if t is not None]
    # first emits immediately (no previous change), then one every 3 s
    assert emitted == [0, 3, 6]


def test_return_to_maintain_needs_continuous_in_zone_time(make_config, make_readings):
    cfg = make_config(smoothing_window=5, return_to_maintain_ms=2000)
    strategy = LinearStrategy()
    state = replace(strategy.initial_state(cfg, now_ms=0), current_mode=RAISE)
    # in zone from the first reading; the walk needs 2 s of gaps
    states, _ = run(strategy, cfg, make_readings([150, 150, 150, 150]), state=state)
    assert [s.current_mode for s in states] == [RAISE, RAISE, MAINTAIN, MAINTAIN]


def test_direct_reversal_once_dwell_met_on_opposite_side(make_config):
    # window 1 classifies by the latest reading: above the zone with dwell 0
    cfg = make_config(return_to_maintain_ms=0)
    strategy = LinearStrategy()
    state = replace(strategy.initial_state(cfg, now_ms=0), current_mode=RAISE)
    r = HeartRateReading(bpm=175, timestamp=1000)
    assert strategy.compute(r, state, cfg).next_state.current_mode == LOWER

    state = replace(state, current_mode=LOWER)
    r = HeartRateReading(bpm=120, timestamp=1000)
    assert strategy.compute(r, state, cfg).next_state.current_mode == RAISE


def test_maintain_never_moves_target(make_config, make_readings):
    cfg = make_config(dwell_time_ms=60_000)
    states, targets = run(LinearStrategy(), cfg, make_readings([120] * 10))
    assert all(s.current_target_bpm == 150 for s in states)
    assert targets == [None] * 10


def test_target_reason_text(make_config, make_readings):
    cfg = make_config()
    strategy = LinearStrategy()
    state = replace(strategy.initial_state(cfg, now_ms=0), current_mode=RAISE)
    target = strategy.compute(make_readings([120])[0], state, cfg).target
    assert target.reason == "Mode RAISE: HR 120 below zone [140-160]"
    assert target.triggering_hr == 120
