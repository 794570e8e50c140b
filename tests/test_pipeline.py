# tests/test_pipeline.py
from random import Random

import pytest

from hrtempo.control.engine import AdaptiveBPMEngine
from hrtempo.control.presets import create_default_config
from hrtempo.control.types import RAISE
from hrtempo.core.event_bus import EventBus
from hrtempo.core.events import HR_READING, SESSION_STARTED, SESSION_ENDED, MUSIC_ERROR
from hrtempo.io.hr_source import create_source
from hrtempo.music.library import MusicLibraryManager
from hrtempo.music.types import TrackMetadata
from hrtempo.session.exporter import export_time_series_csv
from hrtempo.session.logger import SessionLogger
from hrtempo.session.pipeline import SessionPipeline, STAGE_ORDER

TRACKS = [TrackMetadata(id=f"t{b}", title=f"T{b}", artist="A", bpm=b) for b in (120, 140, 150, 152, 154, 160, 180)]


def test_stage_order_puts_engine_before_logger():
    assert STAGE_ORDER.index("engine") < STAGE_ORDER.index("logger")
    pipeline = SessionPipeline(EventBus(), create_default_config())
    assert [name for name, _ in pipeline.stages()] == list(STAGE_ORDER)


def test_rows_carry_the_state_of_their_own_reading(make_config, make_readings, clock):
    bus = EventBus()
    pipeline = SessionPipeline(bus, make_config(), MusicLibraryManager(TRACKS), clock=clock, rng=Random(1))
    pipeline.start()
    bus.publish(HR_READING, make_readings([120], start=clock.now)[0])
    log = pipeline.stop()
    (row,) = log.time_series
    assert row.current_mode == RAISE
    assert row.current_target_bpm == 152
    # the player reacted to the target before the row was built
    assert row.current_track_id == "t152"


def test_reverse_subscription_order_sees_stale_state(make_config, make_readings, clock):
    bus = EventBus()
    logger = SessionLogger(bus, clock=clock)
    logger.start(make_config())
    engine = AdaptiveBPMEngine(bus, make_config(), clock=clock)
    engine.start()
    for r in make_readings([120, 120], start=clock.now):
        bus.publish(HR_READING, r)
    rows = logger.stop().time_series
    # each row lags one reading behind the engine
    assert rows[0].current_mode == "MAINTAIN" and rows[0].current_target_bpm == 0
    assert rows[1].current_target_bpm == 152
    assert engine.get_state().current_target_bpm == 154


def test_start_stop_lifecycle_events(make_config, clock):
    bus = EventBus()
    seen = []
    bus.subscribe(SESSION_STARTED, lambda e: seen.append(("started", e.session_id)))
    bus.subscribe(SESSION_ENDED, lambda e: seen.append(("ended", e.reason)))
    pipeline = SessionPipeline(bus, make_config(), clock=clock)
    sid = pipeline.start()
    assert pipeline.active
    with pytest.raises(RuntimeError):
        pipeline.start()
    pipeline.stop("timeout")
    assert not pipeline.active
    assert seen == [("started", sid), ("ended", "timeout")]
    with pytest.raises(RuntimeError):
        pipeline.stop()
    assert bus.subscriber_count(HR_READING) == 0


def test_empty_library_reports_music_error(make_config, make_readings, clock):
    bus = EventBus()
    errors = []
    bus.subscribe(MUSIC_ERROR, errors.append)
    pipeline = SessionPipeline(bus, make_config(), clock=clock)
    pipeline.start()
    bus.publish(HR_READING, make_readings([120], start=clock.now)[0])
    log = pipeline.stop()
    assert len(errors) == 1
    assert log.time_series[0].current_track_id is None


def test_synthetic_session_end_to_end(make_config, clock):
    bus = EventBus()
    cfg = make_config(smoothing_window=5, dwell_time_ms=3000, return_to_maintain_ms=3000,
                      cooldown_seconds=2, responsiveness=0.5)
    pipeline = SessionPipeline(bus, cfg, MusicLibraryManager(TRACKS), clock=clock, rng=Random(3))
    pipeline.start()
    source = create_source("synthetic", bus, start_bpm=110, drift_to_bpm=150, time_constant_sec=20,
                           noise_bpm=1.0, seed=11, start_ms=clock.now)
    source.connect()
    for _ in range(120):
        source.poll()
    source.disconnect()
    clock.advance(120_000)
    log = pipeline.stop()

    assert len(log.time_series) == 120
    assert log.device_name == "Synthetic HR"
    targets = [r.current_target_bpm for r in log.time_series]
    assert all(100 <= t <= 200 for t in targets)
    assert log.metadata.total_bpm_target_changes > 0
    assert log.metadata.total_tracks_played >= 1
    assert (log.metadata.time_in_zone_ms + log.metadata.time_above_zone_ms
            + log.metadata.time_below_zone_ms) == 119_000
    assert len(export_time_series_csv(log).split("\n")) == 121
