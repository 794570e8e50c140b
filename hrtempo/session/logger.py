# hrtempo/session/logger.py
from __future__ import annotations
import uuid
from typing import Any, Callable, Dict, List, Optional

from hrtempo.core.event_bus import EventBus
from hrtempo.core import events as ev
from hrtempo.core.formatters import now_ms, round_half_up
from hrtempo.io.types import HeartRateReading, BleDeviceInfo, DeviceDisconnected
from hrtempo.control.types import AlgorithmConfig, AlgorithmState, BPMTarget, ModeChange, MAINTAIN
from hrtempo.music.types import TrackMetadata
from hrtempo.session import types as st
from hrtempo.session.types import LogEntry, TimeSeriesRow, SessionLog, SessionMetadata


def _new_session_id(ms: int) -> str:
    return f"{ms}-{uuid.uuid4().hex[:7]}"


class SessionLogger:
    """
    Records one session: a discrete entry per event, plus one merged
    TimeSeriesRow per heart-rate reading.

    Rows are built only from what has already been published. Algorithm state
    and the current track are cached as they arrive and carried forward into
    every later row until superseded. For a row to see the algorithm state
    derived from the same reading, the engine has to be subscribed to
    hr:reading before start() is called here (see session.pipeline).
    """

    def __init__(self, bus: EventBus, clock: Optional[Callable[[], int]] = None):
        self.bus = bus
        self._clock = clock or now_ms
        self._active = False
        self._unsubscribers: List[Callable[[], None]] = []
        self._reset({}, 0)

    def _reset(self, config: Dict[str, Any], start: int) -> None:
        self._session_id = ""
        self._start_time = start
        self._config = config
        self._device_name: Optional[str] = None
        self._entries: List[LogEntry] = []
        self._rows: List[TimeSeriesRow] = []
        self._cached_state: Optional[AlgorithmState] = None
        self._cached_track: Optional[TrackMetadata] = None

        zone = config.get("target_zone") or {}
        self._zone_min = zone.get("min_bpm", 0)
        self._zone_max = zone.get("max_bpm", 0)

        # running aggregates for SessionMetadata
        self._hr_count = 0
        self._hr_sum = 0.0
        self._hr_min: Optional[float] = None
        self._hr_max: Optional[float] = None
        self._track_count = 0
        self._target_changes = 0
        self._in_zone_ms = 0
        self._above_zone_ms = 0
        self._below_zone_ms = 0
        self._last_reading_ts: Optional[int] = None

    # ---------- lifecycle ----------
    def start(self, config: AlgorithmConfig | Dict[str, Any]) -> str:
        if self._active:
            raise RuntimeError(f"Session {self._session_id} is already active; stop it first.")
        cfg = config.to_dict() if isinstance(config, AlgorithmConfig) else dict(config)
        start = self._clock()
        self._reset(cfg, start)
        self._session_id = _new_session_id(start)
        self._active = True

        # algorithm handlers ahead of hr:reading so a reading's row sees the state
        # published for it
        for topic, handler in (
            (ev.ALGO_STATE, self._on_algo_state),
            (ev.ALGO_TARGET, self._on_algo_target),
            (ev.ALGO_MODE, self._on_mode_changed),
            (ev.MUSIC_CHANGED, self._on_music_changed),
            (ev.HR_READING, self._on_hr_reading),
            (ev.HR_CONNECTED, self._on_device_connected),
            (ev.HR_DISCONNECTED, self._on_device_disconnected),
        ):
            self._unsubscribers.append(self.bus.subscribe(topic, handler))

        self._add_entry(st.SESSION_START, {"config": cfg})
        return self._session_id

    def stop(self, reason: str = "user") -> SessionLog:
        if not self._active:
            raise RuntimeError("No active session to stop.")
        if reason not in st.STOP_REASONS:
            raise ValueError(f"Unknown stop reason '{reason}'. Expected one of {list(st.STOP_REASONS)}")
        self._add_entry(st.SESSION_END, {"reason": reason})
        self._active = False
        for unsub in self._unsubscribers:
            unsub()
        self._unsubscribers = []

        end = self._clock()
        return SessionLog(
            session_id=self._session_id,
            start_time=self._start_time,
            end_time=end,
            duration_ms=end - self._start_time,
            config=self._config,
            device_name=self._device_name,
            entries=tuple(self._entries),
            time_series=tuple(self._rows),
            metadata=self._metadata(),
        )

    # ---------- accessors ----------
    def is_active(self) -> bool:
        return self._active

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    @property
    def time_series_count(self) -> int:
        return len(self._rows)

    def elapsed_ms(self) -> int:
        if not self._active:
            return 0
        return self._clock() - self._start_time

    # ---------- handlers ----------
    def _add_entry(self, kind: str, data: Dict[str, Any]) -> None:
        if kind not in st.ENTRY_TYPES:
            raise ValueError(f"Unknown log entry type '{kind}'. Expected one of {list(st.ENTRY_TYPES)}")
        ts = self._clock()
        self._entries.append(LogEntry(
            timestamp=ts, type=kind, session_elapsed_ms=ts - self._start_time, data=data,
        ))

    def _on_algo_state(self, state: AlgorithmState) -> None:
        self._cached_state = state
        self._add_entry(st.ALGORITHM_STATE, {
            "smoothed_hr": state.smoothed_hr,
            "current_mode": state.current_mode,
            "current_target_bpm": state.current_target_bpm,
            "consecutive_out_of_zone_ms": state.consecutive_out_of_zone_ms,
        })

    def _on_algo_target(self, target: BPMTarget) -> None:
        self._target_changes += 1
        self._add_entry(st.ALGORITHM_TARGET, {
            "target_bpm": target.target_bpm,
            "triggering_hr": target.triggering_hr,
            "reason": target.reason,
            "urgency": target.urgency,
            "mode": target.mode,
        })

    def _on_mode_changed(self, change: ModeChange) -> None:
        self._add_entry(st.ALGORITHM_MODE_CHANGE, {"from": change.from_mode, "to": change.to_mode})

    def _on_music_changed(self, track: TrackMetadata) -> None:
        self._cached_track = track
        self._track_count += 1
        self._add_entry(st.MUSIC_CHANGE, {
            "track_id": track.id,
            "track_title": track.title,
            "track_bpm": track.bpm,
            "track_artist": track.artist,
        })

    def _on_hr_reading(self, reading: HeartRateReading) -> None:
        bpm = reading.bpm
        self._hr_count += 1
        self._hr_sum += bpm
        self._hr_min = bpm if self._hr_min is None else min(self._hr_min, bpm)
        self._hr_max = bpm if self._hr_max is None else max(self._hr_max, bpm)

        # zone time uses the raw bpm, not the smoothed one
        if self._last_reading_ts is not None:
            delta = reading.timestamp - self._last_reading_ts
            if bpm < self._zone_min:
                self._below_zone_ms += delta
            elif bpm > self._zone_max:
                self._above_zone_ms += delta
            else:
                self._in_zone_ms += delta
        self._last_reading_ts = reading.timestamp

        self._add_entry(st.HR_READING, {
            "bpm": bpm,
            "sensor_contact": reading.sensor_contact,
            "rr_intervals": list(reading.rr_intervals),
        })

        state, track = self._cached_state, self._cached_track
        self._rows.append(TimeSeriesRow(
            timestamp=reading.timestamp,
            session_elapsed_ms=reading.timestamp - self._start_time,
            hr_bpm=bpm,
            sensor_contact=reading.sensor_contact,
            rr_intervals=tuple(reading.rr_intervals),
            smoothed_hr=state.smoothed_hr if state else bpm,
            current_mode=state.current_mode if state else MAINTAIN,
            consecutive_out_of_zone_ms=state.consecutive_out_of_zone_ms if state else 0,
            current_target_bpm=state.current_target_bpm if state else 0,
            target_zone_min=self._zone_min,
            target_zone_max=self._zone_max,
            current_track_id=track.id if track else None,
            current_track_title=track.title if track else None,
            current_track_bpm=track.bpm if track else None,
            current_track_artist=track.artist if track else None,
        ))

    def _on_device_connected(self, device: BleDeviceInfo) -> None:
        self._device_name = device.name
        self._add_entry(st.DEVICE_CONNECTED, {"device_id": device.id, "device_name": device.name})

    def _on_device_disconnected(self, event: DeviceDisconnected) -> None:
        self._add_entry(st.DEVICE_DISCONNECTED, {"device_id": event.device_id, "reason": event.reason})

    def _metadata(self) -> SessionMetadata:
        has_hr = self._hr_count > 0
        return SessionMetadata(
            avg_heart_rate=round_half_up(self._hr_sum / self._hr_count) if has_hr else None,
            max_heart_rate=self._hr_max,
            min_heart_rate=self._hr_min,
            total_tracks_played=self._track_count,
            total_bpm_target_changes=self._target_changes,
            time_in_zone_ms=self._in_zone_ms,
            time_above_zone_ms=self._above_zone_ms,
            time_below_zone_ms=self._below_zone_ms,
        )
