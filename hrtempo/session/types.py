# hrtempo/session/types.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

# Discrete log entry kinds
HR_READING = "hr_reading"
ALGORITHM_TARGET = "algorithm_target"
ALGORITHM_STATE = "algorithm_state"
ALGORITHM_MODE_CHANGE = "algorithm_mode_change"
MUSIC_CHANGE = "music_change"
SESSION_START = "session_start"
SESSION_END = "session_end"
DEVICE_CONNECTED = "device_connected"
DEVICE_DISCONNECTED = "device_disconnected"

ENTRY_TYPES: Tuple[str, ...] = (
    HR_READING, ALGORITHM_TARGET, ALGORITHM_STATE, ALGORITHM_MODE_CHANGE,
    MUSIC_CHANGE, SESSION_START, SESSION_END, DEVICE_CONNECTED, DEVICE_DISCONNECTED,
)

STOP_REASONS: Tuple[str, ...] = ("user", "error", "timeout")


@dataclass(frozen=True)
class LogEntry:
    timestamp: int
    type: str
    session_elapsed_ms: int
    data: Dict[str, Any]


@dataclass(frozen=True)
class TimeSeriesRow:
    """One row per HR reading; algorithm and track fields carry forward."""
    timestamp: int
    session_elapsed_ms: int
    hr_bpm: float
    sensor_contact: bool
    rr_intervals: Tuple[int, ...]
    smoothed_hr: float
    current_mode: str
    consecutive_out_of_zone_ms: float
    current_target_bpm: float
    target_zone_min: float
    target_zone_max: float
    current_track_id: Optional[str]
    current_track_title: Optional[str]
    current_track_bpm: Optional[float]
    current_track_artist: Optional[str]


@dataclass(frozen=True)
class SessionMetadata:
    avg_heart_rate: Optional[int]
    max_heart_rate: Optional[float]
    min_heart_rate: Optional[float]
    total_tracks_played: int
    total_bpm_target_changes: int
    time_in_zone_ms: float
    time_above_zone_ms: float
    time_below_zone_ms: float


@dataclass(frozen=True)
class SessionLog:
    session_id: str
    start_time: int
    end_time: Optional[int]
    duration_ms: int
    config: Dict[str, Any]
    device_name: Optional[str]
    entries: Tuple[LogEntry, ...]
    time_series: Tuple[TimeSeriesRow, ...]
    metadata: SessionMetadata


@dataclass(frozen=True)
class SessionStarted:
    session_id: str


@dataclass(frozen=True)
class SessionEnded:
    session_id: str
    reason: str
