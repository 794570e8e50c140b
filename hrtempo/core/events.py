"""
Event topics and their payload types.

Every event that crosses the bus is listed here; the bus refuses topics that
are not in EVENT_TYPES and payloads that are not instances of the listed type.
"""
from __future__ import annotations
from typing import Dict, Tuple

from hrtempo.io.types import HeartRateReading, BleDeviceInfo, DeviceDisconnected, HRError
from hrtempo.control.types import AlgorithmState, BPMTarget, ModeChange
from hrtempo.music.types import TrackMetadata, PlaybackState, MusicError
from hrtempo.session.types import SessionStarted, SessionEnded

HR_READING = "hr:reading"
HR_CONNECTED = "hr:connected"
HR_DISCONNECTED = "hr:disconnected"
HR_CONNECTION_STATE = "hr:connectionStateChanged"
HR_SCAN_RESULT = "hr:scanResult"
HR_ERROR = "hr:error"

ALGO_TARGET = "algo:target"
ALGO_STATE = "algo:stateChanged"
ALGO_MODE = "algo:modeChanged"

MUSIC_CHANGED = "music:changed"
MUSIC_PLAYBACK = "music:playbackStateChanged"
MUSIC_ERROR = "music:error"

SESSION_STARTED = "session:started"
SESSION_ENDED = "session:ended"

EVENT_TYPES: Dict[str, type] = {
    HR_READING: HeartRateReading,
    HR_CONNECTED: BleDeviceInfo,
    HR_DISCONNECTED: DeviceDisconnected,
    HR_CONNECTION_STATE: str,
    HR_SCAN_RESULT: BleDeviceInfo,
    HR_ERROR: HRError,
    ALGO_TARGET: BPMTarget,
    ALGO_STATE: AlgorithmState,
    ALGO_MODE: ModeChange,
    MUSIC_CHANGED: TrackMetadata,
    MUSIC_PLAYBACK: PlaybackState,
    MUSIC_ERROR: MusicError,
    SESSION_STARTED: SessionStarted,
    SESSION_ENDED: SessionEnded,
}

TOPICS: Tuple[str, ...] = tuple(EVENT_TYPES)
