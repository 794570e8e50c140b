# hrtempo/music/types.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class TrackMetadata:
    id: str
    title: str
    artist: str
    bpm: float
    url: str = ""
    duration_seconds: float = 0.0
    album: Optional[str] = None
    artwork_url: Optional[str] = None
    genre: Optional[str] = None


@dataclass(frozen=True)
class MusicLibrary:
    tracks: Tuple[TrackMetadata, ...] = ()
    # rounded BPM -> track ids
    bpm_index: Dict[int, List[str]] = field(default_factory=dict)
    last_updated: int = 0


@dataclass(frozen=True)
class TrackSelection:
    track: TrackMetadata
    actual_bpm: float
    requested_bpm: float
    bpm_delta: float


@dataclass(frozen=True)
class PlaybackState:
    current_track: Optional[TrackMetadata]
    is_playing: bool
    position_seconds: float = 0.0
    duration_seconds: float = 0.0
    target_bpm: Optional[int] = None


@dataclass(frozen=True)
class MusicError:
    message: str
