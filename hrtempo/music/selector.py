# hrtempo/music/selector.py
from __future__ import annotations
from random import Random
from typing import List, Optional

from hrtempo.music.types import MusicLibrary, TrackMetadata, TrackSelection


def select_track(target_bpm: float, library: MusicLibrary, current_track_id: Optional[str],
                 rng: Optional[Random] = None) -> Optional[TrackSelection]:
    """
    Pick the track whose BPM is closest to `target_bpm`.
    Among equally close tracks, prefer one that is not currently playing.
    Returns None for an empty library.
    """
    if not library.tracks:
        return None

    best: List[TrackMetadata] = []
    best_delta = float("inf")
    for track in library.tracks:
        delta = abs(track.bpm - target_bpm)
        if delta < best_delta:
            best_delta = delta
            best = [track]
        elif delta == best_delta:
            best.append(track)

    selected = best[0]
    if len(best) > 1 and current_track_id:
        alternatives = [t for t in best if t.id != current_track_id]
        if alternatives:
            selected = (rng or Random()).choice(alternatives)

    return TrackSelection(
        track=selected,
        actual_bpm=selected.bpm,
        requested_bpm=target_bpm,
        bpm_delta=abs(selected.bpm - target_bpm),
    )
