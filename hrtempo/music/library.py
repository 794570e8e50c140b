# hrtempo/music/library.py
from __future__ import annotations
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import csv
import json

import soundfile as sf

from hrtempo.core.formatters import now_ms, round_half_up
from hrtempo.music.types import MusicLibrary, TrackMetadata

# Heuristics for column names in CSV/JSON track entries
ID_COLS       = ("id", "track_id", "idx")
TITLE_COLS    = ("title", "name", "track")
ARTIST_COLS   = ("artist", "performer", "author")
BPM_COLS      = ("bpm", "tempo")
URL_COLS      = ("url", "path", "file", "uri")
DURATION_COLS = ("duration_seconds", "duration", "length")
ALBUM_COLS    = ("album",)
GENRE_COLS    = ("genre", "style")
ARTWORK_COLS  = ("artwork_url", "artwork", "cover")


def _first_str(d: Dict[str, Any], cols: Iterable[str]) -> Optional[str]:
    for k in cols:
        v = d.get(k)
        if v is not None and str(v).strip():
            return str(v).strip()
    return None

def _first_float(d: Dict[str, Any], cols: Iterable[str]) -> Optional[float]:
    raw = _first_str(d, cols)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None

def _probe_duration(path: Path) -> float:
    """Duration from the audio file header, 0.0 if unknown."""
    if not path.is_file():
        return 0.0
    try:
        return float(sf.info(str(path)).duration)
    except RuntimeError as e:  # soundfile.LibsndfileError
        print(f"[WARN] Could not read audio header of {path} ({e}); duration unknown.")
        return 0.0

def _track_from_row(row: Dict[str, Any], base_dir: Path) -> Optional[TrackMetadata]:
    row = {str(k).strip().lower(): v for k, v in row.items() if k is not None}
    bpm = _first_float(row, BPM_COLS)
    if bpm is None or bpm <= 0:
        return None
    url = _first_str(row, URL_COLS) or ""
    duration = _first_float(row, DURATION_COLS)
    if duration is None:
        duration = _probe_duration(base_dir / url) if url else 0.0
    title = _first_str(row, TITLE_COLS) or (Path(url).stem if url else "Untitled")
    return TrackMetadata(
        id=_first_str(row, ID_COLS) or "",
        title=title,
        artist=_first_str(row, ARTIST_COLS) or "Unknown",
        bpm=bpm,
        url=url,
        duration_seconds=duration,
        album=_first_str(row, ALBUM_COLS),
        artwork_url=_first_str(row, ARTWORK_COLS),
        genre=_first_str(row, GENRE_COLS),
    )

def load_track_library(json_path: Path, csv_path: Path) -> List[TrackMetadata]:
    """
    Load track metadata from JSON (preferred) or CSV (fallback).
    Rows without a usable BPM are skipped; missing ids are numbered 1, 2, ...
    Relative file paths resolve against the library file's folder.
    """
    json_path, csv_path = Path(json_path), Path(csv_path)
    rows: List[Dict[str, Any]] = []

    if json_path.exists():
        data = json.loads(json_path.read_text(encoding="utf-8"))
        items = data.get("tracks", data) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise ValueError("JSON track library must be a list or have key 'tracks'.")
        rows = [r for r in items if isinstance(r, dict)]
        base_dir = json_path.parent
    elif csv_path.exists():
        with csv_path.open("r", encoding="utf-8-sig", newline="") as f:
            rows = list(csv.DictReader(f))
        base_dir = csv_path.parent
    else:
        raise FileNotFoundError(f"No track library at {json_path} or {csv_path}")

    tracks: List[TrackMetadata] = []
    skipped = 0
    for row in rows:
        track = _track_from_row(row, base_dir)
        if track is None:
            skipped += 1
            continue
        tracks.append(track)
    if skipped:
        print(f"[WARN] Skipped {skipped} library row(s) without a usable BPM.")

    next_id = 1
    out: List[TrackMetadata] = []
    for t in tracks:
        if not t.id:
            t = replace(t, id=str(next_id))
            next_id += 1
        out.append(t)
    return out


def build_bpm_index(tracks: Iterable[TrackMetadata]) -> Dict[int, List[str]]:
    index: Dict[int, List[str]] = {}
    for track in tracks:
        index.setdefault(round_half_up(track.bpm), []).append(track.id)
    return index


class MusicLibraryManager:
    """Holds the current track library; every change swaps in a new MusicLibrary value."""

    def __init__(self, tracks: Iterable[TrackMetadata] = ()):
        self._library = MusicLibrary()
        tracks = list(tracks)
        if tracks:
            self.load_tracks(tracks)

    def get_library(self) -> MusicLibrary:
        return self._library

    def _replace(self, tracks: List[TrackMetadata]) -> None:
        self._library = MusicLibrary(
            tracks=tuple(tracks),
            bpm_index=build_bpm_index(tracks),
            last_updated=now_ms(),
        )

    def load_tracks(self, tracks: Iterable[TrackMetadata]) -> None:
        self._replace(list(tracks))

    def load_file(self, json_path: Path, csv_path: Path) -> int:
        tracks = load_track_library(json_path, csv_path)
        self._replace(tracks)
        return len(tracks)

    def add_track(self, track: TrackMetadata) -> None:
        self._replace(list(self._library.tracks) + [track])

    def remove_track(self, track_id: str) -> None:
        self._replace([t for t in self._library.tracks if t.id != track_id])
