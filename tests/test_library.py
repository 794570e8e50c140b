# tests/test_library.py
import json

import numpy as np
import pytest
import soundfile as sf

from hrtempo.music.library import MusicLibraryManager, load_track_library, build_bpm_index
from hrtempo.music.types import TrackMetadata


def test_csv_fallback_with_column_heuristics(tmp_path, capsys):
    csv_path = tmp_path / "tracks.csv"
    csv_path.write_text(
        "Track,Performer,Tempo,Length\n"
        "Low Tide,Field Notes,110,198\n"
        "No Tempo,Someone,,200\n"
        "Climb,Cassia,150.5,\n",
        encoding="utf-8",
    )
    tracks = load_track_library(tmp_path / "missing.json", csv_path)
    assert [t.title for t in tracks] == ["Low Tide", "Climb"]
    assert [t.id for t in tracks] == ["1", "2"]
    assert tracks[0].artist == "Field Notes"
    assert tracks[0].duration_seconds == 198
    assert tracks[1].bpm == 150.5
    assert tracks[1].duration_seconds == 0.0
    assert "[WARN] Skipped 1" in capsys.readouterr().out


def test_json_preferred_over_csv(tmp_path):
    (tmp_path / "tracks.json").write_text(json.dumps({"tracks": [
        {"id": "x", "title": "From JSON", "artist": "J", "bpm": 160, "genre": "house"},
    ]}), encoding="utf-8")
    (tmp_path / "tracks.csv").write_text("title,bpm\nFrom CSV,120\n", encoding="utf-8")
    tracks = load_track_library(tmp_path / "tracks.json", tmp_path / "tracks.csv")
    assert [(t.id, t.title, t.genre) for t in tracks] == [("x", "From JSON", "house")]


def test_json_must_be_a_list(tmp_path):
    (tmp_path / "tracks.json").write_text(json.dumps({"tracks": "nope"}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_track_library(tmp_path / "tracks.json", tmp_path / "tracks.csv")


def test_no_library_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_track_library(tmp_path / "a.json", tmp_path / "a.csv")


def test_duration_probed_from_audio_header(tmp_path):
    sr = 8000
    sf.write(str(tmp_path / "clip.wav"), np.zeros(sr * 2, dtype=np.float32), sr)
    (tmp_path / "tracks.csv").write_text("file,bpm\nclip.wav,128\n", encoding="utf-8")
    (track,) = load_track_library(tmp_path / "tracks.json", tmp_path / "tracks.csv")
    assert track.title == "clip"
    assert track.duration_seconds == pytest.approx(2.0)


def test_bpm_index_groups_rounded_bpm():
    tracks = [TrackMetadata(id=i, title=i, artist="", bpm=b) for i, b in (("a", 120.4), ("b", 119.6), ("c", 140))]
    assert build_bpm_index(tracks) == {120: ["a", "b"], 140: ["c"]}


def test_manager_swaps_in_new_library_values():
    mgr = MusicLibraryManager()
    empty = mgr.get_library()
    assert empty.tracks == ()
    mgr.add_track(TrackMetadata(id="a", title="A", artist="", bpm=120))
    mgr.add_track(TrackMetadata(id="b", title="B", artist="", bpm=130))
    lib = mgr.get_library()
    assert lib is not empty and empty.tracks == ()
    assert [t.id for t in lib.tracks] == ["a", "b"]
    mgr.remove_track("a")
    assert [t.id for t in mgr.get_library().tracks] == ["b"]
    assert mgr.get_library().bpm_index == {130: ["b"]}


def test_manager_load_file(tmp_path):
    (tmp_path / "t.csv").write_text("title,bpm\nA,100\nB,101\n", encoding="utf-8")
    mgr = MusicLibraryManager()
    assert mgr.load_file(tmp_path / "t.json", tmp_path / "t.csv") == 2
    assert len(mgr.get_library().tracks) == 2
