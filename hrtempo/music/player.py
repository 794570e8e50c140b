# hrtempo/music/player.py
from __future__ import annotations
from random import Random
from typing import Callable, List, Optional

from hrtempo.core.event_bus import EventBus
from hrtempo.core.events import ALGO_TARGET, MUSIC_CHANGED, MUSIC_PLAYBACK, MUSIC_ERROR
from hrtempo.control.types import BPMTarget
from hrtempo.music.library import MusicLibraryManager
from hrtempo.music.selector import select_track
from hrtempo.music.types import MusicError, PlaybackState, TrackMetadata


class MusicPlayerService:
    """
    Playback-side consumer of algo:target.

    Chooses the library track closest to each requested tempo and announces a
    change on music:changed. Audio output itself belongs to whatever listens to
    music:changed / music:playbackStateChanged.
    """

    def __init__(self, bus: EventBus, library_manager: MusicLibraryManager,
                 rng: Optional[Random] = None):
        self.bus = bus
        self.library_manager = library_manager
        self._rng = rng or Random()
        self._current: Optional[TrackMetadata] = None
        self._target_bpm: Optional[int] = None
        self._playing = False
        self._unsubscribers: List[Callable[[], None]] = []

    def start(self) -> None:
        if self._unsubscribers:
            return
        self._unsubscribers.append(self.bus.subscribe(ALGO_TARGET, self._on_target))

    def stop(self) -> None:
        for unsub in self._unsubscribers:
            unsub()
        self._unsubscribers = []
        self._playing = False

    def get_current_track(self) -> Optional[TrackMetadata]:
        return self._current

    def get_playback_state(self) -> PlaybackState:
        return PlaybackState(
            current_track=self._current,
            is_playing=self._playing,
            position_seconds=0.0,
            duration_seconds=self._current.duration_seconds if self._current else 0.0,
            target_bpm=self._target_bpm,
        )

    def play(self) -> None:
        self._playing = self._current is not None
        self._emit_playback_state()

    def pause(self) -> None:
        self._playing = False
        self._emit_playback_state()

    def skip(self) -> None:
        if self._target_bpm is not None:
            self._select_and_play(self._target_bpm)

    def _on_target(self, target: BPMTarget) -> None:
        self._target_bpm = target.target_bpm
        self._select_and_play(target.target_bpm)

    def _select_and_play(self, target_bpm: int) -> None:
        current_id = self._current.id if self._current else None
        selection = select_track(target_bpm, self.library_manager.get_library(), current_id, rng=self._rng)
        if selection is None:
            self.bus.publish(MUSIC_ERROR, MusicError(message=f"No track available for {target_bpm} BPM (library is empty)"))
            return
        if selection.track.id == current_id:
            return
        self._current = selection.track
        self._playing = True
        self.bus.publish(MUSIC_CHANGED, selection.track)
        self._emit_playback_state()

    def _emit_playback_state(self) -> None:
        self.bus.publish(MUSIC_PLAYBACK, self.get_playback_state())
