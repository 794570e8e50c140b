# hrtempo/session/pipeline.py
from __future__ import annotations
from random import Random
from typing import Callable, List, Optional, Tuple

from hrtempo.core.event_bus import EventBus
from hrtempo.core.events import SESSION_STARTED, SESSION_ENDED
from hrtempo.control.engine import AdaptiveBPMEngine
from hrtempo.control.types import AlgorithmConfig
from hrtempo.music.library import MusicLibraryManager
from hrtempo.music.player import MusicPlayerService
from hrtempo.session.logger import SessionLogger
from hrtempo.session.types import SessionLog, SessionStarted, SessionEnded

# Subscription order on the bus. The engine has to see hr:reading before the
# logger does, so the row the logger builds for a reading already carries the
# algorithm state the engine published for it.
STAGE_ORDER: Tuple[str, ...] = ("engine", "player", "logger")


class SessionPipeline:
    """Explicitly wired engine -> player -> logger for one bus."""

    def __init__(self, bus: EventBus, config: AlgorithmConfig,
                 library_manager: Optional[MusicLibraryManager] = None,
                 clock: Optional[Callable[[], int]] = None,
                 rng: Optional[Random] = None):
        self.bus = bus
        self.engine = AdaptiveBPMEngine(bus, config, clock=clock)
        self.player = MusicPlayerService(bus, library_manager or MusicLibraryManager(), rng=rng)
        self.logger = SessionLogger(bus, clock=clock)
        self._session_id: Optional[str] = None

    def stages(self) -> List[Tuple[str, object]]:
        return [(name, getattr(self, name)) for name in STAGE_ORDER]

    @property
    def active(self) -> bool:
        return self._session_id is not None

    def start(self) -> str:
        if self._session_id is not None:
            raise RuntimeError(f"Pipeline already running session {self._session_id}.")
        self.engine.start()
        self.player.start()
        self._session_id = self.logger.start(self.engine.get_config())
        self.bus.publish(SESSION_STARTED, SessionStarted(session_id=self._session_id))
        return self._session_id

    def stop(self, reason: str = "user") -> SessionLog:
        if self._session_id is None:
            raise RuntimeError("Pipeline is not running.")
        log = self.logger.stop(reason)
        self.player.stop()
        self.engine.stop()
        self._session_id = None
        self.bus.publish(SESSION_ENDED, SessionEnded(session_id=log.session_id, reason=reason))
        return log
