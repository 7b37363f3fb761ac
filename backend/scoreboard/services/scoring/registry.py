import threading
from typing import Callable, Dict, Optional

from .session import ScoringSession
from .streams import EventStream


class SessionRegistry:
    """One live ScoringSession per match, and one stream per store kind."""

    def __init__(self):
        self._sessions: Dict[int, ScoringSession] = {}
        self._streams: Dict[str, EventStream] = {}
        self._lock = threading.RLock()

    def stream(self, kind: str, factory: Callable[[], EventStream]) -> EventStream:
        with self._lock:
            stream = self._streams.get(kind)
            if stream is None:
                stream = factory()
                self._streams[kind] = stream
            return stream

    def get(self, match_id: int) -> Optional[ScoringSession]:
        with self._lock:
            return self._sessions.get(match_id)

    def get_or_create(self, match_id: int, factory: Callable[[], ScoringSession]) -> ScoringSession:
        with self._lock:
            session = self._sessions.get(match_id)
            if session is None:
                session = factory()
                self._sessions[match_id] = session
            return session

    def drop(self, match_id: int) -> None:
        with self._lock:
            session = self._sessions.pop(match_id, None)
        if session is not None:
            session.close()

    def reset(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._streams.clear()
        for session in sessions:
            session.close()


sessions = SessionRegistry()
