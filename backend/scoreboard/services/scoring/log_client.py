import logging
import threading
from typing import Callable, List, Optional

from .errors import InvalidState, StoreUnavailable
from .events import ScoreEvent, TeamScores, aggregate
from .streams import EventStream, Subscription, log_path

logger = logging.getLogger(__name__)


class LiveLog:
    """Latest pushed event sequence for one round.

    ``events`` is replaced wholesale on every push; the scores are always
    folded from it and never kept separately.
    """

    def __init__(self, match_id: int, round_no: int):
        self.match_id = match_id
        self.round = round_no
        self.events: List[ScoreEvent] = []
        self.stale = False
        self.version = 0
        self._listeners: List[Callable[['LiveLog'], None]] = []
        self._subscription: Optional[Subscription] = None
        self._lock = threading.Lock()

    @property
    def path(self) -> str:
        return log_path(self.match_id, self.round)

    @property
    def scores(self) -> TeamScores:
        return aggregate(self.events)

    @property
    def closed(self) -> bool:
        return self._subscription is None or not self._subscription.active

    def on_change(self, listener: Callable[['LiveLog'], None]) -> None:
        self._listeners.append(listener)

    def _push(self, events: List[ScoreEvent]) -> None:
        with self._lock:
            self.events = list(events)
            self.stale = False
            self.version += 1
        for listener in list(self._listeners):
            listener(self)

    def _fail(self, exc: Exception) -> None:
        self.stale = True
        logger.warning(f"[log-stale] path={self.path} error={exc}")
        for listener in list(self._listeners):
            listener(self)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()


class EventLogClient:
    """Scoring-side wrapper over an ``EventStream``.

    Writes go to the round of the current subscription and return without
    waiting for the push; the live view changes only when the push arrives.
    """

    def __init__(self, stream: EventStream):
        self.stream = stream
        self.live: Optional[LiveLog] = None

    def subscribe(self, match_id: int, round_no: int) -> LiveLog:
        if self.live is not None:
            self.live.close()
        live = LiveLog(match_id, round_no)
        self.live = live
        live._subscription = self.stream.subscribe(match_id, round_no, live._push, live._fail)
        logger.info(f"[log-subscribe] path={live.path}")
        return live

    def unsubscribe(self) -> None:
        if self.live is not None:
            self.live.close()
            logger.info(f"[log-unsubscribe] path={self.live.path}")

    def _target(self) -> LiveLog:
        if self.live is None or self.live.closed:
            raise InvalidState("no round is subscribed")
        return self.live

    def add_event(self, team: int, points: int) -> Optional[str]:
        live = self._target()
        event = ScoreEvent(team=team, points=points)
        try:
            key = self.stream.append(live.match_id, live.round, event)
        except StoreUnavailable as exc:
            live.stale = True
            logger.warning(f"[log-append-failed] path={live.path} team={team} points={points} error={exc}")
            return None
        logger.info(f"[log-append] path={live.path} team={team} points={points} key={key}")
        return key

    def undo_last(self) -> Optional[ScoreEvent]:
        live = self._target()
        try:
            removed = self.stream.remove_last(live.match_id, live.round)
        except StoreUnavailable as exc:
            logger.warning(f"[log-undo-failed] path={live.path} error={exc}")
            return None
        if removed is not None:
            logger.info(f"[log-undo] path={live.path} key={removed.key}")
        return removed

    def clear(self) -> bool:
        live = self._target()
        try:
            self.stream.clear(live.match_id, live.round)
        except StoreUnavailable as exc:
            live.stale = True
            logger.warning(f"[log-clear-failed] path={live.path} error={exc}")
            return False
        logger.info(f"[log-clear] path={live.path}")
        return True
