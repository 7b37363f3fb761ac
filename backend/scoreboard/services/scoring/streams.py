"""Push-subscribable, append-only point logs.

An ``EventStream`` is the only thing the scoring engine knows about the
realtime store. Each log is addressed by ``(match_id, round)`` and holds
events in commit order. Subscribers receive the full ordered sequence on
subscribe and again after every change.
"""
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Tuple

from .errors import StoreUnavailable
from .events import ScoreEvent

logger = logging.getLogger(__name__)

Listener = Callable[[List[ScoreEvent]], None]
ErrorListener = Callable[[Exception], None]


def log_path(match_id: int, round_no: int) -> str:
    return f"match_logs/{match_id}/round_{round_no}"


class Subscription:
    """Handle returned by ``EventStream.subscribe``."""

    def __init__(self, stream: 'EventStream', match_id: int, round_no: int,
                 listener: Listener, on_error: Optional[ErrorListener] = None):
        self.stream = stream
        self.match_id = match_id
        self.round = round_no
        self.listener = listener
        self.on_error = on_error
        self.active = True

    @property
    def path(self) -> str:
        return log_path(self.match_id, self.round)

    def deliver(self, events: List[ScoreEvent]) -> None:
        if self.active:
            self.listener(list(events))

    def fail(self, exc: Exception) -> None:
        if self.active and self.on_error is not None:
            self.on_error(exc)

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self.stream._detach(self)


class EventStream(ABC):

    def __init__(self):
        self._lock = threading.RLock()
        self._subscribers: Dict[Tuple[int, int], List[Subscription]] = {}

    @abstractmethod
    def snapshot(self, match_id: int, round_no: int) -> List[ScoreEvent]:
        """One-shot read of the log; every event carries its store key."""

    @abstractmethod
    def append(self, match_id: int, round_no: int, event: ScoreEvent) -> str:
        """Append an event and return the key the store gave it."""

    @abstractmethod
    def remove(self, match_id: int, round_no: int, key: str) -> bool:
        """Delete one event by key. Returns False if it was already gone."""

    @abstractmethod
    def clear(self, match_id: int, round_no: int) -> None:
        """Delete every event of the log. Clearing an empty log is a no-op."""

    def remove_last(self, match_id: int, round_no: int) -> Optional[ScoreEvent]:
        """Delete the most recent event, read first and then removed by key.

        Two observers undoing at the same moment can both read the same
        tail and the second delete then finds nothing; see DESIGN.md.
        """
        events = self.snapshot(match_id, round_no)
        if not events:
            return None
        last = events[-1]
        if not self.remove(match_id, round_no, last.key):
            logger.info(f"[log-undo-race] path={log_path(match_id, round_no)} key={last.key} already removed")
            return None
        return last

    def subscribe(self, match_id: int, round_no: int, listener: Listener,
                  on_error: Optional[ErrorListener] = None) -> Subscription:
        subscription = Subscription(self, match_id, round_no, listener, on_error)
        with self._lock:
            self._subscribers.setdefault((match_id, round_no), []).append(subscription)
            try:
                events = self.snapshot(match_id, round_no)
            except StoreUnavailable as exc:
                subscription.fail(exc)
                return subscription
            subscription.deliver(events)
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get((subscription.match_id, subscription.round), [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscribers.pop((subscription.match_id, subscription.round), None)

    def subscriber_count(self, match_id: int, round_no: int) -> int:
        with self._lock:
            return len(self._subscribers.get((match_id, round_no), []))

    def _publish(self, match_id: int, round_no: int) -> None:
        """Push the committed log to every subscriber of that log.

        Callers hold ``self._lock`` so pushes go out in commit order.
        """
        subs = list(self._subscribers.get((match_id, round_no), []))
        if not subs:
            return
        try:
            events = self.snapshot(match_id, round_no)
        except StoreUnavailable as exc:
            for sub in subs:
                sub.fail(exc)
            return
        for sub in subs:
            sub.deliver(events)


class MemoryEventStream(EventStream):
    """In-process store; logs live as long as the stream object."""

    def __init__(self):
        super().__init__()
        self._logs: Dict[Tuple[int, int], 'OrderedDict[str, ScoreEvent]'] = {}
        self._keys = itertools.count(1)

    def snapshot(self, match_id, round_no):
        with self._lock:
            return list(self._logs.get((match_id, round_no), {}).values())

    def append(self, match_id, round_no, event):
        with self._lock:
            key = f"{next(self._keys):012d}"
            self._logs.setdefault((match_id, round_no), OrderedDict())[key] = event.with_key(key)
            self._publish(match_id, round_no)
            return key

    def remove(self, match_id, round_no, key):
        with self._lock:
            log = self._logs.get((match_id, round_no))
            if not log or key not in log:
                return False
            del log[key]
            self._publish(match_id, round_no)
            return True

    def clear(self, match_id, round_no):
        with self._lock:
            if not self._logs.pop((match_id, round_no), None):
                return
            self._publish(match_id, round_no)
