import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import InvalidArgument, ScoringError
from .events import TeamScores, _is_int

logger = logging.getLogger(__name__)

LOCAL = 'local'
REMOTE = 'remote'

# current_half values: first half, second half, overtime
HALVES = (1, 2, 3)


@dataclass(frozen=True)
class RoundScore:
    """Snapshot of a finalized round, independent of the point log."""
    round: int
    team1_score: int
    team2_score: int
    current_half: int = 1
    note: str = ''
    set_details: Optional[Tuple[dict, ...]] = None
    source: str = LOCAL
    record_id: Optional[int] = None
    logs: Tuple[dict, ...] = field(default=(), compare=False)

    def __post_init__(self):
        if not _is_int(self.round) or self.round < 1:
            raise InvalidArgument(f"round must be a positive integer, got {self.round!r}")
        for name in ('team1_score', 'team2_score'):
            value = getattr(self, name)
            if not _is_int(value) or value < 0:
                raise InvalidArgument(f"{name} must be a non-negative integer, got {value!r}")
        if not _is_int(self.current_half) or self.current_half not in HALVES:
            raise InvalidArgument(f"current_half must be one of {HALVES}, got {self.current_half!r}")
        if not isinstance(self.note, str):
            raise InvalidArgument("note must be a string")
        if self.source not in (LOCAL, REMOTE):
            raise InvalidArgument(f"source must be 'local' or 'remote', got {self.source!r}")
        for name in ('set_details', 'logs'):
            value = getattr(self, name)
            if value is not None and not isinstance(value, (list, tuple)):
                raise InvalidArgument(f"{name} must be a list")
        if self.set_details is not None:
            object.__setattr__(self, 'set_details', tuple(self.set_details))
        object.__setattr__(self, 'logs', tuple(self.logs or ()))

    @property
    def winner(self) -> Optional[int]:
        if self.team1_score > self.team2_score:
            return 1
        if self.team2_score > self.team1_score:
            return 2
        return None

    def to_payload(self, match_id: int) -> dict:
        """Body of the create/update call for the round-result store."""
        payload = {
            'match_id': match_id,
            'round': self.round,
            'team1_score': self.team1_score,
            'team2_score': self.team2_score,
            'current_half': self.current_half,
            'note': self.note,
            'logs': list(self.logs),
        }
        if self.set_details is not None:
            payload['set_details'] = list(self.set_details)
        return payload

    def to_dict(self) -> dict:
        data = self.to_payload(match_id=None)
        data.pop('match_id')
        data.pop('logs')
        data['set_details'] = list(self.set_details) if self.set_details is not None else None
        data['source'] = self.source
        data['record_id'] = self.record_id
        return data


class RoundScoreBackend(ABC):
    """Where finalized rounds are persisted."""

    @abstractmethod
    def save(self, match_id: int, score: RoundScore) -> int:
        """Create or update the record for ``score.round``; return its id."""

    @abstractmethod
    def delete(self, match_id: int, round_no: int) -> bool:
        """Delete the stored record for a round; False if there was none."""

    @abstractmethod
    def fetch(self, match_id: int) -> List[RoundScore]:
        """All stored rounds of a match, tagged remote."""


@dataclass
class SubmissionReport:
    submitted: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            'submitted_rounds': sorted(self.submitted),
            'failed_rounds': sorted(self.failed),
            'errors': {str(k): v for k, v in sorted(self.failed.items())},
        }


class RoundReconciler:
    """Tracks finalized rounds and which of them still need persisting.

    Every round is in exactly one of two states: ``remote`` (fetched from or
    confirmed written to the backend) or ``local`` (created or edited since).
    """

    def __init__(self, match_id: int, backend: RoundScoreBackend):
        self.match_id = match_id
        self.backend = backend
        self._entries: Dict[int, RoundScore] = {}
        self._lock = threading.Lock()

    def entries(self) -> List[RoundScore]:
        with self._lock:
            return [self._entries[r] for r in sorted(self._entries)]

    def get(self, round_no: int) -> Optional[RoundScore]:
        with self._lock:
            return self._entries.get(round_no)

    def __contains__(self, round_no) -> bool:
        with self._lock:
            return round_no in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def local_rounds(self) -> List[int]:
        with self._lock:
            return sorted(r for r, s in self._entries.items() if s.source == LOCAL)

    def remote_rounds(self) -> List[int]:
        with self._lock:
            return sorted(r for r, s in self._entries.items() if s.source == REMOTE)

    def record(self, score: RoundScore) -> RoundScore:
        """Add or overwrite a round; the entry becomes local."""
        with self._lock:
            previous = self._entries.get(score.round)
            record_id = score.record_id if score.record_id is not None else (previous.record_id if previous else None)
            entry = replace(score, source=LOCAL, record_id=record_id)
            self._entries[score.round] = entry
        logger.info(f"[round-record] match={self.match_id} round={entry.round} "
                    f"score={entry.team1_score}-{entry.team2_score} overwrite={previous is not None}")
        return entry

    def load_remote(self, scores: Iterable[RoundScore]) -> None:
        """Seed entries from the backend without clobbering local edits."""
        with self._lock:
            for score in scores:
                current = self._entries.get(score.round)
                if current is not None and current.source == LOCAL:
                    continue
                self._entries[score.round] = replace(score, source=REMOTE)

    def refresh(self) -> None:
        self.load_remote(self.backend.fetch(self.match_id))

    def delete(self, round_no: int) -> bool:
        """Remove a round. Persisted rounds are deleted from the backend first."""
        with self._lock:
            entry = self._entries.get(round_no)
        if entry is None:
            return False
        if entry.source == REMOTE or entry.record_id is not None:
            self.backend.delete(self.match_id, round_no)
        with self._lock:
            if self._entries.get(round_no) is entry:
                del self._entries[round_no]
        logger.info(f"[round-delete] match={self.match_id} round={round_no}")
        return True

    def submit(self) -> SubmissionReport:
        """Write every local round; successes become remote, failures stay local."""
        with self._lock:
            pending = [self._entries[r] for r in sorted(self._entries) if self._entries[r].source == LOCAL]
        report = SubmissionReport()
        for entry in pending:
            try:
                record_id = self.backend.save(self.match_id, entry)
            except ScoringError as exc:
                logger.warning(f"[round-submit-failed] match={self.match_id} round={entry.round} error={exc}")
                report.failed[entry.round] = str(exc)
                continue
            with self._lock:
                # An edit made while the write was in flight stays local
                if self._entries.get(entry.round) is entry:
                    self._entries[entry.round] = replace(entry, source=REMOTE, record_id=record_id)
            report.submitted.append(entry.round)
            logger.info(f"[round-submit] match={self.match_id} round={entry.round} record={record_id}")
        return report

    def totals(self) -> TeamScores:
        entries = self.entries()
        return TeamScores(
            team1=sum(e.team1_score for e in entries),
            team2=sum(e.team2_score for e in entries),
        )

    def sets_won(self) -> TeamScores:
        winners = [e.winner for e in self.entries()]
        return TeamScores(team1=winners.count(1), team2=winners.count(2))
