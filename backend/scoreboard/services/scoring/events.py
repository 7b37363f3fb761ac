from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from .errors import InvalidArgument

TEAMS = (1, 2)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ScoreEvent:
    """A single point change for one team.

    ``key`` is the identity the backing store gave the event. It is only
    used to delete the exact event that was read, and does not take part
    in equality.
    """
    team: int
    points: int
    timestamp: str = field(default_factory=now_iso)
    key: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if not _is_int(self.team) or self.team not in TEAMS:
            raise InvalidArgument(f"team must be 1 or 2, got {self.team!r}")
        if not _is_int(self.points) or self.points == 0:
            raise InvalidArgument(f"points must be a nonzero integer, got {self.points!r}")
        if not isinstance(self.timestamp, str) or not self.timestamp:
            raise InvalidArgument(f"timestamp must be an ISO-8601 string, got {self.timestamp!r}")

    def with_key(self, key) -> 'ScoreEvent':
        return ScoreEvent(self.team, self.points, self.timestamp, key=str(key))

    def to_dict(self) -> dict:
        return {'team': self.team, 'points': self.points, 'timestamp': self.timestamp}


@dataclass(frozen=True)
class TeamScores:
    team1: int = 0
    team2: int = 0

    def for_team(self, team: int) -> int:
        return self.team1 if team == 1 else self.team2

    def to_dict(self) -> dict:
        return {'team1': self.team1, 'team2': self.team2}


def aggregate(events: Iterable[ScoreEvent]) -> TeamScores:
    """Fold a round's events into per-team totals.

    Totals are summed in log order and only clamped at zero once the whole
    sequence is folded, so a correction never pushes the displayed score
    below zero but intermediate sums may dip negative.
    """
    team1 = 0
    team2 = 0
    for event in events:
        if event.team == 1:
            team1 += event.points
        else:
            team2 += event.points
    return TeamScores(team1=max(0, team1), team2=max(0, team2))
