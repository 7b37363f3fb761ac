from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import InvalidArgument
from .events import TeamScores, _is_int

# Win score codes as stored on a match
WIN_SCORE_VALUES = {
    1: 11,
    2: 15,
    3: 21,
}


@dataclass(frozen=True)
class WinRule:
    target_score: int = 11
    overtime_margin: int = 2

    def __post_init__(self):
        if not _is_int(self.target_score) or self.target_score < 1:
            raise InvalidArgument(f"target_score must be a positive integer, got {self.target_score!r}")
        if not _is_int(self.overtime_margin) or self.overtime_margin < 1:
            raise InvalidArgument(f"overtime_margin must be a positive integer, got {self.overtime_margin!r}")

    @classmethod
    def from_code(cls, win_score: int, overtime_margin: int = 2) -> 'WinRule':
        if win_score not in WIN_SCORE_VALUES:
            raise InvalidArgument(f"unknown win score code {win_score!r}")
        return cls(WIN_SCORE_VALUES[win_score], overtime_margin)

    def to_dict(self) -> dict:
        return {'target_score': self.target_score, 'overtime_margin': self.overtime_margin}


class StatusKind(Enum):
    ACTIVE = 'active'
    GAME_POINT = 'game_point'
    WON = 'won'


@dataclass(frozen=True)
class RoundStatus:
    kind: StatusKind
    team: Optional[int] = None
    in_overtime: bool = False

    @property
    def is_won(self) -> bool:
        return self.kind is StatusKind.WON

    @property
    def is_active(self) -> bool:
        """True while the round is still being played (game point included)."""
        return self.kind is not StatusKind.WON

    @property
    def winner(self) -> Optional[int]:
        return self.team if self.is_won else None

    @property
    def game_point(self) -> Optional[int]:
        return self.team if self.kind is StatusKind.GAME_POINT else None

    def to_dict(self) -> dict:
        return {
            'status': self.kind.value,
            'winner': self.winner,
            'game_point': self.game_point,
            'active': self.is_active,
            'in_overtime': self.in_overtime,
        }


def detect_status(scores: TeamScores, rule: WinRule) -> RoundStatus:
    """Compute round status from the current aggregate.

    Recomputed from scratch on every change; undo and reset simply produce
    an earlier status again.
    """
    target = rule.target_score
    margin = rule.overtime_margin
    team1, team2 = scores.team1, scores.team2
    high, low = max(team1, team2), min(team1, team2)
    leader = 1 if team1 > team2 else 2 if team2 > team1 else None
    in_overtime = low >= target - 1

    if high < target:
        if leader is not None and high == target - 1 and low < target - 1:
            return RoundStatus(StatusKind.GAME_POINT, leader, in_overtime)
        return RoundStatus(StatusKind.ACTIVE, None, in_overtime)

    if low < target - 1:
        return RoundStatus(StatusKind.WON, leader, in_overtime)

    lead = high - low
    if lead >= margin:
        return RoundStatus(StatusKind.WON, leader, in_overtime)
    if leader is not None and lead == margin - 1:
        return RoundStatus(StatusKind.GAME_POINT, leader, in_overtime)
    return RoundStatus(StatusKind.ACTIVE, None, in_overtime)
