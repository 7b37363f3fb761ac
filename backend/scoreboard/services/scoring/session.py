import logging
from typing import Callable, List, Optional

from .errors import InvalidArgument, InvalidState, PartialSubmissionFailure
from .events import TeamScores
from .log_client import EventLogClient, LiveLog
from .reconciler import RoundReconciler, RoundScore, RoundScoreBackend, SubmissionReport
from .rules import RoundStatus, WinRule, detect_status
from .streams import EventStream

logger = logging.getLogger(__name__)


def _is_round(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


class ScoringSession:
    """Scores the active round of one match.

    Holds the current round number, a live view of that round's point log
    and the reconciler for finalized rounds. Scores and status are derived
    from the live view on every read.
    """

    def __init__(self, match_id: int, stream: EventStream, backend: RoundScoreBackend,
                 rule: Optional[WinRule] = None, current_round: int = 1,
                 max_rounds: Optional[int] = None):
        if max_rounds is not None and max_rounds < 1:
            raise InvalidArgument(f"max_rounds must be positive, got {max_rounds!r}")
        self.match_id = match_id
        self.rule = rule or WinRule()
        self.max_rounds = max_rounds
        self.client = EventLogClient(stream)
        self.reconciler = RoundReconciler(match_id, backend)
        self._listeners: List[Callable[['ScoringSession'], None]] = []
        self.current_round = current_round
        self.live: LiveLog = self._subscribe(current_round)

    def _subscribe(self, round_no: int) -> LiveLog:
        live = self.client.subscribe(self.match_id, round_no)
        live.on_change(self._changed)
        return live

    def _changed(self, live: LiveLog) -> None:
        if live is not self.live:
            return
        for listener in list(self._listeners):
            listener(self)

    def on_change(self, listener: Callable[['ScoringSession'], None]) -> None:
        self._listeners.append(listener)

    @property
    def scores(self) -> TeamScores:
        return self.live.scores

    @property
    def status(self) -> RoundStatus:
        return detect_status(self.live.scores, self.rule)

    def add_point(self, team: int, delta: int = 1) -> Optional[str]:
        status = self.status
        if status.is_won:
            raise InvalidState(f"round {self.current_round} already won by team {status.winner}")
        return self.client.add_event(team, delta)

    def undo(self):
        return self.client.undo_last()

    def reset_round(self) -> None:
        self.client.clear()

    def select_round(self, round_no: int) -> None:
        """Point the session at another round, e.g. to re-score it."""
        if not _is_round(round_no):
            raise InvalidArgument(f"round must be a positive integer, got {round_no!r}")
        if round_no == self.current_round and not self.live.closed:
            return
        self.current_round = round_no
        self.live = self._subscribe(round_no)
        self._changed(self.live)

    def can_add_more_rounds(self) -> bool:
        return self.max_rounds is None or len(self.reconciler) < self.max_rounds

    def finalize_round(self, note: str = '', current_half: int = 1, set_details=None) -> RoundScore:
        """Snapshot the live scores as the result of the current round.

        The result is buffered locally; the round's log is cleared and the
        session moves on to the next round. When the clear fails the session
        stays on the round, so finalizing again retries it.
        """
        scores = self.live.scores
        round_no = self.current_round
        if scores.team1 == 0 and scores.team2 == 0:
            raise InvalidState(f"round {round_no} has no points to save")
        if round_no not in self.reconciler and not self.can_add_more_rounds():
            raise InvalidState(f"match already has the maximum of {self.max_rounds} rounds")
        score = RoundScore(
            round=round_no,
            team1_score=scores.team1,
            team2_score=scores.team2,
            current_half=current_half,
            note=note or '',
            set_details=set_details,
            logs=tuple(e.to_dict() for e in self.live.events),
        )
        entry = self.reconciler.record(score)
        logger.info(f"[round-finalize] match={self.match_id} round={round_no} "
                    f"score={entry.team1_score}-{entry.team2_score}")
        if not self.client.clear():
            logger.warning(f"[round-finalize-uncleared] match={self.match_id} round={round_no}")
            self._changed(self.live)
            return entry
        self.select_round(round_no + 1)
        return entry

    def record_round(self, round_no: int, team1_score: int, team2_score: int,
                     current_half: int = 1, note: str = '', set_details=None) -> RoundScore:
        """Enter or edit a round result by hand.

        The entry is buffered locally like a finalized round and keeps the
        point log of any result it replaces. The current round is untouched.
        """
        previous = self.reconciler.get(round_no) if _is_round(round_no) else None
        score = RoundScore(
            round=round_no,
            team1_score=team1_score,
            team2_score=team2_score,
            current_half=current_half,
            note=note or '',
            set_details=set_details,
            logs=previous.logs if previous is not None else (),
        )
        if previous is None and not self.can_add_more_rounds():
            raise InvalidState(f"match already has the maximum of {self.max_rounds} rounds")
        entry = self.reconciler.record(score)
        logger.info(f"[round-manual] match={self.match_id} round={round_no} "
                    f"score={entry.team1_score}-{entry.team2_score} edit={previous is not None}")
        self._changed(self.live)
        return entry

    def delete_round(self, round_no: int) -> bool:
        deleted = self.reconciler.delete(round_no)
        if deleted:
            self._changed(self.live)
        return deleted

    def submit_all(self) -> SubmissionReport:
        report = self.reconciler.submit()
        self._changed(self.live)
        if not report.ok:
            raise PartialSubmissionFailure(report.failed, report.submitted)
        return report

    def resume(self) -> None:
        """Load stored rounds and continue after the last one."""
        self.reconciler.refresh()
        rounds = [e.round for e in self.reconciler.entries()]
        self.select_round(max(rounds) + 1 if rounds else 1)

    def match_winner(self) -> Optional[int]:
        if not self.max_rounds:
            return None
        needed = self.max_rounds // 2 + 1
        sets = self.reconciler.sets_won()
        if sets.team1 >= needed:
            return 1
        if sets.team2 >= needed:
            return 2
        return None

    def close(self) -> None:
        self.client.unsubscribe()
        self._listeners.clear()

    def state(self) -> dict:
        live = self.live
        scores = live.scores
        return {
            'match_id': self.match_id,
            'current_round': self.current_round,
            'events': [e.to_dict() for e in live.events],
            'scores': scores.to_dict(),
            'status': detect_status(scores, self.rule).to_dict(),
            'rule': self.rule.to_dict(),
            'stale': live.stale,
            'max_rounds': self.max_rounds,
            'can_add_more_rounds': self.can_add_more_rounds(),
            'round_scores': [e.to_dict() for e in self.reconciler.entries()],
            'local_rounds': self.reconciler.local_rounds(),
            'totals': self.reconciler.totals().to_dict(),
            'sets_won': self.reconciler.sets_won().to_dict(),
            'match_winner': self.match_winner(),
        }
