"""Database-backed adapters for the scoring domain.

``SqlEventStream`` keeps point logs in ``log_entry`` and fans every change
out to the Socket.IO room named after the log path. ``SqlRoundScoreBackend``
is the round-result store behind ``/api/matches/<id>/scores``.
"""
import json
import logging
from typing import List

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from scoreboard import db, socketio
from scoreboard.models import LogEntry, Match, MatchScore
from scoreboard.services.scoring import (
    InvalidArgument,
    MemoryEventStream,
    RoundScore,
    ScoreEvent,
    ScoringSession,
    StoreUnavailable,
    WinRule,
    log_path,
)
from scoreboard.services.scoring.reconciler import REMOTE, RoundScoreBackend
from scoreboard.services.scoring.registry import sessions
from scoreboard.services.scoring.streams import EventStream

logger = logging.getLogger(__name__)


def _store_error(action: str, exc: Exception) -> StoreUnavailable:
    db.session.rollback()
    logger.warning(f"[store-error] action={action} error={exc}")
    return StoreUnavailable(f"{action} failed: {exc}")


def commit(action: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        raise _store_error(action, exc)


class SqlEventStream(EventStream):

    def snapshot(self, match_id, round_no):
        try:
            rows = (LogEntry.query
                    .filter_by(match_id=match_id, round=round_no)
                    .order_by(LogEntry.id)
                    .all())
        except SQLAlchemyError as exc:
            raise _store_error('read log', exc)
        events = []
        for row in rows:
            try:
                events.append(ScoreEvent(team=row.team, points=row.points,
                                         timestamp=row.timestamp, key=str(row.id)))
            except InvalidArgument as exc:
                logger.warning(f"[log-skip] path={log_path(match_id, round_no)} id={row.id} error={exc}")
        return events

    def append(self, match_id, round_no, event):
        with self._lock:
            try:
                row = LogEntry(match_id=match_id, round=round_no, team=event.team,
                               points=event.points, timestamp=event.timestamp)
                db.session.add(row)
                db.session.commit()
            except SQLAlchemyError as exc:
                raise _store_error('append', exc)
            key = str(row.id)
            self._publish(match_id, round_no)
            return key

    def remove(self, match_id, round_no, key):
        with self._lock:
            try:
                row = LogEntry.query.filter_by(id=int(key), match_id=match_id, round=round_no).first()
                if row is None:
                    return False
                db.session.delete(row)
                db.session.commit()
            except SQLAlchemyError as exc:
                raise _store_error('remove', exc)
            self._publish(match_id, round_no)
            return True

    def clear(self, match_id, round_no):
        with self._lock:
            try:
                removed = LogEntry.query.filter_by(match_id=match_id, round=round_no).delete()
                db.session.commit()
            except SQLAlchemyError as exc:
                raise _store_error('clear', exc)
            if removed:
                self._publish(match_id, round_no)

    def _publish(self, match_id, round_no):
        subs = list(self._subscribers.get((match_id, round_no), []))
        try:
            events = self.snapshot(match_id, round_no)
        except StoreUnavailable as exc:
            for sub in subs:
                sub.fail(exc)
            return
        for sub in subs:
            sub.deliver(events)
        socketio.emit(
            'log_update',
            {'match_id': match_id, 'round': round_no, 'events': [e.to_dict() for e in events]},
            to=log_path(match_id, round_no),
            namespace='/ws',
        )


def _row_to_round_score(row: MatchScore) -> RoundScore:
    return RoundScore(
        round=row.round,
        team1_score=row.team1_score,
        team2_score=row.team2_score,
        current_half=row.current_half,
        note=row.note or '',
        set_details=json.loads(row.set_details) if row.set_details else None,
        source=REMOTE,
        record_id=row.id,
        logs=json.loads(row.logs) if row.logs else (),
    )


def save_round_score(match_id: int, payload: dict) -> MatchScore:
    """Create or update the stored result for ``payload['round']``."""
    row = MatchScore.query.filter_by(match_id=match_id, round=payload['round']).first()
    if row is None:
        row = MatchScore(match_id=match_id, round=payload['round'])
    row.team1_score = payload['team1_score']
    row.team2_score = payload['team2_score']
    row.current_half = payload.get('current_half', 1)
    row.note = payload.get('note') or ''
    set_details = payload.get('set_details')
    row.set_details = json.dumps(set_details) if set_details is not None else None
    row.logs = json.dumps(payload.get('logs') or [])
    db.session.add(row)
    db.session.commit()
    return row


class SqlRoundScoreBackend(RoundScoreBackend):

    def save(self, match_id, score):
        try:
            row = save_round_score(match_id, score.to_payload(match_id))
        except SQLAlchemyError as exc:
            raise _store_error(f'save round {score.round}', exc)
        return row.id

    def delete(self, match_id, round_no):
        try:
            removed = MatchScore.query.filter_by(match_id=match_id, round=round_no).delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _store_error(f'delete round {round_no}', exc)
        return bool(removed)

    def fetch(self, match_id) -> List[RoundScore]:
        try:
            rows = MatchScore.query.filter_by(match_id=match_id).order_by(MatchScore.round).all()
        except SQLAlchemyError as exc:
            raise _store_error('fetch rounds', exc)
        scores = []
        for row in rows:
            try:
                scores.append(_row_to_round_score(row))
            except InvalidArgument as exc:
                logger.warning(f"[round-skip] match={match_id} round={row.round} error={exc}")
        return scores


def _emit_state(session: ScoringSession) -> None:
    socketio.emit('state_update', {'match_id': session.match_id},
                  to=f"match:{session.match_id}", namespace='/ws')


def event_stream() -> EventStream:
    kind = current_app.config.get('EVENT_STREAM', 'sql')
    if kind == 'memory':
        return sessions.stream('memory', MemoryEventStream)
    return sessions.stream('sql', SqlEventStream)


def build_session(match: Match) -> ScoringSession:
    session = ScoringSession(
        match.id,
        event_stream(),
        SqlRoundScoreBackend(),
        rule=WinRule(match.target_score, match.overtime_margin),
        max_rounds=match.max_rounds,
    )
    session.resume()
    session.on_change(_emit_state)
    current_app.logger.info(f"[session-open] match={match.id} round={session.current_round} "
                            f"target={match.target_score} margin={match.overtime_margin}")
    return session


def session_for(match: Match) -> ScoringSession:
    return sessions.get_or_create(match.id, lambda: build_session(match))
