from dataclasses import replace
from flask import Blueprint, abort, jsonify, request, current_app
from scoreboard import db, socketio
from scoreboard.models import (
    Match,
    MatchScore,
    MATCH_STATUS_SCHEDULED,
    MATCH_STATUS_ONGOING,
    MATCH_STATUS_COMPLETED,
    MATCH_STATUS_DISABLED,
)
from scoreboard.services.scoring import (
    InvalidArgument,
    InvalidState,
    PartialSubmissionFailure,
    RoundScore,
    StoreUnavailable,
)
from scoreboard.services.scoring.rules import WIN_SCORE_VALUES
from scoreboard.services.scoring.registry import sessions
from scoreboard.services.store import SqlRoundScoreBackend, commit, session_for


matches = Blueprint('matches', __name__)


@matches.errorhandler(InvalidArgument)
def _invalid_argument(exc):
    return jsonify({'error': str(exc)}), 400


@matches.errorhandler(InvalidState)
def _invalid_state(exc):
    return jsonify({'error': str(exc)}), 409


@matches.errorhandler(StoreUnavailable)
def _store_unavailable(exc):
    current_app.logger.warning(f"[store-unavailable] {exc}")
    return jsonify({'error': str(exc)}), 503


def _int_field(data, name, default):
    value = data.get(name, default)
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidArgument(f"{name} must be an integer")
    return value


def _get_match(match_id: int) -> Match:
    match = db.session.get(Match, match_id)
    if match is None:
        abort(404)
    return match


def _state_payload(match: Match, session) -> dict:
    payload = session.state()
    payload['match'] = match.to_dict()
    return payload


def _ensure_open(match: Match) -> None:
    if match.status in (MATCH_STATUS_COMPLETED, MATCH_STATUS_DISABLED):
        raise InvalidState(f"match {match.id} is not open for scoring")


def _mark_ongoing(match: Match) -> None:
    if match.status == MATCH_STATUS_SCHEDULED:
        match.status = MATCH_STATUS_ONGOING
        db.session.add(match)
        commit(f'start match {match.id}')
        socketio.emit('state_update', {'match_id': match.id}, to=f"match:{match.id}", namespace='/ws')


def _note(data) -> str:
    note = data.get('note') or ''
    if not isinstance(note, str):
        raise InvalidArgument('note must be a string')
    return note


@matches.route('/create', methods=['POST'])
def create_match():
    data = request.get_json(silent=True) or {}
    cfg = current_app.config
    win_score = _int_field(data, 'win_score', cfg.get('DEFAULT_WIN_SCORE', 1))
    if win_score not in WIN_SCORE_VALUES:
        raise InvalidArgument(f"win_score must be one of {sorted(WIN_SCORE_VALUES)}")
    overtime_margin = _int_field(data, 'overtime_margin', cfg.get('DEFAULT_OVERTIME_MARGIN', 2))
    max_rounds = _int_field(data, 'max_rounds', cfg.get('DEFAULT_MAX_ROUNDS', 3))
    if overtime_margin < 1 or max_rounds < 1:
        raise InvalidArgument('overtime_margin and max_rounds must be positive')
    new_match = Match(
        title=str(data.get('title') or ''),
        win_score=win_score,
        overtime_margin=overtime_margin,
        max_rounds=max_rounds,
    )
    db.session.add(new_match)
    commit('create match')
    current_app.logger.info(f"[match-create] match={new_match.id} target={new_match.target_score}")
    return jsonify({
        'message': 'New match created!',
        'match_id': new_match.id,
        'match': new_match.to_dict(),
    }), 201


@matches.route('/<int:match_id>/state', methods=['GET'])
def get_match_state(match_id):
    match = _get_match(match_id)
    return jsonify(_state_payload(match, session_for(match)))


@matches.route('/<int:match_id>/points', methods=['POST'])
def add_point(match_id):
    match = _get_match(match_id)
    _ensure_open(match)
    data = request.get_json(silent=True) or {}
    session = session_for(match)
    session.add_point(data.get('team'), data.get('points', 1))
    _mark_ongoing(match)
    return jsonify(_state_payload(match, session))


@matches.route('/<int:match_id>/undo', methods=['POST'])
def undo_point(match_id):
    match = _get_match(match_id)
    _ensure_open(match)
    session = session_for(match)
    session.undo()
    return jsonify(_state_payload(match, session))


@matches.route('/<int:match_id>/reset', methods=['POST'])
def reset_round(match_id):
    match = _get_match(match_id)
    _ensure_open(match)
    session = session_for(match)
    session.reset_round()
    return jsonify(_state_payload(match, session))


@matches.route('/<int:match_id>/rounds/select', methods=['POST'])
def select_round(match_id):
    match = _get_match(match_id)
    _ensure_open(match)
    data = request.get_json(silent=True) or {}
    session = session_for(match)
    session.select_round(data.get('round'))
    return jsonify(_state_payload(match, session))


@matches.route('/<int:match_id>/rounds/finalize', methods=['POST'])
def finalize_round(match_id):
    match = _get_match(match_id)
    _ensure_open(match)
    data = request.get_json(silent=True) or {}
    session = session_for(match)
    entry = session.finalize_round(
        note=_note(data),
        current_half=data.get('current_half', 1),
        set_details=data.get('set_details'),
    )
    return jsonify({
        'round_score': entry.to_dict(),
        'state': _state_payload(match, session),
    }), 201


@matches.route('/<int:match_id>/rounds', methods=['POST'])
def add_round(match_id):
    """Enter a round result by hand; it is stored when the match ends."""
    match = _get_match(match_id)
    _ensure_open(match)
    data = request.get_json(silent=True) or {}
    session = session_for(match)
    round_no = _int_field(data, 'round', None)
    if round_no in session.reconciler:
        return jsonify({'error': f'Round {round_no} already exists'}), 409
    entry = session.record_round(
        round_no,
        data.get('team1_score'),
        data.get('team2_score'),
        current_half=data.get('current_half', 1),
        note=_note(data),
        set_details=data.get('set_details'),
    )
    _mark_ongoing(match)
    return jsonify({
        'round_score': entry.to_dict(),
        'state': _state_payload(match, session),
    }), 201


@matches.route('/<int:match_id>/rounds/<int:round_no>', methods=['PUT'])
def edit_round(match_id, round_no):
    match = _get_match(match_id)
    _ensure_open(match)
    data = request.get_json(silent=True) or {}
    session = session_for(match)
    existing = session.reconciler.get(round_no)
    if existing is None:
        return jsonify({'error': f'Round {round_no} not found'}), 404
    entry = session.record_round(
        round_no,
        data.get('team1_score', existing.team1_score),
        data.get('team2_score', existing.team2_score),
        current_half=data.get('current_half', existing.current_half),
        note=_note(data) if 'note' in data else existing.note,
        set_details=data.get('set_details', existing.set_details),
    )
    return jsonify({
        'round_score': entry.to_dict(),
        'state': _state_payload(match, session),
    })


@matches.route('/<int:match_id>/rounds/<int:round_no>', methods=['DELETE'])
def delete_round(match_id, round_no):
    match = _get_match(match_id)
    _ensure_open(match)
    session = session_for(match)
    if not session.delete_round(round_no):
        return jsonify({'error': f'Round {round_no} not found'}), 404
    return jsonify(_state_payload(match, session))


@matches.route('/<int:match_id>/end', methods=['POST'])
def end_match(match_id):
    match = _get_match(match_id)
    _ensure_open(match)
    session = session_for(match)
    try:
        report = session.submit_all()
    except PartialSubmissionFailure as exc:
        current_app.logger.warning(
            f"[end-partial] match={match.id} submitted={exc.submitted_rounds} failed={exc.failed_rounds}"
        )
        return jsonify({
            'error': str(exc),
            'submitted_rounds': exc.submitted_rounds,
            'failed_rounds': exc.failed_rounds,
            'state': _state_payload(match, session),
        }), 207
    match.status = MATCH_STATUS_COMPLETED
    db.session.add(match)
    commit(f'complete match {match.id}')
    current_app.logger.info(f"[end] match={match.id} submitted={sorted(report.submitted)}")
    payload = report.to_dict()
    payload['state'] = _state_payload(match, session)
    sessions.drop(match.id)
    socketio.emit('state_update', {'match_id': match.id}, to=f"match:{match.id}", namespace='/ws')
    return jsonify(payload)


@matches.route('/<int:match_id>/scores', methods=['GET'])
def list_scores(match_id):
    match = _get_match(match_id)
    rows = MatchScore.query.filter_by(match_id=match.id).order_by(MatchScore.round).all()
    return jsonify([row.to_dict() for row in rows])


@matches.route('/<int:match_id>/scores', methods=['POST'])
def save_score(match_id):
    match = _get_match(match_id)
    _ensure_open(match)
    data = request.get_json(silent=True) or {}
    # Validate the shape once before anything is written
    score = RoundScore(
        round=data.get('round'),
        team1_score=data.get('team1_score'),
        team2_score=data.get('team2_score'),
        current_half=data.get('current_half', 1),
        note=data.get('note') or '',
        set_details=data.get('set_details'),
        logs=data.get('logs') or (),
    )
    record_id = SqlRoundScoreBackend().save(match.id, score)
    live = sessions.get(match.id)
    if live is not None:
        live.reconciler.load_remote([replace(score, record_id=record_id)])
    return jsonify({'id': record_id, 'round': score.round}), 201
