from flask_socketio import join_room, leave_room, emit
from flask import current_app
from scoreboard import db
from scoreboard.models import Match
from scoreboard.services.scoring import StoreUnavailable, log_path
from scoreboard.services.store import event_stream


def _parse_target(data):
    """Return (match_id, round) from a join/leave payload, or None."""
    data = data or {}
    try:
        match_id = int(data.get('match_id'))
    except (TypeError, ValueError):
        return None
    round_no = data.get('round')
    if round_no is None:
        return match_id, None
    try:
        return match_id, int(round_no)
    except (TypeError, ValueError):
        return None


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_match(data):
    target = _parse_target(data)
    if not target:
        emit('error', {'message': 'match_id is required'})
        return
    match_id, round_no = target
    if not db.session.get(Match, match_id):
        emit('error', {'message': f'Match {match_id} not found'})
        return
    join_room(f"match:{match_id}")
    if round_no is None:
        emit('joined', {'room': f"match:{match_id}"})
        return
    room = log_path(match_id, round_no)
    join_room(room)
    emit('joined', {'room': room})
    try:
        events = event_stream().snapshot(match_id, round_no)
    except StoreUnavailable as exc:
        current_app.logger.warning(f"[ws-snapshot-failed] path={room} error={exc}")
        emit('log_snapshot', {'match_id': match_id, 'round': round_no, 'events': [], 'stale': True})
        return
    emit('log_snapshot', {
        'match_id': match_id,
        'round': round_no,
        'events': [e.to_dict() for e in events],
        'stale': False,
    })


def handle_leave_match(data):
    target = _parse_target(data)
    if not target:
        emit('error', {'message': 'match_id is required'})
        return
    match_id, round_no = target
    room = f"match:{match_id}" if round_no is None else log_path(match_id, round_no)
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from scoreboard import socketio

    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('join_match', handle_join_match, namespace='/ws')
    socketio.on_event('leave_match', handle_leave_match, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('join_match', handle_join_match, namespace='/')
        socketio.on_event('leave_match', handle_leave_match, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
