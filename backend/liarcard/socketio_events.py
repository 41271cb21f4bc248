from flask import current_app, request
from flask_socketio import emit, join_room, leave_room

from liarcard import socketio
from liarcard.errors import GameError, NotFound
from liarcard.models import Game, normalize_game_code
from liarcard.services.games.projector import ChangeFilter, build_snapshot
from liarcard.services.games.store import NAMESPACE, game_room

# Last snapshot fingerprint per (socket, game); shared by push and poll paths
change_filter = ChangeFilter()


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _as_int(value):
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _resolve_game_id(data):
    game_id = _as_int(data.get('game_id'))
    if game_id is not None:
        return game_id
    code = normalize_game_code(data.get('game_code'))
    if not code:
        return None
    game = Game.query.filter_by(game_code=code).first()
    if not game:
        raise NotFound('Game not found')
    return game.id


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    change_filter.forget_connection(_get_sid())


def handle_join_game(data):
    data = data or {}
    try:
        game_id = _resolve_game_id(data)
    except GameError as exc:
        emit('error', exc.to_dict())
        return
    if game_id is None:
        emit('error', {'message': 'game_id or game_code is required'})
        return
    room = game_room(game_id)
    join_room(room)
    emit('joined', {'room': room, 'game_id': game_id})


def handle_leave_game(data):
    data = data or {}
    game_id = _as_int(data.get('game_id'))
    if game_id is None:
        emit('error', {'message': 'game_id is required'})
        return
    room = game_room(game_id)
    leave_room(room)
    change_filter.forget((_get_sid(), game_id))
    emit('left', {'room': room})


def handle_request_state(data):
    """Polling fallback: send the caller a fresh snapshot if it changed."""
    data = data or {}
    game_id = _as_int(data.get('game_id'))
    viewer_id = _as_int(data.get('player_id'))
    if game_id is None:
        emit('error', {'message': 'game_id is required'})
        return
    try:
        snapshot = build_snapshot(game_id, viewer_id=viewer_id)
    except NotFound:
        change_filter.forget((_get_sid(), game_id))
        emit('session_ended', {'game_id': game_id})
        return
    except GameError as exc:
        # Transient read problem; the client just polls again
        current_app.logger.warning(f"[poll-error] game={game_id} error={exc.message}")
        emit('error', exc.to_dict())
        return
    if change_filter.should_deliver((_get_sid(), game_id), snapshot):
        emit('game_state', snapshot)


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = (
        ('connect', handle_connect),
        ('disconnect', handle_disconnect),
        ('join_game', handle_join_game),
        ('leave_game', handle_leave_game),
        ('request_state', handle_request_state),
        ('ping', handle_ping),
    )
    for event, handler in handlers:
        socketio.on_event(event, handler, namespace=NAMESPACE)

    if testing:
        # Test-only mirror on default namespace
        for event, handler in handlers:
            socketio.on_event(event, handler, namespace='/')
