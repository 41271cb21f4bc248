"""Shared persistence helpers and the change feed for game records."""

from typing import List

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from liarcard import db, socketio
from liarcard.errors import NotFound, StoreWriteError
from liarcard.models import Game, Player

NAMESPACE = '/ws'


def game_room(game_id: int) -> str:
    return f"game:{game_id}"


def write_failed(action: str, exc: SQLAlchemyError) -> StoreWriteError:
    """Roll back after a failed write and build the error to raise."""
    db.session.rollback()
    current_app.logger.error(f"[store-error] action={action} error={exc}")
    return StoreWriteError(f'Could not save game state ({action})')


def commit(action: str) -> None:
    """Commit the session, surfacing failures as StoreWriteError."""
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        raise write_failed(action, exc) from exc


def ordered_players(game_id: int) -> List[Player]:
    return Player.query.filter_by(game_id=game_id).order_by(Player.player_order, Player.id).all()


def load_game(game_id) -> Game:
    """Fetch a live game; a game with no admin player counts as abandoned."""
    game = db.session.get(Game, game_id) if game_id is not None else None
    if not game:
        raise NotFound('Game not found')
    if game.admin is None:
        current_app.logger.warning(f"[abandoned] game={game.id} code={game.game_code} has no admin")
        raise NotFound('Game not found')
    return game


def load_member(game: Game, player_id) -> Player:
    player = next((p for p in game.players if p.id == player_id), None)
    if not player:
        raise NotFound('Player not found')
    return player


def notify_game_changed(game: Game) -> None:
    socketio.emit(
        'state_update',
        {'game_id': game.id, 'game_code': game.game_code, 'phase': game.phase},
        to=game_room(game.id),
        namespace=NAMESPACE,
    )


def notify_lobby_reset(game: Game, old_code: str) -> None:
    # Removed players still sit in the room; they leave on seeing this
    socketio.emit(
        'lobby_reset',
        {'game_id': game.id, 'from': old_code, 'to': game.game_code},
        to=game_room(game.id),
        namespace=NAMESPACE,
    )


def notify_session_ended(game_id: int, game_code: str) -> None:
    socketio.emit(
        'session_ended',
        {'game_id': game_id, 'game_code': game_code},
        to=game_room(game_id),
        namespace=NAMESPACE,
    )
