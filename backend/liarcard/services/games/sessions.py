"""Session lifecycle: creating, joining, leaving and resetting games."""

from typing import Sequence, Tuple

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from liarcard import db
from liarcard.errors import (
    GameAlreadyStarted,
    GameFull,
    InvalidOrder,
    NotFound,
    StoreWriteError,
    Unauthorized,
)
from liarcard.models import (
    ADMIN_LOBBY,
    LOBBY_PHASES,
    ROUND_PHASES,
    WAITING_ROOM,
    Game,
    Player,
    RoundStat,
    Vote,
    generate_game_code,
    normalize_game_code,
)
from . import scheduler
from .store import (
    commit,
    load_game,
    load_member,
    notify_game_changed,
    notify_lobby_reset,
    notify_session_ended,
    write_failed,
)

JOIN_ATTEMPTS = 3


def require_admin(game: Game, actor_id) -> Player:
    actor = next((p for p in game.players if p.id == actor_id), None)
    if not actor or not actor.is_admin:
        raise Unauthorized()
    return actor


def create_game(admin_name: str) -> Tuple[Game, Player]:
    game = Game(phase=ADMIN_LOBBY)
    admin = Player(name=admin_name, is_admin=True, player_order=0, game=game)
    db.session.add(game)
    db.session.add(admin)
    commit('create_game')
    current_app.logger.info(f"[game-create] game={game.id} code={game.game_code} admin={admin.id}")
    return game, admin


def find_game_by_code(code: str) -> Game:
    game = Game.query.filter_by(game_code=normalize_game_code(code)).first()
    if not game:
        raise NotFound('Game not found')
    return load_game(game.id)


def join_game(code: str, name: str) -> Player:
    game = find_game_by_code(code)
    max_players = int(current_app.config.get('MAX_PLAYERS', 10))

    # Concurrent joins can compute the same order; the unique constraint
    # rejects the loser, which retries with a fresh maximum.
    for attempt in range(1, JOIN_ATTEMPTS + 1):
        if game.phase not in LOBBY_PHASES:
            raise GameAlreadyStarted()
        if len(game.players) >= max_players:
            raise GameFull(f'This game is full ({max_players} players max)')
        max_order = db.session.query(func.max(Player.player_order)).filter_by(game_id=game.id).scalar()
        player = Player(
            name=name,
            is_admin=False,
            player_order=(max_order if max_order is not None else -1) + 1,
            game_id=game.id,
        )
        db.session.add(player)
        if game.phase == ADMIN_LOBBY:
            game.phase = WAITING_ROOM
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            current_app.logger.warning(f"[join-retry] game={game.id} attempt={attempt}")
            if attempt == JOIN_ATTEMPTS:
                raise StoreWriteError('Could not join game') from exc
            game = load_game(game.id)
            continue
        except SQLAlchemyError as exc:
            raise write_failed('join_game', exc) from exc
        break
    current_app.logger.info(f"[join] game={game.id} player={player.id} order={player.player_order}")
    notify_game_changed(game)
    return player


def _delete_game(game: Game, reason: str) -> None:
    game_id, code = game.id, game.game_code
    scheduler.cancel_countdown(game_id)
    Vote.query.filter_by(game_id=game_id).delete(synchronize_session=False)
    RoundStat.query.filter_by(game_id=game_id).delete(synchronize_session=False)
    db.session.delete(game)
    commit(reason)
    current_app.logger.info(f"[session-ended] game={game_id} code={code} reason={reason}")
    notify_session_ended(game_id, code)


def leave_game(player_id) -> None:
    player = db.session.get(Player, player_id) if player_id is not None else None
    if not player:
        raise NotFound('Player not found')
    game = player.game
    if player.is_admin:
        _delete_game(game, 'admin_left')
        return

    # Imported here: rounds depends on this module for require_admin
    from .rounds import handle_departure
    game_id = game.id
    was_in_round = game.phase in ROUND_PHASES
    Vote.query.filter(
        Vote.game_id == game_id,
        (Vote.voter_id == player.id) | (Vote.target_id == player.id),
    ).delete(synchronize_session=False)
    game.players.remove(player)
    db.session.delete(player)
    commit('leave_game')
    current_app.logger.info(f"[leave] game={game_id} player={player_id}")
    if was_in_round:
        handle_departure(game_id, player_id)
    else:
        notify_game_changed(game)


def cancel_game(game_id, actor_id) -> None:
    game = load_game(game_id)
    require_admin(game, actor_id)
    _delete_game(game, 'cancelled')


def reorder_players(game_id, actor_id, ordered_ids: Sequence[int]) -> Game:
    game = load_game(game_id)
    require_admin(game, actor_id)
    ordered_ids = list(ordered_ids or [])
    members = {p.id: p for p in game.players}
    if len(ordered_ids) != len(members) or set(ordered_ids) != set(members):
        raise InvalidOrder()
    # Park every order out of range first so the unique (game, order)
    # constraint never sees two players holding the same slot mid-update.
    for idx, pid in enumerate(ordered_ids):
        members[pid].player_order = -(idx + 1)
    db.session.flush()
    for idx, pid in enumerate(ordered_ids):
        members[pid].player_order = idx
    commit('reorder_players')
    current_app.logger.info(f"[reorder] game={game.id} order={ordered_ids}")
    notify_game_changed(game)
    return game


def reset_to_lobby(game_id, actor_id) -> str:
    """Start a fresh lobby in the same room: new code, only the admin stays."""
    game = load_game(game_id)
    admin = require_admin(game, actor_id)
    scheduler.cancel_countdown(game.id)
    old_code = game.game_code

    Vote.query.filter_by(game_id=game.id).delete(synchronize_session=False)
    for p in list(game.players):
        if not p.is_admin:
            game.players.remove(p)
            db.session.delete(p)
    admin.card = None
    game.clear_round()
    game.phase = ADMIN_LOBBY
    game.game_code = generate_game_code(exclude={old_code})
    commit('reset_to_lobby')
    current_app.logger.info(f"[reset] game={game.id} code {old_code} -> {game.game_code}")
    notify_lobby_reset(game, old_code)
    notify_game_changed(game)
    return game.game_code


def purge_abandoned_games() -> int:
    """Delete games that lost their admin player (e.g. a half-finished create)."""
    removed = 0
    for game in Game.query.all():
        if game.admin is not None:
            continue
        game_id = game.id
        scheduler.cancel_countdown(game_id)
        Vote.query.filter_by(game_id=game_id).delete(synchronize_session=False)
        RoundStat.query.filter_by(game_id=game_id).delete(synchronize_session=False)
        db.session.delete(game)
        removed += 1
    commit('purge_abandoned')
    if removed:
        current_app.logger.info(f"[purge] removed={removed}")
    return removed


def get_player(game_id, player_id) -> Player:
    return load_member(load_game(game_id), player_id)
