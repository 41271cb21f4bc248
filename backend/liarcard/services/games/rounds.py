"""Round state machine.

category-selection -> card-reveal -> voting <-> tie-breaker -> results

Voting and tie-breaker are timed windows. Each window gets a fresh
``Game.window_seq`` and sets ``Game.window_open``; whoever clears
``window_open`` with a conditional UPDATE (quorum path or timer path) is the
only one allowed to resolve that window.
"""

import json
import random
from typing import List, Optional

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from liarcard import db
from liarcard.errors import (
    InsufficientPlayers,
    InvalidPhase,
    InvalidSelection,
    InvalidVote,
    NotFound,
    Unauthorized,
)
from liarcard.models import (
    ADMIN_LOBBY,
    CARD_REVEAL,
    CATEGORY_SELECTION,
    LIAR_CARD,
    LOBBY_PHASES,
    RESULTS,
    TIE_BREAKER,
    VOTING,
    WINNER_LIAR,
    Game,
    Player,
    RoundStat,
    Vote,
)
from liarcard.words import WordOption, get_catalog
from . import scheduler, tally
from .sessions import require_admin
from .store import (
    commit,
    load_game,
    load_member,
    notify_game_changed,
    ordered_players,
    write_failed,
)

rng = random.Random()


def _word_options(game: Game) -> List[WordOption]:
    try:
        raw = json.loads(game.word_options or '[]')
    except ValueError:
        raw = []
    return [WordOption(word=o['word'], category=o['category']) for o in raw if 'word' in o and 'category' in o]


def _tie_candidates(game: Game) -> List[int]:
    try:
        return [int(pid) for pid in json.loads(game.tie_candidates or '[]')]
    except (TypeError, ValueError):
        return []


def _require_phase(game: Game, *phases: str, message: Optional[str] = None) -> None:
    if game.phase not in phases:
        raise InvalidPhase(message or f'Not allowed while the game is in {game.phase}')


def _clear_votes(game_id: int) -> None:
    Vote.query.filter_by(game_id=game_id).delete(synchronize_session=False)


def _clear_cards(game: Game) -> None:
    for p in game.players:
        p.card = None


def _open_window(game: Game, phase: str, duration: int) -> None:
    game.phase = phase
    game.time_left = max(1, int(duration))
    game.window_seq = Game.window_seq + 1
    game.window_open = True


def _start_countdown(game: Game) -> None:
    scheduler.start_countdown(current_app._get_current_object(), game.id, game.window_seq, countdown_tick)


def _claim_window(game_id: int, window_seq: int, phase: str) -> bool:
    result = db.session.execute(
        update(Game)
        .where(
            Game.id == game_id,
            Game.phase == phase,
            Game.window_seq == window_seq,
            Game.window_open.is_(True),
        )
        .values(window_open=False)
        .execution_options(synchronize_session=False)
    )
    commit('claim_window')
    return result.rowcount == 1


def start_round(game_id, actor_id) -> Game:
    """Pick starting player, liar and word options; enter category selection."""
    game = load_game(game_id)
    require_admin(game, actor_id)
    _require_phase(game, *LOBBY_PHASES, message='A round is already in progress')
    players = ordered_players(game.id)
    min_players = int(current_app.config.get('MIN_PLAYERS', 3))
    if len(players) < min_players:
        raise InsufficientPlayers(f'At least {min_players} players are required to start')

    scheduler.cancel_countdown(game.id)
    _clear_votes(game.id)
    _clear_cards(game)

    # Starting player rotates by table order; the liar is independent of it
    last_index = game.last_starting_index if game.last_starting_index is not None else -1
    next_index = (last_index + 1) % len(players)
    starting = players[next_index]
    liar = rng.choice(players)
    options = get_catalog(current_app).draw_options(
        rng,
        categories=int(current_app.config.get('CATEGORY_CHOICES', 2)),
        words=int(current_app.config.get('WORDS_PER_CATEGORY', 5)),
    )

    game.clear_round()
    game.phase = CATEGORY_SELECTION
    game.starting_player_id = starting.id
    game.last_starting_index = next_index
    game.liar_id = liar.id
    game.category_options = json.dumps(list(dict.fromkeys(o.category for o in options)))
    game.word_options = json.dumps([o.to_dict() for o in options])
    commit('start_round')
    current_app.logger.info(
        f"[round-start] game={game.id} round={game.round_number + 1} starting={starting.id} index={next_index} liar={liar.id}"
    )
    notify_game_changed(game)
    return game


def _deal_cards(game: Game, option: WordOption) -> Game:
    member_ids = {p.id for p in game.players}
    if game.liar_id not in member_ids:
        raise NotFound('Liar not found')
    game.current_word = option.word
    game.word_category = option.category
    game.category_options = None
    game.word_options = None
    game.phase = CARD_REVEAL
    for p in game.players:
        p.card = LIAR_CARD if p.id == game.liar_id else option.word
    # Cards and phase land in one transaction, never half-dealt
    commit('deal_cards')
    current_app.logger.info(f"[cards-dealt] game={game.id} category={option.category} players={len(member_ids)}")
    notify_game_changed(game)
    return game


def _require_starting_player(game: Game, actor_id) -> None:
    if actor_id is None or actor_id != game.starting_player_id:
        raise Unauthorized('Only the starting player may choose')


def select_word(game_id, actor_id, word: str, category: str) -> Game:
    game = load_game(game_id)
    _require_phase(game, CATEGORY_SELECTION)
    _require_starting_player(game, actor_id)
    option = next(
        (o for o in _word_options(game) if o.word == word and o.category == category),
        None,
    )
    if option is None:
        raise InvalidSelection()
    return _deal_cards(game, option)


def select_category(game_id, actor_id, category: str) -> Game:
    """The liar can't see words; they pick a category and get a random word in it."""
    game = load_game(game_id)
    _require_phase(game, CATEGORY_SELECTION)
    _require_starting_player(game, actor_id)
    if actor_id != game.liar_id:
        raise InvalidSelection('Pick a word, not a category')
    candidates = [o for o in _word_options(game) if o.category == category]
    if not candidates:
        raise InvalidSelection()
    return _deal_cards(game, rng.choice(candidates))


def start_voting(game_id, actor_id) -> Game:
    game = load_game(game_id)
    require_admin(game, actor_id)
    _require_phase(game, CARD_REVEAL)
    scheduler.cancel_countdown(game.id)
    _clear_votes(game.id)
    _open_window(game, VOTING, int(current_app.config.get('VOTING_DURATION_SEC', 10)))
    commit('start_voting')
    current_app.logger.info(f"[voting-open] game={game.id} window={game.window_seq} time_left={game.time_left}")
    notify_game_changed(game)
    _start_countdown(game)
    return game


def _upsert_vote(game_id: int, voter_id: int, target_id: int) -> None:
    existing = Vote.query.filter_by(game_id=game_id, voter_id=voter_id).first()
    if existing:
        existing.target_id = target_id
    else:
        db.session.add(Vote(game_id=game_id, voter_id=voter_id, target_id=target_id))
    try:
        db.session.commit()
    except IntegrityError:
        # Same voter raced us with an insert; fall back to updating that row
        db.session.rollback()
        Vote.query.filter_by(game_id=game_id, voter_id=voter_id).update(
            {'target_id': target_id}, synchronize_session=False
        )
        commit('vote')
    except SQLAlchemyError as exc:
        raise write_failed('vote', exc) from exc


def submit_vote(game_id, voter_id, target_id) -> Game:
    game = load_game(game_id)
    _require_phase(game, VOTING, message='Not accepting votes at this time')
    voter = load_member(game, voter_id)
    target = load_member(game, target_id)
    if voter.id == target.id:
        raise InvalidVote('You cannot vote for yourself')
    if not game.window_open:
        raise InvalidPhase('Voting is closed')
    window_seq = game.window_seq

    _upsert_vote(game.id, voter.id, target.id)
    notify_game_changed(game)

    vote_count = Vote.query.filter_by(game_id=game.id).count()
    player_count = Player.query.filter_by(game_id=game.id).count()
    current_app.logger.info(f"[vote] game={game.id} voter={voter.id} target={target.id} votes={vote_count}/{player_count}")
    if tally.quorum_reached(vote_count, player_count):
        resolve_voting(game.id, window_seq, trigger='quorum')
    return game


def countdown_tick(game_id: int, window_seq: int) -> bool:
    """Take one second off the window; resolve it at zero. False stops the countdown."""
    result = db.session.execute(
        update(Game)
        .where(
            Game.id == game_id,
            Game.window_seq == window_seq,
            Game.window_open.is_(True),
            Game.time_left > 0,
        )
        .values(time_left=Game.time_left - 1)
        .execution_options(synchronize_session=False)
    )
    commit('countdown_tick')
    if result.rowcount != 1:
        current_app.logger.info(f"[timer-abort] game={game_id} window={window_seq} window closed or superseded")
        return False

    game = db.session.get(Game, game_id)
    if game is None:
        return False
    notify_game_changed(game)
    if game.time_left > 0:
        return True

    current_app.logger.info(f"[timer-fire] game={game_id} window={window_seq} phase={game.phase}")
    if game.phase == VOTING:
        resolve_voting(game_id, window_seq, trigger='timeout')
    elif game.phase == TIE_BREAKER:
        resolve_tie_breaker(game_id, window_seq)
    return False


def resolve_voting(game_id: int, window_seq: int, trigger: str = 'timeout') -> bool:
    """Tally a voting window exactly once. Returns False if someone else already did."""
    if not _claim_window(game_id, window_seq, VOTING):
        current_app.logger.info(f"[resolve-skip] game={game_id} window={window_seq} trigger={trigger}")
        return False
    scheduler.cancel_countdown(game_id)

    game = db.session.get(Game, game_id)
    if game is None:
        return False
    players = ordered_players(game.id)
    votes = [(v.voter_id, v.target_id) for v in Vote.query.filter_by(game_id=game.id).order_by(Vote.id).all()]
    outcome = tally.tally_votes(votes, [p.id for p in players], game.liar_id, rng)
    current_app.logger.info(
        f"[resolve] game={game.id} window={window_seq} trigger={trigger} votes={len(votes)} outcome={outcome}"
    )

    if isinstance(outcome, tally.TieBreak):
        game.tie_breaker_id = outcome.tie_breaker_id
        game.tie_candidates = json.dumps(list(outcome.candidates))
        _open_window(game, TIE_BREAKER, int(current_app.config.get('TIE_BREAKER_DURATION_SEC', 10)))
        commit('open_tie_breaker')
        current_app.logger.info(
            f"[tie-breaker] game={game.id} window={game.window_seq} voter={game.tie_breaker_id} candidates={list(outcome.candidates)}"
        )
        notify_game_changed(game)
        _start_countdown(game)
        return True

    _finish_round(game, players, outcome)
    return True


def submit_tie_breaker_vote(game_id, actor_id, target_id) -> Game:
    game = load_game(game_id)
    _require_phase(game, TIE_BREAKER)
    if actor_id is None or actor_id != game.tie_breaker_id:
        raise Unauthorized('Only the tie-breaker may vote now')
    target = load_member(game, target_id)
    if target.id == actor_id:
        raise InvalidVote('You cannot vote for yourself')
    if not resolve_tie_breaker(game.id, game.window_seq, target.id):
        raise InvalidPhase('The tie-breaker vote is already closed')
    return game


def resolve_tie_breaker(game_id: int, window_seq: int, target_id: Optional[int] = None) -> bool:
    if not _claim_window(game_id, window_seq, TIE_BREAKER):
        current_app.logger.info(f"[resolve-skip] game={game_id} window={window_seq} phase=tie-breaker")
        return False
    scheduler.cancel_countdown(game_id)

    game = db.session.get(Game, game_id)
    if game is None:
        return False
    players = ordered_players(game.id)
    outcome = tally.resolve_tie_break(
        _tie_candidates(game), [p.id for p in players], game.liar_id, choice=target_id
    )
    _finish_round(game, players, outcome)
    return True


def _finish_round(game: Game, players: List[Player], outcome: tally.Elimination) -> None:
    by_id = {p.id: p for p in players}
    liar = by_id.get(game.liar_id)
    eliminated = by_id.get(outcome.target_id) if outcome.target_id is not None else None
    winner = tally.winner_for(outcome.target_id, game.liar_id)

    game.round_number = (game.round_number or 0) + 1
    stat = RoundStat(
        game_id=game.id,
        round_number=game.round_number,
        liar_player_id=game.liar_id,
        liar_player_name=liar.name if liar else 'Unknown',
        eliminated_player_id=outcome.target_id,
        eliminated_player_name=eliminated.name if eliminated else 'Unknown',
        liar_won=winner == WINNER_LIAR,
        word=game.current_word or '',
        category=game.word_category or '',
    )
    db.session.add(stat)
    game.phase = RESULTS
    game.winner = winner
    game.time_left = 0
    game.window_open = False
    commit('finish_round')
    current_app.logger.info(
        f"[round-finish] game={game.id} round={game.round_number} eliminated={outcome.target_id} reason={outcome.reason} winner={winner}"
    )
    notify_game_changed(game)


def play_again(game_id, actor_id) -> Game:
    game = load_game(game_id)
    require_admin(game, actor_id)
    _require_phase(game, RESULTS)
    _back_to_lobby(game, 'play_again')
    return game


def _back_to_lobby(game: Game, reason: str) -> None:
    # last_starting_index and round_number survive so rotation and history continue
    scheduler.cancel_countdown(game.id)
    _clear_votes(game.id)
    _clear_cards(game)
    game.clear_round()
    game.phase = ADMIN_LOBBY
    commit(reason)
    current_app.logger.info(f"[lobby] game={game.id} reason={reason}")
    notify_game_changed(game)


def handle_departure(game_id: int, player_id: int) -> None:
    """React to a non-admin leaving mid-round (the player row is already gone)."""
    game = db.session.get(Game, game_id)
    if game is None:
        return
    aborts = (
        player_id == game.liar_id
        or (game.phase == CATEGORY_SELECTION and player_id == game.starting_player_id)
        or (game.phase == TIE_BREAKER and player_id == game.tie_breaker_id)
    )
    if aborts:
        current_app.logger.info(f"[round-abort] game={game.id} phase={game.phase} departed={player_id}")
        _back_to_lobby(game, 'round_aborted')
        return

    notify_game_changed(game)
    if game.phase == VOTING and game.window_open:
        vote_count = Vote.query.filter_by(game_id=game.id).count()
        player_count = Player.query.filter_by(game_id=game.id).count()
        if tally.quorum_reached(vote_count, player_count):
            resolve_voting(game.id, game.window_seq, trigger='departure')
