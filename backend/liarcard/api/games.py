from flask import Blueprint, jsonify, request, current_app
from liarcard import socketio
from liarcard.errors import GameError
from liarcard.words import get_catalog
from liarcard.services.games import rounds, sessions
from liarcard.services.games.projector import build_snapshot


games = Blueprint('games', __name__)


@games.errorhandler(GameError)
def handle_game_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


def _as_int(value):
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _name(data):
    name = (data.get('name') or '').strip()
    return name[:64]


def _state(game_id, viewer_id=None):
    return jsonify(build_snapshot(game_id, viewer_id=viewer_id))


@games.route('/create', methods=['POST'])
def create_game():
    data = request.get_json(silent=True) or {}
    name = _name(data)
    if not name:
        return jsonify({'error': 'Player name is required'}), 400
    game, admin = sessions.create_game(name)
    return jsonify({
        'message': 'New game created!',
        'game_id': game.id,
        'game_code': game.game_code,
        'player': admin.to_dict(),
    }), 201


@games.route('/join', methods=['POST'])
def join_game():
    data = request.get_json(silent=True) or {}
    game_code = data.get('game_code')
    name = _name(data)
    if not all([game_code, name]):
        return jsonify({'error': 'Game code and player name are required'}), 400
    player = sessions.join_game(game_code, name)
    return jsonify({'game_id': player.game_id, 'player': player.to_dict()}), 201


@games.route('/categories', methods=['GET'])
def list_categories():
    return jsonify({'categories': get_catalog(current_app).all_categories()})


@games.route('/<int:game_id>/state', methods=['GET'])
def get_game_state(game_id):
    return _state(game_id, _as_int(request.args.get('player_id')))


@games.route('/<int:game_id>/leave', methods=['POST'])
def leave_game(game_id):
    data = request.get_json(silent=True) or {}
    player = sessions.get_player(game_id, _as_int(data.get('player_id')))
    sessions.leave_game(player.id)
    return jsonify({'message': 'You have left the game.'})


@games.route('/<int:game_id>/cancel', methods=['POST'])
def cancel_game(game_id):
    data = request.get_json(silent=True) or {}
    sessions.cancel_game(game_id, _as_int(data.get('player_id')))
    return jsonify({'message': 'Game cancelled.'})


@games.route('/<int:game_id>/reorder', methods=['POST'])
def reorder_players(game_id):
    data = request.get_json(silent=True) or {}
    order = data.get('order')
    if not isinstance(order, list):
        return jsonify({'error': 'order must be a list of player ids'}), 400
    actor_id = _as_int(data.get('player_id'))
    sessions.reorder_players(game_id, actor_id, [_as_int(pid) for pid in order])
    return _state(game_id, actor_id)


@games.route('/<int:game_id>/reset', methods=['POST'])
def reset_to_lobby(game_id):
    data = request.get_json(silent=True) or {}
    actor_id = _as_int(data.get('player_id'))
    new_code = sessions.reset_to_lobby(game_id, actor_id)
    # Give slower readers a moment before handing back the fresh state
    settle = float(current_app.config.get('RESET_SETTLE_SEC', 0.5))
    if settle > 0:
        socketio.sleep(settle)
    payload = build_snapshot(game_id, viewer_id=actor_id)
    payload['game_code'] = new_code
    return jsonify(payload)


@games.route('/<int:game_id>/start', methods=['POST'])
def start_round(game_id):
    data = request.get_json(silent=True) or {}
    actor_id = _as_int(data.get('player_id'))
    rounds.start_round(game_id, actor_id)
    return _state(game_id, actor_id)


@games.route('/<int:game_id>/select-word', methods=['POST'])
def select_word(game_id):
    data = request.get_json(silent=True) or {}
    actor_id = _as_int(data.get('player_id'))
    word, category = data.get('word'), data.get('category')
    if not all([word, category]):
        return jsonify({'error': 'word and category are required'}), 400
    rounds.select_word(game_id, actor_id, word, category)
    return _state(game_id, actor_id)


@games.route('/<int:game_id>/select-category', methods=['POST'])
def select_category(game_id):
    data = request.get_json(silent=True) or {}
    actor_id = _as_int(data.get('player_id'))
    category = data.get('category')
    if not category:
        return jsonify({'error': 'category is required'}), 400
    rounds.select_category(game_id, actor_id, category)
    return _state(game_id, actor_id)


@games.route('/<int:game_id>/voting/start', methods=['POST'])
def start_voting(game_id):
    data = request.get_json(silent=True) or {}
    actor_id = _as_int(data.get('player_id'))
    rounds.start_voting(game_id, actor_id)
    return _state(game_id, actor_id)


@games.route('/<int:game_id>/vote', methods=['POST'])
def submit_vote(game_id):
    data = request.get_json(silent=True) or {}
    voter_id = _as_int(data.get('voter_id'))
    target_id = _as_int(data.get('target_id'))
    if voter_id is None or target_id is None:
        return jsonify({'error': 'voter_id and target_id are required'}), 400
    rounds.submit_vote(game_id, voter_id, target_id)
    return _state(game_id, voter_id)


@games.route('/<int:game_id>/tie-breaker/vote', methods=['POST'])
def submit_tie_breaker_vote(game_id):
    data = request.get_json(silent=True) or {}
    actor_id = _as_int(data.get('player_id'))
    target_id = _as_int(data.get('target_id'))
    if target_id is None:
        return jsonify({'error': 'target_id is required'}), 400
    rounds.submit_tie_breaker_vote(game_id, actor_id, target_id)
    return _state(game_id, actor_id)


@games.route('/<int:game_id>/play-again', methods=['POST'])
def play_again(game_id):
    data = request.get_json(silent=True) or {}
    actor_id = _as_int(data.get('player_id'))
    rounds.play_again(game_id, actor_id)
    return _state(game_id, actor_id)
