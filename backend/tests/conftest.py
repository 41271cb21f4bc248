import os
import sys
import pytest
from flask import json

# Ensure the backend root (containing the `liarcard` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from liarcard import create_app, db, socketio
from liarcard.services.games.projector import build_snapshot


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = []
    MIN_PLAYERS = 3
    MAX_PLAYERS = 10
    VOTING_DURATION_SEC = 10
    TIE_BREAKER_DURATION_SEC = 10
    COUNTDOWN_TICK_SEC = 0.01
    RESET_SETTLE_SEC = 0
    CATEGORY_CHOICES = 2
    WORDS_PER_CATEGORY = 5
    WORD_CATALOG_PATH = None


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import liarcard.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def file_backed_app(tmp_path):
    """Like flask_app, but on a SQLite file so several threads can share the database."""
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'liarcard.db'}"

    application = create_app(FileConfig)
    with application.app_context():
        import liarcard.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def seed_game(client):
    """Create a game over HTTP with ``size`` players (admin included)."""
    def _seed(size=4, names=None):
        names = names or ['Alice', 'Bob', 'Cara', 'Dan', 'Eve', 'Finn', 'Gus', 'Hana', 'Ivo', 'Jade']
        res = client.post('/api/games/create', json={'name': names[0]})
        assert res.status_code == 201
        created = res.get_json()
        player_ids = [created['player']['id']]
        for name in names[1:size]:
            joined = client.post('/api/games/join', json={'game_code': created['game_code'], 'name': name})
            assert joined.status_code == 201
            player_ids.append(joined.get_json()['player']['id'])
        return {
            'game_id': created['game_id'],
            'game_code': created['game_code'],
            'admin_id': player_ids[0],
            'player_ids': player_ids,
        }
    return _seed


def state_of(client, game_id, viewer_id=None):
    """A viewer's state over HTTP, or the unredacted snapshot when no viewer is given."""
    if viewer_id is None:
        db.session.expire_all()
        return json.loads(json.dumps(build_snapshot(game_id, full=True)))
    res = client.get(f'/api/games/{game_id}/state?player_id={viewer_id}')
    assert res.status_code == 200, res.get_json()
    return res.get_json()


def deal_round(client, game):
    """Admin starts a round and the starting player picks; returns the card-reveal state."""
    gid, admin = game['game_id'], game['admin_id']
    res = client.post(f'/api/games/{gid}/start', json={'player_id': admin})
    assert res.status_code == 200, res.get_json()
    state = state_of(client, gid)
    starter = state['starting_player_id']
    option = state['word_options'][0]
    if starter == state['liar_id']:
        res = client.post(f'/api/games/{gid}/select-category', json={'player_id': starter, 'category': option['category']})
    else:
        res = client.post(f'/api/games/{gid}/select-word', json={'player_id': starter, **option})
    assert res.status_code == 200, res.get_json()
    return state_of(client, gid)
