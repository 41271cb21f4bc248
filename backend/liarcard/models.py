from liarcard import db
from datetime import datetime, timezone
import json
import string
import random

# Persisted phases. 'welcome' and 'terminated' exist only on clients.
ADMIN_LOBBY = 'admin-lobby'
WAITING_ROOM = 'waiting-room'
CATEGORY_SELECTION = 'category-selection'
CARD_REVEAL = 'card-reveal'
VOTING = 'voting'
TIE_BREAKER = 'tie-breaker'
RESULTS = 'results'

LOBBY_PHASES = (ADMIN_LOBBY, WAITING_ROOM)
ROUND_PHASES = (CATEGORY_SELECTION, CARD_REVEAL, VOTING, TIE_BREAKER)

WINNER_PLAYERS = 'players'
WINNER_LIAR = 'liar'

LIAR_CARD = 'LIAR'

GAME_CODE_LENGTH = 8
GAME_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _utcnow():
    return datetime.now(timezone.utc)


def _load_json_list(raw):
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    return value if isinstance(value, list) else []


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (
        db.UniqueConstraint('game_id', 'player_order', name='uq_player_game_order'),
    )
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    card = db.Column(db.String(128), nullable=True)
    player_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    game = db.relationship('Game', back_populates='players')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'game_id': self.game_id,
            'is_admin': self.is_admin,
            'card': self.card,
            'player_order': self.player_order,
        }


def generate_game_code(length=GAME_CODE_LENGTH, exclude=()):
    """Generate a unique join code not already used by any game."""
    while True:
        code = ''.join(random.choices(GAME_CODE_ALPHABET, k=length))
        if code in exclude:
            continue
        if not Game.query.filter_by(game_code=code).first():
            return code


def normalize_game_code(code):
    return (code or '').strip().upper()


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    game_code = db.Column(db.String(GAME_CODE_LENGTH), unique=True, index=True, nullable=False)
    phase = db.Column(db.String(32), default=ADMIN_LOBBY, nullable=False)
    current_word = db.Column(db.String(128), nullable=True)
    word_category = db.Column(db.String(128), nullable=True)
    liar_id = db.Column(db.Integer, nullable=True)
    starting_player_id = db.Column(db.Integer, nullable=True)
    last_starting_index = db.Column(db.Integer, default=-1, nullable=False)
    time_left = db.Column(db.Integer, default=0, nullable=False)
    tie_breaker_id = db.Column(db.Integer, nullable=True)
    tie_candidates = db.Column(db.Text, nullable=True)  # JSON-encoded list of player ids
    winner = db.Column(db.String(16), nullable=True)
    round_number = db.Column(db.Integer, default=0, nullable=False)
    category_options = db.Column(db.Text, nullable=True)  # JSON-encoded list of categories
    word_options = db.Column(db.Text, nullable=True)  # JSON-encoded list of {word, category}
    # Timed window identity and its resolution latch
    window_seq = db.Column(db.Integer, default=0, nullable=False)
    window_open = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    players = db.relationship(
        'Player',
        back_populates='game',
        cascade='all, delete-orphan',
        order_by='Player.player_order',
    )

    def __init__(self, **kwargs):
        super(Game, self).__init__(**kwargs)
        if not self.game_code:
            self.game_code = generate_game_code()

    @property
    def admin(self):
        return next((p for p in self.players if p.is_admin), None)

    def clear_round(self):
        """Reset every per-round field; history and rotation survive."""
        self.current_word = None
        self.word_category = None
        self.liar_id = None
        self.starting_player_id = None
        self.time_left = 0
        self.tie_breaker_id = None
        self.tie_candidates = None
        self.winner = None
        self.category_options = None
        self.word_options = None
        self.window_open = False

    def to_dict(self):
        return {
            'id': self.id,
            'game_code': self.game_code,
            'phase': self.phase,
            'current_word': (
                {'word': self.current_word, 'category': self.word_category or ''}
                if self.current_word else None
            ),
            'liar_id': self.liar_id,
            'starting_player_id': self.starting_player_id,
            'last_starting_index': self.last_starting_index,
            'time_left': self.time_left,
            'tie_breaker_id': self.tie_breaker_id,
            'tie_candidates': _load_json_list(self.tie_candidates),
            'winner': self.winner,
            'round_number': self.round_number,
            'category_options': _load_json_list(self.category_options),
            'word_options': _load_json_list(self.word_options),
        }


class Vote(db.Model):
    __tablename__ = 'vote'
    __table_args__ = (
        db.UniqueConstraint('game_id', 'voter_id', name='uq_vote_game_voter'),
    )
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    voter_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    target_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)


class RoundStat(db.Model):
    __tablename__ = 'round_stat'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    liar_player_id = db.Column(db.Integer, nullable=True)
    liar_player_name = db.Column(db.String(64), nullable=False, default='Unknown')
    eliminated_player_id = db.Column(db.Integer, nullable=True)
    eliminated_player_name = db.Column(db.String(64), nullable=False, default='Unknown')
    liar_won = db.Column(db.Boolean, nullable=False)
    word = db.Column(db.String(128), nullable=False, default='')
    category = db.Column(db.String(128), nullable=False, default='')
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'round_number': self.round_number,
            'liar_player_id': self.liar_player_id,
            'liar_player_name': self.liar_player_name,
            'eliminated_player_id': self.eliminated_player_id,
            'eliminated_player_name': self.eliminated_player_name,
            'liar_won': self.liar_won,
            'word': self.word,
            'category': self.category,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
