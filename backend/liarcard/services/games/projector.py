"""Read model: a consistent snapshot of one game for one observer.

Snapshots are rebuilt from scratch on every push notification and every
poll, so building one must never write anything.
"""

import hashlib
import json
import threading
from typing import Any, Dict, Hashable, Optional

from liarcard.models import CATEGORY_SELECTION, RESULTS, RoundStat, Vote
from .store import load_game, ordered_players


def build_snapshot(game_id, viewer_id=None, full: bool = False) -> Dict[str, Any]:
    """Game fields, ordered players, open votes and round history.

    Unless ``full`` is set the snapshot is redacted for ``viewer_id``: other
    players' cards are hidden, the liar's identity stays secret until
    results, and only word holders see the word (the viewer learns their own
    role via ``you``). Callers that aren't members see no cards and no word.
    """
    game = load_game(game_id)
    players = ordered_players(game.id)
    votes = Vote.query.filter_by(game_id=game.id).order_by(Vote.id).all()
    stats = RoundStat.query.filter_by(game_id=game.id).order_by(RoundStat.round_number, RoundStat.id).all()

    snapshot = game.to_dict()
    snapshot['players'] = [p.to_dict() for p in players]
    snapshot['votes'] = {str(v.voter_id): v.target_id for v in votes}
    snapshot['stats'] = [s.to_dict() for s in stats]
    snapshot['player_count'] = len(players)
    snapshot['vote_count'] = len(votes)

    if full:
        return snapshot

    viewer = next((p for p in players if p.id == viewer_id), None) if viewer_id is not None else None
    is_liar = viewer is not None and viewer.id == game.liar_id
    sees_word = viewer is not None and not is_liar
    for pd in snapshot['players']:
        if viewer is None or pd['id'] != viewer.id:
            pd['card'] = None
    if game.phase != RESULTS:
        snapshot['liar_id'] = None
        if not sees_word and snapshot['current_word']:
            snapshot['current_word'] = {'word': None, 'category': snapshot['current_word']['category']}
        if not sees_word and game.phase == CATEGORY_SELECTION:
            # The liar chooses among categories only
            snapshot['word_options'] = [
                {'word': None, 'category': o.get('category')} for o in snapshot['word_options']
            ]
    snapshot['you'] = {
        'id': viewer.id,
        'name': viewer.name,
        'is_admin': viewer.is_admin,
        'is_liar': is_liar,
        'card': viewer.card,
        'is_starting_player': viewer.id == game.starting_player_id,
        'is_tie_breaker': viewer.id == game.tie_breaker_id,
    } if viewer else None
    return snapshot


def snapshot_fingerprint(snapshot: Dict[str, Any]) -> str:
    payload = json.dumps(snapshot, sort_keys=True, default=str).encode('utf-8')
    return hashlib.sha1(payload).hexdigest()


class ChangeFilter:
    """Remembers the last snapshot sent to each observer.

    Pushes and polls both funnel through ``should_deliver`` so an observer
    only receives a snapshot when something actually changed.
    """

    def __init__(self):
        self._seen: Dict[Hashable, str] = {}
        self._lock = threading.Lock()

    def should_deliver(self, observer: Hashable, snapshot: Dict[str, Any]) -> bool:
        fingerprint = snapshot_fingerprint(snapshot)
        with self._lock:
            if self._seen.get(observer) == fingerprint:
                return False
            self._seen[observer] = fingerprint
            return True

    def forget(self, observer: Hashable) -> None:
        with self._lock:
            self._seen.pop(observer, None)

    def forget_connection(self, connection: Hashable) -> None:
        """Drop every ``(connection, ...)`` observer key, e.g. on socket disconnect."""
        with self._lock:
            for observer in [o for o in self._seen if isinstance(o, tuple) and o and o[0] == connection]:
                del self._seen[observer]

    def last_seen(self, observer: Hashable) -> Optional[str]:
        with self._lock:
            return self._seen.get(observer)
