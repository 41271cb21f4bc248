from liarcard import db
from liarcard.models import RoundStat, Vote
from liarcard.services.games import projector, sessions


def _game_with(names):
    game, admin = sessions.create_game(names[0])
    ids = [admin.id] + [sessions.join_game(game.game_code, n).id for n in names[1:]]
    return game.id, ids


def test_snapshot_orders_players_votes_and_stats(flask_app):
    game_id, ids = _game_with(['Alice', 'Bob', 'Cara'])
    sessions.reorder_players(game_id, ids[0], [ids[1], ids[2], ids[0]])
    db.session.add(Vote(game_id=game_id, voter_id=ids[1], target_id=ids[2]))
    for n in (2, 1):
        db.session.add(RoundStat(
            game_id=game_id, round_number=n, liar_player_id=ids[0], liar_player_name='Alice',
            eliminated_player_id=ids[1], eliminated_player_name='Bob', liar_won=True,
            word='Pizza', category='Food',
        ))
    db.session.commit()

    snap = projector.build_snapshot(game_id)
    assert [p['name'] for p in snap['players']] == ['Bob', 'Cara', 'Alice']
    assert snap['votes'] == {str(ids[1]): ids[2]}
    assert [s['round_number'] for s in snap['stats']] == [1, 2]
    assert snap['player_count'] == 3
    assert snap['vote_count'] == 1


def test_snapshot_has_no_side_effects(flask_app):
    game_id, _ = _game_with(['Alice', 'Bob', 'Cara'])
    first = projector.build_snapshot(game_id)
    second = projector.build_snapshot(game_id)
    assert first == second
    assert projector.snapshot_fingerprint(first) == projector.snapshot_fingerprint(second)
    assert not db.session.dirty and not db.session.new


def test_change_filter_dedupes_per_observer(flask_app):
    game_id, ids = _game_with(['Alice', 'Bob', 'Cara'])
    feed = projector.ChangeFilter()
    snap = projector.build_snapshot(game_id)

    assert feed.should_deliver(('sid-1', game_id), snap) is True
    assert feed.should_deliver(('sid-1', game_id), snap) is False
    assert feed.should_deliver(('sid-2', game_id), snap) is True

    sessions.leave_game(ids[2])
    changed = projector.build_snapshot(game_id)
    assert feed.should_deliver(('sid-1', game_id), changed) is True

    feed.forget_connection('sid-1')
    assert feed.last_seen(('sid-1', game_id)) is None
    assert feed.last_seen(('sid-2', game_id)) is not None
