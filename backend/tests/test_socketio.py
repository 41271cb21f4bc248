def _events(sio_client, name):
    return [pkt for pkt in sio_client.get_received('/ws') if pkt['name'] == name]


def test_socket_connect_and_join_by_code(sio_client, client):
    created = client.post('/api/games/create', json={'name': 'Alice'}).get_json()
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    sio_client.get_received('/ws')

    sio_client.emit('join_game', {'game_code': created['game_code'].lower()}, namespace='/ws')
    joined = _events(sio_client, 'joined')
    assert joined and joined[0]['args'][0]['game_id'] == created['game_id']


def test_join_unknown_code_reports_error(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_game', {'game_code': 'NOPE0000'}, namespace='/ws')
    errors = _events(sio_client, 'error')
    assert errors and errors[0]['args'][0]['code'] == 'not_found'


def test_push_notification_on_change(sio_client, client):
    created = client.post('/api/games/create', json={'name': 'Alice'}).get_json()
    sio_client.emit('join_game', {'game_id': created['game_id']}, namespace='/ws')
    sio_client.get_received('/ws')

    client.post('/api/games/join', json={'game_code': created['game_code'], 'name': 'Bob'})
    updates = _events(sio_client, 'state_update')
    assert updates
    assert updates[-1]['args'][0]['game_id'] == created['game_id']
    assert updates[-1]['args'][0]['phase'] == 'waiting-room'


def test_poll_only_delivers_changed_snapshots(sio_client, client):
    created = client.post('/api/games/create', json={'name': 'Alice'}).get_json()
    gid, admin = created['game_id'], created['player']['id']
    sio_client.get_received('/ws')

    sio_client.emit('request_state', {'game_id': gid, 'player_id': admin}, namespace='/ws')
    states = _events(sio_client, 'game_state')
    assert len(states) == 1
    assert states[0]['args'][0]['you']['is_admin'] is True

    sio_client.emit('request_state', {'game_id': gid, 'player_id': admin}, namespace='/ws')
    assert _events(sio_client, 'game_state') == []

    client.post('/api/games/join', json={'game_code': created['game_code'], 'name': 'Bob'})
    sio_client.emit('request_state', {'game_id': gid, 'player_id': admin}, namespace='/ws')
    states = _events(sio_client, 'game_state')
    assert len(states) == 1
    assert [p['name'] for p in states[0]['args'][0]['players']] == ['Alice', 'Bob']


def test_cancel_ends_session_for_room(sio_client, client):
    created = client.post('/api/games/create', json={'name': 'Alice'}).get_json()
    gid = created['game_id']
    sio_client.emit('join_game', {'game_id': gid}, namespace='/ws')
    sio_client.get_received('/ws')

    client.post(f'/api/games/{gid}/cancel', json={'player_id': created['player']['id']})
    ended = _events(sio_client, 'session_ended')
    assert ended and ended[0]['args'][0]['game_id'] == gid

    # Polling a deleted game also reports the end of the session
    sio_client.emit('request_state', {'game_id': gid}, namespace='/ws')
    assert _events(sio_client, 'session_ended')


def test_reset_tells_room_about_new_code(sio_client, client, seed_game):
    game = seed_game(3)
    sio_client.emit('join_game', {'game_id': game['game_id']}, namespace='/ws')
    sio_client.get_received('/ws')

    res = client.post(f"/api/games/{game['game_id']}/reset", json={'player_id': game['admin_id']})
    new_code = res.get_json()['game_code']
    resets = _events(sio_client, 'lobby_reset')
    assert resets and resets[0]['args'][0] == {'game_id': game['game_id'], 'from': game['game_code'], 'to': new_code}


def test_ping(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    assert _events(sio_client, 'pong')[0]['args'][0] == {'n': 1}
