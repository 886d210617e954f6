from conftest import BLACK_ARMY, WHITE_ARMY


def _payload(pkt):
    # Plain 'message' events carry their data directly rather than as a list.
    if pkt['name'] in ('message', 'json'):
        return pkt['args']
    return pkt['args'][0] if pkt['args'] else None


def _events(sio, name):
    return [_payload(pkt) for pkt in sio.get_received('/ws') if pkt['name'] == name]


def _join(sio, code, identity=None):
    payload = {'game_code': code}
    if identity:
        payload['identity'] = identity
    sio.emit('join_game', payload, namespace='/ws')
    return _events(sio, 'joined')


def test_socket_connect_and_ping(sio_client):
    assert sio_client.is_connected('/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'connected' for pkt in received)

    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    assert _events(sio_client, 'pong') == [{'n': 1}]


def test_join_unknown_game_reports_error(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_game', {'game_code': 'zzzz', 'identity': 'alice'}, namespace='/ws')
    assert _events(sio_client, 'error') == ['Game not found: ZZZZ']


def test_join_requires_identity(client, sio_client):
    code = client.post('/api/games/create').get_json()['game_code']
    sio_client.get_received('/ws')
    sio_client.emit('join_game', {'game_code': code}, namespace='/ws')
    assert _events(sio_client, 'error') == ['identity is required']


def test_protocol_message_before_join_is_rejected(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('end_turn', namespace='/ws')
    assert _events(sio_client, 'error') == ['Join a game first']


def test_logged_in_user_joins_under_username(client, sio_factory):
    client.post('/register', json={'username': 'alice', 'password': 'secret'})
    code = client.post('/api/games/create').get_json()['game_code']
    sio = sio_factory(client)
    assert _join(sio, code, 'someone-else') == [{'game_code': code, 'role': 'white'}]
    state = client.get(f'/api/games/{code}/state').get_json()
    assert state['roles'] == {'white': 'alice'}


def test_two_players_and_a_spectator(client, sio_factory):
    code = client.post('/api/games/create').get_json()['game_code']
    alice, bob, carol = sio_factory(), sio_factory(), sio_factory()
    assert _join(alice, code, 'alice') == [{'game_code': code, 'role': 'white'}]
    assert _join(bob, code, 'bob') == [{'game_code': code, 'role': 'black'}]
    assert _join(carol, code, 'carol') == [{'game_code': code, 'role': 'spectator'}]

    state = client.get(f'/api/games/{code}/state').get_json()
    assert state['num_connected_users'] == 3
    assert state['roles'] == {'white': 'alice', 'black': 'bob'}

    alice.get_received('/ws')
    bob.get_received('/ws')
    carol.get_received('/ws')

    alice.emit('select_army', {'pieces': WHITE_ARMY}, namespace='/ws')
    assert _events(bob, 'opponent_ready') == [{}]
    bob.emit('select_army', BLACK_ARMY, namespace='/ws')

    updates = _events(carol, 'update')
    board = updates[-1]['gameState']['board']['pieces']
    assert updates[-1]['gameState']['currentPhase'] == 'move'
    assert {p['type'] for p in board} == {'unknown'}
    white_view = _events(alice, 'update')[-1]['gameState']['board']['pieces']
    assert {p['type'] for p in white_view if p['role'] == 'white'} == {'king', 'pawn'}

    bob.get_received('/ws')
    bob.emit('move', {'src': {'x': 4, 'y': 6}, 'dest': {'x': 4, 'y': 5}}, namespace='/ws')
    assert _events(bob, 'error') == ["It is White's turn"]
    assert _events(carol, 'update') == []

    alice.emit('move', {'src': {'x': 3, 'y': 1}, 'dest': {'x': 3, 'y': 2}}, namespace='/ws')
    result = _events(bob, 'update')[-1]
    assert result['result']['dest'] == {'x': 3, 'y': 2}
    assert result['gameState']['currentPhase'] == 'iw'

    state = client.get(f'/api/games/{code}/state').get_json()
    assert state['status'] == 'in_progress'
    assert state['gameState']['currentPhase'] == 'iw'


def test_reconnect_restores_role_and_state(client, sio_factory):
    code = client.post('/api/games/create').get_json()['game_code']
    alice, bob = sio_factory(), sio_factory()
    _join(alice, code, 'alice')
    _join(bob, code, 'bob')
    alice.emit('select_army', WHITE_ARMY, namespace='/ws')
    alice.disconnect(namespace='/ws')
    bob.disconnect(namespace='/ws')

    returning = sio_factory()
    assert _join(returning, code, 'alice') == [{'game_code': code, 'role': 'white'}]
    returning.emit('pawn_capture_query', namespace='/ws')
    update = _events(returning, 'update')[-1]
    assert update['gameState']['ready'] == {'white': True, 'black': False}
    assert update['gameState']['army'][0]['type'] == 'king'


def test_chat_and_reset_vote(client, sio_factory):
    code = client.post('/api/games/create').get_json()['game_code']
    alice, bob, carol = sio_factory(), sio_factory(), sio_factory()
    _join(alice, code, 'alice')
    _join(bob, code, 'bob')
    _join(carol, code, 'carol')
    alice.emit('select_army', WHITE_ARMY, namespace='/ws')
    for sio in (alice, bob, carol):
        sio.get_received('/ws')

    bob.emit('message', {'user': 'bob', 'message': 'hello'}, namespace='/ws')
    assert _events(carol, 'message') == [{'user': 'bob', 'message': 'hello'}]

    alice.emit('request_reset', namespace='/ws')
    assert _events(carol, 'getVote') == []
    assert _events(bob, 'getVote') == [{'name': 'reset', 'question': 'Would you like to reset the game?'}]

    alice.emit('vote', {'name': 'reset', 'choice': 'yes'}, namespace='/ws')
    # Bob leaving drops his ballot; Alice's yes carries the vote.
    bob.disconnect(namespace='/ws')
    messages = _events(carol, 'message')
    assert {'user': 'game', 'message': 'Vote "reset" passed.'} in messages

    state = client.get(f'/api/games/{code}/state').get_json()
    assert state['gameState']['ready'] == {'white': False, 'black': False}
    assert state['roles'] == {'white': 'alice', 'black': 'bob'}


def test_leave_game(client, sio_client):
    code = client.post('/api/games/create').get_json()['game_code']
    _join(sio_client, code, 'alice')
    sio_client.emit('leave_game', namespace='/ws')
    assert _events(sio_client, 'left') == [{'game_code': code}]
    sio_client.emit('leave_game', namespace='/ws')
    assert _events(sio_client, 'error') == ['Not in a game']
