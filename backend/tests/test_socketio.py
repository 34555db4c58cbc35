from conftest import T0


def _names(events):
    return [e['name'] for e in events]


def _join(sio_client, code):
    sio_client.emit('join_room', {'room_code': code}, namespace='/ws')
    return sio_client.get_received('/ws')


def test_socket_connect_and_join(sio_client, make_session):
    code, _ = make_session(['Alice'])
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')

    received = _join(sio_client, code.lower())
    joined = [e for e in received if e['name'] == 'joined']
    assert joined and joined[0]['args'][0]['room'] == f'room:{code}'


def test_join_requires_room_code(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_room', {}, namespace='/ws')
    assert 'error' in _names(sio_client.get_received('/ws'))


def test_checkin_broadcasts_state_update(sio_client, client, make_session):
    code, _ = make_session([])
    _join(sio_client, code)

    client.post(f'/api/sessions/{code}/checkin', json={'name': 'Alice', 'field_number': 1})
    updates = [e for e in sio_client.get_received('/ws') if e['name'] == 'state_update']
    assert len(updates) == 1
    assert updates[0]['args'][0]['room_code'] == code
    state = client.get(f'/api/sessions/{code}/state').get_json()
    assert updates[0]['args'][0]['lastUpdated'] == state['lastUpdated']


def test_start_broadcasts_timer_record(sio_client, client, make_session):
    code, _ = make_session(['Alice'])
    _join(sio_client, code)

    client.post(f'/api/sessions/{code}/start')
    timers = [e['args'][0] for e in sio_client.get_received('/ws') if e['name'] == 'timer_sync']
    assert len(timers) == 1
    assert timers[0]['timer_state'] == 'running'
    assert timers[0]['start_time'] == T0
    assert timers[0]['room_code'] == code


def test_leave_room_stops_updates(sio_client, client, make_session):
    code, _ = make_session([])
    _join(sio_client, code)
    sio_client.emit('leave_room', {'room_code': code}, namespace='/ws')
    assert 'left' in _names(sio_client.get_received('/ws'))

    client.post(f'/api/sessions/{code}/checkin', json={'name': 'Alice', 'field_number': 1})
    assert 'state_update' not in _names(sio_client.get_received('/ws'))


def test_timer_sync_push_applies_newer_record(sio_client, client, make_session):
    code, _ = make_session(['Alice'])
    held = client.get(f'/api/sessions/{code}/timer').get_json()['updated_at']
    _join(sio_client, code)

    sio_client.emit('timer_sync', {'room_code': code, 'timer_state': 'running',
                                   'start_time': T0, 'updated_at': held + 5}, namespace='/ws')
    timers = [e['args'][0] for e in sio_client.get_received('/ws') if e['name'] == 'timer_sync']
    assert timers and timers[-1]['updated_at'] == held + 5

    timer = client.get(f'/api/sessions/{code}/timer').get_json()
    assert timer['timer_state'] == 'running'
    assert timer['updated_at'] == held + 5


def test_timer_sync_push_rejects_stale_record(sio_client, client, make_session):
    code, _ = make_session(['Alice'])
    held = client.get(f'/api/sessions/{code}/timer').get_json()['updated_at']
    _join(sio_client, code)

    sio_client.emit('timer_sync', {'room_code': code, 'timer_state': 'running',
                                   'start_time': T0, 'updated_at': held - 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert 'timer_sync' not in _names(received)
    stale = [e['args'][0] for e in received if e['name'] == 'timer_stale']
    assert stale == [{'room_code': code, 'incoming': held - 1, 'updated_at': held}]
    assert client.get(f'/api/sessions/{code}/timer').get_json()['timer_state'] == 'stopped'


def test_timer_sync_push_invalid_record(sio_client, make_session):
    code, _ = make_session(['Alice'])
    _join(sio_client, code)
    sio_client.emit('timer_sync', {'room_code': code, 'timer_state': 'paused', 'updated_at': 1}, namespace='/ws')
    assert 'error' in _names(sio_client.get_received('/ws'))


def test_request_timer(sio_client, clock, make_session, client):
    code, _ = make_session(['Alice'])
    client.post(f'/api/sessions/{code}/start')
    clock.advance(45000)
    sio_client.get_received('/ws')
    sio_client.emit('request_timer', {'room_code': code}, namespace='/ws')
    timers = [e['args'][0] for e in sio_client.get_received('/ws') if e['name'] == 'timer_sync']
    assert timers[0]['display'] == '075.00'
    assert timers[0]['band'] == 'normal'


def test_ping_pong(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    pongs = [e['args'][0] for e in sio_client.get_received('/ws') if e['name'] == 'pong']
    assert pongs == [{'n': 1}]
