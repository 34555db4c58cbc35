from flask_socketio import join_room, leave_room, emit
from scoreboard import socketio
from scoreboard.errors import ScoreboardError, StaleUpdate
from scoreboard.services.timing import rounds
from scoreboard.services.timing.sync import SyncRecord


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_room(data):
    room_code = (data or {}).get('room_code')
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    room = rounds.room_for(room_code.upper())
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_room(data):
    room_code = (data or {}).get('room_code')
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    room = rounds.room_for(room_code.upper())
    leave_room(room)
    emit('left', {'room': room})


def handle_timer_sync(data):
    """Push transport for timer records; same staleness guard as the HTTP route."""
    data = data or {}
    room_code = data.get('room_code')
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    try:
        record = SyncRecord.from_dict(data)
    except (TypeError, ValueError) as exc:
        emit('error', {'message': str(exc)})
        return
    try:
        session = rounds.find_session(room_code)
        rounds.apply_timer_record(session, record)
    except StaleUpdate as exc:
        emit('timer_stale', {'room_code': room_code.upper(), 'incoming': exc.incoming, 'updated_at': exc.held})
    except ScoreboardError as exc:
        emit('error', {'message': exc.message})


def handle_request_timer(data):
    room_code = (data or {}).get('room_code')
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    try:
        session = rounds.find_session(room_code)
    except ScoreboardError as exc:
        emit('error', {'message': exc.message})
        return
    emit('timer_sync', rounds.timer_view(session))


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_room', handle_join_room, namespace=namespace)
        socketio.on_event('leave_room', handle_leave_room, namespace=namespace)
        socketio.on_event('timer_sync', handle_timer_sync, namespace=namespace)
        socketio.on_event('request_timer', handle_request_timer, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
