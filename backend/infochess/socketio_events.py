from collections import namedtuple

from flask import current_app, request
from flask_login import current_user
from flask_socketio import emit

from infochess import socketio
from infochess.services.games.errors import GameError
from infochess.services.games.player import Player

# Transport address of one live socket; hashable so it can key the registry.
Connection = namedtuple('Connection', ['sid', 'namespace'])


def emit_to_connection(event, data, to):
    socketio.emit(event, data, to=to.sid, namespace=to.namespace)


def _connection() -> Connection:
    # type: ignore: request.sid exists in Socket.IO context
    return Connection(request.sid, request.namespace)  # type: ignore


def _registry():
    return current_app.session_registry


def _identity(data):
    if current_user.is_authenticated:
        return current_user.username
    identity = (data or {}).get('identity')
    return str(identity).strip() if identity else None


def handle_connect():
    emit('connected', {'message': f'Connected to {request.namespace}'})


def handle_disconnect(reason=None):
    player = _registry().leave(_connection())
    if player is not None:
        current_app.logger.info(f'[socket-disconnect] game={player.server.game_code} user={player.identity} reason={reason}')


def handle_join_game(data):
    data = data if isinstance(data, dict) else {}
    game_code = data.get('game_code')
    if not game_code:
        emit('error', 'game_code is required')
        return
    identity = _identity(data)
    if not identity:
        emit('error', 'identity is required')
        return
    try:
        player = _registry().join(_connection(), str(game_code), identity)
    except GameError as exc:
        emit('error', exc.message)
        return
    emit('joined', {'game_code': player.server.game_code, 'role': player.role.value})


def handle_leave_game(data=None):
    player = _registry().leave(_connection())
    if player is None:
        emit('error', 'Not in a game')
        return
    emit('left', {'game_code': player.server.game_code})


def handle_ping(data=None):
    emit('pong', data or {})


def _protocol_handler(message_type):
    def handler(data=None):
        player = _registry().player_for(_connection())
        if player is None:
            emit('error', 'Join a game first')
            return
        player.handle_message(message_type, data)
    handler.__name__ = f'handle_{message_type}'
    return handler


def _register(namespace):
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event('join_game', handle_join_game, namespace=namespace)
    socketio.on_event('leave_game', handle_leave_game, namespace=namespace)
    socketio.on_event('ping', handle_ping, namespace=namespace)
    for message_type in Player.message_types():
        socketio.on_event(message_type, _protocol_handler(message_type), namespace=namespace)


def register_socketio_handlers(namespace: str = '/ws', testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on ``namespace``. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    _register(namespace)
    if testing and namespace != '/':
        _register('/')
