import copy
import os
import sys
import pytest

# Ensure the backend root (containing the `infochess` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from infochess import create_app, db, socketio
from infochess.services.games.errors import PersistenceFailure


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = 'DEBUG'


WHITE_ARMY = [
    {'type': 'king', 'x': 4, 'y': 0},
    {'type': 'pawn', 'x': 3, 'y': 1},
]
BLACK_ARMY = [
    {'type': 'king', 'x': 4, 'y': 7},
    {'type': 'pawn', 'x': 4, 'y': 6},
]


class MemoryGameStore:
    """Dict-backed stand-in for SqlAlchemyGameStore."""

    def __init__(self, codes=('ABCD',)):
        self.states = {}
        self.roles = {code: {} for code in codes}
        self.fail_saves = False
        self.saves = 0

    def exists(self, game_code):
        return game_code in self.roles

    def load_state(self, game_code):
        return copy.deepcopy(self.states.get(game_code))

    def save_state(self, game_code, snapshot):
        if self.fail_saves:
            raise PersistenceFailure('Could not save game state')
        self.saves += 1
        self.states[game_code] = copy.deepcopy(snapshot)

    def load_roles(self, game_code):
        return dict(self.roles[game_code])

    def save_roles(self, game_code, roles):
        self.roles[game_code].update({r: i for r, i in roles.items() if i})


class RecordingEmitter:
    def __init__(self):
        self.sent = []

    def __call__(self, event, data, to):
        self.sent.append((to, event, data))

    def events(self, handle, event=None):
        return [(e, d) for to, e, d in self.sent if to == handle and (event is None or e == event)]

    def payloads(self, handle, event):
        return [d for e, d in self.events(handle, event)]

    def clear(self):
        self.sent = []


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def move(self, role):
        self.calls.append(('move', role))

    def gameover(self, winner):
        self.calls.append(('gameover', winner))

    def forfeit(self, role):
        self.calls.append(('forfeit', role))


@pytest.fixture()
def store():
    return MemoryGameStore()


@pytest.fixture()
def emitter():
    return RecordingEmitter()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def server(store, emitter, notifier):
    from infochess.services.games.server import SessionServer
    return SessionServer('ABCD', store, emitter, notifier=notifier)


@pytest.fixture()
def seated(server):
    """White, black and a spectator connected to ``server``."""
    white = server.connect('a', 'alice')
    black = server.connect('b', 'bob')
    spectator = server.connect('c', 'carol')
    return white, black, spectator


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import infochess.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _make(flask_test_client=None):
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_test_client or flask_app.test_client(),
            namespace='/ws'
        )
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        if test_client.is_connected('/ws'):
            test_client.disconnect(namespace='/ws')


@pytest.fixture()
def sio_client(sio_factory):
    return sio_factory()
