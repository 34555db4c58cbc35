import os
import sys
import pytest

# Ensure the backend root (containing the `scoreboard` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from scoreboard import create_app, db, socketio

# 2026-10-19T10:00:00Z in epoch ms
T0 = 1792404000000


class FakeClock:
    """Stand-in for wall-clock epoch ms; only moves when told to."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms
        return self.now


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SCORING_POLICY = 'countdown'
    ROUND_DURATION_SEC = 120
    FIELD_COUNT = 5
    DEFAULT_BONUS_SCORES = '5,10,15,20,25'
    CLOCK_FORMAT = None
    DISPLAY_REFRESH_MS = 100
    POLL_INTERVAL_MS = 2000
    WARNING_THRESHOLD_SEC = 30
    LEADERBOARD_SIZE = 10
    WEEKLY_LEADERBOARD_SIZE = 10
    LEADERBOARD_WINDOW_DAYS = 7
    TIMER_HEARTBEAT_SEC = 0


@pytest.fixture()
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr('scoreboard.services.timing.timer.now_ms', fake)
    return fake


@pytest.fixture()
def app_config(tmp_path):
    """Per-test config; tests may set extra attributes before the app is built."""
    class _Config(TestConfig):
        LEADERBOARD_SNAPSHOT_PATH = str(tmp_path / 'leaderboards.json')
    return _Config


@pytest.fixture()
def flask_app(app_config, clock):
    application = create_app(app_config)
    with application.app_context():
        # Ensure models are imported so tables are created
        import scoreboard.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def cli_runner(flask_app):
    return flask_app.test_cli_runner()


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
def make_session(client):
    """Create a session and check players in on fields 1..n."""
    def _make(names=('Alice', 'Bob'), **create_kwargs):
        code = client.post('/api/sessions/create', json=create_kwargs).get_json()['room_code']
        players = []
        for field, name in enumerate(names, start=1):
            res = client.post(f'/api/sessions/{code}/checkin', json={'name': name, 'field_number': field})
            assert res.status_code == 201, res.get_json()
            players.append(res.get_json())
        return code, players
    return _make
