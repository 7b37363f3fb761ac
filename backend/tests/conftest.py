import os
import sys
import itertools
from dataclasses import replace
import pytest

# Ensure the backend root (containing the `scoreboard` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from scoreboard import create_app, db, socketio
from scoreboard.services.scoring import MemoryEventStream, StoreUnavailable
from scoreboard.services.scoring.reconciler import REMOTE, RoundScoreBackend


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEFAULT_WIN_SCORE = 1
    DEFAULT_OVERTIME_MARGIN = 2
    DEFAULT_MAX_ROUNDS = 3
    EVENT_STREAM = 'sql'


class FakeBackend(RoundScoreBackend):
    """Round-result store kept in a dict; rounds in ``fail_rounds`` raise."""

    def __init__(self, fail_rounds=()):
        self.fail_rounds = set(fail_rounds)
        self.records = {}
        self.calls = []
        self.deleted = []
        self._ids = itertools.count(100)

    def save(self, match_id, score):
        self.calls.append(score.round)
        if score.round in self.fail_rounds:
            raise StoreUnavailable(f'round {score.round} rejected')
        record_id = self.records[score.round][0] if score.round in self.records else next(self._ids)
        self.records[score.round] = (record_id, score)
        return record_id

    def delete(self, match_id, round_no):
        self.deleted.append(round_no)
        return self.records.pop(round_no, None) is not None

    def fetch(self, match_id):
        return [replace(score, source=REMOTE, record_id=record_id)
                for record_id, score in self.records.values()]


class FlakyStream(MemoryEventStream):
    """Memory stream that raises StoreUnavailable while ``down`` is set."""

    def __init__(self):
        super().__init__()
        self.down = False

    def _check(self):
        if self.down:
            raise StoreUnavailable('log store offline')

    def snapshot(self, match_id, round_no):
        self._check()
        return super().snapshot(match_id, round_no)

    def append(self, match_id, round_no, event):
        self._check()
        return super().append(match_id, round_no, event)

    def remove(self, match_id, round_no, key):
        self._check()
        return super().remove(match_id, round_no, key)

    def clear(self, match_id, round_no):
        self._check()
        return super().clear(match_id, round_no)


@pytest.fixture()
def stream():
    return MemoryEventStream()


@pytest.fixture()
def flaky_stream():
    return FlakyStream()


@pytest.fixture()
def backend():
    return FakeBackend()


@pytest.fixture()
def make_backend():
    return FakeBackend


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
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
