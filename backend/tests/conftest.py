import os
import sys
from collections import defaultdict

import pytest

# Ensure the backend root (containing the `quizarena` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from quizarena import create_app, db, room_manager, socketio
from quizarena.services.rooms import QuizSnapshot, RoomManager
from quizarena.services.rooms.scheduler import TimerHandle

START_MS = 1_700_000_000_000


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:5173']
    COUNTDOWN_DURATION_MS = 5000
    QUESTION_TIME_MS = 10000
    REVEAL_DELAY_MS = 3000
    LOG_LEVEL = 'DEBUG'
    TIMER_HEARTBEAT_SEC = 0


def make_questions(n, answer='Paris'):
    return [
        {
            'question': f'Question {i + 1}?',
            'options': [answer, 'Lyon', 'Nice', 'Lille'],
            'answer': answer,
            'explanation': f'Because {i + 1}.',
        }
        for i in range(n)
    ]


class FakeClock:
    def __init__(self, start=START_MS):
        self.now = start

    def __call__(self):
        return self.now


class ManualScheduler:
    """Deterministic scheduler: callbacks fire only when virtual time is advanced."""

    def __init__(self, clock):
        self.clock = clock
        self._timers = []
        self._seq = 0

    def call_later(self, delay_ms, callback, *args, label=''):
        handle = TimerHandle(label)
        self._seq += 1
        self._timers.append((self.clock.now + delay_ms, self._seq, handle, callback, args))
        return handle

    def pending(self):
        return [t for t in self._timers if not t[2].cancelled]

    def advance(self, ms):
        target = self.clock.now + ms
        while True:
            due = [t for t in self.pending() if t[0] <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t[0], t[1]))
            self._timers.remove(timer)
            when, _, _, callback, args = timer
            self.clock.now = max(self.clock.now, when)
            callback(*args)
        self.clock.now = target
        self._timers = self.pending()


class RecordingBroadcaster:
    """Keeps per-room membership and records what every connection would receive."""

    def __init__(self):
        self.members = defaultdict(list)
        self.inbox = defaultdict(list)
        self.room_log = []
        self.closed = []

    def attach(self, sid, code):
        if sid not in self.members[code]:
            self.members[code].append(sid)

    def detach(self, sid, code):
        if sid in self.members[code]:
            self.members[code].remove(sid)

    def to_room(self, code, event, payload, skip_sid=None):
        self.room_log.append((code, event, payload))
        for sid in self.members[code]:
            if sid != skip_sid:
                self.inbox[sid].append((event, payload))

    def to_connection(self, sid, event, payload):
        self.inbox[sid].append((event, payload))

    def close(self, code):
        self.closed.append(code)
        self.members.pop(code, None)

    def received(self, sid, event):
        return [payload for name, payload in self.inbox[sid] if name == event]

    def emitted(self, event):
        return [payload for _, name, payload in self.room_log if name == event]


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def quizzes():
    return {
        '1': QuizSnapshot('Capitals', make_questions(1)),
        '3': QuizSnapshot('Capitals x3', make_questions(3)),
    }


@pytest.fixture()
def manager(broadcaster, scheduler, clock, quizzes):
    return RoomManager(
        broadcaster=broadcaster,
        scheduler=scheduler,
        quiz_lookup=lambda quiz_id: quizzes.get(str(quiz_id)),
        clock=clock,
    )


@pytest.fixture()
def flask_app(clock):
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import quizarena.models  # noqa: F401
        db.create_all()
        # Timers are driven by the test, not by background tasks
        room_manager.clock = clock
        room_manager.scheduler = ManualScheduler(clock)
        yield application
        room_manager.reset()
        from quizarena import socketio_events
        socketio_events._sid_to_room.clear()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        if test_client.is_connected():
            test_client.disconnect()
