import os
import random
import sys
import pytest

# Ensure the backend root (containing the `meowchat` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from meowchat import create_app, socketio
from meowchat.services.chat import ChatService, ChatSettings
from meowchat.services.chat.clock import ManualScheduler
from meowchat.services.chat.persona import PersonaResponder
from meowchat.services.chat.profanity import ProfanityFilter


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    CORS_ORIGINS = '*'
    SOCKETIO_NAMESPACE = '/'
    GEMINI_API_KEY = None
    PROFANITY_WORDS = ['badword1', 'badword2', 'badword3']


class Recorder:
    """Collects (handle, event, payload) triples emitted by the engine."""

    def __init__(self):
        self.events = []

    def __call__(self, handle, event, payload):
        self.events.append((handle, event, payload))

    def of(self, handle, event=None):
        return [payload for h, e, payload in self.events if h == handle and (event is None or e == event)]

    def names(self, handle):
        return [e for h, e, _ in self.events if h == handle]

    def clear(self):
        self.events.clear()


class StubBackend:
    """Stands in for Gemini: answers with a fixed line, or raises when told to."""

    def __init__(self, reply='hi there', error=None):
        self.reply = reply
        self.error = error
        self.calls = []
        self.on_complete = None

    def complete(self, prompt, temperature, max_tokens):
        self.calls.append({'prompt': prompt, 'temperature': temperature, 'max_tokens': max_tokens})
        if self.error is not None:
            raise self.error
        if self.on_complete is not None:
            self.on_complete()
        return self.reply


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def recorder():
    return Recorder()


@pytest.fixture()
def backend():
    return StubBackend()


@pytest.fixture()
def settings():
    return ChatSettings()


@pytest.fixture()
def engine(scheduler, recorder, backend, settings):
    rng = random.Random(1234)
    responder = PersonaResponder(backend, history_length=settings.history_length, rng=rng)
    return ChatService(
        scheduler,
        recorder,
        settings=settings,
        responder=responder,
        text_filter=ProfanityFilter(),
        rng=rng,
    )


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def app_scheduler(flask_app):
    return flask_app.extensions['chat_service'].scheduler


@pytest.fixture()
def sio_factory(flask_app):
    created = []

    def _make():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        created.append(test_client)
        return test_client

    yield _make
    for test_client in created:
        try:
            if test_client.is_connected():
                test_client.disconnect()
        except Exception:
            pass
