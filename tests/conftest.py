import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest
import requests

from fieldtriage import create_app
from fieldtriage.errors import TranscriptionError
from fieldtriage.extensions import db
from fieldtriage.models.user import User
from fieldtriage.services.record_store import RecordStore


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'JOB_BACKEND': 'sync',
        'STORAGE_BACKEND': 'local',
        'LOCAL_STORAGE_DIR': str(tmp_path / 'uploads'),
        'TRANSCRIPTION_BACKEND': 'whisper',
        'ANALYSIS_BACKEND': 'heuristic',
        'OPENAI_API_KEY': None,
        'DEEPGRAM_API_KEY': None,
        'AUTO_DISPATCH_DELIVERIES': False,
        'SENDGRID_API_KEY': None,
        'TWILIO_ACCOUNT_SID': None,
        'TWILIO_AUTH_TOKEN': None,
        'TWILIO_FROM_NUMBER': None,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return RecordStore()


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(role='reviewer', available=True, **kwargs):
        counter['n'] += 1
        n = counter['n']
        u = User(
            role=role,
            username=kwargs.pop('username', f"{role}{n}"),
            first_name=kwargs.pop('first_name', f"First{n}"),
            last_name=kwargs.pop('last_name', f"Last{n}"),
            email=kwargs.pop('email', f"{role}{n}@example.com"),
            phone=kwargs.pop('phone', f"+1555000{n:04d}"),
            is_available=available,
            **kwargs,
        )
        db.session.add(u)
        db.session.commit()
        return u

    return _make


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / 'report.wav'
    path.write_bytes(b"RIFF....WAVEfmt ")
    return f"file://{path}"


@pytest.fixture
def make_submission(store, make_user, audio_file):
    def _make(context='', responder=None):
        responder = responder or make_user(role='responder')
        return store.create(responder.id, context, audio_file)

    return _make


class FakeTranscriber:
    name = 'fake'

    def __init__(self, text='patient fell from height, multiple trauma, unconscious', error=None):
        self.text = text
        self.error = error
        self.calls = []

    def transcribe(self, audio_ref):
        self.calls.append(audio_ref)
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def fake_transcriber(monkeypatch):
    """Route pipelines built from config to a FakeTranscriber."""
    fake = FakeTranscriber()
    monkeypatch.setattr('fieldtriage.jobs.pipeline.build_transcriber', lambda config: fake)
    return fake


@pytest.fixture
def failing_transcriber(monkeypatch):
    fake = FakeTranscriber(error=TranscriptionError('service unreachable'))
    monkeypatch.setattr('fieldtriage.jobs.pipeline.build_transcriber', lambda config: fake)
    return fake


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text='', headers=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.headers = headers or {}

    def json(self):
        if self._payload is None:
            raise ValueError('no JSON body')
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error", response=self)


class FakeHttp:
    """Stands in for the `requests` module; replays queued responses or exceptions."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item
