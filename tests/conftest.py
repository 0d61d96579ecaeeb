import os
import types

import pytest

from models import InferenceCandidate
from token_cipher import TokenCipher

TEST_KEY = b'0123456789abcdef0123456789abcdef'


def pytest_configure(config):
    # app.py builds its router at import time from these variables
    os.environ.setdefault('LINE_CHANNEL_ACCESS_TOKEN', 'fake_token')
    os.environ.setdefault('LINE_CHANNEL_SECRET', 'fake_secret')
    os.environ.setdefault('TOKEN_CIPHER_KEY', TEST_KEY.decode())
    os.environ.setdefault('RECOGNIZER_API_ENDPOINT', 'https://recognizer.example.com')
    os.environ.pop('REDIS_URL', None)
    os.environ.pop('SENTRY_DSN', None)


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=None):
        self.status_code = status_code
        self._json = json_data
        if text is None:
            text = '' if json_data is None else repr(json_data)
        self.text = text
        self.content = text.encode('utf-8')

    def json(self):
        if self._json is None:
            raise ValueError('no json')
        return self._json


class FakeSession:
    """Records requests and replays queued responses (or raises queued exceptions)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


class DummyLineApi:
    def __init__(self, content=b'\xff\xd8\xff' + b'fakeimage'):
        self.replies = []
        self.profiles = []
        self.content = content

    def reply_message(self, reply_token, message):
        self.replies.append((reply_token, message))

    def get_message_content(self, message_id):
        return [self.content]

    def get_profile(self, user_id):
        self.profiles.append(user_id)
        return types.SimpleNamespace(display_name='テストユーザー', user_id=user_id)


def make_candidate(i, **kwargs):
    values = dict(
        inference_id=100 + i,
        face_id=i,
        label_id=1,
        label_name=f'label{i}',
        score=0.5 + i / 100,
        photo_caption=f'caption {i}',
        photo_image_url=f'https://img.example.com/{i}.jpg',
        photo_source_url=f'https://src.example.com/{i}',
    )
    values.update(kwargs)
    return InferenceCandidate(**values)


@pytest.fixture
def cipher():
    return TokenCipher(TEST_KEY)


@pytest.fixture
def line_api():
    return DummyLineApi()
