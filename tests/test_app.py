import base64
import hashlib
import hmac
import io
import json
import os

import pytest
import requests
from PIL import Image

import app


@pytest.fixture
def client():
    return app.app.test_client()


def _sign(body: bytes) -> str:
    secret = os.environ['LINE_CHANNEL_SECRET'].encode('utf-8')
    return base64.b64encode(hmac.new(secret, body, hashlib.sha256).digest()).decode('utf-8')


def test_healthz(client):
    resp = client.get('/healthz')
    assert resp.status_code == 200
    assert resp.data == b'ok'


def test_router_is_wired():
    assert app.router is not None
    assert app.router.max_columns == app.settings.carousel_max_columns


def test_callback_invalid_signature(client):
    resp = client.post('/callback', data='{"events": []}', headers={'X-Line-Signature': 'bad'})
    assert resp.status_code == 500


def test_callback_signed_empty_batch(client):
    body = json.dumps({'destination': 'Uxxx', 'events': []}).encode('utf-8')
    resp = client.post('/callback', data=body, headers={'X-Line-Signature': _sign(body)})
    assert resp.status_code == 200
    assert resp.data == b'OK'


def test_callback_submits_events(client, monkeypatch):
    submitted = []
    monkeypatch.setattr(app.router, 'submit', submitted.append)
    body = json.dumps({'destination': 'Uxxx', 'events': [{
        'type': 'unfollow',
        'mode': 'active',
        'timestamp': 0,
        'source': {'type': 'user', 'userId': 'U1'},
    }]}).encode('utf-8')
    resp = client.post('/callback', data=body, headers={'X-Line-Signature': _sign(body)})
    assert resp.status_code == 200
    assert len(submitted) == 1
    assert submitted[0].type == 'unfollow'


def test_callback_without_router(client, monkeypatch):
    monkeypatch.setattr(app, 'router', None)
    resp = client.post('/callback', data='{}', headers={'X-Line-Signature': 'x'})
    assert resp.status_code == 500


class _ImageResp:
    def __init__(self, content):
        self.content = content

    def raise_for_status(self):
        return None


def _image_url():
    return f'https://{app.settings.image_hosts()[0]}/faces/1.png'


def _png(size=(2048, 1024)):
    buf = io.BytesIO()
    Image.new('RGBA', size, (255, 0, 0, 128)).save(buf, format='PNG')
    return buf.getvalue()


def test_thumbnail_resizes(client, monkeypatch):
    monkeypatch.setattr(app.requests, 'get', lambda url, timeout=None: _ImageResp(_png()))
    resp = client.get('/thumbnail', query_string={'image_url': _image_url()})
    assert resp.status_code == 200
    assert resp.mimetype == 'image/jpeg'
    img = Image.open(io.BytesIO(resp.data))
    assert max(img.size) <= 1024


def test_thumbnail_requires_http_url(client):
    assert client.get('/thumbnail').status_code == 400
    assert client.get('/thumbnail', query_string={'image_url': 'file:///etc/passwd'}).status_code == 400


def test_thumbnail_upstream_failure(client, monkeypatch):
    def fail(url, timeout=None):
        raise requests.ConnectionError('down')

    monkeypatch.setattr(app.requests, 'get', fail)
    resp = client.get('/thumbnail', query_string={'image_url': _image_url()})
    assert resp.status_code == 502


def test_thumbnail_not_an_image(client, monkeypatch):
    monkeypatch.setattr(app.requests, 'get', lambda url, timeout=None: _ImageResp(b'not an image'))
    resp = client.get('/thumbnail', query_string={'image_url': _image_url()})
    assert resp.status_code == 502


def test_thumbnail_rejects_hosts_outside_allowlist(client, monkeypatch):
    fetched = []
    monkeypatch.setattr(app.requests, 'get', lambda url, timeout=None: fetched.append(url))
    for url in ('http://169.254.169.254/latest/meta-data/', 'http://127.0.0.1:6379/', 'https://img.example.com/1.png'):
        assert client.get('/thumbnail', query_string={'image_url': url}).status_code == 400
    assert fetched == []
