import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import requests

from models import InferenceCandidate, Label

logger = logging.getLogger(__name__)


class RecognizerError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class Unauthorized(RecognizerError):
    pass


class AlreadyResolved(RecognizerError):
    pass


class ServiceUnavailable(RecognizerError):
    pass


class CredentialClass(str, Enum):
    ADMIN = 'admin'
    USER = 'user'


def _parse_label(raw: Dict[str, Any]) -> Label:
    return Label(id=int(raw['id']), name=raw.get('name') or '', description=raw.get('description') or None)


def parse_inference(raw: Dict[str, Any]) -> InferenceCandidate:
    """Normalize one inference record returned by the recognizer.

    Expected shape::

        {"id": 17, "score": 0.93,
         "label": {"id": 3, "name": "...", "description": "..."},
         "face": {"id": 42, "image_url": "...",
                  "photo": {"caption": "...", "source_url": "..."}}}
    """
    label = raw.get('label') or {}
    face = raw.get('face') or {}
    photo = face.get('photo') or {}
    return InferenceCandidate(
        inference_id=int(raw['id']),
        face_id=int(face['id']),
        label_id=int(label.get('id') or 0),
        label_name=label.get('name') or '',
        label_description=label.get('description') or None,
        score=float(raw.get('score') or 0.0),
        photo_caption=photo.get('caption') or '',
        photo_image_url=face.get('image_url') or '',
        photo_source_url=photo.get('source_url') or '',
    )


def _items(data: Any, key: str) -> List[Dict[str, Any]]:
    if isinstance(data, dict):
        data = data.get(key) or []
    if not isinstance(data, list):
        raise ServiceUnavailable(f'unexpected {key} payload', payload=data)
    return [d for d in data if isinstance(d, dict)]


class RecognitionGateway:
    """Recognizer API bound to a single identity.

    An ADMIN gateway only provisions users; a USER gateway performs label and
    inference operations on behalf of one LINE user.
    """

    def __init__(self, endpoint: str, email: str, token: str, credential_class: CredentialClass = CredentialClass.USER,
                 session: Optional[requests.Session] = None, timeout: float = 10.0, platform_domain: str = 'line.me'):
        if not endpoint:
            raise ServiceUnavailable('recognizer endpoint is not configured')
        self.endpoint = endpoint.rstrip('/')
        self.email = email
        self.credential_class = credential_class
        self.timeout = timeout
        self.platform_domain = platform_domain
        self._token = token
        self._session = session or requests.Session()

    @classmethod
    def for_admin(cls, settings, session: Optional[requests.Session] = None) -> 'RecognitionGateway':
        return cls(settings.recognizer_endpoint, settings.recognizer_admin_email, settings.recognizer_admin_token,
                   CredentialClass.ADMIN, session=session, timeout=settings.recognizer_timeout,
                   platform_domain=settings.platform_domain)

    @classmethod
    def for_user(cls, settings, user_id: str, token: str, session: Optional[requests.Session] = None) -> 'RecognitionGateway':
        return cls(settings.recognizer_endpoint, settings.user_email(user_id), token,
                   CredentialClass.USER, session=session, timeout=settings.recognizer_timeout,
                   platform_domain=settings.platform_domain)

    def _headers(self) -> Dict[str, str]:
        return {
            'Accept': 'application/json',
            'X-User-Email': self.email,
            'Authorization': f'Bearer {self._token}',
        }

    def _request(self, method: str, path: str, *, resolving: bool = False, **kwargs) -> Any:
        url = f'{self.endpoint}{path}'
        try:
            resp = self._session.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ServiceUnavailable('network error', payload=str(e)) from e

        status = resp.status_code
        if status in (401, 403):
            raise Unauthorized('recognizer rejected credential', status_code=status, payload=resp.text)
        if resolving and status in (404, 409, 422):
            raise AlreadyResolved('inference already resolved', status_code=status, payload=resp.text)
        if status >= 500:
            raise ServiceUnavailable('bad status', status_code=status, payload=resp.text)
        if status >= 400:
            raise RecognizerError('bad status', status_code=status, payload=resp.text)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise ServiceUnavailable('invalid json', status_code=status, payload=resp.text) from e

    def register_user(self, user_id: str, display_name: str) -> str:
        """Register a LINE user and return the recognizer token issued for it."""
        if self.credential_class is not CredentialClass.ADMIN:
            raise Unauthorized('user registration requires the admin credential')
        data = self._request('POST', '/api/users', json={
            'user': {'email': f'{user_id}@{self.platform_domain}', 'name': display_name},
        })
        token = data.get('authentication_token') if isinstance(data, dict) else None
        if not token:
            raise ServiceUnavailable('registration returned no token', payload=data)
        logger.info('registered recognizer user for %s', user_id)
        return token

    def list_labels(self, query: str = '') -> List[Label]:
        params = {'q': query} if query else None
        data = self._request('GET', '/api/labels', params=params)
        return [_parse_label(d) for d in _items(data, 'labels')]

    def list_inferences(self, label_ids: Iterable[int] = ()) -> List[InferenceCandidate]:
        ids = [int(i) for i in label_ids]
        params = {'label_id': ids} if ids else None
        data = self._request('GET', '/api/inferences', params=params)
        return [parse_inference(d) for d in _items(data, 'inferences')]

    def accept_inference(self, inference_id: int) -> None:
        self._request('POST', f'/api/inferences/{int(inference_id)}/accept', resolving=True)

    def reject_inference(self, inference_id: int) -> None:
        self._request('POST', f'/api/inferences/{int(inference_id)}/reject', resolving=True)

    def recognize(self, image_bytes: bytes, mime: str = 'image/jpeg') -> List[InferenceCandidate]:
        files = {'image': ('image.jpg', image_bytes, mime)}
        data = self._request('POST', '/api/recognize', files=files)
        return [parse_inference(d) for d in _items(data or [], 'inferences')]
