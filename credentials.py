import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

try:
    import redis
except ImportError:
    redis = None

from models import UserCredential
from token_cipher import CryptoError, TokenCipher

logger = logging.getLogger(__name__)

Provisioner = Callable[[str], str]


class CredentialStore:
    """Key-value store of encrypted recognizer tokens keyed by LINE user id."""

    def get(self, user_id: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, user_id: str, ciphertext: str) -> None:
        raise NotImplementedError

    def lock(self, user_id: str):
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._tokens: Dict[str, str] = {}
        # user id -> [lock, holders + waiters]; dropped when the count reaches zero
        self._user_locks: Dict[str, list] = {}

    def get(self, user_id: str) -> Optional[str]:
        with self._lock:
            return self._tokens.get(user_id)

    def put(self, user_id: str, ciphertext: str) -> None:
        with self._lock:
            self._tokens[user_id] = ciphertext

    @contextmanager
    def lock(self, user_id: str) -> Iterator[None]:
        with self._lock:
            entry = self._user_locks.setdefault(user_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if not entry[1]:
                    self._user_locks.pop(user_id, None)


class RedisCredentialStore(CredentialStore):
    def __init__(self, url: str = 'redis://localhost:6379/0', lock_timeout: int = 30, client=None):
        if client is None:
            if not redis:
                raise RuntimeError('redis package not available')
            client = redis.from_url(url)
        self._client = client
        self.lock_timeout = lock_timeout

    def _key(self, user_id: str) -> str:
        return f'credential:{user_id}'

    def get(self, user_id: str) -> Optional[str]:
        raw = self._client.get(self._key(user_id))
        if raw is None:
            return None
        return raw.decode() if isinstance(raw, bytes) else raw

    def put(self, user_id: str, ciphertext: str) -> None:
        self._client.set(self._key(user_id), ciphertext)

    @contextmanager
    def lock(self, user_id: str) -> Iterator[None]:
        with self._client.lock(f'credential-lock:{user_id}', timeout=self.lock_timeout):
            yield


def build_store(settings) -> CredentialStore:
    if settings.redis_url:
        return RedisCredentialStore(settings.redis_url)
    return MemoryCredentialStore()


class CredentialService:
    """Resolve a user's recognizer token, provisioning it on first use.

    ``provisioner`` maps a LINE user id to a freshly issued token (admin
    registration). Tokens are stored encrypted; the per-user lock makes
    read-or-create atomic so concurrent events register a user only once.
    """

    def __init__(self, store: CredentialStore, cipher: TokenCipher, provisioner: Provisioner):
        self.store = store
        self.cipher = cipher
        self.provisioner = provisioner

    def resolve(self, user_id: str) -> UserCredential:
        with self.store.lock(user_id):
            stored = self.store.get(user_id)
            if stored:
                try:
                    return UserCredential(user_id, self.cipher.decrypt(stored))
                except CryptoError:
                    logger.warning('stored token for %s is unreadable, re-provisioning', user_id)
            return self._provision(user_id)

    def rotate(self, user_id: str) -> UserCredential:
        with self.store.lock(user_id):
            return self._provision(user_id)

    def _provision(self, user_id: str) -> UserCredential:
        token = self.provisioner(user_id)
        self.store.put(user_id, self.cipher.encrypt(token))
        return UserCredential(user_id, token)
