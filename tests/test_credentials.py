import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from config import Settings
from credentials import CredentialService, MemoryCredentialStore, RedisCredentialStore, build_store


class CountingProvisioner:
    def __init__(self, delay=0.0):
        self.calls = []
        self.delay = delay
        self._lock = threading.Lock()

    def __call__(self, user_id):
        time.sleep(self.delay)
        with self._lock:
            self.calls.append(user_id)
            return f'token-{user_id}-{len(self.calls)}'


def test_first_resolve_provisions_and_stores_encrypted(cipher):
    store = MemoryCredentialStore()
    prov = CountingProvisioner()
    svc = CredentialService(store, cipher, prov)
    cred = svc.resolve('U1')
    assert cred.service_token == 'token-U1-1'
    assert cred.encrypted_at_rest
    stored = store.get('U1')
    assert stored and 'token-U1' not in stored
    assert cipher.decrypt(stored) == 'token-U1-1'


def test_second_resolve_reads_cache(cipher):
    prov = CountingProvisioner()
    svc = CredentialService(MemoryCredentialStore(), cipher, prov)
    svc.resolve('U1')
    assert svc.resolve('U1').service_token == 'token-U1-1'
    assert prov.calls == ['U1']


def test_concurrent_resolves_register_once_per_user(cipher):
    prov = CountingProvisioner(delay=0.01)
    svc = CredentialService(MemoryCredentialStore(), cipher, prov)
    users = ['U1', 'U2', 'U3'] * 10
    with ThreadPoolExecutor(max_workers=10) as pool:
        tokens = list(pool.map(lambda u: svc.resolve(u).service_token, users))
    assert sorted(prov.calls) == ['U1', 'U2', 'U3']
    for user, token in zip(users, tokens):
        assert token.startswith(f'token-{user}-')


def test_rotate_overwrites(cipher):
    prov = CountingProvisioner()
    svc = CredentialService(MemoryCredentialStore(), cipher, prov)
    svc.resolve('U1')
    assert svc.rotate('U1').service_token == 'token-U1-2'
    assert svc.resolve('U1').service_token == 'token-U1-2'


def test_unreadable_token_is_reprovisioned(cipher):
    store = MemoryCredentialStore()
    store.put('U1', 'garbage!!')
    prov = CountingProvisioner()
    svc = CredentialService(store, cipher, prov)
    assert svc.resolve('U1').service_token == 'token-U1-1'


def test_provisioning_failure_propagates_and_stores_nothing(cipher):
    def broken(user_id):
        raise RuntimeError('admin down')

    store = MemoryCredentialStore()
    svc = CredentialService(store, cipher, broken)
    with pytest.raises(RuntimeError):
        svc.resolve('U1')
    assert store.get('U1') is None


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.locks = []

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value.encode() if isinstance(value, str) else value

    def lock(self, name, timeout=None):
        self.locks.append(name)
        return threading.Lock()


def test_redis_store_round_trip(cipher):
    client = FakeRedis()
    store = RedisCredentialStore(client=client)
    svc = CredentialService(store, cipher, CountingProvisioner())
    svc.resolve('U1')
    assert 'credential:U1' in client.data
    assert client.locks == ['credential-lock:U1']
    assert store.get('U1') == client.data['credential:U1'].decode()


def test_build_store_defaults_to_memory():
    assert isinstance(build_store(Settings()), MemoryCredentialStore)


def test_per_user_locks_are_released(cipher):
    store = MemoryCredentialStore()
    svc = CredentialService(store, cipher, CountingProvisioner(delay=0.005))
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda u: svc.resolve(u), [f'U{i % 5}' for i in range(40)]))
    assert store._user_locks == {}
