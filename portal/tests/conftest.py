import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import pytest
import fakeredis
import fakeredis.aioredis
from fastapi.testclient import TestClient

from portal.bus import EventBus
from portal.config import AuthSettings
from portal.identity import IdentityProvider
from portal.store import DocumentStore

NAMESPACE = "test-portal"


class _AwaitableRedis:
    def __init__(self, client):
        self._client = client

    def __await__(self):
        async def _coro():
            return self._client

        return _coro().__await__()


@pytest.fixture
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(fake_server):
    return fakeredis.aioredis.FakeRedis(server=fake_server, decode_responses=True)


@pytest.fixture
def bus(redis_client):
    return EventBus(redis_client, namespace=NAMESPACE)


@pytest.fixture
def store(redis_client, bus):
    return DocumentStore(redis_client, bus, namespace=NAMESPACE)


@pytest.fixture
def auth_settings():
    return AuthSettings(initial_token="", admin_emails_raw="", min_password_length=6, session_ttl_sec=0)


@pytest.fixture
def identities(redis_client, bus, auth_settings):
    return IdentityProvider(redis_client, bus, namespace=NAMESPACE, settings=auth_settings)


@pytest.fixture
def client(monkeypatch, fake_server):
    import portal.lifespan as lifespan
    import portal.main as main

    def fake_redis_constructor(*_args, **_kwargs):
        fake = fakeredis.aioredis.FakeRedis(server=fake_server, decode_responses=True)
        return _AwaitableRedis(fake)

    monkeypatch.setattr(lifespan.redis, "Redis", fake_redis_constructor)

    with TestClient(main.app) as c:
        yield c


@pytest.fixture
def admin_headers(client):
    res = client.post("/auth/register", json={"email": "charles@example.com", "password": "s3cret-pass"})
    assert res.status_code == 201
    return {"Authorization": f"Bearer {res.json()['token']}"}
