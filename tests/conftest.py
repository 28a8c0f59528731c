import sys
from pathlib import Path

import fakeredis
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

import redshelve  # noqa: E402


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def client_factory(redis_server):
    created = []

    def factory(**kwargs):
        client = fakeredis.FakeRedis(server=redis_server, **kwargs)
        created.append(client)
        return client

    factory.created = created
    yield factory

    for client in created:
        try:
            client.close()
        except Exception:
            pass


@pytest.fixture(autouse=True)
def store(client_factory):
    """Point the default connection at a fresh in-process server."""

    redshelve.connect(client_factory=client_factory)
    yield redshelve.db()
    redshelve.conn.reset()
