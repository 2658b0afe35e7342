"""
Shared fixtures for the ONS ACL test suite.

The `service` fixture wires a complete AclService over a temporary SQLite
graph, an in-memory cache and an in-memory record store. The `acme`
fixture adds the organizations acme, bob and carol, and registers the host
10.0.0.1:8080 (serving acme.io and empty.io) as administered by acme.
"""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from ons.acl_server.cache import InMemoryCache
from ons.acl_server.config import GraphConfig, ServerConfig
from ons.acl_server.identity import Caller, StaticTokenResolver
from ons.acl_server.remote import InMemoryRecordStore
from ons.acl_server.service import AclService

HOST = "10.0.0.1:8080"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def db_path():
    """Create temporary graph database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield str(Path(tmpdir) / "graph.db")


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def service(db_path, clock):
    """Started AclService over in-memory collaborators."""
    config = ServerConfig(graph=GraphConfig(db_path=db_path, wal_mode=False))
    svc = AclService(
        config,
        cache=InMemoryCache(clock=clock),
        store=InMemoryRecordStore(),
        tokens=StaticTokenResolver(),
    )
    await svc.start()
    yield svc
    await svc.stop()


@pytest_asyncio.fixture
async def acme(service):
    """Service with acme owning acme.io and empty.io on HOST."""
    for name in ("acme", "bob", "carol"):
        await service.directory.create_organization(name)

    service.store.seed_domain(HOST, "acme.io")
    service.store.seed_domain(HOST, "empty.io")
    await service.hosts.register_host(Caller.organization("acme"), "10.0.0.1", 8080, "pdns", "secret")
    return service
