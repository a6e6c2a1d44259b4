"""Shared fixtures for the Kablan store test suite."""

import pytest

from kablan.client.cache import LocalCache
from kablan.client.gateway import ClientGateway
from kablan.service.context import ServerContext
from kablan.service.store import CollectionStore

from .fakes import FakeSession, unreachable


@pytest.fixture
def data_dirs(tmp_path):
    """Three candidate directories in priority order (none created)."""
    return [tmp_path / "data", tmp_path / "public" / "data", tmp_path / "dist" / "data"]


@pytest.fixture
def store(tmp_path):
    return CollectionStore(tmp_path / "data")


@pytest.fixture
def context(data_dirs):
    ctx = ServerContext.build(data_dirs)
    yield ctx
    ctx.close()


@pytest.fixture
def cache(tmp_path):
    return LocalCache(tmp_path / "client" / "cache.json", seed_dir=tmp_path / "seed")


@pytest.fixture
def offline_gateway(cache):
    return ClientGateway("http://kablan.test", cache, session=FakeSession(unreachable))
