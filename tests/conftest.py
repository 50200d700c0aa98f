"""Shared fixtures: sample profiles and gateways backed by local Qdrant."""

import pytest

from craftmatch.adapters.gateway import ConnectionState, PersistenceGateway
from craftmatch.adapters.store import RecordStore, memory_client

from factories import make_provider, make_seeker


@pytest.fixture
def seeker():
    return make_seeker()


@pytest.fixture
def provider():
    return make_provider()


@pytest.fixture
def memory_gateway():
    """Degraded gateway: everything lives in an in-process store."""
    return PersistenceGateway(durable=None)


@pytest.fixture
def durable_gateway():
    """Healthy gateway whose durable store is a local Qdrant instance."""
    store = RecordStore(memory_client(), prefix="test")
    return PersistenceGateway(durable=store, state=ConnectionState.DURABLE)
