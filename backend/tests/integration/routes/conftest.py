# backend/tests/integration/routes/conftest.py
from typing import Iterator

from fastapi.testclient import TestClient
import pytest

from tanker.main import create_app
from tanker.repositories.local import InMemoryKeyValueStore, LocalPersistenceAdapter

TEST_POLL_INTERVAL = 0.05


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Application over a fresh in-memory device store; lifespan runs on enter."""
    app = create_app(LocalPersistenceAdapter(InMemoryKeyValueStore(), poll_interval=TEST_POLL_INTERVAL))
    with TestClient(app) as test_client:
        yield test_client
