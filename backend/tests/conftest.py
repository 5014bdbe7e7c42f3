# backend/tests/conftest.py
"""
Shared fixtures.

- local_adapter: on-device adapter over an in-memory key-value store, with a
  short poll interval so live-update tests finish quickly
- remote_adapter: remote adapter over in-memory SQLite and broadcaster's
  memory:// backend
"""

import os
import sys
from typing import AsyncGenerator

# Set test configuration BEFORE any tanker imports
os.environ.setdefault("PERSISTENCE_BACKEND", "local")
os.environ.setdefault("CHANGE_FEED_URL", "memory://")

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from broadcaster import Broadcast  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from tanker.repositories.local import InMemoryKeyValueStore, LocalPersistenceAdapter  # noqa: E402
from tanker.repositories.remote import RemotePersistenceAdapter, create_store_engine  # noqa: E402


TEST_POLL_INTERVAL = 0.05


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def local_adapter(kv_store: InMemoryKeyValueStore) -> LocalPersistenceAdapter:
    return LocalPersistenceAdapter(kv_store, poll_interval=TEST_POLL_INTERVAL)


@pytest_asyncio.fixture
async def remote_adapter() -> AsyncGenerator[RemotePersistenceAdapter, None]:
    engine = create_store_engine("sqlite+pysqlite:///:memory:")
    broadcast = Broadcast("memory://")
    await broadcast.connect()
    adapter = RemotePersistenceAdapter(engine, broadcast)
    await adapter.initialize()
    try:
        yield adapter
    finally:
        await adapter.close()
        await broadcast.disconnect()
