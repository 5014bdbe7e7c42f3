from .adapter import LocalCollection, LocalPersistenceAdapter, LocalUserCollection
from .kv_store import FileKeyValueStore, InMemoryKeyValueStore, KeyValueStore

__all__ = [
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "LocalCollection",
    "LocalPersistenceAdapter",
    "LocalUserCollection",
]
