# backend/tanker/repositories/__init__.py
"""
Persistence layer for the tanker platform.

Key Components:
- EntityStore / PersistenceAdapter: the storage contract
- LocalPersistenceAdapter: on-device JSON collections, polling live updates
- RemotePersistenceAdapter: relational store, push live updates
- AdapterFactory: builds the adapter the process is configured for
"""

from .base_repository import (
    EntityStore,
    FilterKey,
    PersistenceAdapter,
    QueryOptions,
    RecordChange,
    RecordFilter,
)
from .factory import AdapterFactory

__all__ = [
    "AdapterFactory",
    "EntityStore",
    "FilterKey",
    "PersistenceAdapter",
    "QueryOptions",
    "RecordChange",
    "RecordFilter",
]
