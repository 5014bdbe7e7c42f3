# backend/tanker/repositories/factory.py
"""
Builds the persistence adapter the process is configured for.

Every consumer receives the adapter it was constructed with; nothing here
caches an instance.
"""

import logging
from typing import Optional

from ..core.config import CredentialTier, settings
from .base_repository import PersistenceAdapter
from .local import FileKeyValueStore, LocalPersistenceAdapter
from .remote import RemotePersistenceAdapter

logger = logging.getLogger(__name__)


class AdapterFactory:
    @staticmethod
    def create_local_adapter(path: Optional[str] = None) -> LocalPersistenceAdapter:
        return LocalPersistenceAdapter(
            FileKeyValueStore(path or settings.local_store_path),
            poll_interval=settings.local_poll_interval_seconds,
        )

    @staticmethod
    def create_remote_adapter(tier: CredentialTier = "client") -> RemotePersistenceAdapter:
        return RemotePersistenceAdapter.from_settings(tier)

    @classmethod
    def create_adapter(cls, backend: Optional[str] = None) -> PersistenceAdapter:
        backend = backend or settings.persistence_backend
        logger.info("Using %s persistence backend", backend)
        if backend == "remote":
            return cls.create_remote_adapter("client")
        if backend == "local":
            return cls.create_local_adapter()
        raise ValueError(f"Unknown persistence backend: {backend}")
