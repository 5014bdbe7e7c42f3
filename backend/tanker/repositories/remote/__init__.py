from .adapter import RemotePersistenceAdapter, RemoteRecordStore, RemoteUserStore
from .database import Base, create_store_engine
from .gateway import RemoteGateway

__all__ = [
    "Base",
    "RemoteGateway",
    "RemotePersistenceAdapter",
    "RemoteRecordStore",
    "RemoteUserStore",
    "create_store_engine",
]
