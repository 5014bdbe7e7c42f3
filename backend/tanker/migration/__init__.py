# backend/tanker/migration/__init__.py
"""On-device -> remote store migration."""

from .consolidation import ConsolidatedUser, consolidate_users
from .engine import LocalExport, MigrationEngine
from .id_mapping import IdMapping
from .resolution import LegacyUserResolver

__all__ = [
    "ConsolidatedUser",
    "IdMapping",
    "LegacyUserResolver",
    "LocalExport",
    "MigrationEngine",
    "consolidate_users",
]
