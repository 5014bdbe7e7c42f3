# backend/tanker/schemas/migration.py
"""Options and report of a local -> remote migration run."""

from typing import Dict, List

from pydantic import BaseModel, Field


class MigrationOptions(BaseModel):
    skip_existing: bool = Field(
        True, description="Skip addresses and role rows the remote store already has"
    )
    dry_run: bool = Field(False, description="Export and transform only; count writes without doing them")
    create_auth_accounts: bool = Field(
        True, description="External identity creation is not implemented; only warned about"
    )


class MigratedCounts(BaseModel):
    users: int = 0
    roles: int = 0
    profiles: int = 0
    addresses: int = 0
    vehicles: int = 0
    bookings: int = 0
    bank_accounts: int = 0


class MigrationReport(BaseModel):
    success: bool = True
    dry_run: bool = False
    migrated: MigratedCounts = Field(default_factory=MigratedCounts)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    row_counts: Dict[str, int] = Field(default_factory=dict)


class MigrationValidation(BaseModel):
    valid: bool
    issues: List[str] = Field(default_factory=list)
