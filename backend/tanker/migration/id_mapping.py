# backend/tanker/migration/id_mapping.py
"""Legacy id -> new id lookup tables produced during a migration run."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional


@dataclass
class IdMapping:
    users: Dict[str, str] = field(default_factory=dict)
    bookings: Dict[str, str] = field(default_factory=dict)
    vehicles: Dict[str, str] = field(default_factory=dict)
    bank_accounts: Dict[str, str] = field(default_factory=dict)

    def user(self, legacy_id: Optional[str]) -> Optional[str]:
        if not legacy_id:
            return None
        return self.users.get(legacy_id)

    def bind_users(self, legacy_ids: Iterable[str], new_id: str) -> None:
        """Point every legacy role id of one person at the same new id."""
        for legacy_id in legacy_ids:
            self.users[legacy_id] = new_id

    def summary(self) -> Dict[str, int]:
        return {
            "users": len(self.users),
            "bookings": len(self.bookings),
            "vehicles": len(self.vehicles),
            "bank_accounts": len(self.bank_accounts),
        }
