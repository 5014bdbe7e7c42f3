# backend/tanker/migration/consolidation.py
"""
Grouping of on-device role records into people.

The device stores one user record per role, so a person who is both a
customer and a driver appears twice with the same email. Records are grouped
by lower-cased email; the first record of a group supplies name, phone and
password, and every record of the group maps to one new id.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from ..models import Address, CustomerUser, User
from .id_mapping import IdMapping


@dataclass
class ConsolidatedUser:
    email: str
    name: str
    phone: Optional[str]
    password: str
    created_at: datetime
    new_id: str
    records: List[User] = field(default_factory=list)
    extra_addresses: List[Address] = field(default_factory=list)
    imported: bool = True

    @property
    def canonical(self) -> User:
        """The record that supplies the shared profile fields."""
        return self.records[0]

    @property
    def legacy_ids(self) -> List[str]:
        return [record.id for record in self.records if record.id]

    @property
    def roles(self) -> List[str]:
        return [record.role for record in self.records]

    def addresses(self) -> List[Address]:
        found: List[Address] = []
        for record in self.records:
            if isinstance(record, CustomerUser):
                found.extend(record.saved_addresses)
        found.extend(self.extra_addresses)
        unique: List[Address] = []
        for address in found:
            if not any(address.same_location(seen) for seen in unique):
                unique.append(address)
        return unique

    def resolved_id(self, mapping: IdMapping) -> Optional[str]:
        """Current id of this person: the mapping may have been rebound to an existing row."""
        for legacy_id in self.legacy_ids:
            if legacy_id in mapping.users:
                return mapping.users[legacy_id]
        return self.new_id


def consolidate_users(
    users: Sequence[User], id_factory: Callable[[], str], mapping: IdMapping
) -> List[ConsolidatedUser]:
    """Group role records by email and fill the user IdMapping as a side effect."""
    groups: Dict[str, ConsolidatedUser] = {}
    for user in users:
        key = user.contact_key
        person = groups.get(key)
        if person is None:
            person = ConsolidatedUser(
                email=key,
                name=user.name,
                phone=user.phone,
                password=user.password,
                created_at=user.created_at,
                new_id=id_factory(),
            )
            groups[key] = person
        person.records.append(user)

    people = list(groups.values())
    for person in people:
        mapping.bind_users(person.legacy_ids, person.new_id)
    return people
