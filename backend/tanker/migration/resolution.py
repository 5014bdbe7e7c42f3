# backend/tanker/migration/resolution.py
"""
Resolution of legacy user references found on bookings, vehicles and bank
accounts.

Legacy records point at users by per-role id, and older bookings sometimes
by the customer's phone number or email instead. Candidates are tried in a
fixed order: the IdMapping first, then phone, then email. Phones shared by
more than one person are left out of the phone index so an ambiguous match
can never resolve silently.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set

from ..core.resolution import OrderedResolver, Resolution
from .consolidation import ConsolidatedUser
from .id_mapping import IdMapping

logger = logging.getLogger(__name__)


PHONE_CHARACTERS = frozenset("0123456789+-() ")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Digits (and a leading +) of a phone number; None for anything that is not one."""
    if not phone or not set(phone) <= PHONE_CHARACTERS:
        return None
    digits = "".join(ch for ch in phone if ch.isdigit() or ch == "+")
    return digits or None


class LegacyUserResolver:
    def __init__(self, mapping: IdMapping, people: Iterable[ConsolidatedUser]):
        self.mapping = mapping
        self.ambiguous_phones: Set[str] = set()
        self._by_phone: Dict[str, str] = {}
        self._by_email: Dict[str, str] = {}

        for person in people:
            if not person.imported:
                continue
            new_id = person.resolved_id(mapping)
            self._by_email[person.email] = new_id
            phone = normalize_phone(person.phone)
            if phone is None or phone in self.ambiguous_phones:
                continue
            if phone in self._by_phone and self._by_phone[phone] != new_id:
                del self._by_phone[phone]
                self.ambiguous_phones.add(phone)
                logger.warning(f"Phone {phone} belongs to several users; not used for resolution")
                continue
            self._by_phone[phone] = new_id

        self._resolver = OrderedResolver(
            [
                ("id_mapping", mapping.user),
                ("phone", self._lookup_phone),
                ("email", self._lookup_email),
            ]
        )

    def _lookup_phone(self, key: str) -> Optional[str]:
        phone = normalize_phone(key)
        return self._by_phone.get(phone) if phone else None

    def _lookup_email(self, key: str) -> Optional[str]:
        return self._by_email.get(key.strip().lower())

    def resolve(self, legacy_id: Optional[str]) -> Resolution:
        return self._resolver.resolve(legacy_id)

    @property
    def strategies(self) -> List[str]:
        return [name for name, _ in self._resolver.strategies]
