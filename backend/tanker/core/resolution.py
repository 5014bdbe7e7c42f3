# backend/tanker/core/resolution.py
"""
Ordered identifier resolution.

A resolver tries a fixed list of named lookups in order and stops at the
first hit. The result is tagged so callers must handle the miss explicitly
instead of writing a dangling reference.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple, Union

Lookup = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class Resolved:
    id: str
    via: str


@dataclass(frozen=True)
class Unresolved:
    key: str
    tried: Tuple[str, ...]


Resolution = Union[Resolved, Unresolved]


class OrderedResolver:
    """Resolve a key through (name, lookup) strategies, first hit wins."""

    def __init__(self, strategies: Sequence[Tuple[str, Lookup]]):
        if not strategies:
            raise ValueError("At least one resolution strategy is required")
        self.strategies = tuple(strategies)

    def resolve(self, key: Optional[str]) -> Resolution:
        if not key:
            return Unresolved(key=key or "", tried=())
        for name, lookup in self.strategies:
            found = lookup(key)
            if found:
                return Resolved(id=found, via=name)
        return Unresolved(key=key, tried=tuple(name for name, _ in self.strategies))
