"""Identifier generation. Every id the platform mints is a ULID string."""

import ulid


def generate_ulid() -> str:
    """Generate a new ULID string (sortable by creation time)."""
    return str(ulid.ULID())
