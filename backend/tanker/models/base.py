# backend/tanker/models/base.py
"""
Shared base for domain records.

Attributes are snake_case; every field also has a camelCase alias so that
on-device JSON written by the mobile client keeps its original key names.
"""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..core.timezone_utils import ensure_utc

UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


class DomainRecord(BaseModel):
    """Base model for every persisted entity."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_storage(self) -> dict:
        """JSON-ready dict with camelCase keys and ISO-8601 dates."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(cls.model_fields)
