# backend/tanker/services/owned_resource_service.py
"""
Vehicles and bank accounts: CRUD scoped to the owning agency admin.

Both carry an is_default flag that is exclusive per owner. Setting it on one
record clears it on every sibling of the same owner and never touches other
owners' records.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any, Generic, List, Mapping, Optional, TypeVar

from ..core.exceptions import NotFoundException, ValidationException
from ..core.timezone_utils import utc_now
from ..models import BankAccount, Vehicle
from ..repositories.base_repository import EntityStore, PersistenceAdapter, QueryOptions, RecordFilter
from .base import BaseService

logger = logging.getLogger(__name__)

R = TypeVar("R", Vehicle, BankAccount)


class OwnedResourceService(BaseService, ABC, Generic[R]):
    owner_field: str = ""
    entity_name: str = "Resource"

    def __init__(self, adapter: PersistenceAdapter):
        super().__init__(adapter)

    @property
    @abstractmethod
    def store(self) -> EntityStore[R]:
        """Entity store holding this resource type."""

    async def _get_owned(self, owner_id: str, resource_id: str) -> Optional[R]:
        record = await self.store.get(resource_id)
        if record is None:
            return None
        if getattr(record, self.owner_field) != owner_id:
            # Someone else's record is reported exactly like a missing one
            raise NotFoundException(self.entity_name, resource_id)
        return record

    async def _clear_default(self, owner_id: str, keep_id: Optional[str] = None) -> None:
        siblings = await self.store.query(
            RecordFilter(equals={self.owner_field: owner_id, "is_default": True})
        )
        now = utc_now()
        for sibling in siblings:
            if sibling.id != keep_id:
                await self.store.update(sibling.id, {"is_default": False, "updated_at": now})

    @BaseService.measure_operation("create_owned_resource")
    async def create(self, owner_id: str, record: R) -> str:
        if getattr(record, self.owner_field) != owner_id:
            raise ValidationException(
                f"{self.entity_name} must belong to the requesting owner",
                details={self.owner_field: getattr(record, self.owner_field)},
            )
        now = utc_now()
        record = record.model_copy(
            update={"id": record.id or self.adapter.generate_id(), "created_at": now, "updated_at": now}
        )
        if record.is_default:
            await self._clear_default(owner_id)
        resource_id = await self.store.create(record)
        self.logger.info(f"Created {self.entity_name} {resource_id} for {owner_id}")
        return resource_id

    @BaseService.measure_operation("update_owned_resource")
    async def update(self, owner_id: str, resource_id: str, partial: Mapping[str, Any]) -> None:
        """
        Raises:
            NotFoundException: If the record is missing or owned by someone else
            ValidationException: If the update would move the record to another owner
        """
        if partial.get(self.owner_field, owner_id) != owner_id:
            raise ValidationException(f"{self.entity_name} cannot change owner")
        if await self._get_owned(owner_id, resource_id) is None:
            raise NotFoundException(self.entity_name, resource_id)
        if partial.get("is_default") is True:
            await self._clear_default(owner_id, keep_id=resource_id)
        await self.store.update(resource_id, {**dict(partial), "updated_at": utc_now()})

    async def set_default(self, owner_id: str, resource_id: str) -> None:
        await self.update(owner_id, resource_id, {"is_default": True})

    async def delete(self, owner_id: str, resource_id: str) -> None:
        if await self._get_owned(owner_id, resource_id) is None:
            return
        await self.store.delete(resource_id)

    async def list_for_owner(self, owner_id: str, options: Optional[QueryOptions] = None) -> List[R]:
        return await self.store.query(RecordFilter(equals={self.owner_field: owner_id}), options)

    async def get_default(self, owner_id: str) -> Optional[R]:
        defaults = await self.store.query(
            RecordFilter(equals={self.owner_field: owner_id, "is_default": True})
        )
        return defaults[0] if defaults else None


class VehicleService(OwnedResourceService[Vehicle]):
    owner_field = "agency_id"
    entity_name = "Vehicle"

    @property
    def store(self) -> EntityStore[Vehicle]:
        return self.adapter.vehicles


class BankAccountService(OwnedResourceService[BankAccount]):
    owner_field = "admin_id"
    entity_name = "BankAccount"

    @property
    def store(self) -> EntityStore[BankAccount]:
        return self.adapter.bank_accounts
