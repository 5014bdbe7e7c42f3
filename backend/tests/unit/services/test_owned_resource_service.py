# backend/tests/unit/services/test_owned_resource_service.py
"""
Tests for VehicleService and BankAccountService.
"""

import pytest

from tanker.core.exceptions import NotFoundException, ValidationException
from tanker.services import BankAccountService, VehicleService
from tanker.services.owned_resource_service import OwnedResourceService
from tests.factories import make_bank_account, make_vehicle


@pytest.fixture
def vehicles(local_adapter) -> VehicleService:
    return VehicleService(local_adapter)


@pytest.fixture
def bank_accounts(local_adapter) -> BankAccountService:
    return BankAccountService(local_adapter)


@pytest.mark.unit
class TestVehicleService:
    @pytest.mark.asyncio
    async def test_create_and_list_for_owner(self, vehicles):
        first = await vehicles.create("adm-1", make_vehicle())
        await vehicles.create("adm-2", make_vehicle(agency_id="adm-2", vehicle_number="MH12TK0002"))

        listed = await vehicles.list_for_owner("adm-1")

        assert [v.id for v in listed] == [first]

    @pytest.mark.asyncio
    async def test_create_for_another_owner_is_rejected(self, vehicles):
        with pytest.raises(ValidationException):
            await vehicles.create("adm-2", make_vehicle())

    @pytest.mark.asyncio
    async def test_default_is_exclusive_per_owner(self, vehicles):
        first = await vehicles.create("adm-1", make_vehicle(is_default=True))
        other_owner = await vehicles.create(
            "adm-2", make_vehicle(agency_id="adm-2", vehicle_number="X", is_default=True)
        )
        second = await vehicles.create("adm-1", make_vehicle(vehicle_number="Y", is_default=True))

        assert (await vehicles.get_default("adm-1")).id == second
        assert (await vehicles.get_default("adm-2")).id == other_owner

        await vehicles.set_default("adm-1", first)

        assert (await vehicles.get_default("adm-1")).id == first
        defaults = [v for v in await vehicles.list_for_owner("adm-1") if v.is_default]
        assert len(defaults) == 1

    @pytest.mark.asyncio
    async def test_update_someone_elses_vehicle_is_not_found(self, vehicles):
        vehicle_id = await vehicles.create("adm-1", make_vehicle())

        with pytest.raises(NotFoundException):
            await vehicles.update("adm-2", vehicle_id, {"vehicle_capacity": 5000})
        with pytest.raises(NotFoundException):
            await vehicles.update("adm-1", "missing", {"vehicle_capacity": 5000})

    @pytest.mark.asyncio
    async def test_owner_cannot_be_changed(self, vehicles):
        vehicle_id = await vehicles.create("adm-1", make_vehicle())
        with pytest.raises(ValidationException):
            await vehicles.update("adm-1", vehicle_id, {"agency_id": "adm-2"})

    @pytest.mark.asyncio
    async def test_update_fields(self, vehicles, local_adapter):
        vehicle_id = await vehicles.create("adm-1", make_vehicle())

        await vehicles.update("adm-1", vehicle_id, {"amount": None, "vehicle_capacity": 12000})

        vehicle = await local_adapter.vehicles.get(vehicle_id)
        assert vehicle.amount is None
        assert vehicle.vehicle_capacity == 12000

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, vehicles, local_adapter):
        vehicle_id = await vehicles.create("adm-1", make_vehicle())

        await vehicles.delete("adm-1", vehicle_id)
        await vehicles.delete("adm-1", vehicle_id)

        assert await local_adapter.vehicles.get(vehicle_id) is None


@pytest.mark.unit
class TestBankAccountService:
    @pytest.mark.asyncio
    async def test_default_account(self, bank_accounts):
        assert await bank_accounts.get_default("adm-1") is None

        first = await bank_accounts.create("adm-1", make_bank_account(is_default=True))
        second = await bank_accounts.create("adm-1", make_bank_account(bank_name="HDFC"))

        assert (await bank_accounts.get_default("adm-1")).id == first
        await bank_accounts.update("adm-1", second, {"is_default": True})
        assert (await bank_accounts.get_default("adm-1")).id == second

    @pytest.mark.asyncio
    async def test_delete_of_another_owners_account_is_not_found(self, bank_accounts):
        account_id = await bank_accounts.create("adm-1", make_bank_account())
        with pytest.raises(NotFoundException):
            await bank_accounts.delete("adm-2", account_id)


@pytest.mark.unit
class TestOwnedResourceBase:
    def test_base_service_needs_a_store(self, local_adapter):
        with pytest.raises(TypeError):
            OwnedResourceService(local_adapter)
