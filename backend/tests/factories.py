# backend/tests/factories.py
"""Record builders shared by the test suite."""

from datetime import datetime, timezone
from typing import Any, Dict

from tanker.models import Address, AdminUser, BankAccount, CustomerUser, DriverUser, Vehicle


def make_address(**overrides: Any) -> Address:
    data: Dict[str, Any] = {
        "address": "12 Lake Road, Pune",
        "latitude": 18.52,
        "longitude": 73.85,
    }
    data.update(overrides)
    return Address(**data)


def booking_payload(**overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "customer_id": "cust-1",
        "customer_name": "Asha Patil",
        "customer_phone": "+919800000001",
        "tanker_size": 10000,
        "base_price": 500,
        "distance_charge": 100,
        "delivery_address": make_address().model_dump(),
        "distance": 4.2,
    }
    data.update(overrides)
    return data


def make_customer(**overrides: Any) -> CustomerUser:
    data: Dict[str, Any] = {
        "id": "cust-1",
        "email": "asha@example.com",
        "password": "secret",
        "name": "Asha Patil",
        "phone": "+919800000001",
        "created_at": datetime(2024, 1, 5, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return CustomerUser(**data)


def make_driver(**overrides: Any) -> DriverUser:
    data: Dict[str, Any] = {
        "id": "drv-1",
        "email": "ravi@example.com",
        "password": "secret",
        "name": "Ravi Kale",
        "phone": "+919800000002",
        "vehicle_number": "MH12AB1234",
        "created_at": datetime(2024, 1, 6, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return DriverUser(**data)


def make_admin(**overrides: Any) -> AdminUser:
    data: Dict[str, Any] = {
        "id": "adm-1",
        "email": "owner@jalseva.example",
        "password": "secret",
        "name": "Jal Seva Owner",
        "phone": "+919800000003",
        "business_name": "Jal Seva Tankers",
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return AdminUser(**data)


def make_vehicle(**overrides: Any) -> Vehicle:
    data: Dict[str, Any] = {
        "agency_id": "adm-1",
        "vehicle_number": "MH12TK0001",
        "insurance_company_name": "National Insurance",
        "vehicle_capacity": 10000,
        "amount": 650,
    }
    data.update(overrides)
    return Vehicle(**data)


def make_bank_account(**overrides: Any) -> BankAccount:
    data: Dict[str, Any] = {
        "admin_id": "adm-1",
        "bank_name": "State Bank",
        "account_holder_name": "Jal Seva Tankers",
    }
    data.update(overrides)
    return BankAccount(**data)
