"""Shared fixtures for the billing engine tests."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from billing import BillingService, InMemoryStore
from billing.config import Settings
from billing.identity import COMPANY_ADMIN, SECURITY_OFFICER, SUPER_ADMIN, Actor
from billing.models import Company

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def service(store, clock):
    return BillingService(store, Settings(), clock)


@pytest.fixture
def platform_admin():
    return Actor(user_id="admin-1", role=SUPER_ADMIN)


@pytest.fixture
def company_admin():
    return Actor(user_id="owner-1", role=COMPANY_ADMIN, company_id="acme")


@pytest.fixture
def make_company(store):
    """Insert a company row and return the Company."""

    def _make(company_id="acme", name="Acme Security", **fields):
        for key in ("custom_license_fee", "custom_per_guard_fee"):
            if fields.get(key) is not None:
                fields[key] = Decimal(str(fields[key]))
        company = Company(id=company_id, name=name, **fields)
        store.insert("companies", company.to_row())
        return company

    return _make


@pytest.fixture
def add_guards(store):
    """Insert n profiles for a company."""

    def _add(company_id, n, role=SECURITY_OFFICER, is_active=True):
        for _ in range(n):
            store.insert("profiles", {"company_id": company_id, "role": role, "is_active": is_active})

    return _add


@pytest.fixture
def configured(service, platform_admin):
    """Global defaults of $500 license and $25 per guard."""
    return service.update_pricing_config(500, 25, actor=platform_admin)


@pytest.fixture
def plan_input():
    return {
        "name": "Professional",
        "description": "For growing security firms",
        "monthly_license_fee": "400",
        "yearly_license_fee": "4000",
        "per_guard_monthly_fee": "20",
        "per_guard_yearly_fee": "200",
        "currency": "USD",
        "features": ["GPS tracking", "Incident reports", ""],
        "max_users": 50,
        "max_sites": -1,
        "max_guards": 100,
        "is_featured": True,
        "display_order": 2,
    }
