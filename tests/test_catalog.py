"""
Tests for the pricing plan catalog: validation, CRUD and delete protection.
"""

from decimal import Decimal

import pytest

from billing import PlanCatalog
from billing.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError


@pytest.fixture
def catalog(store, clock):
    return PlanCatalog(store, clock)


class TestValidate:
    """Test PlanCatalog.validate rules."""

    def test_valid_plan_passes(self, catalog, plan_input):
        plan = catalog.validate(plan_input)
        assert plan.name == "Professional"
        assert plan.per_guard_monthly_fee == Decimal("20")

    def test_blank_feature_rows_are_dropped(self, catalog, plan_input):
        plan = catalog.validate(plan_input)
        assert plan.features == ["GPS tracking", "Incident reports"]

    def test_feature_order_preserved(self, catalog, plan_input):
        plan_input["features"] = ["c", "a", "b"]
        assert catalog.validate(plan_input).features == ["c", "a", "b"]

    def test_negative_per_guard_fee_rejected(self, catalog, plan_input):
        plan_input["per_guard_monthly_fee"] = -5
        with pytest.raises(ValidationError, match="per_guard_monthly_fee"):
            catalog.validate(plan_input)

    @pytest.mark.parametrize("field", [
        "monthly_license_fee",
        "yearly_license_fee",
        "per_guard_monthly_fee",
        "per_guard_yearly_fee",
    ])
    def test_every_fee_must_be_non_negative(self, catalog, plan_input, field):
        plan_input[field] = "-0.01"
        with pytest.raises(ValidationError):
            catalog.validate(plan_input)

    def test_zero_fee_allowed(self, catalog, plan_input):
        plan_input["monthly_license_fee"] = 0
        assert catalog.validate(plan_input).monthly_license_fee == Decimal("0")

    def test_non_numeric_fee_rejected(self, catalog, plan_input):
        plan_input["yearly_license_fee"] = "lots"
        with pytest.raises(ValidationError):
            catalog.validate(plan_input)

    def test_missing_fee_rejected(self, catalog, plan_input):
        del plan_input["per_guard_yearly_fee"]
        with pytest.raises(ValidationError):
            catalog.validate(plan_input)

    def test_unsupported_currency_rejected(self, catalog, plan_input):
        plan_input["currency"] = "JPY"
        with pytest.raises(ValidationError, match="currency"):
            catalog.validate(plan_input)

    @pytest.mark.parametrize("currency", ["USD", "EUR", "GBP"])
    def test_supported_currencies(self, catalog, plan_input, currency):
        plan_input["currency"] = currency
        assert catalog.validate(plan_input).currency == currency

    @pytest.mark.parametrize("value", [0, -2, "10", 2.5, None])
    def test_malformed_limit_rejected(self, catalog, plan_input, value):
        plan_input["max_guards"] = value
        with pytest.raises(ValidationError, match="max_guards"):
            catalog.validate(plan_input)

    def test_unlimited_sentinel_accepted(self, catalog, plan_input):
        plan_input["max_users"] = -1
        assert catalog.validate(plan_input).max_users == -1

    def test_empty_name_rejected(self, catalog, plan_input):
        plan_input["name"] = "  "
        with pytest.raises(ValidationError, match="name"):
            catalog.validate(plan_input)

    def test_non_string_feature_rejected(self, catalog, plan_input):
        plan_input["features"] = ["GPS", 42]
        with pytest.raises(ValidationError, match="Feature 1"):
            catalog.validate(plan_input)


class TestCrud:
    """Test catalog persistence."""

    def test_create_and_get(self, catalog, plan_input, platform_admin):
        created = catalog.create(plan_input, actor=platform_admin)
        fetched = catalog.get(created.id)

        assert fetched.name == "Professional"
        assert fetched.monthly_license_fee == Decimal("400")
        assert fetched.features == ["GPS tracking", "Incident reports"]

    def test_create_rejects_invalid(self, catalog, plan_input, platform_admin, store):
        plan_input["per_guard_monthly_fee"] = -5
        with pytest.raises(ValidationError):
            catalog.create(plan_input, actor=platform_admin)
        assert store.count("pricing_plans") == 0

    def test_create_rejects_out_of_range_fee(self, catalog, plan_input, platform_admin, store):
        plan_input["yearly_license_fee"] = "1e30"
        with pytest.raises(ValidationError, match="yearly_license_fee"):
            catalog.create(plan_input, actor=platform_admin)
        assert store.count("pricing_plans") == 0

    def test_create_requires_platform_admin(self, catalog, plan_input, company_admin):
        with pytest.raises(PermissionDeniedError):
            catalog.create(plan_input, actor=company_admin)

    def test_list_ordered_by_display_order(self, catalog, plan_input, platform_admin):
        catalog.create({**plan_input, "name": "Enterprise", "display_order": 3}, actor=platform_admin)
        catalog.create({**plan_input, "name": "Basic", "display_order": 1}, actor=platform_admin)
        catalog.create(plan_input, actor=platform_admin)

        assert [p.name for p in catalog.list()] == ["Basic", "Professional", "Enterprise"]

    def test_list_active_only(self, catalog, plan_input, platform_admin):
        catalog.create(plan_input, actor=platform_admin)
        catalog.create({**plan_input, "name": "Legacy", "is_active": False}, actor=platform_admin)

        assert [p.name for p in catalog.list(active_only=True)] == ["Professional"]

    def test_update_merges_changes(self, catalog, plan_input, platform_admin):
        created = catalog.create(plan_input, actor=platform_admin)
        updated = catalog.update(created.id, {"per_guard_monthly_fee": "22.50"}, actor=platform_admin)

        assert updated.per_guard_monthly_fee == Decimal("22.50")
        assert updated.monthly_license_fee == Decimal("400")
        assert catalog.get(created.id).per_guard_monthly_fee == Decimal("22.50")

    def test_update_validates_result(self, catalog, plan_input, platform_admin):
        created = catalog.create(plan_input, actor=platform_admin)
        with pytest.raises(ValidationError):
            catalog.update(created.id, {"currency": "XYZ"}, actor=platform_admin)
        assert catalog.get(created.id).currency == "USD"

    def test_update_ignores_managed_fields(self, catalog, plan_input, platform_admin):
        created = catalog.create(plan_input, actor=platform_admin)
        updated = catalog.update(created.id, {"id": "hijack", "name": "Pro+"}, actor=platform_admin)

        assert updated.id == created.id
        assert catalog.get(created.id).name == "Pro+"

    def test_get_missing(self, catalog):
        with pytest.raises(NotFoundError):
            catalog.get("nope")

    def test_mutations_are_audited(self, catalog, plan_input, platform_admin, store):
        created = catalog.create(plan_input, actor=platform_admin)
        catalog.update(created.id, {"name": "Pro"}, actor=platform_admin)
        catalog.delete(created.id, actor=platform_admin)

        actions = [e["action"] for e in store.select("audit_logs", {"entity_type": "pricing_plan"})]
        assert sorted(actions) == ["create", "delete", "update"]


class TestDelete:
    """Plans referenced by active companies cannot be deleted."""

    def test_delete_unreferenced_plan(self, catalog, plan_input, platform_admin):
        created = catalog.create(plan_input, actor=platform_admin)
        catalog.delete(created.id, actor=platform_admin)

        with pytest.raises(NotFoundError):
            catalog.get(created.id)

    def test_delete_blocked_by_active_company(self, catalog, plan_input, platform_admin, make_company):
        created = catalog.create(plan_input, actor=platform_admin)
        make_company("acme", "Acme Security", pricing_plan_id=created.id)

        with pytest.raises(ConflictError) as exc_info:
            catalog.delete(created.id, actor=platform_admin)

        assert exc_info.value.blocking_company_ids == ["acme"]
        assert catalog.get(created.id).name == "Professional"

    def test_inactive_company_does_not_block(self, catalog, plan_input, platform_admin, make_company):
        created = catalog.create(plan_input, actor=platform_admin)
        make_company("old", "Old Guard Inc", pricing_plan_id=created.id, is_active=False)

        catalog.delete(created.id, actor=platform_admin)
        assert catalog.list() == []

    def test_lists_every_blocking_company(self, catalog, plan_input, platform_admin, make_company):
        created = catalog.create(plan_input, actor=platform_admin)
        make_company("b", "Bravo", pricing_plan_id=created.id)
        make_company("a", "Alpha", pricing_plan_id=created.id)

        with pytest.raises(ConflictError) as exc_info:
            catalog.delete(created.id, actor=platform_admin)
        assert exc_info.value.blocking_company_ids == ["a", "b"]

    def test_delete_requires_platform_admin(self, catalog, plan_input, platform_admin, company_admin):
        created = catalog.create(plan_input, actor=platform_admin)
        with pytest.raises(PermissionDeniedError):
            catalog.delete(created.id, actor=company_admin)
