"""
Billing Service - Main Orchestrator

Wires the store, the pricing resolver, the invoice calculator, the invoice
lifecycle and the plan catalog together behind the operations the API exposes.
"""

import logging
from datetime import date, timedelta
from typing import Callable, Optional

from . import audit
from .calculators import InvoiceCalculator, PricingResolver
from .catalog import PlanCatalog
from .config import Settings
from .errors import DuplicateKeyError, NotFoundError, UnconfiguredPricingError, ValidationError
from .identity import BILLABLE_ROLE, Actor, require_company_admin, require_platform_admin
from .lifecycle import InvoiceLifecycle
from .models import (
    BillingCycle,
    BillingOverview,
    Company,
    CompanyBilling,
    Invoice,
    InvoiceDraft,
    InvoiceStatus,
    PricingConfig,
    PricingEstimate,
    PricingPlan,
    ResolvedPricing,
    optional_decimal,
    to_decimal,
    utcnow,
)
from .storage import BillingStore
from .validators import PricingValidator, validate_guard_count

logger = logging.getLogger(__name__)

# billing_settings holds exactly one row under this id; the store's primary
# key keeps concurrent first-time configuration from creating a second one.
SETTINGS_ROW_ID = "default"


class BillingService:
    """
    Main orchestrator for billing operations.

    Flow for a bill:
    1. Load global pricing config (may be missing: unconfigured)
    2. Load the company and its assigned plan
    3. Resolve fees (override > plan > default)
    4. Count billable guards
    5. Calculate the total
    6. Generate the invoice / hand it to the lifecycle
    """

    def __init__(self, store: BillingStore, settings: Optional[Settings] = None, clock: Callable = utcnow):
        self.store = store
        self.settings = settings or Settings()
        self.clock = clock
        self.resolver = PricingResolver()
        self.calculator = InvoiceCalculator()
        self.pricing_validator = PricingValidator()
        self.catalog = PlanCatalog(store, clock)
        self.lifecycle = InvoiceLifecycle(store, self.calculator, clock)

    # -------------------------------------------------------------------------
    # Global pricing
    # -------------------------------------------------------------------------

    def find_pricing_config(self) -> Optional[PricingConfig]:
        row = self.store.get("billing_settings", SETTINGS_ROW_ID)
        return PricingConfig.from_dict(row) if row else None

    def get_pricing_config(self) -> PricingConfig:
        config = self.find_pricing_config()
        if config is None:
            raise UnconfiguredPricingError()
        return config

    def update_pricing_config(self, license_fee, per_guard_fee, *, actor: Actor) -> PricingConfig:
        require_platform_admin(actor)
        config = PricingConfig(
            id=SETTINGS_ROW_ID,
            license_fee=to_decimal(license_fee, "license_fee"),
            per_guard_fee=to_decimal(per_guard_fee, "per_guard_fee"),
            updated_at=self.clock(),
        )
        self.pricing_validator.validate_config(config)

        row = config.to_row()
        if not self.store.update("billing_settings", SETTINGS_ROW_ID, row):
            try:
                self.store.insert("billing_settings", row)
            except DuplicateKeyError:
                # Another request configured it first; ours is the later write.
                self.store.update("billing_settings", SETTINGS_ROW_ID, row)

        audit.record(self.store, actor, "update", "billing_settings", SETTINGS_ROW_ID, row, config.updated_at)
        logger.info(f"Global pricing set: license={config.license_fee} per_guard={config.per_guard_fee}")
        return config

    # -------------------------------------------------------------------------
    # Companies
    # -------------------------------------------------------------------------

    def get_company(self, company_id: str) -> Company:
        row = self.store.get("companies", company_id)
        if row is None:
            raise NotFoundError(f"Company not found: {company_id}")
        return Company.from_dict(row)

    def set_company_overrides(
        self,
        company_id: str,
        custom_license_fee,
        custom_per_guard_fee,
        *,
        actor: Actor,
    ) -> Company:
        """Set or clear (None) each override independently."""
        require_platform_admin(actor)
        company = self.get_company(company_id)

        license_fee = optional_decimal(custom_license_fee, "custom_license_fee")
        per_guard_fee = optional_decimal(custom_per_guard_fee, "custom_per_guard_fee")
        self.pricing_validator.validate_overrides(license_fee, per_guard_fee)

        company.custom_license_fee = license_fee
        company.custom_per_guard_fee = per_guard_fee
        now = self.clock()
        changes = {
            "custom_license_fee": company.to_row()["custom_license_fee"],
            "custom_per_guard_fee": company.to_row()["custom_per_guard_fee"],
        }
        self.store.update("companies", company_id, {**changes, "updated_at": now.isoformat()})

        audit.record(self.store, actor, "update", "company_pricing", company_id, changes, now)
        logger.info(f"Pricing overrides for company {company_id}: {changes}")
        return company

    def assign_plan(self, company_id: str, plan_id: Optional[str], *, actor: Actor) -> Company:
        """Assign a company to an active plan, or detach it (None)."""
        require_platform_admin(actor)
        company = self.get_company(company_id)
        if plan_id is not None:
            plan = self.catalog.get(plan_id)
            if not plan.is_active:
                raise ValidationError(f"Pricing plan {plan.name} is not active")

        company.pricing_plan_id = plan_id
        now = self.clock()
        self.store.update("companies", company_id, {"pricing_plan_id": plan_id, "updated_at": now.isoformat()})
        audit.record(self.store, actor, "update", "company_plan", company_id, {"pricing_plan_id": plan_id}, now)
        return company

    def guard_count(self, company_id: str) -> int:
        return self.store.count("profiles", {
            "company_id": company_id,
            "role": BILLABLE_ROLE,
            "is_active": True,
        })

    # -------------------------------------------------------------------------
    # Pricing & totals
    # -------------------------------------------------------------------------

    def resolve_pricing(self, company: Company, cycle: BillingCycle = BillingCycle.MONTHLY) -> ResolvedPricing:
        return self.resolver.resolve(company, self.find_pricing_config(), self._assigned_plan(company), cycle)

    def company_billing(self, company_id: str) -> CompanyBilling:
        return self._company_billing(self.get_company(company_id), self.find_pricing_config())

    def billing_overview(self) -> BillingOverview:
        """Per-company billing plus platform totals. Revenue counts active companies only."""
        config = self.find_pricing_config()
        if config is None:
            raise UnconfiguredPricingError()

        overview = BillingOverview()
        for row in self.store.select("companies", order_by="name"):
            billing = self._company_billing(Company.from_dict(row), config)
            overview.companies.append(billing)
            overview.total_guards += billing.guard_count
            if billing.company.is_active:
                overview.total_revenue += billing.total_monthly
                overview.active_companies += 1
        return overview

    def estimate(self, plan_id: str, guard_count, billing_cycle="monthly") -> PricingEstimate:
        """Public price quote for a plan. Read-only."""
        if not plan_id:
            raise ValidationError("plan_id is required")
        cycle = BillingCycle.parse(billing_cycle)
        guard_count = validate_guard_count(guard_count)
        plan = self.catalog.get(plan_id)
        if not plan.is_active:
            raise NotFoundError(f"Pricing plan not found: {plan_id}")

        return PricingEstimate(
            plan_id=plan_id,
            billing_cycle=cycle,
            guard_count=guard_count,
            license_fee=plan.license_fee_for(cycle),
            per_guard_fee=plan.per_guard_fee_for(cycle),
            total=self.calculator.plan_total(plan, guard_count, cycle),
            currency=plan.currency,
            yearly_savings=self.calculator.yearly_savings(plan, guard_count) if cycle == BillingCycle.YEARLY else None,
        )

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    def draft_invoice(self, company_id: str) -> InvoiceDraft:
        """Pre-filled invoice values an operator may edit before generating."""
        company = self.get_company(company_id)
        guards = self.guard_count(company_id)
        amount = self.calculator.calculate(self.resolve_pricing(company), guards)
        return InvoiceDraft(
            company_id=company_id,
            amount=amount,
            due_date=self._default_due_date(),
            description=f"Monthly subscription for {guards} guards",
            guard_count=guards,
        )

    def generate_invoice(
        self,
        company_id: str,
        *,
        actor: Actor,
        due_date: Optional[date] = None,
        amount=None,
        description: Optional[str] = None,
    ) -> Invoice:
        company = self.get_company(company_id)
        require_company_admin(actor, company_id)
        return self.lifecycle.generate(
            company,
            self.resolve_pricing(company),
            self.guard_count(company_id),
            due_date or self._default_due_date(),
            actor=actor,
            amount=to_decimal(amount, "amount") if amount is not None else None,
            description=description,
        )

    def list_invoices(
        self,
        company_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> list[Invoice]:
        """Newest first."""
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError(f"limit must be a positive integer, got: {limit!r}")
        filters = {}
        if company_id:
            filters["company_id"] = company_id
        if status:
            try:
                filters["status"] = InvoiceStatus(status).value
            except ValueError:
                raise ValidationError(f"Invalid invoice status: {status}") from None
        rows = self.store.select("invoices", filters, order_by="created_at", descending=True, limit=limit)
        return [Invoice.from_dict(r) for r in rows]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _assigned_plan(self, company: Company) -> Optional[PricingPlan]:
        if not company.pricing_plan_id:
            return None
        row = self.store.get("pricing_plans", company.pricing_plan_id)
        if row is None:
            logger.warning(f"Company {company.id} references missing plan {company.pricing_plan_id}")
            return None
        return PricingPlan.from_dict(row)

    def _company_billing(self, company: Company, config: Optional[PricingConfig]) -> CompanyBilling:
        pricing = self.resolver.resolve(company, config, self._assigned_plan(company))
        guards = self.guard_count(company.id)
        last = self.store.first("invoices", {"company_id": company.id}, order_by="created_at", descending=True)
        last_invoice = Invoice.from_dict(last) if last else None

        return CompanyBilling(
            company=company,
            pricing=pricing,
            guard_count=guards,
            total_monthly=self.calculator.calculate(pricing, guards),
            last_invoice_date=last_invoice.created_at if last_invoice else None,
            last_invoice_status=last_invoice.status if last_invoice else None,
        )

    def _default_due_date(self) -> date:
        return self.clock().date() + timedelta(days=self.settings.invoice_due_days)
