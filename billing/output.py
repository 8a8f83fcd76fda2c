"""
Output Builder

Turns billing results into JSON-ready dicts for the API responses.
Money is emitted as fixed two-place strings so no float ever touches it.
"""

from decimal import Decimal
from typing import Optional

from .calculators import quantize_money
from .models import (
    BillingOverview,
    Company,
    CompanyBilling,
    Invoice,
    InvoiceDraft,
    PaymentTransaction,
    PricingConfig,
    PricingEstimate,
    PricingPlan,
    ResolvedPricing,
)


def to_money(value: Optional[Decimal]) -> Optional[str]:
    """Format a Decimal as a 2-place string ("750.00")."""
    if value is None:
        return None
    return str(quantize_money(value))


def _fmt(value) -> str:
    """Format a number as currency string for descriptions."""
    return f"${value:,.2f}"


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


class OutputBuilder:
    """Builds API response payloads."""

    def pricing_config(self, config: PricingConfig) -> dict:
        return {
            "license_fee": to_money(config.license_fee),
            "per_guard_fee": to_money(config.per_guard_fee),
            "updated_at": _iso(config.updated_at),
        }

    def resolved_pricing(self, pricing: ResolvedPricing) -> dict:
        return {
            "license_fee": {
                "value": to_money(pricing.license_fee.amount),
                "source": pricing.license_fee.source.value,
            },
            "per_guard_fee": {
                "value": to_money(pricing.per_guard_fee.amount),
                "source": pricing.per_guard_fee.source.value,
            },
            "configured": pricing.configured,
        }

    def company(self, company: Company) -> dict:
        return {
            "id": company.id,
            "name": company.name,
            "is_active": company.is_active,
            "custom_license_fee": to_money(company.custom_license_fee),
            "custom_per_guard_fee": to_money(company.custom_per_guard_fee),
            "pricing_plan_id": company.pricing_plan_id,
        }

    def company_billing(self, billing: CompanyBilling) -> dict:
        license_fee, per_guard_fee = billing.pricing.as_pair()
        return {
            "company": self.company(billing.company),
            "pricing": self.resolved_pricing(billing.pricing),
            "guard_count": billing.guard_count,
            "total_monthly": {
                "value": to_money(billing.total_monthly),
                "description": (
                    f"{_fmt(license_fee)} license + {billing.guard_count} guards "
                    f"× {_fmt(per_guard_fee)}"
                ),
            },
            "last_invoice_date": _iso(billing.last_invoice_date),
            "last_invoice_status": billing.last_invoice_status.value if billing.last_invoice_status else None,
        }

    def billing_overview(self, overview: BillingOverview) -> dict:
        return {
            "companies": [self.company_billing(c) for c in overview.companies],
            "totals": {
                "monthly_revenue": to_money(overview.total_revenue),
                "total_guards": overview.total_guards,
                "active_companies": overview.active_companies,
            },
        }

    def invoice(self, invoice: Invoice) -> dict:
        return {
            "id": invoice.id,
            "company_id": invoice.company_id,
            "invoice_number": invoice.invoice_number,
            "amount": to_money(invoice.amount),
            "due_date": invoice.due_date.isoformat(),
            "status": invoice.status.value,
            "description": invoice.description,
            "created_at": _iso(invoice.created_at),
            "updated_at": _iso(invoice.updated_at),
        }

    def payment(self, transaction: PaymentTransaction) -> dict:
        return {
            "id": transaction.id,
            "invoice_id": transaction.invoice_id,
            "company_id": transaction.company_id,
            "gateway": transaction.gateway,
            "amount": to_money(transaction.amount),
            "currency": transaction.currency,
            "status": transaction.status.value,
            "gateway_transaction_id": transaction.gateway_transaction_id,
            "processed_at": _iso(transaction.processed_at),
        }

    def invoice_draft(self, draft: InvoiceDraft) -> dict:
        return {
            "company_id": draft.company_id,
            "amount": to_money(draft.amount),
            "due_date": draft.due_date.isoformat(),
            "description": draft.description,
            "guard_count": draft.guard_count,
        }

    def plan(self, plan: PricingPlan) -> dict:
        data = plan.to_row()
        for name in ("monthly_license_fee", "yearly_license_fee", "per_guard_monthly_fee", "per_guard_yearly_fee"):
            data[name] = to_money(getattr(plan, name))
        return data

    def estimate(self, estimate: PricingEstimate) -> dict:
        data = {
            "plan_id": estimate.plan_id,
            "billing_cycle": estimate.billing_cycle.value,
            "guard_count": estimate.guard_count,
            "currency": estimate.currency,
            "license_fee": to_money(estimate.license_fee),
            "per_guard_fee": to_money(estimate.per_guard_fee),
            "total": to_money(estimate.total),
        }
        if estimate.yearly_savings is not None:
            data["yearly_savings"] = to_money(estimate.yearly_savings)
        return data
