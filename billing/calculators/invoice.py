"""
Invoice Calculator

Computes the recurring charge for a company:

    total = license_fee + per_guard_fee * guard_count

All arithmetic is Decimal; rounding happens once, on the final total, with
ROUND_HALF_UP. The billing overview, the draft invoice and the pricing
estimate all go through this class so quoted and billed prices agree.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..errors import UnconfiguredPricingError, ValidationError
from ..models import BillingCycle, PricingPlan, ResolvedPricing
from ..validators import validate_fee, validate_guard_count

MONTHS_PER_YEAR = 12


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places using ROUND_HALF_UP."""
    try:
        return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Amount out of range: {value}") from None


class InvoiceCalculator:
    """Calculates invoice totals from resolved pricing and a guard count."""

    def compute(self, license_fee: Decimal, per_guard_fee: Decimal, guard_count: int) -> Decimal:
        """Apply the billing formula. Rejects negative fees or guard counts."""
        license_fee = validate_fee(license_fee, "license_fee")
        per_guard_fee = validate_fee(per_guard_fee, "per_guard_fee")
        guard_count = validate_guard_count(guard_count)

        return quantize_money(license_fee + per_guard_fee * guard_count)

    def calculate(self, pricing: ResolvedPricing, guard_count: int) -> Decimal:
        """Compute the total for resolved pricing, failing closed when unconfigured."""
        if not pricing.configured:
            raise UnconfiguredPricingError()
        license_fee, per_guard_fee = pricing.as_pair()
        return self.compute(license_fee, per_guard_fee, guard_count)

    def plan_total(self, plan: PricingPlan, guard_count: int, cycle: BillingCycle) -> Decimal:
        return self.compute(plan.license_fee_for(cycle), plan.per_guard_fee_for(cycle), guard_count)

    def yearly_savings(self, plan: PricingPlan, guard_count: int) -> Decimal:
        """
        Savings of one yearly payment over twelve monthly ones.

        Computed on unrounded totals and rounded once. May be negative if a
        plan's yearly price is above twelve months.
        """
        validate_guard_count(guard_count)
        monthly = plan.monthly_license_fee + plan.per_guard_monthly_fee * guard_count
        yearly = plan.yearly_license_fee + plan.per_guard_yearly_fee * guard_count
        return quantize_money(monthly * MONTHS_PER_YEAR - yearly)
