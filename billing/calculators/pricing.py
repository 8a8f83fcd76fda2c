"""
Pricing Resolver

Determines the effective license fee and per-guard fee for a company.
"""

from decimal import Decimal

from ..models import (
    BillingCycle,
    Company,
    FeeSource,
    PricingConfig,
    PricingPlan,
    ResolvedFee,
    ResolvedPricing,
)


class PricingResolver:
    """Resolves fees with override-over-plan-over-default precedence."""

    def resolve(
        self,
        company: Company,
        config: PricingConfig | None,
        plan: PricingPlan | None = None,
        cycle: BillingCycle = BillingCycle.MONTHLY,
    ) -> ResolvedPricing:
        """
        Resolve both fee components independently.

        Priority order (per component):
        1. Company override (when not None)
        2. Assigned plan fee for the billing cycle
        3. Global default

        A missing config resolves fallbacks to zero and marks the result
        unconfigured; the calculator refuses to bill it.
        """
        license_fee = self._resolve_component(
            company.custom_license_fee,
            plan.license_fee_for(cycle) if plan is not None else None,
            config.license_fee if config is not None else None,
        )
        per_guard_fee = self._resolve_component(
            company.custom_per_guard_fee,
            plan.per_guard_fee_for(cycle) if plan is not None else None,
            config.per_guard_fee if config is not None else None,
        )

        return ResolvedPricing(
            license_fee=license_fee,
            per_guard_fee=per_guard_fee,
            configured=config is not None,
        )

    def _resolve_component(
        self,
        override: Decimal | None,
        plan_value: Decimal | None,
        default: Decimal | None,
    ) -> ResolvedFee:
        if override is not None:
            return ResolvedFee(override, FeeSource.OVERRIDE)
        if plan_value is not None:
            return ResolvedFee(plan_value, FeeSource.PLAN)
        if default is not None:
            return ResolvedFee(default, FeeSource.DEFAULT)
        return ResolvedFee(Decimal("0"), FeeSource.UNCONFIGURED)
