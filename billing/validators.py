"""
Input Validation for the Billing Engine

Validates plan, pricing and invoice data before anything is computed or stored.
Raises ValidationError (a ValueError) with clear messages for any constraint
violation.
"""

from decimal import Decimal

from .errors import ValidationError
from .models import PAYMENT_GATEWAYS, SUPPORTED_CURRENCIES, UNLIMITED, PricingConfig, PricingPlan, to_decimal

PLAN_FEE_FIELDS = (
    "monthly_license_fee",
    "yearly_license_fee",
    "per_guard_monthly_fee",
    "per_guard_yearly_fee",
)
PLAN_LIMIT_FIELDS = ("max_users", "max_sites", "max_guards")


def validate_fee(value, field_name: str) -> Decimal:
    """Parse a fee and reject negatives."""
    fee = to_decimal(value, field_name)
    if fee < 0:
        raise ValidationError(f"{field_name} cannot be negative, got: {fee}")
    return fee


def validate_guard_count(guard_count) -> int:
    if isinstance(guard_count, bool) or not isinstance(guard_count, int):
        raise ValidationError(f"guard_count must be an integer, got: {guard_count!r}")
    if guard_count < 0:
        raise ValidationError(f"guard_count cannot be negative, got: {guard_count}")
    return guard_count


def validate_payment_gateway(gateway) -> str:
    if not isinstance(gateway, str) or gateway.strip().lower() not in PAYMENT_GATEWAYS:
        raise ValidationError(f"Unsupported payment gateway: {gateway!r}. Must be one of {', '.join(PAYMENT_GATEWAYS)}")
    return gateway.strip().lower()


class PlanValidator:
    """Validates pricing plan definitions according to catalog rules."""

    def validate(self, plan: PricingPlan) -> None:
        """
        Run all validations. Raises ValidationError if any check fails.
        """
        self._validate_identity(plan)
        self._validate_fees(plan)
        self._validate_currency(plan)
        self._validate_limits(plan)
        self._validate_features(plan)

    def _validate_identity(self, plan: PricingPlan) -> None:
        if not plan.name or not plan.name.strip():
            raise ValidationError("Plan name is required")

        if isinstance(plan.display_order, bool) or not isinstance(plan.display_order, int):
            raise ValidationError(f"display_order must be an integer, got: {plan.display_order!r}")

    def _validate_fees(self, plan: PricingPlan) -> None:
        for name in PLAN_FEE_FIELDS:
            validate_fee(getattr(plan, name), name)

    def _validate_currency(self, plan: PricingPlan) -> None:
        if plan.currency not in SUPPORTED_CURRENCIES:
            raise ValidationError(
                f"Unsupported currency: {plan.currency}. Must be one of {', '.join(SUPPORTED_CURRENCIES)}"
            )

    def _validate_limits(self, plan: PricingPlan) -> None:
        """Each limit is a positive integer or the unlimited sentinel (-1)."""
        for name in PLAN_LIMIT_FIELDS:
            value = getattr(plan, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{name} must be an integer, got: {value!r}")
            if value != UNLIMITED and value <= 0:
                raise ValidationError(f"{name} must be positive or {UNLIMITED} for unlimited, got: {value}")

    def _validate_features(self, plan: PricingPlan) -> None:
        for i, feature in enumerate(plan.features):
            if not isinstance(feature, str) or not feature.strip():
                raise ValidationError(f"Feature {i} must be a non-empty string")


class PricingValidator:
    """Validates the global defaults and per-company overrides."""

    def validate_config(self, config: PricingConfig) -> None:
        validate_fee(config.license_fee, "license_fee")
        validate_fee(config.per_guard_fee, "per_guard_fee")

    def validate_overrides(self, custom_license_fee, custom_per_guard_fee) -> None:
        # Overrides are independently nullable; only set values are checked.
        if custom_license_fee is not None:
            validate_fee(custom_license_fee, "custom_license_fee")
        if custom_per_guard_fee is not None:
            validate_fee(custom_per_guard_fee, "custom_per_guard_fee")
