"""
Unit Tests for Invoice Calculator

Tests verify calculations against known expected values.
"""

from decimal import Decimal

import pytest

from billing.calculators.invoice import InvoiceCalculator, quantize_money
from billing.errors import UnconfiguredPricingError, ValidationError
from billing.models import BillingCycle, FeeSource, PricingPlan, ResolvedFee, ResolvedPricing


class TestQuantizeMoney:
    """Test the money rounding utility."""

    def test_rounds_down_below_half(self):
        assert quantize_money(Decimal("0.004")) == Decimal("0.00")

    def test_rounds_up_at_half(self):
        # 0.005 rounds to 0.01 (ROUND_HALF_UP)
        assert quantize_money(Decimal("0.005")) == Decimal("0.01")

    def test_preserves_exact_cents(self):
        assert quantize_money(Decimal("123.45")) == Decimal("123.45")

    def test_truncates_extra_precision(self):
        assert quantize_money(Decimal("123.456789")) == Decimal("123.46")

    def test_out_of_range_raises_validation_error(self):
        with pytest.raises(ValidationError, match="out of range"):
            quantize_money(Decimal("1e30"))


class TestCompute:
    """Test total = license_fee + per_guard_fee * guard_count."""

    @pytest.fixture
    def calculator(self):
        return InvoiceCalculator()

    def test_default_pricing_ten_guards(self, calculator):
        """$500 + 10 × $25 = $750.00"""
        assert calculator.compute(Decimal("500"), Decimal("25"), 10) == Decimal("750.00")

    def test_override_license_ten_guards(self, calculator):
        """$300 + 10 × $25 = $550.00"""
        assert calculator.compute(Decimal("300"), Decimal("25"), 10) == Decimal("550.00")

    def test_zero_guards_is_license_fee(self, calculator):
        assert calculator.compute(Decimal("499.99"), Decimal("37.5"), 0) == Decimal("499.99")

    def test_result_has_two_places(self, calculator):
        result = calculator.compute(Decimal("500"), Decimal("25"), 0)
        assert result.as_tuple().exponent == -2

    def test_no_float_drift(self, calculator):
        """0.1 per guard × 3 guards is exactly 0.30, not 0.30000000000000004."""
        assert calculator.compute(Decimal("0"), Decimal("0.1"), 3) == Decimal("0.30")

    def test_rounds_only_final_total(self, calculator):
        """
        Per-guard 0.005 × 3 = 0.015 → 0.02 when rounded once.
        Rounding each guard first would give 3 × 0.01 = 0.03.
        """
        assert calculator.compute(Decimal("0"), Decimal("0.005"), 3) == Decimal("0.02")

    def test_large_guard_count(self, calculator):
        assert calculator.compute(Decimal("1000"), Decimal("12.34"), 10000) == Decimal("124400.00")

    def test_total_beyond_precision_rejected(self, calculator):
        with pytest.raises(ValidationError):
            calculator.compute(Decimal("0"), Decimal("99999999999999"), 10 ** 20)

    @pytest.mark.parametrize("license_fee,per_guard,guards", [
        (Decimal("0"), Decimal("0"), 0),
        (Decimal("0.01"), Decimal("0.01"), 1),
        (Decimal("1234.56"), Decimal("78.90"), 57),
        (Decimal("99.995"), Decimal("0"), 5),
    ])
    def test_matches_formula(self, calculator, license_fee, per_guard, guards):
        expected = quantize_money(license_fee + per_guard * guards)
        assert calculator.compute(license_fee, per_guard, guards) == expected

    def test_negative_license_rejected(self, calculator):
        with pytest.raises(ValidationError, match="license_fee"):
            calculator.compute(Decimal("-1"), Decimal("25"), 1)

    def test_negative_per_guard_rejected(self, calculator):
        with pytest.raises(ValidationError, match="per_guard_fee"):
            calculator.compute(Decimal("500"), Decimal("-25"), 1)

    def test_negative_guard_count_rejected(self, calculator):
        with pytest.raises(ValidationError, match="guard_count"):
            calculator.compute(Decimal("500"), Decimal("25"), -1)

    def test_non_integer_guard_count_rejected(self, calculator):
        with pytest.raises(ValidationError, match="guard_count"):
            calculator.compute(Decimal("500"), Decimal("25"), 2.5)

    def test_bool_guard_count_rejected(self, calculator):
        with pytest.raises(ValidationError):
            calculator.compute(Decimal("500"), Decimal("25"), True)


class TestCalculate:
    """Test calculation from a resolved pricing pair."""

    @pytest.fixture
    def calculator(self):
        return InvoiceCalculator()

    def test_uses_resolved_amounts(self, calculator):
        pricing = ResolvedPricing(
            license_fee=ResolvedFee(Decimal("300"), FeeSource.OVERRIDE),
            per_guard_fee=ResolvedFee(Decimal("25"), FeeSource.DEFAULT),
        )
        assert calculator.calculate(pricing, 10) == Decimal("550.00")

    def test_unconfigured_pricing_is_refused(self, calculator):
        """Missing global defaults must never bill as zero."""
        pricing = ResolvedPricing(
            license_fee=ResolvedFee(Decimal("0"), FeeSource.UNCONFIGURED),
            per_guard_fee=ResolvedFee(Decimal("0"), FeeSource.UNCONFIGURED),
            configured=False,
        )
        with pytest.raises(UnconfiguredPricingError):
            calculator.calculate(pricing, 10)


class TestYearlySavings:
    """Test yearly savings shown on the pricing page."""

    @pytest.fixture
    def calculator(self):
        return InvoiceCalculator()

    @pytest.fixture
    def plan(self):
        return PricingPlan(
            name="Professional",
            monthly_license_fee=Decimal("400"),
            yearly_license_fee=Decimal("4000"),
            per_guard_monthly_fee=Decimal("20"),
            per_guard_yearly_fee=Decimal("200"),
        )

    def test_savings_for_ten_guards(self, calculator, plan):
        """(400 + 200) × 12 - (4000 + 2000) = 7200 - 6000 = 1200"""
        assert calculator.yearly_savings(plan, 10) == Decimal("1200.00")

    def test_plan_total_yearly(self, calculator, plan):
        assert calculator.plan_total(plan, 10, BillingCycle.YEARLY) == Decimal("6000.00")

    def test_plan_total_monthly(self, calculator, plan):
        assert calculator.plan_total(plan, 10, BillingCycle.MONTHLY) == Decimal("600.00")
