"""
Domain Models for the SecureCommand Billing Engine

These dataclasses provide type-safe representations of all billing entities.
All monetary values use Decimal for precision; rows handed to a store keep
money as decimal strings so no value ever passes through binary floating point.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum

from .errors import ValidationError

UNLIMITED = -1
SUPPORTED_CURRENCIES = ("USD", "EUR", "GBP")

# Largest accepted magnitude is 10**MAX_MONEY_DIGITS - 1; totals stay well
# inside the 28-digit decimal context when quantized to cents.
MAX_MONEY_DIGITS = 15

MANUAL_GATEWAY = "manual"
PAYMENT_GATEWAYS = ("stripe", "square", MANUAL_GATEWAY)


def to_decimal(value, field_name: str = "value") -> Decimal:
    """Parse a monetary input into a finite Decimal.

    Accepts Decimal, int, str and float (floats go through str() first so
    0.1 stays 0.1).
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number, got: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field_name} must be a number, got: {value!r}") from None
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite, got: {value!r}")
    if result and result.adjusted() >= MAX_MONEY_DIGITS:
        raise ValidationError(f"{field_name} is out of range, got: {value!r}")
    return result


def optional_decimal(value, field_name: str = "value") -> Decimal | None:
    if value is None or value == "":
        return None
    return to_decimal(value, field_name)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}") from None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# =============================================================================
# ENUMS
# =============================================================================


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value) -> "BillingCycle":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(f"Invalid billing_cycle: {value}. Must be 'monthly' or 'yearly'") from None


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FeeSource(str, Enum):
    """Where a resolved fee component came from."""

    OVERRIDE = "override"
    PLAN = "plan"
    DEFAULT = "default"
    UNCONFIGURED = "unconfigured"


# =============================================================================
# ENTITIES
# =============================================================================


@dataclass
class Company:
    """A tenant. Override fields are independently nullable."""

    id: str
    name: str
    is_active: bool = True
    custom_license_fee: Decimal | None = None
    custom_per_guard_fee: Decimal | None = None
    pricing_plan_id: str | None = None
    email: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Company":
        return cls(
            id=data["id"],
            name=data["name"],
            is_active=data.get("is_active", True),
            custom_license_fee=optional_decimal(data.get("custom_license_fee"), "custom_license_fee"),
            custom_per_guard_fee=optional_decimal(data.get("custom_per_guard_fee"), "custom_per_guard_fee"),
            pricing_plan_id=data.get("pricing_plan_id"),
            email=data.get("email"),
        )

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "custom_license_fee": str(self.custom_license_fee) if self.custom_license_fee is not None else None,
            "custom_per_guard_fee": str(self.custom_per_guard_fee) if self.custom_per_guard_fee is not None else None,
            "pricing_plan_id": self.pricing_plan_id,
            "email": self.email,
        }


@dataclass
class PricingConfig:
    """The singleton platform-wide default pricing (billing_settings row)."""

    license_fee: Decimal
    per_guard_fee: Decimal
    id: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PricingConfig":
        return cls(
            id=data.get("id"),
            license_fee=to_decimal(data["license_fee"], "license_fee"),
            per_guard_fee=to_decimal(data["per_guard_fee"], "per_guard_fee"),
            updated_at=_parse_datetime(data.get("updated_at")),
        )

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "license_fee": str(self.license_fee),
            "per_guard_fee": str(self.per_guard_fee),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class PricingPlan:
    """A named catalog entry a company may be assigned to."""

    name: str
    monthly_license_fee: Decimal
    yearly_license_fee: Decimal
    per_guard_monthly_fee: Decimal
    per_guard_yearly_fee: Decimal
    currency: str = "USD"
    description: str = ""
    features: list[str] = field(default_factory=list)
    max_users: int = UNLIMITED
    max_sites: int = UNLIMITED
    max_guards: int = UNLIMITED
    is_active: bool = True
    is_featured: bool = False
    display_order: int = 0
    stripe_monthly_price_id: str | None = None
    stripe_yearly_price_id: str | None = None
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def license_fee_for(self, cycle: BillingCycle) -> Decimal:
        if cycle == BillingCycle.YEARLY:
            return self.yearly_license_fee
        return self.monthly_license_fee

    def per_guard_fee_for(self, cycle: BillingCycle) -> Decimal:
        if cycle == BillingCycle.YEARLY:
            return self.per_guard_yearly_fee
        return self.per_guard_monthly_fee

    @classmethod
    def from_dict(cls, data: dict) -> "PricingPlan":
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            description=data.get("description") or "",
            monthly_license_fee=to_decimal(data.get("monthly_license_fee"), "monthly_license_fee"),
            yearly_license_fee=to_decimal(data.get("yearly_license_fee"), "yearly_license_fee"),
            per_guard_monthly_fee=to_decimal(data.get("per_guard_monthly_fee"), "per_guard_monthly_fee"),
            per_guard_yearly_fee=to_decimal(data.get("per_guard_yearly_fee"), "per_guard_yearly_fee"),
            currency=data.get("currency", "USD"),
            features=list(data.get("features") or []),
            max_users=data.get("max_users", UNLIMITED),
            max_sites=data.get("max_sites", UNLIMITED),
            max_guards=data.get("max_guards", UNLIMITED),
            is_active=data.get("is_active", True),
            is_featured=data.get("is_featured", False),
            display_order=data.get("display_order", 0),
            stripe_monthly_price_id=data.get("stripe_monthly_price_id") or None,
            stripe_yearly_price_id=data.get("stripe_yearly_price_id") or None,
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "monthly_license_fee": str(self.monthly_license_fee),
            "yearly_license_fee": str(self.yearly_license_fee),
            "per_guard_monthly_fee": str(self.per_guard_monthly_fee),
            "per_guard_yearly_fee": str(self.per_guard_yearly_fee),
            "currency": self.currency,
            "features": list(self.features),
            "max_users": self.max_users,
            "max_sites": self.max_sites,
            "max_guards": self.max_guards,
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "display_order": self.display_order,
            "stripe_monthly_price_id": self.stripe_monthly_price_id,
            "stripe_yearly_price_id": self.stripe_yearly_price_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class Invoice:
    """A billing document. invoice_number is opaque and immutable."""

    company_id: str
    invoice_number: str
    amount: Decimal
    due_date: date
    status: InvoiceStatus = InvoiceStatus.PENDING
    description: str = ""
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Invoice":
        return cls(
            id=data.get("id"),
            company_id=data["company_id"],
            invoice_number=data["invoice_number"],
            amount=to_decimal(data["amount"], "amount"),
            due_date=_parse_date(data["due_date"]),
            status=InvoiceStatus(data.get("status", InvoiceStatus.PENDING.value)),
            description=data.get("description") or "",
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "invoice_number": self.invoice_number,
            "amount": str(self.amount),
            "due_date": self.due_date.isoformat(),
            "status": self.status.value,
            "description": self.description,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class PaymentTransaction:
    """One attempt to settle an invoice through a payment gateway."""

    invoice_id: str
    company_id: str
    gateway: str
    amount: Decimal
    status: PaymentStatus
    currency: str = "USD"
    gateway_transaction_id: str | None = None
    error_message: str | None = None
    processed_at: datetime | None = None
    id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentTransaction":
        return cls(
            id=data.get("id"),
            invoice_id=data["invoice_id"],
            company_id=data["company_id"],
            gateway=data["gateway"],
            amount=to_decimal(data["amount"], "amount"),
            status=PaymentStatus(data["status"]),
            currency=data.get("currency", "USD"),
            gateway_transaction_id=data.get("gateway_transaction_id"),
            error_message=data.get("error_message"),
            processed_at=_parse_datetime(data.get("processed_at")),
            created_at=_parse_datetime(data.get("created_at")),
        )

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "company_id": self.company_id,
            "gateway": self.gateway,
            "amount": str(self.amount),
            "status": self.status.value,
            "currency": self.currency,
            "gateway_transaction_id": self.gateway_transaction_id,
            "error_message": self.error_message,
            "processed_at": _iso(self.processed_at),
            "created_at": _iso(self.created_at),
        }


# =============================================================================
# RESULT MODELS
# =============================================================================


@dataclass(frozen=True)
class ResolvedFee:
    """One fee component together with the layer it was resolved from."""

    amount: Decimal
    source: FeeSource

    @property
    def is_override(self) -> bool:
        return self.source == FeeSource.OVERRIDE


@dataclass(frozen=True)
class ResolvedPricing:
    """Effective (license, per-guard) pair for a company."""

    license_fee: ResolvedFee
    per_guard_fee: ResolvedFee
    configured: bool = True

    def as_pair(self) -> tuple[Decimal, Decimal]:
        return self.license_fee.amount, self.per_guard_fee.amount


@dataclass
class CompanyBilling:
    """Billing snapshot for one company."""

    company: Company
    pricing: ResolvedPricing
    guard_count: int
    total_monthly: Decimal
    last_invoice_date: datetime | None = None
    last_invoice_status: InvoiceStatus | None = None


@dataclass
class BillingOverview:
    companies: list[CompanyBilling] = field(default_factory=list)
    total_revenue: Decimal = Decimal("0")
    total_guards: int = 0
    active_companies: int = 0


@dataclass
class InvoiceDraft:
    """Pre-filled, operator-editable invoice values."""

    company_id: str
    amount: Decimal
    due_date: date
    description: str
    guard_count: int


@dataclass
class PricingEstimate:
    plan_id: str
    billing_cycle: BillingCycle
    guard_count: int
    license_fee: Decimal
    per_guard_fee: Decimal
    total: Decimal
    currency: str = "USD"
    yearly_savings: Decimal | None = None
