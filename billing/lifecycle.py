"""
Invoice Lifecycle

Creates invoices and governs their status transitions:

    pending -> paid      (terminal)
    pending -> overdue
    overdue -> paid
    overdue -> pending   (platform administrator correction only)

Payments are recorded as payment_transactions rows. A completed gateway
payment marks the invoice paid and adds a payments record; manual payments
stay pending until an operator settles the invoice.

Every transition is a conditional write on the current status, so two
operators acting on the same invoice cannot overwrite each other.
"""

import logging
import secrets
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from . import audit
from .calculators import InvoiceCalculator, quantize_money
from .errors import DuplicateKeyError, InvalidTransition, NotFoundError, StaleStateError, StorageError
from .identity import Actor, require_company_admin, require_platform_admin
from .models import (
    MANUAL_GATEWAY,
    Company,
    Invoice,
    InvoiceStatus,
    PaymentStatus,
    PaymentTransaction,
    ResolvedPricing,
    utcnow,
)
from .storage import BillingStore
from .validators import validate_fee, validate_payment_gateway

logger = logging.getLogger(__name__)

INVOICE_NUMBER_PREFIX = "INV-"

TRANSITIONS = {
    InvoiceStatus.PENDING: {InvoiceStatus.PAID, InvoiceStatus.OVERDUE},
    InvoiceStatus.OVERDUE: {InvoiceStatus.PAID},
    InvoiceStatus.PAID: set(),
}

ADMIN_TRANSITIONS = {
    InvoiceStatus.OVERDUE: {InvoiceStatus.PENDING},
}


def mint_invoice_number(clock: Callable = utcnow) -> str:
    """Millisecond timestamp plus random hex. Opaque to every consumer."""
    millis = int(clock().timestamp() * 1000)
    return f"{INVOICE_NUMBER_PREFIX}{millis}-{secrets.token_hex(4).upper()}"


class InvoiceLifecycle:
    """Generates invoices and applies status transitions."""

    MAX_NUMBER_ATTEMPTS = 5

    def __init__(
        self,
        store: BillingStore,
        calculator: Optional[InvoiceCalculator] = None,
        clock: Callable = utcnow,
        number_factory: Optional[Callable[[], str]] = None,
    ):
        self.store = store
        self.calculator = calculator or InvoiceCalculator()
        self.clock = clock
        self.number_factory = number_factory or (lambda: mint_invoice_number(self.clock))

    def generate(
        self,
        company: Company,
        pricing: ResolvedPricing,
        guard_count: int,
        due_date: date,
        *,
        actor: Actor,
        amount: Optional[Decimal] = None,
        description: Optional[str] = None,
    ) -> Invoice:
        """
        Create a pending invoice for a company.

        The amount defaults to the calculated total; an operator-edited amount
        replaces it. Unconfigured pricing is refused even when an amount is
        supplied, since the draft it was edited from could not be computed.
        """
        require_company_admin(actor, company.id)

        computed = self.calculator.calculate(pricing, guard_count)
        final_amount = quantize_money(validate_fee(amount, "amount")) if amount is not None else computed
        now = self.clock()

        for attempt in range(1, self.MAX_NUMBER_ATTEMPTS + 1):
            invoice = Invoice(
                company_id=company.id,
                invoice_number=self.number_factory(),
                amount=final_amount,
                due_date=due_date,
                status=InvoiceStatus.PENDING,
                description=description or f"Monthly subscription for {guard_count} guards",
                created_at=now,
                updated_at=now,
            )
            try:
                row = self.store.insert("invoices", invoice.to_row())
            except DuplicateKeyError as e:
                if e.column != "invoice_number":
                    raise
                logger.warning(f"Invoice number collision on attempt {attempt}, minting a new one")
                continue

            invoice.id = row["id"]
            audit.record(self.store, actor, "create", "invoice", invoice.id, {
                "invoice_number": invoice.invoice_number,
                "amount": str(invoice.amount),
                "due_date": invoice.due_date.isoformat(),
            }, now)
            logger.info(f"Generated invoice {invoice.invoice_number} for company {company.id}: {invoice.amount}")
            return invoice

        raise StorageError(f"Could not mint a unique invoice number after {self.MAX_NUMBER_ATTEMPTS} attempts")

    def get(self, invoice_id: str) -> Invoice:
        row = self.store.get("invoices", invoice_id)
        if row is None:
            raise NotFoundError(f"Invoice not found: {invoice_id}")
        return Invoice.from_dict(row)

    def mark_paid(self, invoice_id: str, *, actor: Actor) -> Invoice:
        """Settle an invoice. Already-paid invoices are returned unchanged."""
        invoice = self.get(invoice_id)
        require_company_admin(actor, invoice.company_id)
        if invoice.status == InvoiceStatus.PAID:
            return invoice
        return self._apply(invoice, InvoiceStatus.PAID, TRANSITIONS, actor)

    def mark_overdue(self, invoice_id: str, *, actor: Actor) -> Invoice:
        invoice = self.get(invoice_id)
        require_company_admin(actor, invoice.company_id)
        return self._apply(invoice, InvoiceStatus.OVERDUE, TRANSITIONS, actor)

    def reopen(self, invoice_id: str, *, actor: Actor) -> Invoice:
        """Administrative correction: overdue back to pending."""
        require_platform_admin(actor)
        invoice = self.get(invoice_id)
        return self._apply(invoice, InvoiceStatus.PENDING, ADMIN_TRANSITIONS, actor)

    def record_payment(self, invoice_id: str, gateway: str, *, actor: Actor) -> PaymentTransaction:
        """
        Pay an invoice in full through a gateway.

        Gateway payments complete immediately and settle the invoice. Manual
        payments are recorded as pending and leave the invoice untouched.
        """
        invoice = self.get(invoice_id)
        require_company_admin(actor, invoice.company_id)
        gateway = validate_payment_gateway(gateway)
        if invoice.status == InvoiceStatus.PAID:
            raise InvalidTransition(invoice.id, invoice.status.value, InvoiceStatus.PAID.value)

        now = self.clock()
        millis = int(now.timestamp() * 1000)
        transaction = PaymentTransaction(
            invoice_id=invoice.id,
            company_id=invoice.company_id,
            gateway=gateway,
            amount=invoice.amount,
            status=PaymentStatus.PENDING if gateway == MANUAL_GATEWAY else PaymentStatus.COMPLETED,
            gateway_transaction_id=f"{gateway.upper()}-{millis}",
            processed_at=now,
            created_at=now,
        )
        transaction.id = self.store.insert("payment_transactions", transaction.to_row())["id"]

        if transaction.status == PaymentStatus.COMPLETED:
            self.mark_paid(invoice.id, actor=actor)
            self.store.insert("payments", {
                "invoice_id": invoice.id,
                "amount": str(transaction.amount),
                "payment_method": gateway,
                "transaction_id": transaction.gateway_transaction_id,
                "created_at": now.isoformat(),
            })

        audit.record(self.store, actor, "create", "payment_transaction", transaction.id, {
            "invoice_id": invoice.id,
            "gateway": gateway,
            "amount": str(transaction.amount),
            "status": transaction.status.value,
        }, now)
        logger.info(
            f"Payment {transaction.gateway_transaction_id} for invoice {invoice.invoice_number}: {transaction.status.value}"
        )
        return transaction

    def payments_for(self, invoice_id: str, *, actor: Actor) -> list[PaymentTransaction]:
        """Payment attempts for an invoice, newest first."""
        invoice = self.get(invoice_id)
        require_company_admin(actor, invoice.company_id)
        rows = self.store.select(
            "payment_transactions", {"invoice_id": invoice.id}, order_by="created_at", descending=True
        )
        return [PaymentTransaction.from_dict(r) for r in rows]

    def _apply(self, invoice: Invoice, target: InvoiceStatus, allowed: dict, actor: Actor) -> Invoice:
        current = invoice.status
        if target not in allowed.get(current, set()):
            raise InvalidTransition(invoice.id, current.value, target.value)

        now = self.clock()
        written = self.store.update(
            "invoices",
            invoice.id,
            {"status": target.value, "updated_at": now.isoformat()},
            expected={"status": current.value},
        )
        if not written:
            fresh = self.get(invoice.id)
            if target == InvoiceStatus.PAID and fresh.status == InvoiceStatus.PAID:
                return fresh
            raise StaleStateError(
                f"Invoice {invoice.id} changed from '{current.value}' to '{fresh.status.value}' concurrently"
            )

        audit.record(self.store, actor, "update", "invoice", invoice.id, {
            "status": {"from": current.value, "to": target.value},
        }, now)
        logger.info(f"Invoice {invoice.invoice_number}: {current.value} -> {target.value}")

        invoice.status = target
        invoice.updated_at = now
        return invoice
