"""
Error taxonomy for the billing engine.

Every error raised by the package derives from BillingError so the HTTP
layers can map them to status codes in one place.
"""


class BillingError(Exception):
    """Base class for all billing engine errors."""

    status = "failed"
    http_status = 500


class ValidationError(BillingError, ValueError):
    """Malformed plan, pricing or invoice input. Never retried."""

    status = "validation_failed"
    http_status = 400


class NotFoundError(BillingError):
    status = "not_found"
    http_status = 404


class PermissionDeniedError(BillingError):
    """The acting user lacks the scope required for the operation."""

    status = "forbidden"
    http_status = 403


class ConflictError(BillingError):
    """Deletion blocked by live references."""

    status = "conflict"
    http_status = 409

    def __init__(self, message: str, blocking_company_ids: list[str] | None = None):
        super().__init__(message)
        self.blocking_company_ids = blocking_company_ids or []


class InvalidTransition(BillingError):
    """Illegal invoice status transition. No state was changed."""

    status = "invalid_transition"
    http_status = 409

    def __init__(self, invoice_id: str, current: str, target: str):
        super().__init__(f"Invoice {invoice_id} cannot move from '{current}' to '{target}'")
        self.invoice_id = invoice_id
        self.current = current
        self.target = target


class StaleStateError(BillingError):
    """Invoice status changed underneath us. Reload and retry once."""

    status = "stale_state"
    http_status = 409


class UnconfiguredPricingError(BillingError):
    """Global pricing defaults have not been configured yet."""

    status = "unconfigured"
    http_status = 503

    def __init__(self, message: str = "Global pricing is not configured. An administrator must set default fees."):
        super().__init__(message)


class StorageError(BillingError):
    """Opaque persistence failure."""

    status = "storage_error"
    http_status = 500


class DuplicateKeyError(StorageError):
    """Unique constraint violation reported by the store."""

    def __init__(self, table: str, column: str, value):
        super().__init__(f"Duplicate value for {table}.{column}: {value}")
        self.table = table
        self.column = column
        self.value = value
