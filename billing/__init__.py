"""
SECURECOMMAND BILLING ENGINE
Pricing resolution, invoice calculation, invoice lifecycle and plan catalog.
"""

from .calculators import InvoiceCalculator, PricingResolver
from .catalog import PlanCatalog
from .lifecycle import InvoiceLifecycle
from .service import BillingService
from .storage import BillingStore, InMemoryStore, SqliteStore, create_store

__all__ = [
    'BillingService',
    'PricingResolver',
    'InvoiceCalculator',
    'InvoiceLifecycle',
    'PlanCatalog',
    'BillingStore',
    'InMemoryStore',
    'SqliteStore',
    'create_store',
]
