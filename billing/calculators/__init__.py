"""
Calculators Package

Provides the pure pricing and invoice calculation components.
"""

from .invoice import InvoiceCalculator, quantize_money
from .pricing import PricingResolver

__all__ = [
    "PricingResolver",
    "InvoiceCalculator",
    "quantize_money",
]
