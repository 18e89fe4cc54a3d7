"""
Payment domain models.

- Product: Digital good sold by a seller
- Order: Canonical ledger row for one checkout (pending -> completed | failed)
"""

from payments.models.order import Order
from payments.models.product import Product

__all__ = [
    "Order",
    "Product",
]
