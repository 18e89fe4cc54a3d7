"""
Settlement services for applying provider signals to orders.

This module provides:
- OrderLedger: Order lookup, synthesis and compare-and-set transitions
- Reconciler: Entry point for callbacks and status queries
- PendingOrderPoller: Periodic recovery of orders whose callback never came

Usage:
    from payments.services import Reconciler

    # Provider callback
    result = Reconciler().handle_callback("appypay", request_json)

    # Verify one order with its provider
    result = Reconciler().reconcile_order(order)

    # Poll everything still pending (typically via celery-beat)
    from payments.services import PendingOrderPoller

    summary = PendingOrderPoller().poll_once(window_hours=48)
"""

from payments.services.order_ledger import (
    OrderLedger,
    TransitionResult,
    seller_commission,
)
from payments.services.polling import PendingOrderPoller, PollSummary
from payments.services.reconciler import ReconcileResult, Reconciler

__all__ = [
    "OrderLedger",
    "PendingOrderPoller",
    "PollSummary",
    "ReconcileResult",
    "Reconciler",
    "TransitionResult",
    "seller_commission",
]
