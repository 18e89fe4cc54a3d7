"""
Celery tasks for payment settlement.

This module provides async tasks for:
- Polling providers for orders whose callback never arrived
- Verifying a single order with its provider on demand

Usage:
    from payments.tasks import poll_pending_orders

    # Scheduled by celery-beat (see migration 0002), or run by hand
    poll_pending_orders.delay()

    from payments.tasks import reconcile_order
    reconcile_order.delay(str(order.id))
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task

from core.exceptions import BaseApplicationError
from payments.models import Order
from payments.services import PendingOrderPoller, Reconciler

logger = logging.getLogger(__name__)


# =============================================================================
# Polling Tasks
# =============================================================================


@shared_task(acks_late=True)
def poll_pending_orders(window_hours: float | None = None) -> dict:
    """
    Periodic task polling providers for pending orders.

    Runs every 5 minutes via celery-beat. Orders created more than
    PENDING_ORDER_POLL_WINDOW_HOURS ago are left alone.

    Args:
        window_hours: Override for the polling window

    Returns:
        Dict with checked/completed/failed/still_pending/errors counts
    """
    summary = PendingOrderPoller().poll_once(window_hours=window_hours)

    logger.info(
        "Pending order poll finished",
        extra=summary.to_dict(),
    )
    return summary.to_dict()


@shared_task
def reconcile_order(order_id: str) -> dict:
    """
    Verify one order with its provider and apply the answer.

    Args:
        order_id: UUID primary key of the order

    Returns:
        Dict with the resulting order status, or the error that stopped it
    """
    if isinstance(order_id, str):
        order_id = UUID(order_id)

    try:
        order = Order.objects.select_related("product").get(id=order_id)
    except Order.DoesNotExist:
        logger.error("Order not found", extra={"order_pk": str(order_id)})
        return {"status": "not_found", "order_pk": str(order_id)}

    try:
        result = Reconciler().reconcile_order(order)
    except BaseApplicationError as e:
        logger.warning(
            f"Verification of order {order.order_id} failed: {e}",
            extra={"order_id": order.order_id, "error_code": e.error_code},
        )
        return {"status": "error", "order_id": order.order_id, **e.to_dict()}

    return result.to_dict()
