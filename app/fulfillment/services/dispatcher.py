"""
Fan-out dispatcher for completed orders.

Consumers are plain functions registered by name. Each one receives the
completed order and returns a ServiceResult; the dispatcher runs them in
registration order and writes one DispatchRecord per consumer.

A consumer that raises is logged and recorded as failed. The remaining
consumers still run, and nothing the dispatcher does touches the order
status.

Usage:
    from fulfillment.services.dispatcher import register_consumer, skipped

    @register_consumer("seller_sms")
    def send_seller_sms(order: Order) -> ServiceResult:
        if not order.product.seller_phone:
            return skipped("Seller has no phone number")
        ...
        return ServiceResult.success("sent")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult
from fulfillment.models import DispatchRecord, DispatchStatus

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from payments.models import Order

    Consumer = Callable[[Order], ServiceResult]

logger = logging.getLogger(__name__)

SKIPPED = "SKIPPED"

# Maps consumer names to consumer functions, in registration order
FANOUT_CONSUMERS: dict[str, Consumer] = {}


def register_consumer(name: str) -> Callable:
    """
    Decorator to register a fan-out consumer.

    Args:
        name: Consumer name stored on DispatchRecord rows
    """

    def decorator(func: Consumer) -> Consumer:
        FANOUT_CONSUMERS[name] = func
        logger.debug(f"Registered fan-out consumer {name}")
        return func

    return decorator


def skipped(reason: str) -> ServiceResult:
    """Result for a consumer with nothing to do (channel not configured, no targets)."""
    return ServiceResult.failure(reason, SKIPPED)


class FanoutDispatcher(BaseService):
    """
    Runs every registered consumer for a completed order.

    Attributes:
        consumers: Consumers to run; the global registry when not given
    """

    def __init__(self, consumers: Mapping[str, Consumer] | None = None):
        self.consumers = consumers

    def dispatch(self, order: Order) -> list[DispatchRecord]:
        """
        Run all consumers for the order.

        Returns:
            DispatchRecord per consumer, in execution order
        """
        consumers = self.consumers if self.consumers is not None else FANOUT_CONSUMERS
        records = [self.run_consumer(name, func, order) for name, func in consumers.items()]

        failed = [r.consumer for r in records if r.status == DispatchStatus.FAILED]
        self.get_logger().info(
            f"Fan-out finished for order {order.order_id}",
            extra={
                "order_id": order.order_id,
                "consumers": len(records),
                "failed_consumers": failed,
            },
        )
        return records

    def run_consumer(self, name: str, func: Consumer, order: Order) -> DispatchRecord:
        logger = self.get_logger()
        log_context = {"order_id": order.order_id, "consumer": name}

        try:
            result = func(order)
        except Exception as e:
            logger.exception(f"Consumer {name} crashed: {e}", extra=log_context)
            status, detail = DispatchStatus.FAILED, f"{e.__class__.__name__}: {e}"
        else:
            if result.success:
                status = DispatchStatus.SUCCEEDED
                detail = "" if result.data is None else str(result.data)
            elif result.error_code == SKIPPED:
                status, detail = DispatchStatus.SKIPPED, result.error or ""
            else:
                status, detail = DispatchStatus.FAILED, result.error or ""
                logger.warning(
                    f"Consumer {name} failed: {detail}",
                    extra={**log_context, "error_code": result.error_code},
                )

        return DispatchRecord.objects.create(
            order=order,
            consumer=name,
            status=status,
            detail=detail,
        )
