"""
Order ledger: lookup, synthesis and exactly-once state transitions.

Every order moves at most once, from pending to completed or failed. Two
workers may hold the same pending order at the same time (a duplicate
webhook racing a poll tick). The transition is written with a conditional
UPDATE filtered on the status the caller observed; only one UPDATE can
match, and the loser sees zero rows and reports "no transition".

Usage:
    from payments.services import OrderLedger

    order = OrderLedger.find_order(signal)
    result = OrderLedger.transition(order, SignalOutcome.SUCCESS)
    if result.transitioned:
        ...  # this worker owns the fan-out
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from core.services import BaseService
from payments.exceptions import InvalidStateTransitionError, OrderNotFoundError
from payments.models import Order, Product
from payments.state_machines import OrderStatus, PaymentMethod, SignalOutcome

if TYPE_CHECKING:
    from payments.adapters.base import PaymentSignal

CENT = Decimal("0.01")


def seller_commission(amount: Decimal, fee_percent: float | Decimal | None = None) -> Decimal:
    """
    Seller share of a sale after the platform fee, rounded to cents.

    Example:
        seller_commission(Decimal("10000.00"), 8.99)  # Decimal("9101.00")
    """
    if fee_percent is None:
        fee_percent = settings.PLATFORM_FEE_PERCENT
    rate = Decimal("1") - Decimal(str(fee_percent)) / Decimal("100")
    return (Decimal(amount) * rate).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class TransitionResult:
    """
    Outcome of a ledger write.

    Attributes:
        order: The order as this worker last saw it
        transitioned: True only for the single worker that moved the order
        previous_status: Status observed before the attempt
    """

    order: Order | None
    transitioned: bool
    previous_status: str = OrderStatus.PENDING

    def __bool__(self) -> bool:
        return self.transitioned


class OrderLedger(BaseService):
    """
    Reads and writes orders for the reconciler.

    All methods are class methods - no instance state is maintained.
    """

    @classmethod
    def find_order(cls, signal: PaymentSignal) -> Order | None:
        """
        Order a signal refers to: gateway reference first, merchant id second.
        """
        queryset = Order.objects.select_related("product")

        if signal.external_ref:
            order = queryset.filter(provider_transaction_ref=signal.external_ref).first()
            if order is not None:
                return order

        if signal.order_ref:
            return queryset.filter(order_id=signal.order_ref).first()

        return None

    # =========================================================================
    # Transition
    # =========================================================================

    @classmethod
    def transition(
        cls,
        order: Order,
        outcome: str,
        *,
        failure_reason: str = "",
        external_ref: str | None = None,
        provider_status: str = "",
    ) -> TransitionResult:
        """
        Move a pending order to the state the outcome implies.

        Terminal orders and pending outcomes are no-ops. The write is a
        compare-and-set on the observed status.

        Args:
            order: Order as loaded by the caller
            outcome: SignalOutcome value
            failure_reason: Provider message stored on failed orders
            external_ref: Gateway reference to attach if the order has none
            provider_status: Raw provider status kept in metadata

        Returns:
            TransitionResult; truthy only when this call moved the order
        """
        logger = cls.get_logger()
        observed = order.status
        log_context = {
            "order_id": order.order_id,
            "observed_status": observed,
            "outcome": outcome,
        }

        if order.is_terminal:
            logger.info(
                f"Order {order.order_id} already {observed}, signal discarded",
                extra=log_context,
            )
            return TransitionResult(order, False, observed)

        if outcome == SignalOutcome.PENDING:
            logger.debug("Pending signal, no transition", extra=log_context)
            return TransitionResult(order, False, observed)

        now = timezone.now()
        try:
            if outcome == SignalOutcome.SUCCESS:
                order.complete()
            else:
                order.fail(reason=failure_reason or None)
        except TransitionNotAllowed as e:
            raise InvalidStateTransitionError(
                f"Cannot move order {order.order_id} from {observed}",
                details=log_context,
            ) from e

        updates = {"status": order.status, "updated_at": now}
        if order.status == OrderStatus.COMPLETED:
            order.seller_commission = seller_commission(order.amount)
            updates["completed_at"] = order.completed_at
            updates["seller_commission"] = order.seller_commission
        else:
            updates["failed_at"] = order.failed_at
            updates["failure_reason"] = order.failure_reason

        if external_ref and not order.provider_transaction_ref:
            order.provider_transaction_ref = external_ref
            updates["provider_transaction_ref"] = external_ref

        if provider_status:
            order.metadata = {**(order.metadata or {}), "provider_status": provider_status}
            updates["metadata"] = order.metadata

        rows = Order.objects.filter(pk=order.pk, status=observed).update(**updates)

        if rows == 0:
            logger.info(
                f"Order {order.order_id} was settled by another worker",
                extra=log_context,
            )
            return TransitionResult(Order.objects.get(pk=order.pk), False, observed)

        logger.info(
            f"Order {order.order_id} {observed} -> {order.status}",
            extra={**log_context, "new_status": order.status},
        )
        return TransitionResult(order, True, observed)

    # =========================================================================
    # Synthesis
    # =========================================================================

    @classmethod
    def synthesize(cls, signal: PaymentSignal) -> TransitionResult:
        """
        Create a missing order directly in the state the signal implies.

        Used when a provider confirms a payment whose order row was never
        written. Two workers synthesizing the same order collide on the
        unique order_id / provider reference; the loser falls back to the
        winner's row.

        Raises:
            OrderNotFoundError: Recovery context is missing or names an
                unknown product
        """
        logger = cls.get_logger()
        recovery = signal.recovery

        if not signal.can_synthesize:
            raise OrderNotFoundError(
                f"No order for {signal.order_key} and not enough data to rebuild it",
                details={"provider": signal.provider, "reference": signal.order_key},
            )

        product = cls._recovery_product(recovery.product_id)
        if product is None:
            raise OrderNotFoundError(
                f"No order for {signal.order_key} and product "
                f"{recovery.product_id} does not exist",
                details={"provider": signal.provider, "product_id": recovery.product_id},
            )

        order = Order(
            order_id=signal.order_ref or f"{str(signal.provider).upper()}-{signal.external_ref}",
            product=product,
            customer_email=recovery.customer_email.strip().lower(),
            customer_name=recovery.customer_name,
            customer_phone=recovery.customer_phone,
            amount=recovery.amount,
            currency=recovery.currency or product.currency,
            payment_method=recovery.payment_method or PaymentMethod.CARD,
            provider=signal.provider,
            provider_transaction_ref=signal.external_ref,
            metadata={"synthesized": True, "provider_status": signal.raw_status},
        )

        if signal.outcome == SignalOutcome.SUCCESS:
            order.complete()
            order.seller_commission = seller_commission(order.amount)
        else:
            order.fail(reason=signal.failure_reason or None)

        try:
            with transaction.atomic():
                order.save(force_insert=True)
        except IntegrityError:
            existing = cls.find_order(signal)
            if existing is None:
                raise
            logger.info(
                f"Order {existing.order_id} already exists, synthesis skipped",
                extra={"order_id": existing.order_id, "provider": signal.provider},
            )
            return cls.transition(
                existing,
                signal.outcome,
                failure_reason=signal.failure_reason,
                external_ref=signal.external_ref,
                provider_status=signal.raw_status,
            )

        logger.warning(
            f"Synthesized missing order {order.order_id} as {order.status}",
            extra={
                "order_id": order.order_id,
                "provider": signal.provider,
                "external_ref": signal.external_ref,
            },
        )
        return TransitionResult(order, True, OrderStatus.PENDING)

    @staticmethod
    def _recovery_product(product_id: str | None) -> Product | None:
        try:
            pk = uuid.UUID(str(product_id))
        except (TypeError, ValueError):
            return None
        return Product.objects.filter(pk=pk).first()
