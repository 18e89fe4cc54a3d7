"""
Payment reconciler: applies canonical signals to the order ledger.

Webhook callbacks and the pending-order poller both end here, so a payment
settles the same way whichever path sees it first.

Flow for one signal:
    1. Pending outcome         -> acknowledged, nothing written
    2. Find the order          -> gateway ref, then merchant order id
    3. Missing order           -> synthesize from recovery context, or 404
    4. Transition              -> compare-and-set on the observed status
    5. Completed by this call  -> fan-out, after the ledger write committed

Usage:
    from payments.services import Reconciler

    result = Reconciler().handle_callback("sislog", request_data)
    result = Reconciler().reconcile_order(order)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from django.db import DatabaseError, transaction

from core.services import BaseService
from payments.adapters import get_adapter
from payments.exceptions import LedgerPersistenceError, OrderNotFoundError
from payments.services.order_ledger import OrderLedger, TransitionResult
from payments.state_machines import OrderStatus, SignalOutcome

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fulfillment.services import FanoutDispatcher
    from payments.adapters import PaymentSignal, ProviderAdapter
    from payments.models import Order


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class ReconcileResult:
    """
    What one signal did to the ledger.

    Attributes:
        signal: The canonical signal that was applied
        order: Order the signal resolved to (None for pending signals that
            were not looked up)
        transitioned: True when this call moved the order
        synthesized: True when the order row was created by this call
        fanned_out: True when fan-out ran for this call
    """

    signal: PaymentSignal
    order: Order | None = None
    transitioned: bool = False
    synthesized: bool = False
    fanned_out: bool = False

    @property
    def status(self) -> str:
        if self.order is None:
            return OrderStatus.PENDING
        return self.order.status

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order.order_id if self.order else None,
            "status": self.status,
            "outcome": self.signal.outcome,
            "transitioned": self.transitioned,
        }


# =============================================================================
# Reconciler
# =============================================================================


class Reconciler(BaseService):
    """
    Applies payment signals to orders and triggers fan-out exactly once.

    Attributes:
        dispatcher: Fan-out dispatcher run after a completed transition
    """

    def __init__(self, dispatcher: FanoutDispatcher | None = None):
        if dispatcher is None:
            from fulfillment.services import FanoutDispatcher

            dispatcher = FanoutDispatcher()
        self.dispatcher = dispatcher

    def handle_callback(
        self,
        provider: str,
        payload: Mapping[str, Any],
        raw_body: bytes = b"",
        headers: Mapping[str, str] | None = None,
    ) -> ReconcileResult:
        """
        Parse a provider callback and apply it.

        Raises:
            UnknownProviderError: No adapter for the provider
            MalformedPayloadError: Payload cannot be parsed
            OrderNotFoundError: No order and no recovery context
            LedgerPersistenceError: Database failure
        """
        adapter = get_adapter(provider)
        try:
            signal = adapter.parse_callback(payload, raw_body=raw_body, headers=headers)
        finally:
            adapter.close()
        return self.reconcile(signal)

    def reconcile_order(
        self, order: Order, adapter: ProviderAdapter | None = None
    ) -> ReconcileResult:
        """
        Query the provider for an order's status and apply the answer.

        An injected adapter is left open for the caller to reuse.

        Raises:
            RetryExhaustedError: Provider kept failing transiently
            ProviderRequestError: Provider rejected the query
        """
        if adapter is not None:
            return self.reconcile(adapter.poll(order))

        adapter = get_adapter(order.provider)
        try:
            signal = adapter.poll(order)
        finally:
            adapter.close()
        return self.reconcile(signal)

    def reconcile(self, signal: PaymentSignal) -> ReconcileResult:
        """
        Apply one canonical signal to the ledger.

        Raises:
            OrderNotFoundError: No order and no usable recovery context
            LedgerPersistenceError: Database failure during lookup or write
        """
        logger = self.get_logger()
        log_context = {
            "provider": signal.provider,
            "outcome": signal.outcome,
            "order_ref": signal.order_ref,
            "external_ref": signal.external_ref,
            "provider_status": signal.raw_status,
        }

        if signal.outcome == SignalOutcome.PENDING:
            logger.info(
                f"Pending signal for {signal.order_key} acknowledged",
                extra=log_context,
            )
            return ReconcileResult(signal=signal)

        synthesized = False
        try:
            with transaction.atomic():
                order = OrderLedger.find_order(signal)
                if order is None:
                    if not signal.can_synthesize:
                        raise OrderNotFoundError(
                            f"No order for reference {signal.order_key}",
                            details={
                                "provider": signal.provider,
                                "order_ref": signal.order_ref,
                                "external_ref": signal.external_ref,
                            },
                        )
                    transition = OrderLedger.synthesize(signal)
                    synthesized = transition.transitioned
                else:
                    transition = OrderLedger.transition(
                        order,
                        signal.outcome,
                        failure_reason=signal.failure_reason,
                        external_ref=signal.external_ref,
                        provider_status=signal.raw_status,
                    )
        except DatabaseError as e:
            logger.error(
                f"Ledger write failed for {signal.order_key}: {e}",
                extra=log_context,
                exc_info=True,
            )
            raise LedgerPersistenceError(
                "Could not record payment status, please retry",
                details={"provider": signal.provider, "reference": signal.order_key},
            ) from e

        result = ReconcileResult(
            signal=signal,
            order=transition.order,
            transitioned=transition.transitioned,
            synthesized=synthesized,
        )

        if transition.transitioned and transition.order.status == OrderStatus.COMPLETED:
            result.fanned_out = self._fan_out(transition)

        return result

    def _fan_out(self, transition: TransitionResult) -> bool:
        """
        Run fan-out for a freshly completed order.

        The ledger write has already committed; consumer failures are
        recorded by the dispatcher and never undo it.
        """
        order = transition.order
        try:
            self.dispatcher.dispatch(order)
        except Exception:
            self.get_logger().exception(
                f"Fan-out crashed for order {order.order_id}",
                extra={"order_id": order.order_id},
            )
            return False
        return True
