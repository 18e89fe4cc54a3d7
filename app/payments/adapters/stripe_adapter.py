"""
Stripe adapter for PaymentIntent webhooks and status queries.

Checkout copies the order and purchase details into PaymentIntent metadata
(order_id, product_id, customer_email, customer_name, customer_phone,
payment_method). The webhook uses order_id to find the order and the rest
as recovery context when the order row is missing.

Handled events:
    payment_intent.succeeded        -> success (PaymentIntent must be succeeded)
    payment_intent.payment_failed   -> pending (the buyer may retry on the same intent)
    payment_intent.canceled         -> failure
    anything else                   -> pending (acknowledged, no mutation)

Configuration (ProviderConfig):
    api_key: Stripe secret key
    webhook_secret: Endpoint signing secret; when set, every callback must
        carry a valid Stripe-Signature header
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import stripe

from payments.adapters.base import PaymentSignal, ProviderAdapter, RecoveryContext
from payments.exceptions import (
    MalformedPayloadError,
    ProviderRequestError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from payments.state_machines import PaymentMethod, PaymentProvider, SignalOutcome

if TYPE_CHECKING:
    from collections.abc import Mapping

    from payments.models import Order

SUCCEEDED_EVENT = "payment_intent.succeeded"
DECLINED_EVENT = "payment_intent.payment_failed"
CANCELED_EVENT = "payment_intent.canceled"

# Stripe amounts are in the smallest currency unit
ZERO_DECIMAL_CURRENCIES = frozenset({"jpy", "krw", "vnd", "clp", "xof", "xaf", "pyg"})


def amount_from_minor_units(amount: int | None, currency: str) -> Decimal | None:
    if amount is None:
        return None
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return Decimal(amount)
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class StripePaymentIntentPayload:
    intent_id: str
    status: str
    event_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    amount: Decimal | None = None
    currency: str = ""
    receipt_email: str = ""
    payment_method: str = PaymentMethod.CARD
    failure_message: str = ""


class StripeAdapter(ProviderAdapter):
    """
    Adapter for Stripe PaymentIntent events.

    Stripe retries webhooks on its own, so the poller never queries Stripe;
    fetch_signal() is used by the admin "verify with provider" action.
    """

    name = PaymentProvider.STRIPE
    supports_polling = False

    def __init__(self, config, client=None, sleep=time.sleep, stripe_client=None):
        super().__init__(config, client=client, sleep=sleep)
        self._stripe_client = stripe_client

    @property
    def stripe_client(self) -> stripe.StripeClient:
        """Per-adapter Stripe client; no module-level api_key is set."""
        if self._stripe_client is None:
            self._stripe_client = stripe.StripeClient(
                self.config.api_key,
                http_client=stripe.RequestsClient(timeout=self.config.timeout_seconds),
            )
        return self._stripe_client

    # =========================================================================
    # Callback
    # =========================================================================

    def verify_event(
        self,
        payload: Mapping[str, Any],
        raw_body: bytes,
        headers: Mapping[str, str] | None,
    ) -> dict[str, Any]:
        """
        Verify the Stripe-Signature header when a signing secret is configured.

        Raises:
            MalformedPayloadError: Missing or invalid signature
        """
        if not self.config.webhook_secret:
            return dict(payload)

        signature = (headers or {}).get("Stripe-Signature", "")
        if not signature:
            raise MalformedPayloadError(
                "Missing Stripe-Signature header",
                details={"provider": self.name},
            )

        try:
            event = stripe.Webhook.construct_event(
                raw_body, signature, self.config.webhook_secret
            )
        except (stripe.SignatureVerificationError, ValueError) as e:
            raise MalformedPayloadError(
                "Invalid Stripe webhook signature",
                details={"provider": self.name, "error": str(e)},
            ) from e
        return event.to_dict()

    def parse_callback(
        self,
        payload: Mapping[str, Any],
        *,
        raw_body: bytes = b"",
        headers: Mapping[str, str] | None = None,
    ) -> PaymentSignal:
        event = self.verify_event(payload, raw_body, headers)

        event_type = event.get("type") or ""
        intent = (event.get("data") or {}).get("object")
        if not event_type or not isinstance(intent, dict) or not intent.get("id"):
            raise MalformedPayloadError(
                "Stripe event has no type or data.object",
                details={"provider": self.name, "event_id": event.get("id")},
            )

        return self.intent_to_signal(intent, event_type=event_type, raw=event)

    @staticmethod
    def parse_payload(
        intent: Mapping[str, Any], event_type: str | None = None
    ) -> StripePaymentIntentPayload:
        metadata = intent.get("metadata") or {}
        currency = (intent.get("currency") or "").upper()
        last_error = intent.get("last_payment_error") or {}
        method_types = intent.get("payment_method_types") or []

        return StripePaymentIntentPayload(
            intent_id=intent["id"],
            status=intent.get("status") or "",
            event_type=event_type,
            metadata=dict(metadata),
            amount=amount_from_minor_units(
                intent.get("amount_received") or intent.get("amount"), currency
            ),
            currency=currency,
            receipt_email=intent.get("receipt_email") or "",
            payment_method=(
                PaymentMethod.MULTIBANCO
                if "multibanco" in method_types
                else PaymentMethod.CARD
            ),
            failure_message=last_error.get("message") or "",
        )

    @staticmethod
    def payload_outcome(payload: StripePaymentIntentPayload) -> str:
        """
        For webhooks the event type and the PaymentIntent status must agree;
        a retrieved PaymentIntent (no event type) is judged by status alone.
        """
        status = payload.status
        if payload.event_type is None:
            if status == "succeeded":
                return SignalOutcome.SUCCESS
            if status == "canceled":
                return SignalOutcome.FAILURE
            return SignalOutcome.PENDING
        if payload.event_type == SUCCEEDED_EVENT:
            return SignalOutcome.SUCCESS if status == "succeeded" else SignalOutcome.PENDING
        if payload.event_type == CANCELED_EVENT:
            return SignalOutcome.FAILURE if status == "canceled" else SignalOutcome.PENDING
        return SignalOutcome.PENDING

    def intent_to_signal(
        self,
        intent: Mapping[str, Any],
        event_type: str | None = None,
        raw: Mapping[str, Any] | None = None,
    ) -> PaymentSignal:
        """Canonical signal from a PaymentIntent dict."""
        payload = self.parse_payload(intent, event_type)
        metadata = payload.metadata

        if payload.event_type == DECLINED_EVENT:
            self.get_logger().info(
                f"PaymentIntent {payload.intent_id} declined, awaiting another attempt: "
                f"{payload.failure_message or payload.status}",
                extra={
                    "intent_id": payload.intent_id,
                    "order_ref": metadata.get("order_id"),
                    "intent_status": payload.status,
                },
            )

        return PaymentSignal(
            provider=self.name,
            outcome=self.payload_outcome(payload),
            order_ref=metadata.get("order_id") or None,
            external_ref=payload.intent_id,
            amount=payload.amount,
            currency=payload.currency or None,
            raw_status=payload.status,
            failure_reason=payload.failure_message,
            recovery=RecoveryContext(
                product_id=metadata.get("product_id"),
                customer_email=metadata.get("customer_email") or payload.receipt_email,
                customer_name=metadata.get("customer_name") or "",
                customer_phone=metadata.get("customer_phone") or "",
                amount=payload.amount,
                currency=payload.currency,
                payment_method=metadata.get("payment_method") or payload.payment_method,
            ),
            raw=dict(raw or intent),
        )

    # =========================================================================
    # Status Query
    # =========================================================================

    def fetch_signal(self, order: Order) -> PaymentSignal:
        if not order.provider_transaction_ref:
            raise ProviderRequestError(
                "Order has no PaymentIntent id and cannot be verified",
                provider=self.name,
                details={"order_id": order.order_id},
            )

        try:
            intent = self.stripe_client.payment_intents.retrieve(
                order.provider_transaction_ref
            )
        except stripe.StripeError as e:
            self._raise_provider_error(e)

        return self.intent_to_signal(intent.to_dict())

    def _raise_provider_error(self, error: stripe.StripeError) -> None:
        """Translate Stripe SDK errors into retryable/permanent provider errors."""
        logger = self.get_logger()
        log_context = {"provider": self.name, "stripe_code": error.code}

        if isinstance(error, stripe.APIConnectionError):
            logger.warning("Connection error to Stripe", extra=log_context)
            if "timed out" in str(error).lower():
                raise ProviderTimeoutError(str(error), provider=self.name) from error
            raise ProviderUnavailableError(str(error), provider=self.name) from error

        if isinstance(error, (stripe.RateLimitError, stripe.APIError)):
            logger.warning("Stripe temporarily unavailable", extra=log_context)
            raise ProviderUnavailableError(
                str(error), provider=self.name, status_code=error.http_status
            ) from error

        logger.error("Stripe rejected the request", extra=log_context)
        raise ProviderRequestError(
            str(error), provider=self.name, status_code=error.http_status
        ) from error
