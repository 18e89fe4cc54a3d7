"""
SISLOG adapter (Mozambique mobile money: M-Pesa and e-Mola).

SISLOG notifies in two shapes:
    - callback: GET query string or POST (JSON or form-encoded) with
      entity and transactionId
    - webhook: GET query string with transactionId plus reference, value,
      paymentdatetime and errormessage; entity is optional

Both are parsed into SislogCallbackPayload. entity "00000" or a non-empty
errormessage marks a failed payment; anything else is a confirmation.

Push delivery is unreliable, so pending SISLOG orders are also polled:
POST {api_url}{status_path} with {username, transactionId} and an apikey
header.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from payments.adapters.base import (
    PaymentSignal,
    ProviderAdapter,
    combine_outcome,
    parse_amount,
    parse_bool,
)
from payments.exceptions import MalformedPayloadError, ProviderRequestError
from payments.state_machines import PaymentProvider, SignalOutcome

if TYPE_CHECKING:
    from collections.abc import Mapping

    from payments.models import Order

FAILED_ENTITY = "00000"
PAID_STATUSES = ("Paid", "Completed", "Success")
FAILED_STATUSES = ("Failed", "Cancelled", "Canceled", "Expired", "Rejected")


def _first(data: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return str(value)
    return ""


@dataclass(frozen=True)
class SislogCallbackPayload:
    entity: str
    transaction_id: str
    reference: str = ""
    value: Decimal | None = None
    payment_datetime: str = ""
    error_message: str = ""

    @property
    def is_failure(self) -> bool:
        return self.entity == FAILED_ENTITY or bool(self.error_message)


@dataclass(frozen=True)
class SislogStatusPayload:
    transaction_id: str
    status: str
    paid: bool | None
    payment_datetime: str = ""


class SislogAdapter(ProviderAdapter):
    """Adapter for SISLOG callbacks and mobile-money status queries."""

    name = PaymentProvider.SISLOG
    supports_polling = True

    @staticmethod
    def parse_payload(data: Mapping[str, Any]) -> SislogCallbackPayload:
        """
        transactionId is always required; entity only for the callback shape
        (no reference and no paymentdatetime).

        Raises:
            MalformedPayloadError: A required field is missing
        """
        entity = _first(data, "entity", "Entity")
        transaction_id = _first(data, "transactionId", "transaction_id", "TransactionId")
        reference = _first(data, "reference")
        payment_datetime = _first(data, "paymentdatetime", "paymentDateTime")

        required = [("transactionId", transaction_id)]
        if not (reference or payment_datetime):
            required.insert(0, ("entity", entity))
        missing = [name for name, value in required if not value]
        if missing:
            raise MalformedPayloadError(
                f"SISLOG callback is missing {', '.join(missing)}",
                details={"provider": PaymentProvider.SISLOG, "missing": missing},
            )

        return SislogCallbackPayload(
            entity=entity,
            transaction_id=transaction_id,
            reference=reference,
            value=parse_amount(data.get("value")),
            payment_datetime=payment_datetime,
            error_message=_first(data, "errormessage", "errorMessage"),
        )

    def parse_callback(
        self,
        payload: Mapping[str, Any],
        *,
        raw_body: bytes = b"",
        headers: Mapping[str, str] | None = None,
    ) -> PaymentSignal:
        parsed = self.parse_payload(payload)
        outcome = SignalOutcome.FAILURE if parsed.is_failure else SignalOutcome.SUCCESS

        return PaymentSignal(
            provider=self.name,
            outcome=outcome,
            external_ref=parsed.transaction_id,
            amount=parsed.value,
            raw_status=parsed.entity,
            failure_reason=parsed.error_message or (
                "Payment failed" if parsed.is_failure else ""
            ),
            raw=dict(payload),
        )

    # =========================================================================
    # Status Query
    # =========================================================================

    @staticmethod
    def parse_status(transaction_id: str, data: Mapping[str, Any]) -> SislogStatusPayload:
        return SislogStatusPayload(
            transaction_id=transaction_id,
            status=_first(data, "status", "Status"),
            paid=parse_bool(data.get("paid")),
            payment_datetime=_first(data, "paymentdatetime", "paymentDateTime"),
        )

    def status_to_outcome(self, status: SislogStatusPayload) -> str:
        """
        Outcome of a status query.

        The paid flag and status string must agree when both are present; a
        payment timestamp alone counts as paid.
        """
        if status.paid is None and not status.status and status.payment_datetime:
            return SignalOutcome.SUCCESS
        return combine_outcome(status.paid, status.status, PAID_STATUSES, FAILED_STATUSES)

    def fetch_signal(self, order: Order) -> PaymentSignal:
        if not order.provider_transaction_ref:
            raise ProviderRequestError(
                "Order has no SISLOG transaction id and cannot be verified",
                provider=self.name,
                details={"order_id": order.order_id},
            )

        response = self._request(
            "POST",
            f"{self.config.api_url.rstrip('/')}{self.config.status_path}",
            json={
                "username": self.config.username,
                "transactionId": order.provider_transaction_ref,
            },
            headers={"apikey": self.config.api_key},
        )
        data = self._json(response, self.name)
        status = self.parse_status(order.provider_transaction_ref, data)

        return PaymentSignal(
            provider=self.name,
            outcome=self.status_to_outcome(status),
            external_ref=status.transaction_id,
            raw_status=status.status,
            raw=data,
        )
