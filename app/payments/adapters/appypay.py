"""
AppyPay adapter (Angola: Multicaixa Express and payment references).

Payload variants:
    Express charges are confirmed on the customer's phone and identified by
    the merchantTransactionId we generated at checkout.

    Reference charges are paid later at an ATM or bank; AppyPay issues a
    referenceNumber which checkout stores as the merchant order id.

Both variants carry responseStatus.successful and responseStatus.status;
the two must agree before an order is settled.

Configuration (ProviderConfig):
    api_url: Charges API base, e.g. https://gwy-api.appypay.co.ao/v2.0
    auth_url: OAuth2 token endpoint
    client_id/client_secret/resource: client-credentials grant
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
from payments.state_machines import PaymentProvider

if TYPE_CHECKING:
    from collections.abc import Mapping

    from payments.models import Order

SUCCESS_STATUSES = ("Success",)
FAILURE_STATUSES = ("Failed",)


# =============================================================================
# Payload Variants
# =============================================================================


@dataclass(frozen=True)
class AppyPayExpressPayload:
    merchant_transaction_id: str
    successful: bool | None
    status: str
    message: str = ""
    amount: Decimal | None = None
    currency: str = ""


@dataclass(frozen=True)
class AppyPayReferencePayload:
    reference_number: str
    successful: bool | None
    status: str
    merchant_transaction_id: str | None = None
    entity: str = ""
    message: str = ""
    amount: Decimal | None = None
    currency: str = ""


AppyPayPayload = AppyPayExpressPayload | AppyPayReferencePayload


# =============================================================================
# AppyPay Adapter
# =============================================================================


class AppyPayAdapter(ProviderAdapter):
    """
    Adapter for AppyPay callbacks and charge status queries.

    Usage:
        adapter = AppyPayAdapter(config)
        signal = adapter.parse_callback(request_json)

        # Poller / admin verification
        signal = adapter.poll(order)
    """

    name = PaymentProvider.APPYPAY
    supports_polling = True

    @staticmethod
    def parse_payload(data: Mapping[str, Any]) -> AppyPayPayload:
        """
        Classify a charge body into its express or reference variant.

        Raises:
            MalformedPayloadError: Neither merchantTransactionId nor a
                reference number is present
        """
        response_status = data.get("responseStatus") or {}
        if not isinstance(response_status, dict):
            raise MalformedPayloadError(
                "responseStatus must be an object",
                details={"provider": PaymentProvider.APPYPAY},
            )

        reference = response_status.get("reference") or {}
        reference_number = (
            reference.get("referenceNumber") if isinstance(reference, dict) else None
        )
        merchant_transaction_id = data.get("merchantTransactionId")

        common = {
            "successful": parse_bool(response_status.get("successful")),
            "status": str(response_status.get("status") or ""),
            "message": str(response_status.get("message") or ""),
            "amount": parse_amount(data.get("amount")),
            "currency": str(data.get("currency") or ""),
        }

        if reference_number:
            return AppyPayReferencePayload(
                reference_number=str(reference_number),
                merchant_transaction_id=(
                    str(merchant_transaction_id) if merchant_transaction_id else None
                ),
                entity=str(reference.get("entity") or ""),
                **common,
            )
        if merchant_transaction_id:
            return AppyPayExpressPayload(
                merchant_transaction_id=str(merchant_transaction_id),
                **common,
            )

        raise MalformedPayloadError(
            "AppyPay payload has neither merchantTransactionId nor a reference number",
            details={"provider": PaymentProvider.APPYPAY},
        )

    def to_signal(self, payload: AppyPayPayload, raw: Mapping[str, Any]) -> PaymentSignal:
        outcome = combine_outcome(
            payload.successful, payload.status, SUCCESS_STATUSES, FAILURE_STATUSES
        )

        if isinstance(payload, AppyPayReferencePayload):
            order_ref = payload.reference_number
            external_ref = payload.merchant_transaction_id
        else:
            order_ref = None
            external_ref = payload.merchant_transaction_id

        return PaymentSignal(
            provider=self.name,
            outcome=outcome,
            order_ref=order_ref,
            external_ref=external_ref,
            amount=payload.amount,
            currency=payload.currency or None,
            raw_status=payload.status,
            failure_reason=payload.message,
            raw=dict(raw),
        )

    def parse_callback(
        self,
        payload: Mapping[str, Any],
        *,
        raw_body: bytes = b"",
        headers: Mapping[str, str] | None = None,
    ) -> PaymentSignal:
        return self.to_signal(self.parse_payload(payload), payload)

    # =========================================================================
    # Status Query
    # =========================================================================

    def fetch_signal(self, order: Order) -> PaymentSignal:
        """
        GET /charges/{merchantTransactionId} and parse the charge.

        A 401 means the cached token was revoked early: refresh once and
        repeat the query.

        Raises:
            ProviderRequestError: Order has no merchantTransactionId, or the
                charge is unknown to AppyPay
        """
        if not order.provider_transaction_ref:
            raise ProviderRequestError(
                "Order has no AppyPay transaction id and cannot be verified",
                provider=self.name,
                details={"order_id": order.order_id},
            )

        url = f"{self.config.api_url.rstrip('/')}/charges/{order.provider_transaction_ref}"

        try:
            response = self._request(
                "GET", url, headers=self._auth_headers(self.get_access_token())
            )
        except ProviderRequestError as e:
            if e.status_code != 401:
                raise
            response = self._request(
                "GET", url, headers=self._auth_headers(self.refresh_token())
            )

        data = self._json(response, self.name)
        data.setdefault("merchantTransactionId", order.provider_transaction_ref)
        return self.to_signal(self.parse_payload(data), data)

    @staticmethod
    def _auth_headers(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Accept": "application/json"}

    def _fetch_token(self) -> tuple[str, int]:
        """OAuth2 client-credentials grant against the configured auth URL."""
        response = self._request(
            "POST",
            self.config.auth_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "resource": self.config.resource or self.config.api_url,
            },
        )
        data = self._json(response, self.name)
        token = data.get("access_token")
        if not token:
            raise ProviderRequestError(
                "AppyPay token response carried no access_token", provider=self.name
            )
        try:
            expires_in = int(data.get("expires_in") or 3600)
        except (TypeError, ValueError):
            expires_in = 3600
        return token, expires_in
