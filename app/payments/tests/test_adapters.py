"""
Tests for payment provider adapters.

Tests cover:
- Outcome resolution when flag and status disagree
- AppyPay express/reference payloads, token cache and status query
- SISLOG callback shapes and status query
- Stripe event parsing, signature verification and error translation
- Adapter registry
"""

import hashlib
import hmac
import json
import time
from decimal import Decimal
from unittest.mock import MagicMock

import httpx
import pytest
import stripe
from django.core.cache import cache

from core.retry import RetryExhaustedError
from payments.adapters import (
    AppyPayAdapter,
    AppyPayExpressPayload,
    AppyPayReferencePayload,
    ProviderConfig,
    SislogAdapter,
    StripeAdapter,
    combine_outcome,
    get_adapter,
)
from payments.exceptions import (
    MalformedPayloadError,
    ProviderRequestError,
    ProviderUnavailableError,
    UnknownProviderError,
)
from payments.state_machines import PaymentMethod, PaymentProvider, SignalOutcome


def order_stub(order_id="ORD-1", ref="MTX00000001"):
    return MagicMock(order_id=order_id, provider_transaction_ref=ref)


# =============================================================================
# Outcome Resolution Tests
# =============================================================================


class TestCombineOutcome:
    """Tests for the flag/status agreement rule."""

    @pytest.mark.parametrize(
        ("successful", "status", "expected"),
        [
            (True, "Success", SignalOutcome.SUCCESS),
            (False, "Failed", SignalOutcome.FAILURE),
            (True, "Failed", SignalOutcome.PENDING),
            (False, "Success", SignalOutcome.PENDING),
            (True, "Processing", SignalOutcome.PENDING),
            (True, None, SignalOutcome.SUCCESS),
            (None, "Failed", SignalOutcome.FAILURE),
            (None, None, SignalOutcome.PENDING),
        ],
    )
    def test_resolution(self, successful, status, expected):
        assert combine_outcome(successful, status, ("Success",), ("Failed",)) == expected

    def test_status_match_is_case_insensitive(self):
        assert combine_outcome(True, "success", ("Success",), ("Failed",)) == (
            SignalOutcome.SUCCESS
        )


# =============================================================================
# AppyPay Tests
# =============================================================================


class TestAppyPayCallback:
    """Tests for AppyPay callback parsing."""

    @pytest.fixture
    def adapter(self, appypay_config, mock_http):
        return AppyPayAdapter(appypay_config, client=mock_http(lambda r: httpx.Response(500)))

    def test_express_success(self, adapter):
        payload = {
            "merchantTransactionId": "MTX00000001",
            "amount": 10000,
            "currency": "AOA",
            "responseStatus": {"successful": True, "status": "Success", "message": "OK"},
        }

        parsed = adapter.parse_payload(payload)
        signal = adapter.parse_callback(payload)

        assert isinstance(parsed, AppyPayExpressPayload)
        assert signal.outcome == SignalOutcome.SUCCESS
        assert signal.external_ref == "MTX00000001"
        assert signal.order_ref is None
        assert signal.amount == Decimal("10000")

    def test_reference_variant_keys_on_reference_number(self, adapter):
        payload = {
            "merchantTransactionId": "MTX00000002",
            "responseStatus": {
                "successful": True,
                "status": "Success",
                "reference": {"referenceNumber": "987654321", "entity": "11333"},
            },
        }

        parsed = adapter.parse_payload(payload)
        signal = adapter.parse_callback(payload)

        assert isinstance(parsed, AppyPayReferencePayload)
        assert parsed.entity == "11333"
        assert signal.order_ref == "987654321"
        assert signal.external_ref == "MTX00000002"

    def test_disagreeing_flag_and_status_is_pending(self, adapter):
        payload = {
            "merchantTransactionId": "MTX00000001",
            "responseStatus": {"successful": True, "status": "Failed"},
        }

        assert adapter.parse_callback(payload).outcome == SignalOutcome.PENDING

    def test_failure_carries_message(self, adapter):
        payload = {
            "merchantTransactionId": "MTX00000001",
            "responseStatus": {
                "successful": False,
                "status": "Failed",
                "message": "Saldo insuficiente",
            },
        }

        signal = adapter.parse_callback(payload)

        assert signal.outcome == SignalOutcome.FAILURE
        assert signal.failure_reason == "Saldo insuficiente"

    def test_missing_references_is_malformed(self, adapter):
        with pytest.raises(MalformedPayloadError):
            adapter.parse_callback({"responseStatus": {"successful": True}})

    def test_non_object_response_status_is_malformed(self, adapter):
        with pytest.raises(MalformedPayloadError):
            adapter.parse_callback(
                {"merchantTransactionId": "MTX1", "responseStatus": "Success"}
            )


class TestAppyPayStatusQuery:
    """Tests for AppyPay token handling and charge queries."""

    def make_handler(self, calls, charge_responses, token="token-1"):
        charge_iter = iter(charge_responses)

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if request.url.host == "auth.appypay.test":
                return httpx.Response(200, json={"access_token": token, "expires_in": 3600})
            return next(charge_iter)

        return handler

    def test_fetches_token_and_charge(self, appypay_config, mock_http):
        calls = []
        handler = self.make_handler(
            calls,
            [httpx.Response(200, json={"responseStatus": {"successful": True, "status": "Success"}})],
        )
        adapter = AppyPayAdapter(appypay_config, client=mock_http(handler))

        signal = adapter.poll(order_stub())

        assert signal.outcome == SignalOutcome.SUCCESS
        assert signal.external_ref == "MTX00000001"
        assert b"grant_type=client_credentials" in calls[0].content
        assert calls[1].url.path == "/v2.0/charges/MTX00000001"
        assert calls[1].headers["Authorization"] == "Bearer token-1"
        assert cache.get(adapter.token_cache_key) == "token-1"

    def test_cached_token_is_reused(self, appypay_config, mock_http):
        cache.set("payments:provider_token:appypay", "cached-token", 300)
        calls = []
        handler = self.make_handler(
            calls,
            [httpx.Response(200, json={"responseStatus": {"status": "Pending"}})],
        )
        adapter = AppyPayAdapter(appypay_config, client=mock_http(handler))

        signal = adapter.fetch_signal(order_stub())

        assert signal.outcome == SignalOutcome.PENDING
        assert len(calls) == 1
        assert calls[0].headers["Authorization"] == "Bearer cached-token"

    def test_unauthorized_refreshes_token_once(self, appypay_config, mock_http):
        cache.set("payments:provider_token:appypay", "revoked", 300)
        calls = []
        handler = self.make_handler(
            calls,
            [
                httpx.Response(401, json={"error": "invalid_token"}),
                httpx.Response(200, json={"responseStatus": {"successful": False, "status": "Failed"}}),
            ],
            token="fresh",
        )
        adapter = AppyPayAdapter(appypay_config, client=mock_http(handler))

        signal = adapter.fetch_signal(order_stub())

        assert signal.outcome == SignalOutcome.FAILURE
        assert calls[-1].headers["Authorization"] == "Bearer fresh"
        assert cache.get(adapter.token_cache_key) == "fresh"

    def test_server_errors_are_retried(self, appypay_config, mock_http, sleeps):
        cache.set("payments:provider_token:appypay", "token", 300)
        calls = []
        handler = self.make_handler(
            calls,
            [
                httpx.Response(503),
                httpx.Response(200, json={"responseStatus": {"successful": True, "status": "Success"}}),
            ],
        )
        adapter = AppyPayAdapter(
            appypay_config, client=mock_http(handler), sleep=sleeps.append
        )

        signal = adapter.poll(order_stub())

        assert signal.outcome == SignalOutcome.SUCCESS
        assert len(calls) == 2
        assert len(sleeps) == 1

    def test_not_found_is_not_retried(self, appypay_config, mock_http, sleeps):
        cache.set("payments:provider_token:appypay", "token", 300)
        calls = []
        handler = self.make_handler(calls, [httpx.Response(404)])
        adapter = AppyPayAdapter(
            appypay_config, client=mock_http(handler), sleep=sleeps.append
        )

        with pytest.raises(ProviderRequestError) as exc_info:
            adapter.poll(order_stub())

        assert exc_info.value.status_code == 404
        assert sleeps == []

    def test_transport_errors_exhaust_retries(self, appypay_config, mock_http, sleeps):
        cache.set("payments:provider_token:appypay", "token", 300)

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        adapter = AppyPayAdapter(
            appypay_config, client=mock_http(handler), sleep=sleeps.append
        )

        with pytest.raises(RetryExhaustedError) as exc_info:
            adapter.poll(order_stub())

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, ProviderUnavailableError)
        assert len(sleeps) == 2

    def test_order_without_reference_cannot_be_queried(self, appypay_config, mock_http):
        adapter = AppyPayAdapter(appypay_config, client=mock_http(lambda r: httpx.Response(200)))

        with pytest.raises(ProviderRequestError):
            adapter.fetch_signal(order_stub(ref=None))


# =============================================================================
# SISLOG Tests
# =============================================================================


class TestSislogCallback:
    """Tests for SISLOG callback and webhook shapes."""

    @pytest.fixture
    def adapter(self, sislog_config, mock_http):
        return SislogAdapter(sislog_config, client=mock_http(lambda r: httpx.Response(500)))

    def test_confirmation(self, adapter):
        signal = adapter.parse_callback(
            {
                "entity": "12345",
                "transactionId": "SISTX-1",
                "reference": "REF-1",
                "value": "1500.00",
                "paymentdatetime": "2024-05-01 10:00:00",
            }
        )

        assert signal.outcome == SignalOutcome.SUCCESS
        assert signal.external_ref == "SISTX-1"
        assert signal.amount == Decimal("1500.00")

    def test_failed_entity(self, adapter):
        signal = adapter.parse_callback({"entity": "00000", "transactionId": "SISTX-1"})

        assert signal.outcome == SignalOutcome.FAILURE
        assert signal.failure_reason == "Payment failed"

    def test_error_message_marks_failure(self, adapter):
        signal = adapter.parse_callback(
            {"entity": "12345", "transactionId": "SISTX-1", "errormessage": "Timeout on handset"}
        )

        assert signal.outcome == SignalOutcome.FAILURE
        assert signal.failure_reason == "Timeout on handset"

    @pytest.mark.parametrize(
        "payload",
        [
            {"entity": "12345"},
            {"transactionId": "SISTX-1"},
            {"reference": "R1", "paymentdatetime": "2024-06-01 12:00:00"},
            {},
        ],
    )
    def test_missing_fields_are_malformed(self, adapter, payload):
        with pytest.raises(MalformedPayloadError):
            adapter.parse_callback(payload)

    def test_webhook_shape_needs_no_entity(self, adapter):
        signal = adapter.parse_callback(
            {
                "transactionId": "SISTX-1",
                "reference": "R1",
                "value": "1500.00",
                "paymentdatetime": "2024-06-01 12:00:00",
            }
        )

        assert signal.outcome == SignalOutcome.SUCCESS
        assert signal.external_ref == "SISTX-1"
        assert signal.amount == Decimal("1500.00")

    def test_webhook_shape_error_message_marks_failure(self, adapter):
        signal = adapter.parse_callback(
            {"transactionId": "SISTX-1", "reference": "R1", "errormessage": "Cancelado"}
        )

        assert signal.outcome == SignalOutcome.FAILURE
        assert signal.failure_reason == "Cancelado"


class TestSislogStatusQuery:
    """Tests for the SISLOG mobile-money status query."""

    def query(self, sislog_config, mock_http, body):
        captured = []

        def handler(request):
            captured.append(request)
            return httpx.Response(200, json=body)

        adapter = SislogAdapter(sislog_config, client=mock_http(handler))
        return adapter.fetch_signal(order_stub(ref="SISTX-1")), captured

    def test_request_shape(self, sislog_config, mock_http):
        _, captured = self.query(sislog_config, mock_http, {"status": "Paid", "paid": True})

        request = captured[0]
        assert request.method == "POST"
        assert str(request.url) == "https://sislog.test/api/mobile/reference/check"
        assert request.headers["apikey"] == "sislog-key"
        assert json.loads(request.content) == {
            "username": "merchant",
            "transactionId": "SISTX-1",
        }

    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            ({"status": "Paid", "paid": True}, SignalOutcome.SUCCESS),
            ({"status": "Paid", "paid": False}, SignalOutcome.PENDING),
            ({"status": "Expired", "paid": False}, SignalOutcome.FAILURE),
            ({"status": "Expired"}, SignalOutcome.FAILURE),
            ({"paymentdatetime": "2024-05-01 10:00:00"}, SignalOutcome.SUCCESS),
            ({"status": "Processing"}, SignalOutcome.PENDING),
        ],
    )
    def test_outcomes(self, sislog_config, mock_http, body, expected):
        signal, _ = self.query(sislog_config, mock_http, body)

        assert signal.outcome == expected
        assert signal.external_ref == "SISTX-1"


# =============================================================================
# Stripe Tests
# =============================================================================


def payment_intent(status="succeeded", **overrides):
    intent = {
        "id": "pi_test_123",
        "object": "payment_intent",
        "status": status,
        "amount": 2500,
        "amount_received": 2500 if status == "succeeded" else 0,
        "currency": "eur",
        "payment_method_types": ["card"],
        "metadata": {
            "order_id": "ORD-STRIPE-1",
            "product_id": "9b1c3f0e-3c1e-4f5a-9d7e-1f2a3b4c5d6e",
            "customer_email": "buyer@example.com",
            "customer_name": "Ana Silva",
        },
    }
    intent.update(overrides)
    return intent


def stripe_event(event_type, intent):
    return {"id": "evt_1", "type": event_type, "data": {"object": intent}}


class TestStripeCallback:
    """Tests for Stripe event parsing."""

    @pytest.fixture
    def adapter(self, stripe_config):
        return StripeAdapter(stripe_config, stripe_client=MagicMock())

    def test_succeeded_event(self, adapter):
        signal = adapter.parse_callback(
            stripe_event("payment_intent.succeeded", payment_intent())
        )

        assert signal.outcome == SignalOutcome.SUCCESS
        assert signal.order_ref == "ORD-STRIPE-1"
        assert signal.external_ref == "pi_test_123"
        assert signal.amount == Decimal("25.00")
        assert signal.currency == "EUR"
        assert signal.recovery.customer_email == "buyer@example.com"
        assert signal.recovery.payment_method == PaymentMethod.CARD
        assert signal.can_synthesize is True

    def test_succeeded_event_with_unfinished_intent_is_pending(self, adapter):
        signal = adapter.parse_callback(
            stripe_event("payment_intent.succeeded", payment_intent(status="processing"))
        )

        assert signal.outcome == SignalOutcome.PENDING

    def test_declined_payment_stays_pending(self, adapter):
        """The buyer can retry on the same PaymentIntent after a decline."""
        intent = payment_intent(
            status="requires_payment_method",
            last_payment_error={"message": "Your card was declined."},
        )

        signal = adapter.parse_callback(stripe_event("payment_intent.payment_failed", intent))

        assert signal.outcome == SignalOutcome.PENDING
        assert signal.failure_reason == "Your card was declined."

    def test_canceled_event_is_failure(self, adapter):
        signal = adapter.parse_callback(
            stripe_event("payment_intent.canceled", payment_intent(status="canceled"))
        )

        assert signal.outcome == SignalOutcome.FAILURE

    def test_unhandled_event_is_pending(self, adapter):
        signal = adapter.parse_callback(
            stripe_event("payment_intent.created", payment_intent(status="requires_payment_method"))
        )

        assert signal.outcome == SignalOutcome.PENDING

    def test_multibanco_detected(self, adapter):
        intent = payment_intent(payment_method_types=["multibanco"])

        signal = adapter.parse_callback(stripe_event("payment_intent.succeeded", intent))

        assert signal.recovery.payment_method == PaymentMethod.MULTIBANCO

    def test_zero_decimal_currency(self, adapter):
        intent = payment_intent(currency="jpy", amount=500, amount_received=500)

        signal = adapter.parse_callback(stripe_event("payment_intent.succeeded", intent))

        assert signal.amount == Decimal("500")

    def test_event_without_object_is_malformed(self, adapter):
        with pytest.raises(MalformedPayloadError):
            adapter.parse_callback({"id": "evt_1", "type": "payment_intent.succeeded"})


class TestStripeSignature:
    """Tests for webhook signature verification."""

    SECRET = "whsec_test_secret"

    @pytest.fixture
    def adapter(self, stripe_config):
        config = ProviderConfig(
            name=PaymentProvider.STRIPE,
            api_key=stripe_config.api_key,
            webhook_secret=self.SECRET,
        )
        return StripeAdapter(config, stripe_client=MagicMock())

    def sign(self, body: bytes) -> str:
        timestamp = int(time.time())
        signed = f"{timestamp}.{body.decode()}".encode()
        digest = hmac.new(self.SECRET.encode(), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    def test_valid_signature(self, adapter):
        event = stripe_event("payment_intent.succeeded", payment_intent())
        body = json.dumps(event).encode()

        signal = adapter.parse_callback(
            event, raw_body=body, headers={"Stripe-Signature": self.sign(body)}
        )

        assert signal.outcome == SignalOutcome.SUCCESS
        assert signal.order_ref == "ORD-STRIPE-1"

    def test_missing_signature(self, adapter):
        event = stripe_event("payment_intent.succeeded", payment_intent())

        with pytest.raises(MalformedPayloadError):
            adapter.parse_callback(event, raw_body=json.dumps(event).encode(), headers={})

    def test_tampered_body(self, adapter):
        event = stripe_event("payment_intent.succeeded", payment_intent())
        signature = self.sign(json.dumps(event).encode())
        tampered = json.dumps(stripe_event("payment_intent.succeeded", payment_intent(amount=1))).encode()

        with pytest.raises(MalformedPayloadError):
            adapter.parse_callback(
                event, raw_body=tampered, headers={"Stripe-Signature": signature}
            )


class TestStripeStatusQuery:
    """Tests for PaymentIntent retrieval and error translation."""

    def test_retrieved_intent(self, stripe_config):
        client = MagicMock()
        client.payment_intents.retrieve.return_value = MagicMock(
            to_dict=MagicMock(return_value=payment_intent())
        )
        adapter = StripeAdapter(stripe_config, stripe_client=client)

        signal = adapter.fetch_signal(order_stub(ref="pi_test_123"))

        client.payment_intents.retrieve.assert_called_once_with("pi_test_123")
        assert signal.outcome == SignalOutcome.SUCCESS

    def test_canceled_intent_is_failure(self, stripe_config):
        client = MagicMock()
        client.payment_intents.retrieve.return_value = MagicMock(
            to_dict=MagicMock(return_value=payment_intent(status="canceled"))
        )
        adapter = StripeAdapter(stripe_config, stripe_client=client)

        assert adapter.fetch_signal(order_stub(ref="pi_test_123")).outcome == (
            SignalOutcome.FAILURE
        )

    def test_connection_error_is_retried(self, stripe_config, sleeps):
        client = MagicMock()
        client.payment_intents.retrieve.side_effect = stripe.APIConnectionError(
            "Could not connect to Stripe."
        )
        adapter = StripeAdapter(stripe_config, sleep=sleeps.append, stripe_client=client)

        with pytest.raises(RetryExhaustedError) as exc_info:
            adapter.poll(order_stub(ref="pi_test_123"))

        assert isinstance(exc_info.value.last_error, ProviderUnavailableError)
        assert client.payment_intents.retrieve.call_count == 3

    def test_invalid_request_is_permanent(self, stripe_config, sleeps):
        client = MagicMock()
        client.payment_intents.retrieve.side_effect = stripe.InvalidRequestError(
            "No such payment_intent", param="id"
        )
        adapter = StripeAdapter(stripe_config, sleep=sleeps.append, stripe_client=client)

        with pytest.raises(ProviderRequestError):
            adapter.poll(order_stub(ref="pi_missing"))

        assert sleeps == []


# =============================================================================
# Registry Tests
# =============================================================================


class TestAdapterRegistry:
    """Tests for get_adapter()."""

    @pytest.mark.parametrize(
        ("provider", "adapter_class", "polls"),
        [
            (PaymentProvider.APPYPAY, AppyPayAdapter, True),
            (PaymentProvider.SISLOG, SislogAdapter, True),
            (PaymentProvider.STRIPE, StripeAdapter, False),
        ],
    )
    def test_known_providers(self, provider, adapter_class, polls):
        adapter = get_adapter(provider)

        assert isinstance(adapter, adapter_class)
        assert adapter.supports_polling is polls
        assert adapter.config.name == provider

    def test_unknown_provider(self):
        with pytest.raises(UnknownProviderError):
            get_adapter("paypal")

    def test_closing_releases_its_own_http_client(self):
        with get_adapter(PaymentProvider.APPYPAY) as adapter:
            http_client = adapter.client
            assert http_client.is_closed is False

        assert http_client.is_closed is True

    def test_injected_http_client_is_not_closed(self, stripe_config):
        http_client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        StripeAdapter(stripe_config, client=http_client, stripe_client=MagicMock()).close()

        assert http_client.is_closed is False
        http_client.close()
