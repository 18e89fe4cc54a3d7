"""
Tests for the Reconciler.

Tests cover:
- Pending signals never touch the ledger
- Duplicate deliveries transition once and fan out once
- Synthesis of missing orders and the not-found path
- Database failures surface as LedgerPersistenceError before fan-out
- Fan-out failures never undo the ledger write
- Adapters built by the reconciler are closed after use
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from django.db import OperationalError

from payments.adapters import PaymentSignal, RecoveryContext, get_adapter
from payments.exceptions import (
    LedgerPersistenceError,
    MalformedPayloadError,
    OrderNotFoundError,
    UnknownProviderError,
)
from payments.models import Order
from payments.services import Reconciler
from payments.state_machines import OrderStatus, PaymentProvider, SignalOutcome


def appypay_success(ref="MTX00000001"):
    return {
        "merchantTransactionId": ref,
        "responseStatus": {"successful": True, "status": "Success"},
    }


class TestReconcileSignal:
    """Tests for Reconciler.reconcile()."""

    def test_success_completes_and_fans_out(self, pending_order, dispatcher):
        result = Reconciler(dispatcher=dispatcher).handle_callback(
            PaymentProvider.APPYPAY, appypay_success()
        )

        assert result.transitioned is True
        assert result.fanned_out is True
        assert result.status == OrderStatus.COMPLETED
        assert [o.pk for o in dispatcher.orders] == [pending_order.pk]

    def test_failure_transitions_without_fan_out(self, pending_order, dispatcher):
        payload = {
            "merchantTransactionId": "MTX00000001",
            "responseStatus": {"successful": False, "status": "Failed", "message": "Declined"},
        }

        result = Reconciler(dispatcher=dispatcher).handle_callback(
            PaymentProvider.APPYPAY, payload
        )

        assert result.status == OrderStatus.FAILED
        assert dispatcher.orders == []
        assert Order.objects.get(pk=pending_order.pk).failure_reason == "Declined"

    def test_pending_signal_is_acknowledged(self, pending_order, dispatcher):
        payload = {
            "merchantTransactionId": "MTX00000001",
            "responseStatus": {"successful": True, "status": "Failed"},
        }

        result = Reconciler(dispatcher=dispatcher).handle_callback(
            PaymentProvider.APPYPAY, payload
        )

        assert result.transitioned is False
        assert result.order is None
        assert Order.objects.get(pk=pending_order.pk).status == OrderStatus.PENDING
        assert dispatcher.orders == []

    def test_pending_signal_for_unknown_order_is_not_an_error(self, db, dispatcher):
        signal = PaymentSignal(
            provider=PaymentProvider.APPYPAY,
            outcome=SignalOutcome.PENDING,
            external_ref="never-seen",
        )

        result = Reconciler(dispatcher=dispatcher).reconcile(signal)

        assert result.transitioned is False

    def test_duplicate_deliveries_fan_out_once(self, pending_order, dispatcher):
        reconciler = Reconciler(dispatcher=dispatcher)

        results = [
            reconciler.handle_callback(PaymentProvider.APPYPAY, appypay_success())
            for _ in range(3)
        ]

        assert [r.transitioned for r in results] == [True, False, False]
        assert all(r.status == OrderStatus.COMPLETED for r in results)
        assert len(dispatcher.orders) == 1

    def test_signal_after_failure_is_discarded(self, failed_order, dispatcher):
        result = Reconciler(dispatcher=dispatcher).handle_callback(
            PaymentProvider.APPYPAY, appypay_success(failed_order.provider_transaction_ref)
        )

        assert result.transitioned is False
        assert result.status == OrderStatus.FAILED
        assert dispatcher.orders == []

    def test_unknown_order_without_recovery_is_not_found(self, db, dispatcher):
        with pytest.raises(OrderNotFoundError):
            Reconciler(dispatcher=dispatcher).handle_callback(
                PaymentProvider.APPYPAY, appypay_success("MTX-UNKNOWN")
            )

        assert dispatcher.orders == []

    def test_missing_order_is_synthesized(self, product, dispatcher):
        signal = PaymentSignal(
            provider=PaymentProvider.STRIPE,
            outcome=SignalOutcome.SUCCESS,
            order_ref="ORD-LOST-1",
            external_ref="pi_lost",
            recovery=RecoveryContext(
                product_id=str(product.id),
                customer_email="lost@example.com",
                amount=Decimal("10000.00"),
            ),
        )

        result = Reconciler(dispatcher=dispatcher).reconcile(signal)

        assert result.synthesized is True
        assert result.transitioned is True
        assert len(dispatcher.orders) == 1
        assert Order.objects.get(order_id="ORD-LOST-1").status == OrderStatus.COMPLETED

    def test_malformed_payload(self, db, dispatcher):
        with pytest.raises(MalformedPayloadError):
            Reconciler(dispatcher=dispatcher).handle_callback(
                PaymentProvider.SISLOG, {"entity": "12345"}
            )

    def test_unknown_provider(self, db, dispatcher):
        with pytest.raises(UnknownProviderError):
            Reconciler(dispatcher=dispatcher).handle_callback("paypal", {})


class TestReconcilerFailures:
    """Tests for database and fan-out failures."""

    def test_database_error_becomes_persistence_error(self, pending_order, dispatcher):
        with patch(
            "payments.services.reconciler.OrderLedger.find_order",
            side_effect=OperationalError("database is locked"),
        ):
            with pytest.raises(LedgerPersistenceError) as exc_info:
                Reconciler(dispatcher=dispatcher).handle_callback(
                    PaymentProvider.APPYPAY, appypay_success()
                )

        assert exc_info.value.http_status == 503
        assert exc_info.value.is_retryable is True
        assert dispatcher.orders == []

    def test_fan_out_crash_keeps_completed_order(self, pending_order):
        dispatcher = MagicMock()
        dispatcher.dispatch.side_effect = RuntimeError("boom")

        result = Reconciler(dispatcher=dispatcher).handle_callback(
            PaymentProvider.APPYPAY, appypay_success()
        )

        assert result.transitioned is True
        assert result.fanned_out is False
        assert Order.objects.get(pk=pending_order.pk).status == OrderStatus.COMPLETED


class TestReconcileOrder:
    """Tests for Reconciler.reconcile_order()."""

    def test_applies_polled_signal(self, sislog_order, dispatcher):
        adapter = MagicMock()
        adapter.poll.return_value = PaymentSignal(
            provider=PaymentProvider.SISLOG,
            outcome=SignalOutcome.SUCCESS,
            external_ref=sislog_order.provider_transaction_ref,
        )

        result = Reconciler(dispatcher=dispatcher).reconcile_order(sislog_order, adapter=adapter)

        adapter.poll.assert_called_once_with(sislog_order)
        adapter.close.assert_not_called()
        assert result.status == OrderStatus.COMPLETED
        assert len(dispatcher.orders) == 1

    def test_adapter_built_for_the_query_is_closed(self, sislog_order, dispatcher, monkeypatch):
        adapter = MagicMock()
        adapter.poll.return_value = PaymentSignal(
            provider=PaymentProvider.SISLOG,
            outcome=SignalOutcome.PENDING,
            external_ref=sislog_order.provider_transaction_ref,
        )
        monkeypatch.setattr(
            "payments.services.reconciler.get_adapter", lambda provider: adapter
        )

        Reconciler(dispatcher=dispatcher).reconcile_order(sislog_order)

        adapter.close.assert_called_once()


class TestCallbackAdapterLifecycle:
    """The adapter built for one callback is closed whatever happens."""

    def test_http_client_closed_after_callback(self, pending_order, dispatcher, monkeypatch):
        built = []

        def tracking_get_adapter(provider):
            built.append(get_adapter(provider))
            return built[-1]

        monkeypatch.setattr("payments.services.reconciler.get_adapter", tracking_get_adapter)

        Reconciler(dispatcher=dispatcher).handle_callback(
            PaymentProvider.APPYPAY, appypay_success()
        )

        assert built[0].client.is_closed is True

    def test_adapter_closed_when_payload_is_malformed(self, db, dispatcher, monkeypatch):
        adapter = MagicMock()
        adapter.parse_callback.side_effect = MalformedPayloadError("bad payload")
        monkeypatch.setattr(
            "payments.services.reconciler.get_adapter", lambda provider: adapter
        )

        with pytest.raises(MalformedPayloadError):
            Reconciler(dispatcher=dispatcher).handle_callback(PaymentProvider.APPYPAY, {})

        adapter.close.assert_called_once()
