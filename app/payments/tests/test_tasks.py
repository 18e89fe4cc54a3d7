"""
Tests for the reconcile_order task.
"""

import uuid
from unittest.mock import MagicMock

import pytest

from core.retry import RetryExhaustedError
from payments.adapters import PaymentSignal
from payments.exceptions import ProviderUnavailableError
from payments.models import Order
from payments.state_machines import OrderStatus, SignalOutcome
from payments.tasks import reconcile_order

pytestmark = pytest.mark.django_db


@pytest.fixture
def adapter(monkeypatch):
    adapter = MagicMock()
    monkeypatch.setattr(
        "payments.services.reconciler.get_adapter", lambda provider: adapter
    )
    return adapter


class TestReconcileOrderTask:
    def test_unknown_order(self, db):
        order_pk = uuid.uuid4()

        result = reconcile_order(str(order_pk))

        assert result == {"status": "not_found", "order_pk": str(order_pk)}

    def test_paid_order_is_completed(self, pending_order, adapter, monkeypatch):
        monkeypatch.setattr(
            "fulfillment.services.FanoutDispatcher.dispatch", lambda self, order: []
        )
        adapter.poll.return_value = PaymentSignal(
            provider=pending_order.provider,
            outcome=SignalOutcome.SUCCESS,
            external_ref=pending_order.provider_transaction_ref,
        )

        result = reconcile_order(str(pending_order.pk))

        assert result == {
            "order_id": "ORD-APPY-1",
            "status": OrderStatus.COMPLETED,
            "outcome": SignalOutcome.SUCCESS,
            "transitioned": True,
        }
        assert Order.objects.get(pk=pending_order.pk).status == OrderStatus.COMPLETED

    def test_provider_error_is_reported(self, pending_order, adapter):
        adapter.poll.side_effect = RetryExhaustedError(3, ProviderUnavailableError("down"))

        result = reconcile_order(str(pending_order.pk))

        assert result["status"] == "error"
        assert result["order_id"] == "ORD-APPY-1"
        assert result["error_code"] == "RETRY_EXHAUSTED"
        assert Order.objects.get(pk=pending_order.pk).status == OrderStatus.PENDING
