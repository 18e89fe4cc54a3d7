"""
Pending-order poller.

Provider callbacks get lost. Every few minutes Celery beat runs the poller,
which asks each poll-capable provider about orders still pending inside the
polling window and feeds the answers through the reconciler.

Usage:
    from payments.services import PendingOrderPoller

    summary = PendingOrderPoller().poll_once()
    summary.to_dict()
    # {"checked": 12, "completed": 3, "failed": 1, "still_pending": 8, "errors": 0}
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.exceptions import BaseApplicationError
from core.services import BaseService
from payments.adapters import ADAPTER_CLASSES, get_adapter
from payments.models import Order
from payments.services.reconciler import Reconciler
from payments.state_machines import OrderStatus

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from payments.adapters import ProviderAdapter


@dataclass
class PollSummary:
    checked: int = 0
    completed: int = 0
    failed: int = 0
    still_pending: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class PendingOrderPoller(BaseService):
    """
    Polls providers for pending orders.

    One order failing (provider down, retries exhausted, ledger error) is
    counted and logged; the run moves on to the next order.

    Attributes:
        reconciler: Applies the polled signals
        adapters: Adapter per provider, built lazily; tests inject their own.
            Adapters built here are closed at the end of each pass.
    """

    def __init__(
        self,
        reconciler: Reconciler | None = None,
        adapters: dict[str, ProviderAdapter] | None = None,
    ):
        self.reconciler = reconciler or Reconciler()
        self.adapters = dict(adapters or {})
        self.built: list[str] = []

    @staticmethod
    def polling_providers() -> list[str]:
        return [name for name, cls in ADAPTER_CLASSES.items() if cls.supports_polling]

    def pending_orders(self, window: timedelta) -> QuerySet[Order]:
        """Pending orders of poll-capable providers created inside the window."""
        cutoff = timezone.now() - window
        return (
            Order.objects.filter(
                status=OrderStatus.PENDING,
                provider__in=self.polling_providers(),
                created_at__gte=cutoff,
                provider_transaction_ref__isnull=False,
            )
            .exclude(provider_transaction_ref="")
            .select_related("product")
            .order_by("created_at")
        )

    def adapter_for(self, provider: str) -> ProviderAdapter:
        if provider not in self.adapters:
            self.adapters[provider] = get_adapter(provider)
            self.built.append(provider)
        return self.adapters[provider]

    def close_adapters(self) -> None:
        while self.built:
            self.adapters.pop(self.built.pop()).close()

    def poll_once(self, window_hours: float | None = None) -> PollSummary:
        """
        Run one polling pass.

        Args:
            window_hours: Only orders created this many hours ago or later
                are polled (PENDING_ORDER_POLL_WINDOW_HOURS by default)

        Returns:
            PollSummary with per-outcome counts
        """
        logger = self.get_logger()
        if window_hours is None:
            window_hours = settings.PENDING_ORDER_POLL_WINDOW_HOURS

        summary = PollSummary()
        # Materialized up front; reconcile() updates these rows as it goes
        orders = list(self.pending_orders(timedelta(hours=window_hours)))

        try:
            for order in orders:
                self._poll_order(order, summary)
        finally:
            self.close_adapters()

        logger.info(
            f"Polled {summary.checked} pending orders",
            extra=summary.to_dict(),
        )
        return summary

    def _poll_order(self, order: Order, summary: PollSummary) -> None:
        summary.checked += 1
        try:
            result = self.reconciler.reconcile_order(
                order, adapter=self.adapter_for(order.provider)
            )
        except BaseApplicationError as e:
            summary.errors += 1
            self.get_logger().warning(
                f"Polling order {order.order_id} failed: {e}",
                extra={"order_id": order.order_id, "provider": order.provider},
            )
            return

        if result.status == OrderStatus.COMPLETED:
            summary.completed += 1
        elif result.status == OrderStatus.FAILED:
            summary.failed += 1
        else:
            summary.still_pending += 1
