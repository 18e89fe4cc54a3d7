"""
Fan-out consumers run for every completed order.

Registration order is execution order:
    access_grant, seller_balance_credit, customer_confirmation_email,
    seller_sale_email, seller_push, seller_webhooks, conversion_events

Every consumer is best-effort and independent of the others.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.utils import timezone

from conversions.models import ConversionStatus
from conversions.services import ConversionService, has_destinations
from core.helpers import normalize_email
from core.services import ServiceResult
from fulfillment.exceptions import DeliveryError
from fulfillment.models import (
    BalanceTransactionType,
    CustomerAccess,
    SellerBalanceTransaction,
)
from fulfillment.services.dispatcher import register_consumer, skipped
from fulfillment.services.email import EmailService
from fulfillment.services.push import PushService
from fulfillment.services.webhooks import SellerWebhookService
from payments.services import seller_commission

if TYPE_CHECKING:
    from payments.models import Order

logger = logging.getLogger(__name__)


def _email_context(order: Order) -> dict:
    product = order.product
    return {
        "order": order,
        "product": product,
        "customer_name": order.customer_name or order.customer_email,
        "seller_name": product.seller_name or product.seller_email,
        "amount": order.amount,
        "currency": order.currency,
        "commission": order.seller_commission or seller_commission(order.amount),
    }


# =============================================================================
# Access & Balance
# =============================================================================


@register_consumer("access_grant")
def grant_access(order: Order) -> ServiceResult:
    """Upsert the buyer's access to the product; a repeat purchase renews it."""
    product = order.product
    now = timezone.now()

    access, created = CustomerAccess.objects.update_or_create(
        customer_email=normalize_email(order.customer_email),
        product=product,
        defaults={
            "customer_name": order.customer_name,
            "order": order,
            "is_active": True,
            "granted_at": now,
            "expires_at": product.access_expires_at(now),
        },
    )
    return ServiceResult.success("granted" if created else "renewed")


@register_consumer("seller_balance_credit")
def credit_seller_balance(order: Order) -> ServiceResult:
    """Credit the seller's commission once per order."""
    product = order.product
    amount = order.seller_commission or seller_commission(order.amount)

    _, created = SellerBalanceTransaction.objects.get_or_create(
        order=order,
        transaction_type=BalanceTransactionType.SALE_REVENUE,
        defaults={
            "seller_id": product.seller_id,
            "seller_email": product.seller_email,
            "amount": amount,
            "currency": order.currency,
            "description": f"Sale of {product.name} ({order.order_id})",
        },
    )
    if not created:
        return skipped("Balance already credited")
    return ServiceResult.success(f"credited {amount} {order.currency}")


# =============================================================================
# Email
# =============================================================================


@register_consumer("customer_confirmation_email")
def send_customer_confirmation(order: Order) -> ServiceResult:
    sent = EmailService.send(
        to=order.customer_email,
        subject=f"Your purchase of {order.product.name} is confirmed",
        template_name="fulfillment/emails/purchase_confirmation",
        context=_email_context(order),
        reply_to=order.product.seller_email,
    )
    if not sent:
        return ServiceResult.failure("Confirmation email not sent", "EMAIL_FAILED")
    return ServiceResult.success("sent")


@register_consumer("seller_sale_email")
def send_seller_sale_notice(order: Order) -> ServiceResult:
    product = order.product
    if not product.seller_email:
        return skipped("Seller has no email")

    sent = EmailService.send(
        to=product.seller_email,
        subject=f"New sale: {product.name}",
        template_name="fulfillment/emails/seller_sale",
        context=_email_context(order),
    )
    if not sent:
        return ServiceResult.failure("Sale notice not sent", "EMAIL_FAILED")
    return ServiceResult.success("sent")


# =============================================================================
# Push
# =============================================================================


@register_consumer("seller_push")
def send_seller_push(order: Order) -> ServiceResult:
    with PushService.from_settings() as push:
        if not push.is_configured:
            return skipped("OneSignal is not configured")

        product = order.product
        commission = order.seller_commission or seller_commission(order.amount)
        try:
            notification_id = push.send_to_external_id(
                product.seller_email,
                heading="New sale!",
                content=f"{product.name}: you earned {commission} {order.currency}",
                data={"order_id": order.order_id, "product_id": str(product.pk)},
            )
        except DeliveryError as e:
            return ServiceResult.failure(str(e), e.code)
    return ServiceResult.success(notification_id or "sent")


# =============================================================================
# Seller Webhooks
# =============================================================================


@register_consumer("seller_webhooks")
def send_seller_webhooks(order: Order) -> ServiceResult:
    with SellerWebhookService() as service:
        deliveries = service.deliver_order(order)
    if not deliveries:
        return skipped("No webhook subscriptions")

    delivered = sum(1 for d in deliveries if d.success)
    summary = f"{delivered}/{len(deliveries)} delivered"
    if delivered < len(deliveries):
        return ServiceResult.failure(summary, "WEBHOOK_FAILED")
    return ServiceResult.success(summary)


# =============================================================================
# Conversions
# =============================================================================


@register_consumer("conversion_events")
def submit_purchase_conversion(order: Order) -> ServiceResult:
    product = order.product
    if not has_destinations(product.seller_id, product.pk):
        return skipped("Seller has no conversion destinations")

    first_name, _, last_name = (order.customer_name or "").strip().partition(" ")
    result = ConversionService.submit(
        {
            "event_id": f"purchase_{order.order_id}",
            "event_name": "Purchase",
            "seller_id": str(product.seller_id),
            "product_id": str(product.pk),
            "value": str(order.amount),
            "currency": order.currency,
            "email": order.customer_email,
            "phone": order.customer_phone,
            "first_name": first_name,
            "last_name": last_name,
            "external_id": order.order_id,
            "event_time": int((order.completed_at or timezone.now()).timestamp()),
        }
    )
    if not result.success:
        return result

    event = result.data.event
    if event.status == ConversionStatus.FAILED:
        return ServiceResult.failure(
            f"Conversion {event.event_id} failed for every destination",
            "CONVERSION_FAILED",
        )
    return ServiceResult.success(event.status)
