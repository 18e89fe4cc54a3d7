"""
Fulfillment services.

Importing this package registers the built-in fan-out consumers.
"""

from fulfillment.services.dispatcher import (
    FANOUT_CONSUMERS,
    FanoutDispatcher,
    register_consumer,
    skipped,
)
from fulfillment.services import consumers  # noqa: F401  registers consumers
from fulfillment.services.email import EmailService
from fulfillment.services.push import PushService
from fulfillment.services.webhooks import SellerWebhookService

__all__ = [
    "FANOUT_CONSUMERS",
    "EmailService",
    "FanoutDispatcher",
    "PushService",
    "SellerWebhookService",
    "register_consumer",
    "skipped",
]
