"""
State and choice enums for settlement models.

These are Django TextChoices for database storage and admin integration.

Order States:
    pending → completed
    pending → failed

    completed and failed are terminal: a later signal for the same order is
    logged and discarded.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    """
    States for the Order model lifecycle.

    Terminal states: COMPLETED, FAILED
    """

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"

    @classmethod
    def terminal(cls) -> frozenset[str]:
        return frozenset({cls.COMPLETED, cls.FAILED})


class SignalOutcome(models.TextChoices):
    """Payment outcome a provider signal asserts."""

    SUCCESS = "success", "Success"
    FAILURE = "failure", "Failure"
    PENDING = "pending", "Pending"


class PaymentProvider(models.TextChoices):
    """Payment gateways with an adapter."""

    APPYPAY = "appypay", "AppyPay"
    SISLOG = "sislog", "SISLOG"
    STRIPE = "stripe", "Stripe"


class PaymentMethod(models.TextChoices):
    """
    Customer-facing payment method chosen at checkout.

    AppyPay: express (mobile wallet push), reference (ATM/bank reference)
    SISLOG: mpesa, emola
    Stripe: card, multibanco
    """

    EXPRESS = "express", "Multicaixa Express"
    REFERENCE = "reference", "Payment Reference"
    MPESA = "mpesa", "M-Pesa"
    EMOLA = "emola", "e-Mola"
    CARD = "card", "Card"
    MULTIBANCO = "multibanco", "Multibanco"


class AccessDurationType(models.TextChoices):
    """How long a purchase grants access to the product."""

    LIFETIME = "lifetime", "Lifetime"
    DAYS = "days", "Days"
    MONTHS = "months", "Months"
    YEARS = "years", "Years"
