"""
Payment-specific exceptions for settlement operations.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── MalformedPayloadError - Callback body cannot be turned into a signal (400)
    ├── OrderNotFoundError - No order matches and none can be synthesized (404)
    ├── LedgerPersistenceError - Database failure during lookup/transition (503, retry)
    ├── UnknownProviderError - Callback for a provider we have no adapter for (404)
    └── ProviderError - Base for provider API errors (status queries, tokens)
        ├── ProviderRequestError - Provider rejected the request (permanent)
        ├── ProviderUnavailableError - Provider 5xx or transport failure (transient)
        └── ProviderTimeoutError - Provider did not answer in time (transient)

    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Usage:
    from payments.exceptions import MalformedPayloadError, LedgerPersistenceError

    if not transaction_id:
        raise MalformedPayloadError(
            "Callback is missing transactionId",
            details={"provider": "sislog"},
        )

    try:
        with transaction.atomic():
            ...
    except DatabaseError as e:
        raise LedgerPersistenceError(str(e)) from e
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all settlement operations.

    Every subclass carries the HTTP status the callback endpoint answers with,
    so the view maps exceptions to responses without a lookup table.
    """

    default_error_code: str = "PAYMENT_ERROR"
    http_status: int = 400
    is_retryable: bool = False


class MalformedPayloadError(PaymentError):
    """
    Raised when a provider callback cannot be parsed.

    Use for:
    - Missing both merchant and gateway order references
    - Body that is not valid JSON / form data
    - Failed Stripe signature verification

    No ledger mutation happens when this is raised.
    """

    default_error_code: str = "MALFORMED_PAYLOAD"
    http_status: int = 400


class OrderNotFoundError(PaymentError):
    """
    Raised when a signal resolves to no order and carries no recovery context.

    Example:
        raise OrderNotFoundError(
            f"No order for reference {signal.order_key}",
            details={"provider": signal.provider, "external_ref": signal.external_ref},
        )
    """

    default_error_code: str = "ORDER_NOT_FOUND"
    http_status: int = 404


class UnknownProviderError(PaymentError):
    """Raised for a callback or poll naming a provider without an adapter."""

    default_error_code: str = "UNKNOWN_PROVIDER"
    http_status: int = 404


class LedgerPersistenceError(PaymentError):
    """
    Raised when the database fails during order lookup or transition.

    The provider is answered with 503 so it redelivers; the status guard on
    the order makes the redelivery safe.
    """

    default_error_code: str = "LEDGER_PERSISTENCE_ERROR"
    http_status: int = 503
    is_retryable: bool = True


# =============================================================================
# Provider API Exceptions
# =============================================================================


class ProviderError(ExternalServiceError):
    """
    Base exception for payment provider API failures.

    Attributes:
        provider: Provider name (appypay, sislog, stripe)
        status_code: HTTP status returned by the provider, if any
        is_retryable: Whether core.retry should try again
    """

    default_error_code: str = "PROVIDER_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        provider: str = "",
        status_code: int | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider:
            details["provider"] = provider
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, error_code=error_code, details=details)
        self.provider = provider
        self.status_code = status_code


class ProviderRequestError(ProviderError):
    """
    Provider rejected the request (4xx, bad credentials, unknown charge).

    Permanent: retrying the same request will not succeed.
    """

    default_error_code: str = "PROVIDER_REQUEST_REJECTED"
    is_retryable: bool = False


class ProviderUnavailableError(ProviderError):
    """Provider answered 5xx or the connection failed."""

    default_error_code: str = "PROVIDER_UNAVAILABLE"
    is_retryable: bool = True


class ProviderTimeoutError(ProviderError):
    """
    Provider did not answer within PROVIDER_TIMEOUT_SECONDS.

    Status queries are read-only, so retrying is always safe.
    """

    default_error_code: str = "PROVIDER_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# State Machine Exceptions
# =============================================================================


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a django-fsm transition is attempted from a disallowed state.

    The reconciler never lets this escape for terminal orders (a signal for a
    settled order is a no-op); it signals a programming error elsewhere.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"
