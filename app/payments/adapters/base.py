"""
Provider adapter contract and the canonical payment signal.

Every gateway speaks its own payload dialect. An adapter turns one callback
body (or one status query) into a PaymentSignal; nothing downstream of the
adapter ever sees provider field names.

Data Types:
    RecoveryContext: Enough about the purchase to create a missing order
    PaymentSignal: Canonical "this payment now looks like X" assertion
    ProviderConfig: Explicit credentials/URLs/timeouts for one adapter

Adapters:
    ProviderAdapter: Abstract base with HTTP error translation, bounded
        retry for status queries and a per-provider access token cache
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

import httpx
from django.core.cache import cache

from core.http import HttpClientOwner
from core.retry import RetryPolicy, call_with_retry
from payments.exceptions import (
    MalformedPayloadError,
    ProviderRequestError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from payments.state_machines import SignalOutcome

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from payments.models import Order


# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class RecoveryContext:
    """
    Purchase details carried by a signal so a missing order can be rebuilt.

    Stripe copies checkout data into PaymentIntent metadata; when the order
    row was never written (checkout crashed after charging) the ledger
    synthesizes it from here.
    """

    product_id: str | None = None
    customer_email: str = ""
    customer_name: str = ""
    customer_phone: str = ""
    amount: Decimal | None = None
    currency: str = ""
    payment_method: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.product_id and self.customer_email and self.amount is not None)


@dataclass(frozen=True)
class PaymentSignal:
    """
    Canonical payment status assertion produced by an adapter.

    Attributes:
        provider: Provider name (PaymentProvider value)
        outcome: success, failure or pending (SignalOutcome value)
        order_ref: Merchant order id when the payload carries it
        external_ref: Gateway transaction id when the payload carries it
        amount: Amount reported by the provider, if any
        currency: Currency reported by the provider, if any
        raw_status: Provider status string, kept for logs and metadata
        failure_reason: Provider error message for failed payments
        recovery: Purchase details for order synthesis, if any
        raw: The parsed payload, for audit
    """

    provider: str
    outcome: str
    order_ref: str | None = None
    external_ref: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    raw_status: str = ""
    failure_reason: str = ""
    recovery: RecoveryContext | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not self.order_ref and not self.external_ref:
            raise MalformedPayloadError(
                "Signal carries neither a merchant nor a gateway order reference",
                details={"provider": self.provider},
            )
        if self.outcome not in SignalOutcome.values:
            raise MalformedPayloadError(
                f"Unknown signal outcome: {self.outcome}",
                details={"provider": self.provider},
            )

    @property
    def order_key(self) -> str:
        """Best reference for logs: gateway id first, merchant id otherwise."""
        return self.external_ref or self.order_ref or ""

    @property
    def can_synthesize(self) -> bool:
        return (
            self.recovery is not None
            and self.recovery.is_complete
            and self.outcome != SignalOutcome.PENDING
        )


@dataclass(frozen=True)
class ProviderConfig:
    """
    Explicit configuration for one provider adapter.

    Built from Django settings by payments.adapters.get_adapter(); tests build
    it directly. Adapters never read settings themselves.
    """

    name: str
    api_url: str = ""
    auth_url: str = ""
    client_id: str = ""
    client_secret: str = ""
    resource: str = ""
    username: str = ""
    api_key: str = ""
    webhook_secret: str = ""
    status_path: str = ""
    timeout_seconds: float = 10.0
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)


# =============================================================================
# Parsing Helpers
# =============================================================================


def parse_amount(value: Any) -> Decimal | None:
    """Decimal from a JSON number or numeric string; None when absent or junk."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def parse_bool(value: Any) -> bool | None:
    """Provider booleans arrive as true/false, "true"/"false" or 1/0."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in {"true", "1", "yes"}:
        return True
    if text in {"false", "0", "no"}:
        return False
    return None


def combine_outcome(
    successful: bool | None,
    status: str | None,
    success_statuses: Iterable[str],
    failure_statuses: Iterable[str],
) -> str:
    """
    Resolve a provider's flag and status string into one outcome.

    When the payload carries both a boolean flag and a status string they
    must agree: success only if both say success, failure only if both say
    failure. Any disagreement or unknown status is pending, so an ambiguous
    callback never settles an order. A payload carrying only one indicator
    is taken at its word.
    """
    normalized = (status or "").strip().lower()
    status_outcome = None
    if normalized in {s.lower() for s in success_statuses}:
        status_outcome = SignalOutcome.SUCCESS
    elif normalized in {s.lower() for s in failure_statuses}:
        status_outcome = SignalOutcome.FAILURE

    flag_outcome = None
    if successful is True:
        flag_outcome = SignalOutcome.SUCCESS
    elif successful is False:
        flag_outcome = SignalOutcome.FAILURE

    if flag_outcome is not None and normalized:
        if flag_outcome == status_outcome:
            return flag_outcome
        return SignalOutcome.PENDING

    return status_outcome or flag_outcome or SignalOutcome.PENDING


# =============================================================================
# Adapter Base
# =============================================================================


class ProviderAdapter(HttpClientOwner, ABC):
    """
    Base class for payment provider adapters.

    Subclasses implement parse_callback(); poll-capable providers also
    implement fetch_signal() and set supports_polling. Callers close the
    adapter when done so an httpx client it created is released.

    Attributes:
        config: Explicit provider configuration
        client: httpx client (injected in tests with a MockTransport)
        sleep: Sleep function used between retries (injected in tests)
    """

    name: str = ""
    supports_polling: bool = False

    def __init__(
        self,
        config: ProviderConfig,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.set_client(client, timeout=config.timeout_seconds)
        self.sleep = sleep

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Contract
    # =========================================================================

    @abstractmethod
    def parse_callback(
        self,
        payload: Mapping[str, Any],
        *,
        raw_body: bytes = b"",
        headers: Mapping[str, str] | None = None,
    ) -> PaymentSignal:
        """
        Turn a callback body into a canonical signal.

        Raises:
            MalformedPayloadError: Payload cannot identify an order or outcome
        """

    def fetch_signal(self, order: Order) -> PaymentSignal:
        """Query the provider for the current status of an order (one attempt)."""
        raise NotImplementedError(f"{self.name} does not support status queries")

    def poll(self, order: Order) -> PaymentSignal:
        """
        fetch_signal() wrapped in the configured bounded retry.

        Raises:
            RetryExhaustedError: Every attempt failed transiently
            ProviderRequestError: Provider rejected the query
        """
        return call_with_retry(
            lambda: self.fetch_signal(order),
            self.config.retry_policy,
            sleep=self.sleep,
        )

    # =========================================================================
    # HTTP
    # =========================================================================

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send one HTTP request and translate failures into provider errors.

        Raises:
            ProviderTimeoutError: No answer within the configured timeout
            ProviderUnavailableError: Transport failure, 429 or 5xx
            ProviderRequestError: Any other 4xx
        """
        logger = self.get_logger()
        log_context = {"provider": self.name, "method": method, "url": url}
        start_time = time.time()

        try:
            response = self.client.request(
                method, url, timeout=self.config.timeout_seconds, **kwargs
            )
        except httpx.TimeoutException as e:
            logger.warning("Provider request timed out", extra=log_context)
            raise ProviderTimeoutError(
                f"{self.name} did not answer in {self.config.timeout_seconds}s",
                provider=self.name,
            ) from e
        except httpx.TransportError as e:
            logger.warning(
                f"Provider transport error: {e}", extra=log_context, exc_info=True
            )
            raise ProviderUnavailableError(
                f"Could not reach {self.name}: {e}", provider=self.name
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "Provider request completed",
            extra={
                **log_context,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        if response.status_code == 429 or response.status_code >= 500:
            raise ProviderUnavailableError(
                f"{self.name} answered {response.status_code}",
                provider=self.name,
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )
        if response.status_code >= 400:
            raise ProviderRequestError(
                f"{self.name} rejected the request ({response.status_code})",
                provider=self.name,
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )
        return response

    @staticmethod
    def _json(response: httpx.Response, provider: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderUnavailableError(
                f"{provider} returned a non-JSON body",
                provider=provider,
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise ProviderUnavailableError(
                f"{provider} returned an unexpected body", provider=provider
            )
        return data

    # =========================================================================
    # Access Token Cache
    # =========================================================================

    @property
    def token_cache_key(self) -> str:
        return f"payments:provider_token:{self.name}"

    def get_access_token(self) -> str:
        """Cached access token, fetched through refresh_token() on a miss."""
        token = cache.get(self.token_cache_key)
        if token:
            return token
        return self.refresh_token()

    def refresh_token(self) -> str:
        """
        Fetch a new access token and cache it until shortly before it expires.

        Subclasses that authenticate implement _fetch_token() returning
        (token, expires_in_seconds).
        """
        token, expires_in = self._fetch_token()
        cache.set(self.token_cache_key, token, timeout=max(expires_in - 60, 30))
        self.get_logger().info(
            "Provider access token refreshed",
            extra={"provider": self.name, "expires_in": expires_in},
        )
        return token

    def _fetch_token(self) -> tuple[str, int]:
        raise NotImplementedError(f"{self.name} does not use access tokens")
