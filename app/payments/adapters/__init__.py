"""
Payment provider adapters.

All provider payloads and provider API calls go through these adapters so
the reconciler only ever handles canonical PaymentSignals.

Usage:
    from payments.adapters import get_adapter

    adapter = get_adapter("sislog")
    signal = adapter.parse_callback(request_data)

    if adapter.supports_polling:
        signal = adapter.poll(order)
"""

from __future__ import annotations

from django.conf import settings

from core.retry import RetryPolicy
from payments.adapters.appypay import (
    AppyPayAdapter,
    AppyPayExpressPayload,
    AppyPayReferencePayload,
)
from payments.adapters.base import (
    PaymentSignal,
    ProviderAdapter,
    ProviderConfig,
    RecoveryContext,
    combine_outcome,
)
from payments.adapters.sislog import SislogAdapter, SislogCallbackPayload
from payments.adapters.stripe_adapter import (
    StripeAdapter,
    StripePaymentIntentPayload,
)
from payments.exceptions import UnknownProviderError
from payments.state_machines import PaymentProvider

ADAPTER_CLASSES: dict[str, type[ProviderAdapter]] = {
    PaymentProvider.APPYPAY: AppyPayAdapter,
    PaymentProvider.SISLOG: SislogAdapter,
    PaymentProvider.STRIPE: StripeAdapter,
}


def build_config(provider: str) -> ProviderConfig:
    """ProviderConfig for a provider, read from Django settings."""
    retry_policy = RetryPolicy(
        max_attempts=settings.PROVIDER_MAX_ATTEMPTS,
        base_delay=settings.PROVIDER_RETRY_BASE_DELAY,
        jitter=0.25,
    )
    timeout = settings.PROVIDER_TIMEOUT_SECONDS

    if provider == PaymentProvider.APPYPAY:
        return ProviderConfig(
            name=provider,
            api_url=settings.APPYPAY_API_URL,
            auth_url=settings.APPYPAY_AUTH_URL,
            client_id=settings.APPYPAY_CLIENT_ID,
            client_secret=settings.APPYPAY_CLIENT_SECRET,
            resource=settings.APPYPAY_RESOURCE,
            timeout_seconds=timeout,
            retry_policy=retry_policy,
        )
    if provider == PaymentProvider.SISLOG:
        return ProviderConfig(
            name=provider,
            api_url=settings.SISLOG_API_URL,
            username=settings.SISLOG_USERNAME,
            api_key=settings.SISLOG_API_KEY,
            status_path=settings.SISLOG_STATUS_PATH,
            timeout_seconds=timeout,
            retry_policy=retry_policy,
        )
    if provider == PaymentProvider.STRIPE:
        return ProviderConfig(
            name=provider,
            api_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            timeout_seconds=settings.STRIPE_API_TIMEOUT_SECONDS,
            retry_policy=retry_policy,
        )
    raise UnknownProviderError(
        f"No adapter for provider '{provider}'", details={"provider": provider}
    )


def get_adapter(provider: str) -> ProviderAdapter:
    """
    Adapter instance for a provider name.

    Raises:
        UnknownProviderError: No adapter registered under that name
    """
    adapter_class = ADAPTER_CLASSES.get(provider)
    if adapter_class is None:
        raise UnknownProviderError(
            f"No adapter for provider '{provider}'", details={"provider": provider}
        )
    return adapter_class(build_config(provider))


__all__ = [
    "ADAPTER_CLASSES",
    "AppyPayAdapter",
    "AppyPayExpressPayload",
    "AppyPayReferencePayload",
    "PaymentSignal",
    "ProviderAdapter",
    "ProviderConfig",
    "RecoveryContext",
    "SislogAdapter",
    "SislogCallbackPayload",
    "StripeAdapter",
    "StripePaymentIntentPayload",
    "build_config",
    "combine_outcome",
    "get_adapter",
]
