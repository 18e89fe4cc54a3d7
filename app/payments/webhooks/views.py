"""
Provider callback endpoint.

One URL per provider receives the gateway's notification, hands it to the
reconciler and answers in the gateway's terms:

    200: Applied, already applied, or acknowledged as pending
    400: Malformed payload or failed signature check (no mutation)
    404: Unknown provider, or no matching order and nothing to rebuild it from
    503: Ledger write failed; the provider should redeliver

Usage:
    # In urls.py
    from payments.webhooks.views import provider_callback

    urlpatterns = [
        path("callbacks/<str:provider>/", provider_callback, name="provider_callback"),
    ]
"""

from __future__ import annotations

import json
import logging
from typing import Any

from django.http import HttpRequest, HttpResponse, HttpResponseNotAllowed, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from core.helpers import get_client_ip
from payments.exceptions import MalformedPayloadError, PaymentError
from payments.services import Reconciler
from payments.state_machines import PaymentProvider

logger = logging.getLogger(__name__)

# SISLOG delivers its webhook shape as a GET query string
GET_CALLBACK_PROVIDERS = (PaymentProvider.SISLOG,)


def parse_request_payload(request: HttpRequest) -> dict[str, Any]:
    """
    Callback body as a dict: query string, JSON or form-encoded.

    Raises:
        MalformedPayloadError: Body is not valid JSON or not an object
    """
    if request.method == "GET":
        return request.GET.dict()

    content_type = request.content_type or ""
    if content_type in ("application/x-www-form-urlencoded", "multipart/form-data"):
        return request.POST.dict()

    if not request.body:
        return {}

    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedPayloadError(
            "Callback body is not valid JSON", details={"error": str(e)}
        ) from e

    if not isinstance(data, dict):
        raise MalformedPayloadError("Callback body must be a JSON object")
    return data


@csrf_exempt
def provider_callback(request: HttpRequest, provider: str) -> HttpResponse:
    """
    Receive a payment notification from a provider.

    The reconciler is idempotent per order: a duplicate delivery finds the
    order already settled and returns 200 without fan-out.
    """
    allowed = ["POST", "GET"] if provider in GET_CALLBACK_PROVIDERS else ["POST"]
    if request.method not in allowed:
        return HttpResponseNotAllowed(allowed)

    log_context = {
        "provider": provider,
        "method": request.method,
        "client_ip": get_client_ip(request),
    }
    logger.info(f"Received {provider} callback", extra=log_context)

    # Stripe verifies signatures over the exact bytes; read them before parsing
    raw_body = request.body if request.method == "POST" else b""

    try:
        payload = parse_request_payload(request)
        result = Reconciler().handle_callback(
            provider,
            payload,
            raw_body=raw_body,
            headers=request.headers,
        )
    except PaymentError as e:
        level = logging.ERROR if e.http_status >= 500 else logging.WARNING
        logger.log(
            level,
            f"{provider} callback rejected: {e}",
            extra={**log_context, "error_code": e.error_code},
        )
        return JsonResponse(e.to_dict(), status=e.http_status)

    return JsonResponse({"received": True, **result.to_dict()}, status=200)
