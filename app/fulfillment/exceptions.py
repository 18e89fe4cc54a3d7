"""
Fulfillment channel exceptions.

Usage:
    from fulfillment.exceptions import DeliveryError

    if response.status_code == 401:
        raise DeliveryError("OneSignal rejected the API key", "invalid_credentials", is_permanent=True)
"""

from __future__ import annotations

# Error classification for delivery failures
PERMANENT_ERRORS = {
    "invalid_credentials",
    "invalid_recipient",
    "invalid_email",
    "template_missing",
}
TRANSIENT_ERRORS = {
    "rate_limited",
    "timeout",
    "provider_unavailable",
    "connection_error",
}


class DeliveryError(Exception):
    """Base exception for delivery failures."""

    def __init__(self, message: str, code: str, is_permanent: bool = False):
        super().__init__(message)
        self.code = code
        self.is_permanent = is_permanent or code in PERMANENT_ERRORS
