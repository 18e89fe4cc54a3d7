"""
Conversion delivery exceptions.

Usage:
    from conversions.exceptions import DestinationError

    if response.status_code >= 500:
        raise DestinationError(
            "Facebook answered 503",
            status_code=503,
            body=response.text,
            is_retryable=True,
        )
"""

from __future__ import annotations

from core.exceptions import ExternalServiceError


class DestinationError(ExternalServiceError):
    """
    Raised when an ad platform rejects or fails a conversion request.

    Attributes:
        status_code: HTTP status, 0 when no response was received
        body: Response body (truncated)
        is_retryable: True for timeouts, transport errors and 5xx
    """

    default_error_code = "DESTINATION_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        body: str = "",
        is_retryable: bool = False,
    ):
        self.status_code = status_code
        self.body = body
        self.is_retryable = is_retryable
        super().__init__(
            message,
            details={"status_code": status_code, "retryable": is_retryable},
        )
