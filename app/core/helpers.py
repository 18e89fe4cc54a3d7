"""
Helper functions for common infrastructure operations.

- String hashing
- Identity normalization (email, phone) before comparison or hashing
- HTTP request helpers (client IP extraction)

Usage:
    from core.helpers import hash_string, normalize_email, get_client_ip

    hashed = hash_string(normalize_email(" Ana@Example.COM "))
    ip = get_client_ip(request)
"""

from __future__ import annotations

import hashlib
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from django.http import HttpRequest

_NON_DIGITS = re.compile(r"\D")


def hash_string(value: str, algorithm: str = "sha256") -> str:
    """
    Hash a string using the specified algorithm.

    Args:
        value: String to hash
        algorithm: Hash algorithm (sha256, sha512, md5, etc.)

    Returns:
        Hexadecimal hash string
    """
    hasher = hashlib.new(algorithm)
    hasher.update(value.encode("utf-8"))
    return hasher.hexdigest()


def normalize_email(value: str | None) -> str:
    """Lowercase and trim an email; None becomes an empty string."""
    return (value or "").strip().lower()


def digits_only(value: str | None) -> str:
    """Strip everything but digits, e.g. '+244 923-000-111' -> '244923000111'."""
    return _NON_DIGITS.sub("", value or "")


def get_client_ip(request: HttpRequest) -> str:
    """
    Extract client IP from request, handling proxies.

    Checks X-Forwarded-For header for proxy chains.
    """
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        # Take the first IP in the chain (original client)
        ip = x_forwarded_for.split(",")[0].strip()
    else:
        ip = request.META.get("REMOTE_ADDR", "")
    return ip
