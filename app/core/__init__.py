"""
Core Application - Infrastructure & Base Classes

Shared building blocks used by the payments, fulfillment and conversions apps.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - MetadataMixin: Flexible JSON metadata storage

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Retry (import from core.retry):
    - RetryPolicy, call_with_retry, RetryExhaustedError

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ConflictError, ExternalServiceError

Helpers (import from core.helpers):
    - hash_string, normalize_email, digits_only, get_client_ip

Note:
    Django models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
)
from .helpers import digits_only, get_client_ip, hash_string, normalize_email
from .retry import RetryExhaustedError, RetryPolicy, call_with_retry
from .services import BaseService, ServiceResult

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Retry
    "RetryPolicy",
    "RetryExhaustedError",
    "call_with_retry",
    # Exceptions
    "BaseApplicationError",
    "ConflictError",
    "ExternalServiceError",
    # Helpers
    "hash_string",
    "normalize_email",
    "digits_only",
    "get_client_ip",
]
