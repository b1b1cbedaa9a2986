"""
Custom exceptions for the fmadmin console core.

Everything the core raises derives from FMAdminError and carries a
`details` dict for structured logging. Data access failures share the
DataAccessError base so sessions can turn them into notifications.
"""

from typing import Any, Dict, Optional


class FMAdminError(Exception):
    """Base exception for all fmadmin errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(FMAdminError):
    """Raised when there are configuration issues."""

    pass


class ValidationError(FMAdminError):
    """Data validation errors."""

    pass


class PatchError(ValidationError):
    """Raised when an edit cannot be turned into a partial update."""

    pass


class DataAccessError(FMAdminError):
    """Base class for data access errors."""

    pass


class BackendError(DataAccessError):
    """The persistence backend rejected or failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class RecordNotFoundError(DataAccessError):
    """No profile row exists for the requested id."""

    def __init__(self, entity_id: str, **kwargs):
        super().__init__(f"Profile not found: {entity_id}", **kwargs)
        self.entity_id = entity_id


class SubscriptionError(DataAccessError):
    """Change feed subscription failed or was lost."""

    pass


class CircuitBreakerError(DataAccessError):
    """Circuit breaker is open, preventing calls."""

    pass
