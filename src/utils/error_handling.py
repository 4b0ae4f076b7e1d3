"""Custom exceptions and helpers for consistent error responses.

Pipeline stages raise the narrow errors below internally and degrade on them;
only ConfigurationError is allowed to escape to the caller.
"""

import json
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for application errors."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(AppError):
    """Raised when a requested resource is missing."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class ValidationError(AppError):
    """Raised when input validation fails."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, status_code=422)


class InputError(AppError):
    """Malformed or empty ticket text. Stages degrade instead of failing."""

    def __init__(self, message: str = "Ticket text is empty"):
        super().__init__(message, status_code=422)


class ProviderError(AppError):
    """The generative text provider failed."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message, status_code=502)
        self.provider = provider


class RateLimitExceeded(ProviderError):
    """The rolling per-minute request budget for the provider is spent."""


class ProviderTimeout(ProviderError):
    """The provider call exceeded its time bound."""


class IndexUnavailable(AppError):
    """The lexical index has not been built yet."""

    def __init__(self, message: str = "Knowledge index not built"):
        super().__init__(message, status_code=503)


class ConfigurationError(AppError):
    """A required setting is missing or invalid. Always surfaces to the caller."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)


def to_response(error: AppError, correlation_id: Optional[str] = None) -> Dict[str, Any]:
    """Convert an AppError into a Lambda proxy integration response."""
    body: Dict[str, Any] = {"message": str(error), "status": "error"}
    if correlation_id:
        body["correlation_id"] = correlation_id
    return {
        "statusCode": error.status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }
