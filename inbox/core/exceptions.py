"""
Custom exceptions for the unified inbox.
"""
from typing import Optional


class InboxException(Exception):
    """Base exception for every domain error."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class DatabaseError(InboxException):
    """Supabase query or upsert failed."""
    pass


class ExternalAPIError(InboxException):
    """Platform API error (Graph API, Gmail, n8n)."""

    def __init__(
        self,
        message: str,
        service: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ):
        self.service = service
        self.status_code = status_code
        super().__init__(message, details, original_error)


class ValidationError(InboxException):
    """Invalid input data."""
    pass


class AuthenticationError(InboxException):
    """Token missing, invalid or expired."""
    pass


class PermissionDeniedError(InboxException):
    """The platform refused the call for lack of permission or capability."""
    pass


class NotFoundError(InboxException):
    """Resource not found."""

    def __init__(
        self,
        resource: str,
        identifier: Optional[str] = None
    ):
        message = f"{resource} not found"
        details = {}
        if identifier:
            details["id"] = identifier
        super().__init__(message, details)


class ConfigurationError(InboxException):
    """Required configuration is missing."""
    pass


class MalformedMessageError(ValidationError):
    """Platform message is missing a field the normalizer relies on."""

    def __init__(self, platform: str, field: str, message_id: Optional[str] = None):
        details = {"platform": platform, "field": field}
        if message_id:
            details["message_id"] = message_id
        super().__init__(f"Malformed {platform} message: missing {field}", details)
