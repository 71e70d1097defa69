"""
Shared error handling for the entitlements engine.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel
from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for entitlements services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        # Get trace ID from current span
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthenticationError(AccessLayerException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class AuthorizationError(AccessLayerException):
    """Caller lacks the role required for the operation (Forbidden)."""

    status_code = 403

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class NotFoundError(AccessLayerException):
    """Unknown feature, feature version or user."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ConflictError(AccessLayerException):
    """Write conflict reported by the storage collaborator."""

    status_code = 409

    def __init__(self, message: str = "Conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT", message, details)


class StorageUnavailableError(AccessLayerException):
    """Storage collaborator failure."""

    status_code = 503

    def __init__(self, message: str = "Storage unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORAGE_UNAVAILABLE", message, details)


class CatalogError(AccessLayerException):
    """Invalid feature catalog; raised at startup."""

    status_code = 500

    def __init__(self, message: str = "Invalid feature catalog", details: Optional[Dict[str, Any]] = None):
        super().__init__("CATALOG_ERROR", message, details)


class RateLimitError(AccessLayerException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)
