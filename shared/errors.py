"""
Shared error handling for the spell metadata cache.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ServiceException(Exception):
    """Base exception for services.

    ``status_code`` is the HTTP status the inbound surface answers with.
    """

    status_code: int = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
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


class ValidationError(ServiceException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(ServiceException):
    """The requested entity does not exist. A clean miss, not an alarm."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ExternalServiceError(ServiceException):
    """External service errors.

    Retryable from the caller's point of view. ``upstream_status`` keeps the
    status reported by the external service, when there was one, and becomes
    the inbound response status.
    """

    status_code = 502

    def __init__(
        self,
        service: str,
        message: str = "External service error",
        details: Optional[Dict[str, Any]] = None,
        upstream_status: Optional[int] = None,
    ):
        self.service = service
        self.upstream_status = upstream_status
        status_code = upstream_status if upstream_status and upstream_status >= 400 else None
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details, status_code)


class DataIntegrityError(ServiceException):
    """Stored data violates an invariant the write path should guarantee."""

    status_code = 500

    def __init__(self, message: str = "Data integrity error", details: Optional[Dict[str, Any]] = None):
        super().__init__("DATA_INTEGRITY_ERROR", message, details)
