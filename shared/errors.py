"""
Shared error handling for the Warehouse Access Layer.
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
    """Base exception for Access Layer services."""

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

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "AUTHENTICATION_ERROR"):
        super().__init__(code, message, details)


class AuthorizationError(AccessLayerException):
    """Authorization-related errors."""

    status_code = 403

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "AUTHORIZATION_ERROR"):
        super().__init__(code, message, details)


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "VALIDATION_ERROR"):
        super().__init__(code, message, details)


class ExternalServiceError(AccessLayerException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None,
                 code: str = "EXTERNAL_SERVICE_ERROR"):
        self.service = service
        super().__init__(code, f"{service}: {message}", details)


class StoreUnavailable(ExternalServiceError):
    """The quota store could not be reached or did not answer in time."""

    status_code = 503

    def __init__(self, message: str = "Quota store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("quota_store", message, details, code="STORE_UNAVAILABLE")


class InvalidRoleError(ValidationError):
    """A role value outside the enumerated role set."""

    def __init__(self, role: Any, details: Optional[Dict[str, Any]] = None):
        self.role = role
        super().__init__(
            f"Invalid role: {role!r}",
            details={"role": str(role), **(details or {})},
            code="INVALID_ROLE",
        )


class UnauthorizedError(AuthorizationError):
    """A valid role lacks the permission required for an action."""

    def __init__(self, role: str, action: str, resource: str):
        self.role = role
        self.action = action
        self.resource = resource
        super().__init__(
            f"Unauthorized: {role} cannot {action} {resource}",
            details={"role": role, "action": action, "resource": resource},
            code="UNAUTHORIZED_ACTION",
        )


class SessionMissingError(AuthenticationError):
    """No authenticated session accompanies the request."""

    def __init__(self, message: str = "Authenticated session required", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="SESSION_MISSING")


class ProfileLookupError(AuthenticationError):
    """The caller's profile (and therefore role) could not be resolved."""

    def __init__(self, message: str = "Could not fetch user profile", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="PROFILE_LOOKUP_FAILED")
