"""
Shared error handling for the products platform.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.logging import get_request_id
from shared.responses import utc_timestamp


class ErrorResponse(BaseModel):
    """Standard error response format."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    error: str
    code: str
    hint: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    debug: Optional[Dict[str, Any]] = None
    timestamp: str = Field(default_factory=utc_timestamp)
    request_id: Optional[str] = Field(default_factory=get_request_id, alias="requestId")


class AccessLayerException(Exception):
    """Base exception for platform services."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        status_code: Optional[int] = None,
        hint: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.hint = hint
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def debug_info(self) -> Optional[Dict[str, Any]]:
        """Extra diagnostics, only rendered where a service allows it."""
        return None

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=self.message,
            code=self.code,
            hint=self.hint,
            details=self.details or None,
            debug=self.debug_info(),
        )


class AuthenticationError(AccessLayerException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__("AUTHENTICATION_ERROR", message, details, **kwargs)


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__("VALIDATION_ERROR", message, details, **kwargs)


class ServiceError(AccessLayerException):
    """Service-related errors."""

    status_code = 500

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__("SERVICE_ERROR", message, details, **kwargs)


