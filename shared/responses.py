"""
Uniform response envelope shared by every service.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from shared.logging import get_request_id


def utc_timestamp() -> str:
    """Current time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ApiResponse(BaseModel):
    """Standard `{success, data?, error?, message?, timestamp, requestId?}` envelope."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    message: Optional[str] = None
    details: Optional[Any] = None
    timestamp: str = Field(default_factory=utc_timestamp)
    request_id: Optional[str] = Field(default_factory=get_request_id, alias="requestId")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def envelope(
    status_code: int,
    *,
    success: bool,
    data: Any = None,
    error: Optional[str] = None,
    message: Optional[str] = None,
    details: Any = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build a JSONResponse carrying an ApiResponse body."""
    body = ApiResponse(
        success=success,
        data=data,
        error=error,
        message=message,
        details=details,
    )
    return JSONResponse(status_code=status_code, content=body.to_dict(), headers=headers)
