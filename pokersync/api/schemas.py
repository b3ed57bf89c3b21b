"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the HTTP contract for creating sessions and items.
Field names are camelCase on the wire, matching the real-time protocol.

Error Codes:
- SESSION_NOT_FOUND: Session does not exist or has ended
- ITEM_NOT_FOUND: Item does not exist in the session
- NOT_HOST: Operation requires host privileges
- VALIDATION_ERROR: Request values are invalid
"""

from enum import Enum
from typing import Optional, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..protocol.events import ItemView, SessionSnapshot


class APIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Enums
# =============================================================================

class ErrorCode(str, Enum):
    """Structured error codes."""
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    NOT_HOST = "NOT_HOST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Request Models
# =============================================================================

class CreateSessionRequest(APIModel):
    """Request to create a new planning session."""
    name: str = Field(description="Session name", min_length=1)
    host_name: str = Field(description="Display name of the host", min_length=1)


class AddItemRequest(APIModel):
    """Request to add a planning item."""
    title: str = Field(description="Item title", min_length=1)
    description: str = ""


class SetCurrentItemRequest(APIModel):
    """Request to move the session's focus."""
    item_id: str


# =============================================================================
# Response Models
# =============================================================================

class CreateSessionResponse(APIModel):
    """Identifiers for a freshly created session."""
    session_id: str
    host_id: str = Field(description="Identify with this user id to act as host")


class SessionSummary(APIModel):
    """Brief session information for listings."""
    session_id: str = Field(alias="id")
    name: str
    user_count: int = 0
    item_count: int = 0


class StatusResponse(APIModel):
    status: str = "success"


class EndSessionResponse(APIModel):
    success: bool
    session_id: str


class ErrorResponse(APIModel):
    """Standard error response."""
    error: str
    error_code: ErrorCode
    details: Optional[dict[str, Any]] = None


class HealthResponse(APIModel):
    """Health check response."""
    status: str = "healthy"
    service: str = "pokersync"
    version: str


__all__ = [
    "ErrorCode",
    "CreateSessionRequest",
    "AddItemRequest",
    "SetCurrentItemRequest",
    "CreateSessionResponse",
    "SessionSummary",
    "StatusResponse",
    "EndSessionResponse",
    "ErrorResponse",
    "HealthResponse",
    "ItemView",
    "SessionSnapshot",
]
