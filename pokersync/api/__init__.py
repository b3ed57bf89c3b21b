"""
API Module - HTTP and WebSocket interface.

Exposes the session engine to browsers:
1. Host creates a session over HTTP
2. Host adds items and moves focus (HTTP or WebSocket)
3. Participants join over the WebSocket and vote
4. Everyone receives the same stream of events

All state is session-scoped and in memory.
"""

from .schemas import (
    # Requests
    CreateSessionRequest,
    AddItemRequest,
    SetCurrentItemRequest,
    # Responses
    CreateSessionResponse,
    SessionSummary,
    StatusResponse,
    EndSessionResponse,
    ErrorResponse,
    HealthResponse,
    ErrorCode,
)
from .service import APIService
from .app import create_app

__all__ = [
    # Requests
    "CreateSessionRequest",
    "AddItemRequest",
    "SetCurrentItemRequest",
    # Responses
    "CreateSessionResponse",
    "SessionSummary",
    "StatusResponse",
    "EndSessionResponse",
    "ErrorResponse",
    "HealthResponse",
    "ErrorCode",
    # Service
    "APIService",
    "create_app",
]
