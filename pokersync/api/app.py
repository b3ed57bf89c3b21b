"""
FastAPI Application - HTTP + WebSocket API for planning sessions.

Endpoints:
    POST   /api/v1/sessions                      Create session
    GET    /api/v1/sessions                      List sessions
    GET    /api/v1/sessions/{id}                 Get session snapshot
    DELETE /api/v1/sessions/{id}                 End session
    POST   /api/v1/sessions/{id}/items           Add planning item
    POST   /api/v1/sessions/{id}/current-item    Set current item
    WS     /api/v1/sessions/{id}/ws              Real-time session channel

Real-time flow:
    1. Client opens the WebSocket and sends identify
    2. Server answers with welcome (private) and user_joined (everyone)
    3. Client sends intents; server broadcasts the resulting events
    4. On close, server broadcasts user_left

All HTTP responses are JSON with explicit Pydantic schemas.
"""

from __future__ import annotations
from contextlib import asynccontextmanager, suppress
from typing import Union
import asyncio
import logging

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..app_logging import configure_logging
from ..config import Settings
from ..errors import ProtocolViolation
from ..protocol.events import dump_event, error_event
from ..session.channel import CLOSE_PROTOCOL_VIOLATION, WebSocketChannel
from .service import APIService
from .schemas import (
    AddItemRequest,
    CreateSessionRequest,
    CreateSessionResponse,
    EndSessionResponse,
    ErrorCode,
    ErrorResponse,
    HealthResponse,
    ItemView,
    SessionSnapshot,
    SessionSummary,
    SetCurrentItemRequest,
    StatusResponse,
)

logger = logging.getLogger(__name__)

# Seconds between sweeps for idle sessions
CLEANUP_INTERVAL_SECONDS = 60

_STATUS_CODES = {
    ErrorCode.SESSION_NOT_FOUND: 404,
    ErrorCode.ITEM_NOT_FOUND: 404,
    ErrorCode.NOT_HOST: 403,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INTERNAL_ERROR: 500,
}


def create_app(service: APIService | None = None, settings: Settings | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Optional APIService instance (creates new if not provided)
        settings: Optional Settings (read from environment if not provided)

    Returns:
        FastAPI application instance
    """
    if service is not None:
        settings = service.settings
    settings = settings or Settings.from_env()
    api_service = service or APIService(settings=settings)
    configure_logging(settings.log_level)

    async def reap_idle_sessions():
        while True:
            await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
            removed = await api_service.cleanup_stale_sessions()
            if removed:
                logger.info("Reaped %d idle sessions", len(removed))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        reaper = asyncio.create_task(reap_idle_sessions())
        yield
        # Shutdown
        reaper.cancel()
        with suppress(asyncio.CancelledError):
            await reaper
        for session_id in api_service.session_manager.list_active_sessions():
            await api_service.end_session(session_id, reason="Server shutting down")

    app = FastAPI(
        title="pokersync API",
        description="""
Real-time planning poker sessions.

## Real-time protocol

Every WebSocket message is `{"type": <tag>, "payload": {...}}`.
The first client message must be `identify`.

## Error Codes

| Code | Description |
|------|-------------|
| `SESSION_NOT_FOUND` | Session does not exist |
| `ITEM_NOT_FOUND` | Item does not exist |
| `NOT_HOST` | Host privileges required |
| `VALIDATION_ERROR` | Invalid request values |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.service = api_service

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(error: ErrorResponse) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=_STATUS_CODES.get(error.error_code, 400),
            content=error.model_dump(mode="json", by_alias=True),
        )

    # =========================================================================
    # Session Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions",
        response_model=CreateSessionResponse,
        responses={400: {"model": ErrorResponse}},
        tags=["Sessions"],
        summary="Create a new planning session",
    )
    async def create_session(body: CreateSessionRequest) -> Union[CreateSessionResponse, JSONResponse]:
        """
        Create a new session.

        The returned `hostId` is the identity the host must send in its
        `identify` message to claim host privileges.
        """
        try:
            return api_service.create_session(body)
        except ValueError as e:
            return make_error_response(ErrorResponse(
                error=str(e),
                error_code=ErrorCode.VALIDATION_ERROR,
            ))

    @app.get(
        "/api/v1/sessions",
        response_model=list[SessionSummary],
        tags=["Sessions"],
        summary="List active sessions",
    )
    async def list_sessions() -> list[SessionSummary]:
        return api_service.list_sessions()

    @app.get(
        "/api/v1/sessions/{session_id}",
        response_model=SessionSnapshot,
        responses={404: {"model": ErrorResponse}},
        tags=["Sessions"],
        summary="Get session snapshot",
    )
    async def get_session(session_id: str) -> Union[SessionSnapshot, JSONResponse]:
        """Get the full session state. Unrevealed vote values are hidden."""
        response = api_service.get_session(session_id)
        if isinstance(response, ErrorResponse):
            return make_error_response(response)
        return response

    @app.delete(
        "/api/v1/sessions/{session_id}",
        response_model=EndSessionResponse,
        tags=["Sessions"],
        summary="End a session",
    )
    async def end_session(
        session_id: str,
        reason: str = Query("Session ended", description="Reason shown to participants"),
    ) -> EndSessionResponse:
        """End a session and disconnect all participants."""
        success = await api_service.end_session(session_id, reason)
        return EndSessionResponse(success=success, session_id=session_id)

    # =========================================================================
    # Item Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions/{session_id}/items",
        response_model=ItemView,
        responses={
            400: {"model": ErrorResponse},
            404: {"model": ErrorResponse},
        },
        tags=["Items"],
        summary="Add a planning item",
    )
    async def add_item(session_id: str, body: AddItemRequest) -> Union[ItemView, JSONResponse]:
        """Add an item. Connected participants receive `item_added`."""
        response = await api_service.add_item(session_id, body)
        if isinstance(response, ErrorResponse):
            return make_error_response(response)
        return response

    @app.post(
        "/api/v1/sessions/{session_id}/current-item",
        response_model=StatusResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Items"],
        summary="Set the item being estimated",
    )
    async def set_current_item(
        session_id: str,
        body: SetCurrentItemRequest,
    ) -> Union[StatusResponse, JSONResponse]:
        """Move focus. Connected participants receive `current_item_changed`."""
        response = await api_service.set_current_item(session_id, body)
        if isinstance(response, ErrorResponse):
            return make_error_response(response)
        return response

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket("/api/v1/sessions/{session_id}/ws")
    async def websocket_endpoint(websocket: WebSocket, session_id: str):
        """
        Real-time session channel.

        Messages from client:
        - identify (first message), vote, reveal_votes, reset_votes,
          set_final_estimate, add_item, set_current_item, leave

        Messages from server:
        - welcome, error, user_joined, user_left, item_added,
          current_item_changed, vote_submitted, votes_revealed,
          votes_reset, final_estimate_set
        """
        channel = WebSocketChannel(websocket, max_queue=settings.channel_queue_size)
        await channel.open()
        authority = None

        try:
            first_message = await websocket.receive_text()
            authority = await api_service.session_manager.join(session_id, channel, first_message)
            if authority is None:
                return

            while channel.is_open:
                data = await websocket.receive_text()
                try:
                    await authority.handle_message(channel, data)
                except ProtocolViolation as e:
                    logger.warning("Protocol violation on %r: %s", channel, e.message)
                    channel.send(dump_event(error_event(e.message, code=e.code)))
                    await channel.close(code=CLOSE_PROTOCOL_VIOLATION, reason=e.message)
        except WebSocketDisconnect:
            pass
        finally:
            if authority is not None:
                await authority.disconnect(channel)
            await channel.close()

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(status="healthy", service="pokersync", version=__version__)

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "pokersync API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/health",
        }

    return app


# For running directly: uvicorn pokersync.api.app:app
app = create_app()
