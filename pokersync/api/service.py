"""
API Service - Business logic layer between HTTP and the session engine.

The service:
1. Creates and ends sessions
2. Serves masked session snapshots
3. Routes item operations through the session authority

Item operations issued over HTTP act with the host's authority and go
through the same reducer as channel traffic, so they broadcast to every
connected participant.

This layer is framework-agnostic (no FastAPI imports).
"""

from __future__ import annotations
from dataclasses import dataclass, field

from ..config import Settings
from ..engine_core.intent import Intent, IntentResult, IntentStatus
from ..engine_core.reducer import Reducer
from ..session import SessionManager
from .schemas import (
    AddItemRequest,
    CreateSessionRequest,
    CreateSessionResponse,
    ErrorCode,
    ErrorResponse,
    ItemView,
    SessionSnapshot,
    SessionSummary,
    SetCurrentItemRequest,
    StatusResponse,
)

_ERROR_CODES = {
    "SESSION_NOT_FOUND": ErrorCode.SESSION_NOT_FOUND,
    "ITEM_NOT_FOUND": ErrorCode.ITEM_NOT_FOUND,
    "NOT_HOST": ErrorCode.NOT_HOST,
    "USER_NOT_FOUND": ErrorCode.NOT_HOST,
    "INVALID_PAYLOAD": ErrorCode.VALIDATION_ERROR,
    "PROTOCOL_VIOLATION": ErrorCode.VALIDATION_ERROR,
}


def _session_manager_for(settings: Settings) -> SessionManager:
    return SessionManager(reducer_factory=lambda: Reducer(card_values=settings.card_values))


@dataclass
class APIService:
    """
    Main API service.

    Usage:
        service = APIService()

        created = service.create_session(CreateSessionRequest(name="Sprint 1", host_name="Ann"))
        item = await service.add_item(created.session_id, AddItemRequest(title="Login bug"))
        await service.set_current_item(created.session_id, SetCurrentItemRequest(item_id=item.item_id))
    """
    settings: Settings = field(default_factory=Settings)
    session_manager: SessionManager | None = None

    def __post_init__(self):
        if self.session_manager is None:
            self.session_manager = _session_manager_for(self.settings)

    def create_session(self, request: CreateSessionRequest) -> CreateSessionResponse:
        """
        Create a new session with a pre-created host user.

        Raises ValueError for blank names.
        """
        authority = self.session_manager.create_session(request.name, host_name=request.host_name)
        return CreateSessionResponse(
            session_id=authority.session_id,
            host_id=authority.session.host_id,
        )

    def get_session(self, session_id: str, viewer_id: str | None = None) -> SessionSnapshot | ErrorResponse:
        """Get a session snapshot. Unrevealed vote values are hidden."""
        authority = self.session_manager.get_authority(session_id)
        if authority is None:
            return self._not_found(session_id)
        return authority.snapshot(viewer_id)

    def list_sessions(self) -> list[SessionSummary]:
        return [
            SessionSummary(
                session_id=session.session_id,
                name=session.name,
                user_count=len(session.users),
                item_count=len(session.items),
            )
            for session in self.session_manager.list_sessions()
        ]

    async def add_item(self, session_id: str, request: AddItemRequest) -> ItemView | ErrorResponse:
        authority = self.session_manager.get_authority(session_id)
        if authority is None:
            return self._not_found(session_id)

        result = await authority.submit(Intent.add_item(
            self._host_of(authority), request.title, request.description,
        ))
        if not result.success:
            return self._error_from(result)
        return result.event.payload.item

    async def set_current_item(
        self,
        session_id: str,
        request: SetCurrentItemRequest,
    ) -> StatusResponse | ErrorResponse:
        authority = self.session_manager.get_authority(session_id)
        if authority is None:
            return self._not_found(session_id)

        result = await authority.submit(Intent.set_current_item(
            self._host_of(authority), request.item_id,
        ))
        if not result.success:
            return self._error_from(result)
        return StatusResponse(status="success")

    async def end_session(self, session_id: str, reason: str = "Session ended") -> bool:
        """End a session and disconnect its participants."""
        return await self.session_manager.end_session(session_id, reason)

    async def cleanup_stale_sessions(self) -> list[str]:
        return await self.session_manager.cleanup_stale_sessions(
            max_age_seconds=self.settings.session_max_age_seconds,
        )

    def _host_of(self, authority) -> str:
        return authority.session.host_id or ""

    def _not_found(self, session_id: str) -> ErrorResponse:
        return ErrorResponse(
            error=f"Session {session_id} not found",
            error_code=ErrorCode.SESSION_NOT_FOUND,
        )

    def _error_from(self, result: IntentResult) -> ErrorResponse:
        if result.status == IntentStatus.IGNORED:
            return ErrorResponse(error=result.error or "Conflict", error_code=ErrorCode.VALIDATION_ERROR)
        return ErrorResponse(
            error=result.error or "Request failed",
            error_code=_ERROR_CODES.get(result.error_code, ErrorCode.INTERNAL_ERROR),
        )
