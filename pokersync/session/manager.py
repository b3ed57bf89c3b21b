"""
Session Manager - Creates and manages planning sessions.

LIFECYCLE:
1. Host creates a session (HTTP) -> in-memory session + pre-created host
2. Participants open channels and identify
3. Host drives items; participants vote; host reveals and finalizes
4. Session is ended explicitly or reaped once idle -> ALL state deleted

PERSISTENCE RULES:
- NO database: sessions live in process memory only
- Sessions are independent; nothing mutable is shared between them
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Callable
import logging
import uuid

from ..engine_core.reducer import Reducer
from ..engine_core.state import Session, User
from ..errors import NotFoundError, ProtocolViolation, SessionError
from ..protocol.events import IdentifyMessage, dump_event, error_event, parse_inbound
from .authority import SessionAuthority
from .channel import CLOSE_PROTOCOL_VIOLATION, CLOSE_SESSION_NOT_FOUND, Channel

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class SessionManager:
    """
    Manages planning sessions.

    Responsibilities:
    - Create sessions and their authorities
    - Admit channels into sessions (first message must identify)
    - Track and end sessions, reap idle ones

    No persistence - sessions are in-memory only.
    """

    def __init__(
        self,
        reducer_factory: Callable[[], Reducer] = Reducer,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._authorities: dict[str, SessionAuthority] = {}
        self._reducer_factory = reducer_factory
        self._id_factory = id_factory

    def create_session(self, name: str, host_name: str | None = None) -> SessionAuthority:
        """
        Create a new planning session.

        Args:
            name: Session name
            host_name: Display name of the host. When given, the host user is
                created up front (disconnected) and claims the role by
                identifying with session.host_id. When omitted, the first
                user to identify becomes host.

        Returns:
            The new session's authority
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Session name is required")

        session = Session(session_id=self._id_factory(), name=name)

        if host_name is not None:
            host_name = host_name.strip()
            if not host_name:
                raise ValueError("Host name is required")
            host = User(user_id=self._id_factory(), name=host_name, is_host=True)
            session = session.with_user(host)._copy_with(host_id=host.user_id)

        authority = SessionAuthority(session, reducer=self._reducer_factory())
        self._authorities[session.session_id] = authority
        logger.info("Created session %s (%s)", session.session_id, name)
        return authority

    def get_authority(self, session_id: str) -> SessionAuthority | None:
        """Get a session's authority by ID."""
        return self._authorities.get(session_id)

    def get_session(self, session_id: str) -> Session | None:
        authority = self._authorities.get(session_id)
        return authority.session if authority else None

    def require_authority(self, session_id: str) -> SessionAuthority:
        authority = self._authorities.get(session_id)
        if authority is None:
            raise NotFoundError.session(session_id)
        return authority

    async def join(
        self,
        session_id: str,
        channel: Channel,
        first_message: str | bytes | dict[str, Any],
    ) -> SessionAuthority | None:
        """
        Admit a channel into a session from its first message.

        The message must be an identify. On any failure the channel gets
        an error event and is closed, and None is returned.
        """
        try:
            authority = self.require_authority(session_id)
            message = parse_inbound(first_message)
            if not isinstance(message, IdentifyMessage):
                raise ProtocolViolation("First message must be identify")
        except SessionError as e:
            logger.warning("Refused channel for session %s: %s", session_id, e.message)
            channel.send(dump_event(error_event(e.message, code=e.code)))
            close_code = (
                CLOSE_SESSION_NOT_FOUND if isinstance(e, NotFoundError)
                else CLOSE_PROTOCOL_VIOLATION
            )
            await channel.close(code=close_code, reason=e.message)
            return None

        if not await authority.identify(channel, message.payload):
            await channel.close(code=CLOSE_PROTOCOL_VIOLATION, reason="identify failed")
            return None
        return authority

    async def end_session(self, session_id: str, reason: str = "Session ended") -> bool:
        """
        End a session and clean up.

        Connected participants receive an error event and are disconnected.
        The session is removed from memory.
        """
        authority = self._authorities.pop(session_id, None)
        if authority is None:
            return False
        await authority.close(reason)
        logger.info("Ended session %s: %s", session_id, reason)
        return True

    def list_active_sessions(self) -> list[str]:
        """List IDs of active sessions."""
        return list(self._authorities)

    def list_sessions(self) -> list[Session]:
        return [authority.session for authority in self._authorities.values()]

    async def cleanup_stale_sessions(self, max_age_seconds: int = 3600) -> list[str]:
        """
        Remove sessions older than max_age that nobody is connected to.

        Called periodically to free memory.
        """
        now = datetime.now(timezone.utc)
        to_remove = [
            session_id
            for session_id, authority in self._authorities.items()
            if (now - authority.session.created_at).total_seconds() > max_age_seconds
            and not authority.session.connected_users()
        ]

        for session_id in to_remove:
            await self.end_session(session_id, reason="Session expired")
        return to_remove
