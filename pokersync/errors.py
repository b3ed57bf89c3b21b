"""
Error taxonomy for the session protocol.

Every failure an intent can hit maps to one of these classes. The
authority decides from the class alone what the sender sees:

- ProtocolViolation: error event, then the channel is closed
- AuthorizationError / NotFoundError / InvalidPayloadError: private
  error event, channel stays open
- StateConflictError: nothing at all (expected latency races)
"""

from __future__ import annotations


class SessionError(Exception):
    """Base class for all session protocol errors."""

    code = "SESSION_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ProtocolViolation(SessionError):
    """Malformed or out-of-order traffic. The channel must be closed."""

    code = "PROTOCOL_VIOLATION"


class AuthorizationError(SessionError):
    """A non-host attempted a host-only intent."""

    code = "NOT_HOST"


class NotFoundError(SessionError):
    """Reference to a session, item or user that does not exist."""

    code = "NOT_FOUND"

    @classmethod
    def session(cls, session_id: str) -> NotFoundError:
        return cls(f"Session {session_id} not found", code="SESSION_NOT_FOUND")

    @classmethod
    def item(cls, item_id: str) -> NotFoundError:
        return cls(f"Item {item_id} not found", code="ITEM_NOT_FOUND")

    @classmethod
    def user(cls, user_id: str) -> NotFoundError:
        return cls(f"User {user_id} not found", code="USER_NOT_FOUND")


class InvalidPayloadError(SessionError):
    """A known intent carried values the authority cannot accept."""

    code = "INVALID_PAYLOAD"


class StateConflictError(SessionError):
    """
    Intent conflicts with the current lifecycle state.

    Raised for votes on a non-current or revealed item, repeated
    reveals and similar races. Never surfaced to users.
    """

    code = "STATE_CONFLICT"


class ChannelClosedError(SessionError):
    """Attempt to send on a connection handle that is not open."""

    code = "CHANNEL_CLOSED"
