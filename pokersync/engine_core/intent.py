"""
Intent System - Intents, payloads, and results.

Intents represent:
1. Participant commands (identify, vote, leave)
2. Host commands (add item, focus, reveal, reset, finalize)
3. Transport signals (disconnect on channel close)

All state changes flow through intents. An intent is a request, not a
fact: the reducer decides whether it is accepted, rejected or ignored.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import time
import uuid


class IntentType(Enum):
    """Types of intents in the system."""
    # Membership
    IDENTIFY = "identify"
    LEAVE = "leave"
    DISCONNECT = "disconnect"  # Raised by the transport, never sent by clients

    # Host-only
    ADD_ITEM = "add_item"
    SET_CURRENT_ITEM = "set_current_item"
    REVEAL_VOTES = "reveal_votes"
    RESET_VOTES = "reset_votes"
    SET_FINAL_ESTIMATE = "set_final_estimate"

    # Any participant
    CAST_VOTE = "cast_vote"


HOST_ONLY_INTENTS = frozenset({
    IntentType.ADD_ITEM,
    IntentType.SET_CURRENT_ITEM,
    IntentType.REVEAL_VOTES,
    IntentType.RESET_VOTES,
    IntentType.SET_FINAL_ESTIMATE,
})


@dataclass
class IntentPayload:
    """
    Payload for an intent - contains the intent parameters.

    Different intent types use different fields.
    Validation happens in the reducer.
    """
    item_id: str | None = None
    token: str | None = None
    estimate: str | None = None

    # For add_item
    title: str | None = None
    description: str | None = None

    # For identify
    display_name: str | None = None
    requested_user_id: str | None = None


@dataclass
class Intent:
    """
    A participant intent to be applied to a session.

    actor_id is the user the intent acts for. For IDENTIFY it is None
    until the reducer assigns one.
    """
    intent_type: IntentType
    payload: IntentPayload
    actor_id: str | None = None
    timestamp: float = field(default_factory=time.time)
    intent_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_host_only(self) -> bool:
        return self.intent_type in HOST_ONLY_INTENTS

    @classmethod
    def identify(cls, display_name: str, user_id: str | None = None) -> Intent:
        """Factory for identify intent."""
        return cls(
            intent_type=IntentType.IDENTIFY,
            payload=IntentPayload(display_name=display_name, requested_user_id=user_id),
        )

    @classmethod
    def add_item(cls, actor_id: str, title: str, description: str | None = None) -> Intent:
        return cls(
            intent_type=IntentType.ADD_ITEM,
            payload=IntentPayload(title=title, description=description),
            actor_id=actor_id,
        )

    @classmethod
    def set_current_item(cls, actor_id: str, item_id: str) -> Intent:
        return cls(
            intent_type=IntentType.SET_CURRENT_ITEM,
            payload=IntentPayload(item_id=item_id),
            actor_id=actor_id,
        )

    @classmethod
    def cast_vote(cls, actor_id: str, item_id: str, token: str) -> Intent:
        """Factory for vote intent."""
        return cls(
            intent_type=IntentType.CAST_VOTE,
            payload=IntentPayload(item_id=item_id, token=token),
            actor_id=actor_id,
        )

    @classmethod
    def reveal_votes(cls, actor_id: str, item_id: str) -> Intent:
        return cls(
            intent_type=IntentType.REVEAL_VOTES,
            payload=IntentPayload(item_id=item_id),
            actor_id=actor_id,
        )

    @classmethod
    def reset_votes(cls, actor_id: str, item_id: str) -> Intent:
        return cls(
            intent_type=IntentType.RESET_VOTES,
            payload=IntentPayload(item_id=item_id),
            actor_id=actor_id,
        )

    @classmethod
    def set_final_estimate(cls, actor_id: str, item_id: str, estimate: str) -> Intent:
        return cls(
            intent_type=IntentType.SET_FINAL_ESTIMATE,
            payload=IntentPayload(item_id=item_id, estimate=estimate),
            actor_id=actor_id,
        )

    @classmethod
    def leave(cls, actor_id: str) -> Intent:
        return cls(intent_type=IntentType.LEAVE, payload=IntentPayload(), actor_id=actor_id)

    @classmethod
    def disconnect(cls, actor_id: str) -> Intent:
        """Factory for the transport-raised disconnect signal."""
        return cls(intent_type=IntentType.DISCONNECT, payload=IntentPayload(), actor_id=actor_id)


class IntentStatus(Enum):
    """Outcome of applying an intent."""
    ACCEPTED = "accepted"  # State changed, event must be broadcast
    REJECTED = "rejected"  # Private error to the sender
    IGNORED = "ignored"  # Expected race, no event at all


@dataclass
class IntentResult:
    """
    Result of applying an intent.

    Contains:
    - Outcome status
    - New session state and the broadcast event (if accepted)
    - Error message and code (if rejected or ignored)
    """
    status: IntentStatus
    new_session: Any | None = None  # Session
    event: Any | None = None  # Outbound protocol event
    error: str | None = None
    error_code: str | None = None

    # For identify: the user id the connection is now bound to
    assigned_user_id: str | None = None

    @property
    def success(self) -> bool:
        return self.status == IntentStatus.ACCEPTED

    @classmethod
    def accepted(
        cls,
        session: Any,
        event: Any,
        assigned_user_id: str | None = None,
    ) -> IntentResult:
        """Create a success result with new state and its broadcast event."""
        return cls(
            status=IntentStatus.ACCEPTED,
            new_session=session,
            event=event,
            assigned_user_id=assigned_user_id,
        )

    @classmethod
    def rejected(cls, error: str, error_code: str | None = None) -> IntentResult:
        """Create a failure result."""
        return cls(status=IntentStatus.REJECTED, error=error, error_code=error_code)

    @classmethod
    def ignored(cls, reason: str) -> IntentResult:
        return cls(status=IntentStatus.IGNORED, error=reason, error_code="STATE_CONFLICT")
