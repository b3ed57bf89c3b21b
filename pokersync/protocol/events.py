"""
Wire Protocol - Typed events exchanged over a session channel.

Every message is an envelope:

    {"type": "<tag>", "payload": {...}}

The set of tags is closed. Inbound messages (client -> authority) and
outbound events (authority -> clients) are each a tagged union over
their tags, discriminated by `type`. Field names on the wire are
camelCase; Python attributes are snake_case.

Inbound tags:
- identify, vote, reveal_votes, reset_votes, set_final_estimate,
  add_item, set_current_item, leave

Outbound tags:
- welcome, error, user_joined, user_left, item_added,
  current_item_changed, vote_submitted, votes_revealed, votes_reset,
  final_estimate_set

Parsing inbound traffic raises ProtocolViolation for anything that is
not a known envelope and InvalidPayloadError for a known tag with a bad
payload. Parsing outbound traffic never raises: unknown or malformed
events come back as None so older clients keep working.
"""

from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
import json
import logging

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from ..errors import InvalidPayloadError, ProtocolViolation

logger = logging.getLogger(__name__)


class WireModel(BaseModel):
    """Base for all wire models: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Enums
# =============================================================================

class InboundType(str, Enum):
    """Tags a client may send."""
    IDENTIFY = "identify"
    VOTE = "vote"
    REVEAL_VOTES = "reveal_votes"
    RESET_VOTES = "reset_votes"
    SET_FINAL_ESTIMATE = "set_final_estimate"
    ADD_ITEM = "add_item"
    SET_CURRENT_ITEM = "set_current_item"
    LEAVE = "leave"


class OutboundType(str, Enum):
    """Tags the authority may send."""
    WELCOME = "welcome"
    ERROR = "error"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    ITEM_ADDED = "item_added"
    CURRENT_ITEM_CHANGED = "current_item_changed"
    VOTE_SUBMITTED = "vote_submitted"
    VOTES_REVEALED = "votes_revealed"
    VOTES_RESET = "votes_reset"
    FINAL_ESTIMATE_SET = "final_estimate_set"


# =============================================================================
# Shared Views
# =============================================================================

class UserView(WireModel):
    """A session participant as seen on the wire."""
    user_id: str = Field(alias="id")
    name: str
    is_host: bool = False
    connected: bool = False


class ItemView(WireModel):
    """
    A planning item as seen on the wire.

    Vote values are None when the recipient may only know that the user
    has voted, not what they voted.
    """
    item_id: str = Field(alias="id")
    title: str
    description: str = ""
    votes: dict[str, Optional[str]] = Field(default_factory=dict)
    revealed: bool = False
    final_estimate: Optional[str] = None


class SessionSnapshot(WireModel):
    """Full session state, masked for one recipient."""
    session_id: str = Field(alias="id")
    name: str
    host_id: Optional[str] = None
    users: dict[str, UserView] = Field(default_factory=dict)
    items: list[ItemView] = Field(default_factory=list)
    current_item_id: Optional[str] = None
    created_at: datetime

    def get_item(self, item_id: str) -> Optional[ItemView]:
        for item in self.items:
            if item.item_id == item_id:
                return item
        return None


# =============================================================================
# Inbound Payloads
# =============================================================================

class IdentifyPayload(WireModel):
    user_id: Optional[str] = None
    display_name: str = Field(
        validation_alias=AliasChoices("displayName", "display_name", "userName"),
        serialization_alias="displayName",
    )


class VotePayload(WireModel):
    item_id: str
    token: str = Field(validation_alias=AliasChoices("token", "vote"))


class ItemRefPayload(WireModel):
    item_id: str


class FinalEstimatePayload(WireModel):
    item_id: str
    estimate: str


class AddItemPayload(WireModel):
    title: str
    description: str = ""


class EmptyPayload(WireModel):
    pass


# =============================================================================
# Inbound Messages
# =============================================================================

class IdentifyMessage(WireModel):
    type: Literal["identify"] = "identify"
    payload: IdentifyPayload


class VoteMessage(WireModel):
    type: Literal["vote"] = "vote"
    payload: VotePayload


class RevealVotesMessage(WireModel):
    type: Literal["reveal_votes"] = "reveal_votes"
    payload: ItemRefPayload


class ResetVotesMessage(WireModel):
    type: Literal["reset_votes"] = "reset_votes"
    payload: ItemRefPayload


class SetFinalEstimateMessage(WireModel):
    type: Literal["set_final_estimate"] = "set_final_estimate"
    payload: FinalEstimatePayload


class AddItemMessage(WireModel):
    type: Literal["add_item"] = "add_item"
    payload: AddItemPayload


class SetCurrentItemMessage(WireModel):
    type: Literal["set_current_item"] = "set_current_item"
    payload: ItemRefPayload


class LeaveMessage(WireModel):
    type: Literal["leave"] = "leave"
    payload: EmptyPayload = Field(default_factory=EmptyPayload)


InboundMessage = Annotated[
    Union[
        IdentifyMessage,
        VoteMessage,
        RevealVotesMessage,
        ResetVotesMessage,
        SetFinalEstimateMessage,
        AddItemMessage,
        SetCurrentItemMessage,
        LeaveMessage,
    ],
    Field(discriminator="type"),
]


# =============================================================================
# Outbound Payloads
# =============================================================================

class WelcomePayload(WireModel):
    session: SessionSnapshot
    user_id: str = Field(
        validation_alias=AliasChoices("userId", "assignedUserId", "user_id"),
        serialization_alias="userId",
    )


class ErrorPayload(WireModel):
    error: str
    code: Optional[str] = None


class UserJoinedPayload(WireModel):
    user: UserView


class UserLeftPayload(WireModel):
    user_id: str
    # Set when host privileges moved as part of this departure
    host_id: Optional[str] = None
    # True for an explicit leave, False for a dropped connection
    removed: bool = False


class ItemPayload(WireModel):
    item: ItemView


class ItemIdPayload(WireModel):
    item_id: str


class VoteSubmittedPayload(WireModel):
    item_id: str
    user_id: str
    has_voted: bool = True


class FinalEstimateSetPayload(WireModel):
    item_id: str
    estimate: str


# =============================================================================
# Outbound Events
# =============================================================================

class WelcomeEvent(WireModel):
    type: Literal["welcome"] = "welcome"
    payload: WelcomePayload


class ErrorEvent(WireModel):
    type: Literal["error"] = "error"
    payload: ErrorPayload


class UserJoinedEvent(WireModel):
    type: Literal["user_joined"] = "user_joined"
    payload: UserJoinedPayload


class UserLeftEvent(WireModel):
    type: Literal["user_left"] = "user_left"
    payload: UserLeftPayload


class ItemAddedEvent(WireModel):
    type: Literal["item_added"] = "item_added"
    payload: ItemPayload


class CurrentItemChangedEvent(WireModel):
    type: Literal["current_item_changed"] = "current_item_changed"
    payload: ItemIdPayload


class VoteSubmittedEvent(WireModel):
    type: Literal["vote_submitted"] = "vote_submitted"
    payload: VoteSubmittedPayload


class VotesRevealedEvent(WireModel):
    type: Literal["votes_revealed"] = "votes_revealed"
    payload: ItemPayload


class VotesResetEvent(WireModel):
    type: Literal["votes_reset"] = "votes_reset"
    payload: ItemIdPayload


class FinalEstimateSetEvent(WireModel):
    type: Literal["final_estimate_set"] = "final_estimate_set"
    payload: FinalEstimateSetPayload


OutboundEvent = Annotated[
    Union[
        WelcomeEvent,
        ErrorEvent,
        UserJoinedEvent,
        UserLeftEvent,
        ItemAddedEvent,
        CurrentItemChangedEvent,
        VoteSubmittedEvent,
        VotesRevealedEvent,
        VotesResetEvent,
        FinalEstimateSetEvent,
    ],
    Field(discriminator="type"),
]


_INBOUND_ADAPTER = TypeAdapter(InboundMessage)
_OUTBOUND_ADAPTER = TypeAdapter(OutboundEvent)

INBOUND_TAGS = frozenset(t.value for t in InboundType)
OUTBOUND_TAGS = frozenset(t.value for t in OutboundType)


# =============================================================================
# Factories
# =============================================================================

def error_event(message: str, code: str | None = None) -> ErrorEvent:
    """Build a private error event."""
    return ErrorEvent(payload=ErrorPayload(error=message, code=code))


def welcome_event(snapshot: SessionSnapshot, user_id: str) -> WelcomeEvent:
    return WelcomeEvent(payload=WelcomePayload(session=snapshot, user_id=user_id))


# =============================================================================
# Encoding / Decoding
# =============================================================================

def dump_event(event: BaseModel) -> dict[str, Any]:
    """Serialize an event to a JSON-ready dict with wire field names."""
    return event.model_dump(mode="json", by_alias=True)


def _load_envelope(raw: str | bytes | dict[str, Any]) -> dict[str, Any]:
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ProtocolViolation(f"Invalid JSON: {e.msg}")
        except (UnicodeDecodeError, RecursionError):
            raise ProtocolViolation("Invalid JSON")
    else:
        data = raw

    if not isinstance(data, dict):
        raise ProtocolViolation("Message must be a JSON object")
    tag = data.get("type")
    if not isinstance(tag, str):
        raise ProtocolViolation("Message has no type")
    return data


def parse_inbound(raw: str | bytes | dict[str, Any]) -> InboundMessage:
    """
    Parse a client message.

    Raises:
        ProtocolViolation: not JSON, not an envelope, or unknown tag
        InvalidPayloadError: known tag with a malformed payload
    """
    data = _load_envelope(raw)
    tag = data["type"]
    if tag not in INBOUND_TAGS:
        raise ProtocolViolation(f"Unknown message type: {tag}")

    envelope = {"type": tag, "payload": data.get("payload") or {}}
    try:
        return _INBOUND_ADAPTER.validate_python(envelope)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"][2:]) or "payload"
            for err in e.errors()
        )
        raise InvalidPayloadError(f"Invalid {tag} payload: {fields}")


def parse_outbound(raw: str | bytes | dict[str, Any]) -> OutboundEvent | None:
    """
    Parse an authority event.

    Returns None for unknown tags and malformed events instead of raising,
    so that a client stays usable when the authority speaks a newer protocol.
    """
    try:
        data = _load_envelope(raw)
    except ProtocolViolation as e:
        logger.warning("Dropping undecodable event: %s", e.message)
        return None

    tag = data["type"]
    if tag not in OUTBOUND_TAGS:
        logger.debug("Ignoring unknown event type %s", tag)
        return None

    try:
        return _OUTBOUND_ADAPTER.validate_python(data)
    except ValidationError as e:
        logger.warning("Dropping malformed %s event: %s", tag, e.error_count())
        return None
