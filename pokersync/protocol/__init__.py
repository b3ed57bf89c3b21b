"""
Protocol Module - The closed set of typed events on a session channel.

Clients send intents (identify, vote, ...). The authority answers with
events (welcome, vote_submitted, ...). Both directions share one
envelope shape: {"type": <tag>, "payload": {...}}.
"""

from .events import (
    # Views
    UserView,
    ItemView,
    SessionSnapshot,
    # Inbound
    InboundType,
    InboundMessage,
    IdentifyMessage,
    IdentifyPayload,
    VoteMessage,
    RevealVotesMessage,
    ResetVotesMessage,
    SetFinalEstimateMessage,
    AddItemMessage,
    SetCurrentItemMessage,
    LeaveMessage,
    # Outbound
    OutboundType,
    OutboundEvent,
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
    # Codec
    error_event,
    welcome_event,
    dump_event,
    parse_inbound,
    parse_outbound,
)

__all__ = [
    "UserView",
    "ItemView",
    "SessionSnapshot",
    "InboundType",
    "InboundMessage",
    "IdentifyMessage",
    "IdentifyPayload",
    "VoteMessage",
    "RevealVotesMessage",
    "ResetVotesMessage",
    "SetFinalEstimateMessage",
    "AddItemMessage",
    "SetCurrentItemMessage",
    "LeaveMessage",
    "OutboundType",
    "OutboundEvent",
    "WelcomeEvent",
    "ErrorEvent",
    "UserJoinedEvent",
    "UserLeftEvent",
    "ItemAddedEvent",
    "CurrentItemChangedEvent",
    "VoteSubmittedEvent",
    "VotesRevealedEvent",
    "VotesResetEvent",
    "FinalEstimateSetEvent",
    "error_event",
    "welcome_event",
    "dump_event",
    "parse_inbound",
    "parse_outbound",
]
