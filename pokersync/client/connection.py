"""
Client Connection - Explicit handle on one participant's channel.

The handle owns its transport and its projection; nothing about the
connection lives in module state. Intents are fire-and-forget: sending a
vote returns immediately and its effect is only observed when the
matching vote_submitted event comes back through receive().

Usage:
    connection = ClientConnection(transport, on_change=render)
    await connection.open("Alice")
    await connection.vote(item_id, "5")
    await connection.run()  # until the transport closes
"""

from __future__ import annotations
from typing import Any, Callable, Optional, Protocol
import json
import logging

from pydantic import BaseModel

from ..errors import ChannelClosedError
from ..protocol.events import (
    AddItemMessage,
    AddItemPayload,
    EmptyPayload,
    FinalEstimatePayload,
    IdentifyMessage,
    IdentifyPayload,
    ItemRefPayload,
    LeaveMessage,
    ResetVotesMessage,
    RevealVotesMessage,
    SetCurrentItemMessage,
    SetFinalEstimateMessage,
    VoteMessage,
    VotePayload,
    VotesResetEvent,
    WelcomeEvent,
    parse_outbound,
)
from .projection import Projection, reduce_event

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Minimal async text transport (a WebSocket client, a test double, ...)."""

    async def send_text(self, data: str) -> None: ...

    async def receive_text(self) -> Optional[str]:
        """Next message, or None once the peer has closed."""
        ...

    async def close(self) -> None: ...


class ClientConnection:
    """
    One participant's connection to a session.

    Tracks the projection built from authority events and the values of
    the participant's own votes, which the projection does not carry
    before reveal.
    """

    def __init__(
        self,
        transport: Transport,
        on_change: Callable[[Projection], None] | None = None,
    ):
        self.transport = transport
        self.on_change = on_change
        self.projection = Projection()
        self.own_votes: dict[str, str] = {}  # item_id -> token
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def user_id(self) -> str | None:
        return self.projection.user_id

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self, display_name: str, user_id: str | None = None):
        """Open the handle and send the identify message."""
        if self._open:
            raise ChannelClosedError("Connection already open")
        self._open = True
        await self._send(IdentifyMessage(
            payload=IdentifyPayload(user_id=user_id, display_name=display_name),
        ))

    async def close(self):
        """Close the handle. Safe to call more than once."""
        if not self._open:
            return
        self._open = False
        await self.transport.close()

    async def run(self):
        """Receive and fold events until the transport closes."""
        while self._open:
            raw = await self.transport.receive_text()
            if raw is None:
                break
            self.receive(raw)
        self._open = False

    # =========================================================================
    # Intents
    # =========================================================================

    async def vote(self, item_id: str, token: str):
        self.own_votes[item_id] = token
        await self._send(VoteMessage(payload=VotePayload(item_id=item_id, token=token)))

    async def reveal_votes(self, item_id: str):
        await self._send(RevealVotesMessage(payload=ItemRefPayload(item_id=item_id)))

    async def reset_votes(self, item_id: str):
        await self._send(ResetVotesMessage(payload=ItemRefPayload(item_id=item_id)))

    async def set_final_estimate(self, item_id: str, estimate: str):
        await self._send(SetFinalEstimateMessage(
            payload=FinalEstimatePayload(item_id=item_id, estimate=estimate),
        ))

    async def add_item(self, title: str, description: str = ""):
        await self._send(AddItemMessage(payload=AddItemPayload(title=title, description=description)))

    async def set_current_item(self, item_id: str):
        await self._send(SetCurrentItemMessage(payload=ItemRefPayload(item_id=item_id)))

    async def leave(self):
        await self._send(LeaveMessage(payload=EmptyPayload()))

    async def _send(self, message: BaseModel):
        if not self._open:
            raise ChannelClosedError("Connection is closed")
        await self.transport.send_text(json.dumps(message.model_dump(mode="json", by_alias=True)))

    # =========================================================================
    # Events
    # =========================================================================

    def receive(self, raw: str | bytes | dict[str, Any]) -> Projection:
        """Fold one raw authority event into the projection."""
        event = parse_outbound(raw)
        if event is None:
            return self.projection

        if isinstance(event, WelcomeEvent):
            # Restore own selections after a reconnect
            user_id = event.payload.user_id
            self.own_votes = {
                item.item_id: item.votes[user_id]
                for item in event.payload.session.items
                if item.votes.get(user_id) is not None
            }
        elif isinstance(event, VotesResetEvent):
            self.own_votes.pop(event.payload.item_id, None)

        previous = self.projection
        self.projection = reduce_event(previous, event)
        if self.projection is not previous and self.on_change is not None:
            self.on_change(self.projection)
        return self.projection
