"""
Session Authority - Single writer of one session's state.

The authority owns the canonical Session and the channels of its
participants. Every intent, whether it comes from a channel or from the
HTTP layer, goes through one lock and one reducer call, so concurrent
votes and a reveal racing a vote resolve deterministically. After an
accepted intent the resulting event is queued on every open channel of
the session, the sender included. Rejections go to the sender only.

Reconnection races are settled by user id: the newest channel for a
user wins and the older one is closed. When the older one's close comes
in later, it no longer belongs to the user and is ignored.
"""

from __future__ import annotations
from typing import Any
import asyncio
import logging

from pydantic import BaseModel

from ..engine_core.intent import Intent, IntentResult, IntentStatus
from ..engine_core.reducer import Reducer
from ..engine_core.state import Session
from ..engine_core.views import build_snapshot
from ..errors import InvalidPayloadError, ProtocolViolation, SessionError
from ..protocol.events import (
    AddItemMessage,
    IdentifyMessage,
    IdentifyPayload,
    LeaveMessage,
    ResetVotesMessage,
    RevealVotesMessage,
    SetCurrentItemMessage,
    SetFinalEstimateMessage,
    SessionSnapshot,
    VoteMessage,
    dump_event,
    error_event,
    parse_inbound,
    welcome_event,
)
from .channel import CLOSE_SESSION_ENDED, CLOSE_SUPERSEDED, Channel

logger = logging.getLogger(__name__)


class SessionAuthority:
    """
    Authoritative owner of a live session.

    Usage:
        authority = SessionAuthority(session)

        # Channel opened, first message arrived
        if await authority.identify(channel, payload):
            # Subsequent traffic
            await authority.handle_message(channel, raw_text)

        # Channel closed
        await authority.disconnect(channel)
    """

    def __init__(self, session: Session, reducer: Reducer | None = None):
        self.session = session
        self.reducer = reducer or Reducer()
        self._channels: dict[str, Channel] = {}
        self._lock = asyncio.Lock()

    @property
    def session_id(self) -> str:
        return self.session.session_id

    def channel_for(self, user_id: str) -> Channel | None:
        return self._channels.get(user_id)

    def snapshot(self, viewer_id: str | None = None) -> SessionSnapshot:
        """Session snapshot masked for one recipient."""
        return build_snapshot(self.session, viewer_id)

    # =========================================================================
    # Channel lifecycle
    # =========================================================================

    async def identify(self, channel: Channel, payload: IdentifyPayload) -> bool:
        """
        Register a channel under a user identity.

        Sends the welcome privately and broadcasts user_joined. On failure
        the channel receives an error event and False is returned; the
        caller is expected to close it.
        """
        async with self._lock:
            if channel.is_identified:
                self._send_error(channel, InvalidPayloadError("Already identified"))
                return True

            result = self.reducer.apply(
                self.session,
                Intent.identify(payload.display_name, user_id=payload.user_id),
            )
            if result.status != IntentStatus.ACCEPTED:
                channel.send(dump_event(error_event(
                    result.error or "Identification failed",
                    code=result.error_code,
                )))
                return False

            self.session = result.new_session
            user_id = result.assigned_user_id
            previous = self._channels.get(user_id)
            self._channels[user_id] = channel
            channel.bind(self.session_id, user_id)

            channel.send(dump_event(welcome_event(self.snapshot(user_id), user_id)))
            self._broadcast(result.event)

        logger.info(
            "User %s (%s) joined session %s",
            user_id, payload.display_name, self.session_id,
        )

        if previous is not None and previous is not channel:
            logger.info("Closing superseded channel %r", previous)
            await previous.close(code=CLOSE_SUPERSEDED, reason="superseded")
        return True

    async def disconnect(self, channel: Channel) -> IntentResult | None:
        """
        Handle a closed channel.

        Only the user's current channel counts. A superseded channel closing
        late does not mark its user disconnected.
        """
        async with self._lock:
            user_id = channel.user_id
            if user_id is None or self._channels.get(user_id) is not channel:
                return None
            del self._channels[user_id]
            result = self._apply(Intent.disconnect(user_id), origin=None)

        logger.info("User %s disconnected from session %s", user_id, self.session_id)
        return result

    async def close(self, reason: str = "Session ended"):
        """Tear down every channel of the session."""
        async with self._lock:
            channels = list(self._channels.values())
            self._channels.clear()
            for channel in channels:
                channel.send(dump_event(error_event(reason, code="SESSION_ENDED")))

        await asyncio.gather(
            *(channel.close(code=CLOSE_SESSION_ENDED, reason=reason) for channel in channels),
            return_exceptions=True,
        )

    # =========================================================================
    # Intents
    # =========================================================================

    async def handle_message(self, channel: Channel, raw: str | bytes | dict[str, Any]) -> IntentResult | None:
        """
        Parse and apply a message from an identified channel.

        Raises ProtocolViolation for traffic that must close the channel.
        A malformed payload for a known tag only earns a private error.
        """
        try:
            message = parse_inbound(raw)
        except InvalidPayloadError as e:
            self._send_error(channel, e)
            return None
        return await self.dispatch(channel, message)

    async def dispatch(self, channel: Channel, message: BaseModel) -> IntentResult | None:
        """Apply an already parsed inbound message."""
        if not channel.is_identified:
            raise ProtocolViolation("First message must be identify")

        if isinstance(message, IdentifyMessage):
            self._send_error(channel, InvalidPayloadError("Already identified"))
            return None

        intent = self._intent_for(channel.user_id, message)
        async with self._lock:
            if self._channels.get(channel.user_id) is not channel:
                # Superseded channel still draining its last messages
                return None
            result = self._apply(intent, origin=channel)
            if result.success and isinstance(message, LeaveMessage):
                del self._channels[channel.user_id]

        if result.success and isinstance(message, LeaveMessage):
            logger.info("User %s left session %s", channel.user_id, self.session_id)
            await channel.close()
        return result

    async def submit(self, intent: Intent) -> IntentResult:
        """
        Apply an intent that did not come from a channel.

        Used by the HTTP layer. Rejections are returned, not sent.
        """
        async with self._lock:
            return self._apply(intent, origin=None)

    def _intent_for(self, user_id: str, message: BaseModel) -> Intent:
        """Translate a wire message into an intent for the acting user."""
        payload = message.payload
        if isinstance(message, VoteMessage):
            return Intent.cast_vote(user_id, payload.item_id, payload.token)
        if isinstance(message, RevealVotesMessage):
            return Intent.reveal_votes(user_id, payload.item_id)
        if isinstance(message, ResetVotesMessage):
            return Intent.reset_votes(user_id, payload.item_id)
        if isinstance(message, SetFinalEstimateMessage):
            return Intent.set_final_estimate(user_id, payload.item_id, payload.estimate)
        if isinstance(message, AddItemMessage):
            return Intent.add_item(user_id, payload.title, payload.description)
        if isinstance(message, SetCurrentItemMessage):
            return Intent.set_current_item(user_id, payload.item_id)
        if isinstance(message, LeaveMessage):
            return Intent.leave(user_id)
        raise ProtocolViolation(f"Unsupported message type: {message.type}")

    def _apply(self, intent: Intent, origin: Channel | None) -> IntentResult:
        """Run the reducer and fan out its outcome. Caller holds the lock."""
        result = self.reducer.apply(self.session, intent)
        if result.status == IntentStatus.ACCEPTED:
            self.session = result.new_session
            self._broadcast(result.event)
        elif result.status == IntentStatus.REJECTED and origin is not None:
            origin.send(dump_event(error_event(result.error, code=result.error_code)))
        return result

    def _send_error(self, channel: Channel, error: SessionError):
        channel.send(dump_event(error_event(error.message, code=error.code)))

    def _broadcast(self, event: BaseModel):
        """Queue an event on every open channel of the session."""
        message = dump_event(event)
        for user_id, channel in list(self._channels.items()):
            if not channel.send(message):
                logger.debug("Channel for %s did not accept %s", user_id, event.type)
