"""
Reducer - Applies intents to session state.

The reducer is the single point of state mutation.
All state changes must go through apply_intent().

Design principles:
- Pure function: (session, intent) -> IntentResult with new session
- Validates before applying
- Every accepted intent yields exactly one broadcast event
- Rejections carry a private error; state conflicts are ignored silently
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable
import logging
import uuid

from ..errors import (
    AuthorizationError,
    InvalidPayloadError,
    NotFoundError,
    ProtocolViolation,
    SessionError,
    StateConflictError,
)
from ..protocol.events import (
    CurrentItemChangedEvent,
    FinalEstimateSetEvent,
    FinalEstimateSetPayload,
    ItemAddedEvent,
    ItemIdPayload,
    ItemPayload,
    UserJoinedEvent,
    UserJoinedPayload,
    UserLeftEvent,
    UserLeftPayload,
    VoteSubmittedEvent,
    VoteSubmittedPayload,
    VotesResetEvent,
    VotesRevealedEvent,
)
from .intent import Intent, IntentResult, IntentType
from .lifecycle import LifecycleTransition, require_transition
from .state import ABSTAIN_TOKEN, CARD_VALUES, PlanningItem, Session, User
from .views import item_view, user_view

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Reducer:
    """
    Reducer applies intents to session state.

    Stateless - all state is in Session.
    card_values is the deck participants may vote from.
    """
    card_values: tuple[str, ...] = CARD_VALUES
    id_factory: Callable[[], str] = field(default=_new_id)

    def apply(self, session: Session, intent: Intent) -> IntentResult:
        """
        Apply an intent to the session.

        Returns IntentResult with new state and event, or the reason it
        was rejected or ignored. The input session is never modified.
        """
        handler = self._get_handler(intent.intent_type)
        if not handler:
            return IntentResult.rejected(
                f"No handler for intent type: {intent.intent_type}",
                error_code="NO_HANDLER",
            )

        try:
            self._validate_intent(session, intent)
            result = handler(session, intent)
        except StateConflictError as e:
            logger.debug(
                "Ignored %s from %s in session %s: %s",
                intent.intent_type.value, intent.actor_id, session.session_id, e.message,
            )
            return IntentResult.ignored(e.message)
        except SessionError as e:
            logger.warning(
                "Rejected %s from %s in session %s: %s",
                intent.intent_type.value, intent.actor_id, session.session_id, e.message,
            )
            return IntentResult.rejected(e.message, error_code=e.code)

        logger.debug(
            "Accepted %s from %s in session %s",
            intent.intent_type.value, result.assigned_user_id or intent.actor_id,
            session.session_id,
        )
        return result

    def _validate_intent(self, session: Session, intent: Intent) -> None:
        """
        Validate the actor of an intent.

        Raises the matching SessionError if the actor may not issue it.
        """
        if intent.intent_type == IntentType.IDENTIFY:
            return

        actor = session.get_user(intent.actor_id) if intent.actor_id else None
        if actor is None:
            raise NotFoundError.user(str(intent.actor_id))

        if intent.is_host_only and not session.is_host(actor.user_id):
            raise AuthorizationError("Only the host can do that")

    def _get_handler(self, intent_type: IntentType):
        """Get the handler function for an intent type."""
        handlers = {
            IntentType.IDENTIFY: self._handle_identify,
            IntentType.LEAVE: self._handle_leave,
            IntentType.DISCONNECT: self._handle_disconnect,
            IntentType.ADD_ITEM: self._handle_add_item,
            IntentType.SET_CURRENT_ITEM: self._handle_set_current_item,
            IntentType.CAST_VOTE: self._handle_cast_vote,
            IntentType.REVEAL_VOTES: self._handle_reveal_votes,
            IntentType.RESET_VOTES: self._handle_reset_votes,
            IntentType.SET_FINAL_ESTIMATE: self._handle_set_final_estimate,
        }
        return handlers.get(intent_type)

    def _require_item(self, session: Session, item_id: str | None) -> PlanningItem:
        if not item_id:
            raise InvalidPayloadError("itemId is required")
        item = session.get_item(item_id)
        if item is None:
            raise NotFoundError.item(item_id)
        return item

    # =========================================================================
    # Membership
    # =========================================================================

    def _handle_identify(self, session: Session, intent: Intent) -> IntentResult:
        """
        Handle a participant identifying on a new channel.

        - no user id: mint one and join as a new user
        - known user id: reconnection, membership and votes kept
        - unknown user id: join under that id
        The first user of a session without a host becomes host.
        """
        display_name = (intent.payload.display_name or "").strip()
        if not display_name:
            raise ProtocolViolation("Username cannot be empty")

        requested_id = (intent.payload.requested_user_id or "").strip()
        existing = session.get_user(requested_id) if requested_id else None

        if existing is None:
            if session.find_user_by_name(display_name):
                raise InvalidPayloadError("Username is already taken in this session")
            user_id = requested_id or self.id_factory()
            user = User(user_id=user_id, name=display_name)
        else:
            user = existing

        seq, new_session = session.next_connection_seq()
        user = user.with_connection(True, seq)
        new_session = new_session.with_user(user)

        if new_session.host is None:
            new_session = new_session.with_host(user.user_id)
            user = new_session.users[user.user_id]

        event = UserJoinedEvent(payload=UserJoinedPayload(user=user_view(user)))
        return IntentResult.accepted(new_session, event, assigned_user_id=user.user_id)

    def _handle_leave(self, session: Session, intent: Intent) -> IntentResult:
        """Handle an explicit leave: the user and their votes are removed."""
        user_id = intent.actor_id
        was_host = session.is_host(user_id)
        new_session = session.without_user(user_id)

        new_host_id = None
        if was_host:
            new_host_id = self._pick_successor(new_session, allow_disconnected=True)
            new_session = new_session.with_host(new_host_id)

        event = UserLeftEvent(payload=UserLeftPayload(
            user_id=user_id,
            host_id=new_host_id,
            removed=True,
        ))
        return IntentResult.accepted(new_session, event)

    def _handle_disconnect(self, session: Session, intent: Intent) -> IntentResult:
        """
        Handle a closed channel.

        The user stays in the session with their votes. A departing host
        hands over to the longest-connected remaining user, if any.
        """
        user = session.get_user(intent.actor_id)
        if not user.connected:
            raise StateConflictError(f"User {user.user_id} already disconnected")

        new_session = session.with_user(user.with_connection(False))

        new_host_id = None
        if session.is_host(user.user_id):
            new_host_id = self._pick_successor(new_session, allow_disconnected=False)
            if new_host_id is not None:
                new_session = new_session.with_host(new_host_id)

        event = UserLeftEvent(payload=UserLeftPayload(
            user_id=user.user_id,
            host_id=new_host_id,
            removed=False,
        ))
        return IntentResult.accepted(new_session, event)

    def _pick_successor(self, session: Session, allow_disconnected: bool) -> str | None:
        """Choose the next host: longest connected, else earliest joined."""
        connected = session.connected_users()
        if connected:
            return connected[0].user_id
        if allow_disconnected and session.users:
            return next(iter(session.users))
        return None

    # =========================================================================
    # Host commands
    # =========================================================================

    def _handle_add_item(self, session: Session, intent: Intent) -> IntentResult:
        title = (intent.payload.title or "").strip()
        if not title:
            raise InvalidPayloadError("Item title cannot be empty")

        item = PlanningItem(
            item_id=self.id_factory(),
            title=title,
            description=intent.payload.description or "",
        )
        new_session = session.with_item(item)

        event = ItemAddedEvent(payload=ItemPayload(item=item_view(item)))
        return IntentResult.accepted(new_session, event)

    def _handle_set_current_item(self, session: Session, intent: Intent) -> IntentResult:
        """Move focus. Votes on both items are left as they are."""
        item = self._require_item(session, intent.payload.item_id)
        new_session = session._copy_with(current_item_id=item.item_id)

        event = CurrentItemChangedEvent(payload=ItemIdPayload(item_id=item.item_id))
        return IntentResult.accepted(new_session, event)

    def _handle_reveal_votes(self, session: Session, intent: Intent) -> IntentResult:
        item = self._require_item(session, intent.payload.item_id)
        require_transition(session, item, LifecycleTransition.REVEAL)

        new_item = item.revealed_copy()
        new_session = session.with_item(new_item)

        event = VotesRevealedEvent(payload=ItemPayload(item=item_view(new_item)))
        return IntentResult.accepted(new_session, event)

    def _handle_reset_votes(self, session: Session, intent: Intent) -> IntentResult:
        """Clear votes and the revealed flag. The final estimate survives."""
        item = self._require_item(session, intent.payload.item_id)
        require_transition(session, item, LifecycleTransition.RESET)

        new_session = session.with_item(item.reset_copy())

        event = VotesResetEvent(payload=ItemIdPayload(item_id=item.item_id))
        return IntentResult.accepted(new_session, event)

    def _handle_set_final_estimate(self, session: Session, intent: Intent) -> IntentResult:
        item = self._require_item(session, intent.payload.item_id)
        estimate = (intent.payload.estimate or "").strip()
        if not estimate:
            raise InvalidPayloadError("Final estimate cannot be empty")
        require_transition(session, item, LifecycleTransition.FINALIZE)

        new_session = session.with_item(item.with_final_estimate(estimate))

        event = FinalEstimateSetEvent(payload=FinalEstimateSetPayload(
            item_id=item.item_id,
            estimate=estimate,
        ))
        return IntentResult.accepted(new_session, event)

    # =========================================================================
    # Participant commands
    # =========================================================================

    def _handle_cast_vote(self, session: Session, intent: Intent) -> IntentResult:
        """
        Handle a vote.

        Votes land only on the current, unrevealed item. Anything else is
        a latency race (focus moved, host revealed) and is ignored.
        """
        token = intent.payload.token
        if token is None or (token not in self.card_values and token != ABSTAIN_TOKEN):
            raise InvalidPayloadError(f"Invalid vote: {token!r}")

        item = self._require_item(session, intent.payload.item_id)
        voter = session.get_user(intent.actor_id)
        if not voter.connected:
            raise StateConflictError(f"User {voter.user_id} is not connected")
        require_transition(session, item, LifecycleTransition.VOTE)

        new_session = session.with_item(item.with_vote(voter.user_id, token))

        event = VoteSubmittedEvent(payload=VoteSubmittedPayload(
            item_id=item.item_id,
            user_id=voter.user_id,
            has_voted=True,
        ))
        return IntentResult.accepted(new_session, event)


def apply_intent(session: Session, intent: Intent) -> IntentResult:
    """
    Convenience function to apply an intent.

    Creates a Reducer with the default deck and applies the intent.
    """
    reducer = Reducer()
    return reducer.apply(session, intent)
