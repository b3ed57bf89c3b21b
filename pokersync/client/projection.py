"""
Client Reducer - Folds authority events into a local projection.

    reduce_event(projection, event) -> projection

Pure: the input projection is never modified. Total: any event it does
not understand, including unknown tags and malformed payloads, leaves the
projection unchanged.

A welcome replaces the projection wholesale. Every other event is a
structural patch mirroring what the authority did. The reducer never
invents state the event did not carry; in particular a vote value is
only known once votes_revealed supplies it.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from pydantic import BaseModel

from ..protocol.events import (
    CurrentItemChangedEvent,
    ErrorEvent,
    FinalEstimateSetEvent,
    ItemAddedEvent,
    ItemView,
    SessionSnapshot,
    UserJoinedEvent,
    UserLeftEvent,
    UserView,
    VoteSubmittedEvent,
    VotesResetEvent,
    VotesRevealedEvent,
    WelcomeEvent,
    parse_outbound,
)


@dataclass(frozen=True)
class Projection:
    """
    A participant's read-only view of a session.

    session is None until the first welcome arrives.
    """
    session: Optional[SessionSnapshot] = None
    user_id: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def is_joined(self) -> bool:
        return self.session is not None

    @property
    def me(self) -> Optional[UserView]:
        if self.session is None or self.user_id is None:
            return None
        return self.session.users.get(self.user_id)

    @property
    def is_host(self) -> bool:
        return self.session is not None and self.session.host_id == self.user_id

    @property
    def current_item(self) -> Optional[ItemView]:
        if self.session is None or self.session.current_item_id is None:
            return None
        return self.session.get_item(self.session.current_item_id)

    def get_item(self, item_id: str) -> Optional[ItemView]:
        if self.session is None:
            return None
        return self.session.get_item(item_id)


def reduce_event(projection: Projection, event: BaseModel | dict[str, Any] | str | bytes) -> Projection:
    """
    Apply one authority event to a projection.

    Accepts a parsed event or raw wire data.
    """
    if not isinstance(event, BaseModel):
        event = parse_outbound(event)
        if event is None:
            return projection

    handler = _HANDLERS.get(type(event))
    if handler is None:
        return projection

    if projection.session is None and not isinstance(event, (WelcomeEvent, ErrorEvent)):
        # Nothing to patch before the first snapshot
        return projection

    return handler(projection, event)


def fold(projection: Projection, events: list[Any]) -> Projection:
    """Apply a sequence of events in order."""
    for event in events:
        projection = reduce_event(projection, event)
    return projection


# =============================================================================
# Helpers
# =============================================================================

def _with_session(projection: Projection, **updates) -> Projection:
    return replace(projection, session=projection.session.model_copy(update=updates))


def _with_item(projection: Projection, item_id: str, patch: Callable[[ItemView], ItemView]) -> Projection:
    """Patch one known item; unknown items leave the projection unchanged."""
    if projection.session.get_item(item_id) is None:
        return projection
    items = [
        patch(item) if item.item_id == item_id else item
        for item in projection.session.items
    ]
    return _with_session(projection, items=items)


def _with_host(users: dict[str, UserView], host_id: str) -> dict[str, UserView]:
    return {
        uid: (u.model_copy(update={"is_host": uid == host_id}) if u.is_host != (uid == host_id) else u)
        for uid, u in users.items()
    }


# =============================================================================
# Handlers
# =============================================================================

def _on_welcome(projection: Projection, event: WelcomeEvent) -> Projection:
    return Projection(
        session=event.payload.session,
        user_id=event.payload.user_id,
        last_error=None,
    )


def _on_error(projection: Projection, event: ErrorEvent) -> Projection:
    return replace(projection, last_error=event.payload.error)


def _on_user_joined(projection: Projection, event: UserJoinedEvent) -> Projection:
    user = event.payload.user
    users = dict(projection.session.users)
    users[user.user_id] = user
    updates: dict[str, Any] = {"users": users}
    if user.is_host:
        updates["users"] = _with_host(users, user.user_id)
        updates["host_id"] = user.user_id
    return _with_session(projection, **updates)


def _on_user_left(projection: Projection, event: UserLeftEvent) -> Projection:
    payload = event.payload
    users = dict(projection.session.users)
    updates: dict[str, Any] = {}

    if payload.removed:
        users.pop(payload.user_id, None)
        updates["items"] = [
            item.model_copy(update={
                "votes": {uid: v for uid, v in item.votes.items() if uid != payload.user_id},
            }) if payload.user_id in item.votes else item
            for item in projection.session.items
        ]
        if projection.session.host_id == payload.user_id and payload.host_id is None:
            updates["host_id"] = None
    elif payload.user_id in users:
        users[payload.user_id] = users[payload.user_id].model_copy(update={"connected": False})

    if payload.host_id is not None:
        users = _with_host(users, payload.host_id)
        updates["host_id"] = payload.host_id

    updates["users"] = users
    return _with_session(projection, **updates)


def _on_item_added(projection: Projection, event: ItemAddedEvent) -> Projection:
    item = event.payload.item
    if projection.session.get_item(item.item_id) is not None:
        return projection
    return _with_session(projection, items=[*projection.session.items, item])


def _on_current_item_changed(projection: Projection, event: CurrentItemChangedEvent) -> Projection:
    item_id = event.payload.item_id
    if projection.session.get_item(item_id) is None:
        return projection
    return _with_session(projection, current_item_id=item_id)


def _on_vote_submitted(projection: Projection, event: VoteSubmittedEvent) -> Projection:
    payload = event.payload

    def patch(item: ItemView) -> ItemView:
        if item.revealed:
            # Stale: the authority locks votes once revealed
            return item
        votes = dict(item.votes)
        if payload.has_voted:
            votes[payload.user_id] = None
        else:
            votes.pop(payload.user_id, None)
        return item.model_copy(update={"votes": votes})

    return _with_item(projection, payload.item_id, patch)


def _on_votes_revealed(projection: Projection, event: VotesRevealedEvent) -> Projection:
    revealed = event.payload.item
    return _with_item(projection, revealed.item_id, lambda item: revealed)


def _on_votes_reset(projection: Projection, event: VotesResetEvent) -> Projection:
    return _with_item(
        projection,
        event.payload.item_id,
        lambda item: item.model_copy(update={"votes": {}, "revealed": False}),
    )


def _on_final_estimate_set(projection: Projection, event: FinalEstimateSetEvent) -> Projection:
    return _with_item(
        projection,
        event.payload.item_id,
        lambda item: item.model_copy(update={"final_estimate": event.payload.estimate}),
    )


_HANDLERS: dict[type, Callable[[Projection, Any], Projection]] = {
    WelcomeEvent: _on_welcome,
    ErrorEvent: _on_error,
    UserJoinedEvent: _on_user_joined,
    UserLeftEvent: _on_user_left,
    ItemAddedEvent: _on_item_added,
    CurrentItemChangedEvent: _on_current_item_changed,
    VoteSubmittedEvent: _on_vote_submitted,
    VotesRevealedEvent: _on_votes_revealed,
    VotesResetEvent: _on_votes_reset,
    FinalEstimateSetEvent: _on_final_estimate_set,
}
