"""
Views - Build wire views of canonical state.

This is where vote values are hidden. Before an item is revealed a
recipient learns only which users have voted, plus the values of its own
votes. Nothing else in the engine produces item views, so no event can
leak a hidden value.
"""

from __future__ import annotations

from ..protocol.events import ItemView, SessionSnapshot, UserView
from .state import PlanningItem, Session, User


def user_view(user: User) -> UserView:
    return UserView(
        user_id=user.user_id,
        name=user.name,
        is_host=user.is_host,
        connected=user.connected,
    )


def item_view(item: PlanningItem, viewer_id: str | None = None) -> ItemView:
    """
    View of an item for one recipient.

    Args:
        item: Canonical item
        viewer_id: Recipient user id, or None for an anonymous observer
    """
    if item.revealed:
        votes = dict(item.votes)
    else:
        votes = {
            user_id: (token if user_id == viewer_id else None)
            for user_id, token in item.votes.items()
        }
    return ItemView(
        item_id=item.item_id,
        title=item.title,
        description=item.description,
        votes=votes,
        revealed=item.revealed,
        final_estimate=item.final_estimate,
    )


def build_snapshot(session: Session, viewer_id: str | None = None) -> SessionSnapshot:
    """Full session snapshot masked for one recipient."""
    return SessionSnapshot(
        session_id=session.session_id,
        name=session.name,
        host_id=session.host_id,
        users={uid: user_view(u) for uid, u in session.users.items()},
        items=[item_view(item, viewer_id) for item in session.items],
        current_item_id=session.current_item_id,
        created_at=session.created_at,
    )
