"""
Vote Lifecycle - Per-item state machine.

    NOT_CURRENT --(focus)--> COLLECTING --REVEAL--> REVEALED --FINALIZE--> FINALIZED
                                 ^                     |                       |
                                 +-------RESET---------+-----------RESET-------+

The phase is never stored. It is derived from the item's revealed flag,
its final estimate and the session's focus pointer, so it cannot drift
from the state it describes. Items have no terminal phase.
"""

from __future__ import annotations
from enum import Enum

from ..errors import StateConflictError
from .state import Session, PlanningItem


class VotePhase(Enum):
    """Lifecycle phase of a planning item."""
    NOT_CURRENT = "not_current"  # Not in focus, not revealed
    COLLECTING = "collecting"  # In focus, accepting votes
    REVEALED = "revealed"  # Values visible, no final estimate yet
    FINALIZED = "finalized"  # Values visible, final estimate recorded


class LifecycleTransition(Enum):
    """Host and participant operations that touch the lifecycle."""
    VOTE = "vote"
    REVEAL = "reveal"
    RESET = "reset"
    FINALIZE = "finalize"


def phase_of(session: Session, item: PlanningItem) -> VotePhase:
    """Derive the lifecycle phase of an item."""
    if item.revealed:
        if item.final_estimate is not None:
            return VotePhase.FINALIZED
        return VotePhase.REVEALED
    if session.current_item_id == item.item_id:
        return VotePhase.COLLECTING
    return VotePhase.NOT_CURRENT


# (phase, transition) -> phase after the transition, for transitions whose
# result does not depend on focus
_TRANSITIONS: dict[tuple[VotePhase, LifecycleTransition], VotePhase] = {
    (VotePhase.COLLECTING, LifecycleTransition.VOTE): VotePhase.COLLECTING,
    (VotePhase.COLLECTING, LifecycleTransition.REVEAL): VotePhase.REVEALED,
    (VotePhase.REVEALED, LifecycleTransition.FINALIZE): VotePhase.FINALIZED,
    (VotePhase.FINALIZED, LifecycleTransition.FINALIZE): VotePhase.FINALIZED,
}


def can_transition(phase: VotePhase, transition: LifecycleTransition) -> bool:
    """Check whether a transition is allowed from a phase."""
    if transition == LifecycleTransition.RESET:
        return True
    return (phase, transition) in _TRANSITIONS


def next_phase(
    phase: VotePhase,
    transition: LifecycleTransition,
    is_current: bool,
) -> VotePhase:
    """
    Compute the phase after a transition.

    Raises StateConflictError if the transition is not allowed.
    """
    if transition == LifecycleTransition.RESET:
        return VotePhase.COLLECTING if is_current else VotePhase.NOT_CURRENT

    target = _TRANSITIONS.get((phase, transition))
    if target is None:
        raise StateConflictError(
            f"Cannot {transition.value} an item in phase {phase.value}"
        )
    return target


def require_transition(
    session: Session,
    item: PlanningItem,
    transition: LifecycleTransition,
) -> VotePhase:
    """Validate a transition for an item in a session, returning the new phase."""
    return next_phase(
        phase_of(session, item),
        transition,
        is_current=session.current_item_id == item.item_id,
    )
