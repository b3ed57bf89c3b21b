"""
Engine Core - Deterministic session state management.

The engine is the part that:
1. Holds canonical Session state
2. Derives each item's vote lifecycle phase
3. Applies intents via the reducer
4. Builds masked views for every recipient
"""

from .state import Session, User, PlanningItem, CARD_VALUES, ABSTAIN_TOKEN
from .intent import Intent, IntentType, IntentPayload, IntentResult, IntentStatus
from .lifecycle import VotePhase, LifecycleTransition, phase_of, can_transition, next_phase
from .reducer import Reducer, apply_intent
from .views import build_snapshot, item_view, user_view

__all__ = [
    "Session",
    "User",
    "PlanningItem",
    "CARD_VALUES",
    "ABSTAIN_TOKEN",
    "Intent",
    "IntentType",
    "IntentPayload",
    "IntentResult",
    "IntentStatus",
    "VotePhase",
    "LifecycleTransition",
    "phase_of",
    "can_transition",
    "next_phase",
    "Reducer",
    "apply_intent",
    "build_snapshot",
    "item_view",
    "user_view",
]
