"""
Immutable round state for the blackjack mirror.

This package provides the frozen round models, the pure `HandEngine`
transitions and reconciliation against server snapshots.
"""

from highroller.state.models import (
    Outcome,
    PlayerHandSlot,
    RoundPhase,
    RoundState,
    SlotOutcome,
    SlotStatus,
)
from highroller.state.transitions import HandEngine
from highroller.state.reconcile import RoundSnapshot, new_cards, reconcile

__all__ = [
    "Outcome",
    "PlayerHandSlot",
    "RoundPhase",
    "RoundState",
    "SlotOutcome",
    "SlotStatus",
    "HandEngine",
    "RoundSnapshot",
    "new_cards",
    "reconcile",
]
