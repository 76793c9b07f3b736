"""
Immutable round models for the blackjack mirror.

This module provides frozen dataclasses describing one round of blackjack as
the client sees it between server round-trips. They are produced and
consumed by the pure transition functions in `highroller.state.transitions`,
which always return new instances.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple
import uuid

from highroller.blackjack.hand import Hand
from highroller.effects.effect import Effect


class SlotStatus(Enum):
    """
    Status of one player hand slot. Every status except PLAYING is terminal.
    """

    PLAYING = "playing"
    STOOD = "stood"
    BUST = "bust"
    BLACKJACK = "blackjack"
    DOUBLED = "doubled"


class RoundPhase(Enum):
    """
    Round-level phase. Moves forward only:
    AWAITING_ACTION -> RESOLVING -> SETTLED.
    """

    AWAITING_ACTION = "awaiting_action"
    RESOLVING = "resolving"
    SETTLED = "settled"


class Outcome(Enum):
    WIN = "win"
    LOSS = "loss"
    PUSH = "push"
    BLACKJACK_WIN = "blackjack_win"


@dataclass(frozen=True)
class PlayerHandSlot:
    """
    Immutable representation of one player hand within a round.

    Attributes:
        hand: Cards held in this slot
        status: Current slot status
        can_double: Whether DOUBLE is currently legal for this slot
        can_split: Whether SPLIT is currently legal for this slot
        wager: Amount staked on this slot
        split_depth: Number of splits in this slot's lineage
    """

    hand: Hand = field(default_factory=Hand)
    status: SlotStatus = SlotStatus.PLAYING
    can_double: bool = False
    can_split: bool = False
    wager: float = 0.0
    split_depth: int = 0

    @property
    def is_playing(self) -> bool:
        return self.status is SlotStatus.PLAYING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cards": [card.to_dict() for card in self.hand.cards],
            "total": self.hand.total,
            "is_soft": self.hand.is_soft,
            "status": self.status.value,
            "can_double": self.can_double,
            "can_split": self.can_split,
            "wager": self.wager,
            "split_depth": self.split_depth,
        }


@dataclass(frozen=True)
class SlotOutcome:
    """
    Settlement of one slot.

    Attributes:
        slot_index: Position of the slot in the round
        outcome: Win, loss, push or blackjack win
        payout: Total returned to the player, stake included
    """

    slot_index: int
    outcome: Outcome
    payout: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slot_index": self.slot_index,
            "outcome": self.outcome.value,
            "payout": self.payout,
        }


@dataclass(frozen=True)
class RoundState:
    """
    Immutable representation of a blackjack round.

    Attributes:
        round_id: Opaque identifier shared with the server
        dealer_hand: The dealer's cards known to the client
        dealer_hole_card_revealed: Whether the hole card has been shown
        slots: Player hand slots in creation order
        active_slot_index: Index of the slot awaiting a decision, or
            ``len(slots)`` once no slot is playing
        phase: Round-level phase
        effects: Effects emitted by the transition that produced this state
    """

    round_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    dealer_hand: Hand = field(default_factory=Hand)
    dealer_hole_card_revealed: bool = False
    slots: Tuple[PlayerHandSlot, ...] = ()
    active_slot_index: int = 0
    phase: RoundPhase = RoundPhase.AWAITING_ACTION
    effects: Tuple[Effect, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "slots", tuple(self.slots))
        object.__setattr__(self, "effects", tuple(self.effects))

    @property
    def active_slot(self) -> Optional[PlayerHandSlot]:
        """Get the slot awaiting a decision, if any."""
        if self.phase is not RoundPhase.AWAITING_ACTION:
            return None
        if 0 <= self.active_slot_index < len(self.slots):
            return self.slots[self.active_slot_index]
        return None

    @property
    def total_wager(self) -> float:
        return sum(slot.wager for slot in self.slots)

    @property
    def is_active(self) -> bool:
        return self.phase is not RoundPhase.SETTLED

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the round to a dictionary suitable for the UI layer.

        The dealer's hole card is withheld until it has been revealed.
        """
        dealer_cards = self.dealer_hand.cards
        if not self.dealer_hole_card_revealed:
            dealer_cards = dealer_cards[:1]
        return {
            "round_id": self.round_id,
            "phase": self.phase.value,
            "active_slot_index": self.active_slot_index,
            "dealer": {
                "cards": [card.to_dict() for card in dealer_cards],
                "total": Hand(dealer_cards).total,
                "hole_card_revealed": self.dealer_hole_card_revealed,
            },
            "slots": [slot.to_dict() for slot in self.slots],
            "total_wager": self.total_wager,
        }
