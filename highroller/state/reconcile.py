"""
Fold authoritative server snapshots back into the client-side round mirror.

The backend owns the shoe and the bookkeeping; the local `RoundState` is a
best-effort replay of it. After every server response the host calls
`reconcile`, which keeps the server's view of hands, statuses and legality
flags while preserving what only the client knows (doubled status, per-slot
wagers, split depth).
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence, Tuple
import logging

from highroller.blackjack.hand import Hand
from highroller.common.card import Card
from highroller.common.errors import InvalidSnapshotError
from highroller.state.models import (
    PlayerHandSlot,
    RoundPhase,
    RoundState,
    SlotStatus,
)

logger = logging.getLogger("highroller.state")

_SERVER_STATUSES = {
    "playing": SlotStatus.PLAYING,
    "stand": SlotStatus.STOOD,
    "stood": SlotStatus.STOOD,
    "bust": SlotStatus.BUST,
    "blackjack": SlotStatus.BLACKJACK,
    "doubled": SlotStatus.DOUBLED,
}

_PHASE_ORDER = {
    RoundPhase.AWAITING_ACTION: 0,
    RoundPhase.RESOLVING: 1,
    RoundPhase.SETTLED: 2,
}


@dataclass(frozen=True)
class RoundSnapshot:
    """
    Parsed server view of a round.

    Attributes:
        round_id: Server round identifier (``gameId``)
        bet_amount: Base wager per hand
        player_hands: Cards per hand, in server order
        dealer_hand: Dealer cards the server disclosed
        hand_statuses: Status per hand
        current_hand_index: Hand the server expects an action for
        dealer_revealed: Whether the dealer's hole card is disclosed
        completed: Whether the server has settled the round
        can_double: Server DOUBLE flag per hand
        can_split: Server SPLIT flag per hand
    """

    round_id: str
    bet_amount: float
    player_hands: Tuple[Tuple[Card, ...], ...]
    dealer_hand: Tuple[Card, ...]
    hand_statuses: Tuple[SlotStatus, ...]
    current_hand_index: int
    dealer_revealed: bool
    completed: bool
    can_double: Tuple[bool, ...]
    can_split: Tuple[bool, ...]

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "RoundSnapshot":
        """
        Parse the backend's round payload.

        Raises:
            InvalidSnapshotError: If a field is missing or malformed
        """
        try:
            hands = tuple(
                tuple(Card.from_dict(card) for card in hand)
                for hand in payload["playerHands"]
            )
            statuses = tuple(_SERVER_STATUSES[s] for s in payload["handStatuses"])
            count = len(hands)
            can_double = tuple(
                bool(flag) for flag in payload.get("canDouble", [False] * count)
            )
            can_split = tuple(
                bool(flag) for flag in payload.get("canSplit", [False] * count)
            )
            snapshot = cls(
                round_id=str(payload["gameId"]),
                bet_amount=float(payload["betAmount"]),
                player_hands=hands,
                dealer_hand=tuple(Card.from_dict(c) for c in payload["dealerHand"]),
                hand_statuses=statuses,
                current_hand_index=int(payload.get("currentHandIndex", 0)),
                dealer_revealed=bool(payload.get("dealerRevealed", False)),
                completed=payload.get("gameStatus") == "completed",
                can_double=can_double,
                can_split=can_split,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidSnapshotError(f"Malformed round payload: {exc!r}") from exc

        if not hands:
            raise InvalidSnapshotError("Round payload has no player hands")
        if not (
            len(statuses) == len(can_double) == len(can_split) == len(hands)
        ):
            raise InvalidSnapshotError(
                "Round payload lists differ in length: "
                f"{len(hands)} hands, {len(statuses)} statuses, "
                f"{len(can_double)} double flags, {len(can_split)} split flags"
            )
        return snapshot


def new_cards(local_cards: Sequence[Card], server_cards: Sequence[Card]) -> Tuple[Card, ...]:
    """
    Cards the server appended to a hand the client already holds.

    Raises:
        InvalidSnapshotError: If the server hand does not extend the local one
    """
    local_cards = tuple(local_cards)
    server_cards = tuple(server_cards)
    if server_cards[: len(local_cards)] != local_cards:
        raise InvalidSnapshotError(
            f"Server hand {[str(c) for c in server_cards]} does not extend "
            f"local hand {[str(c) for c in local_cards]}"
        )
    return server_cards[len(local_cards):]


def _first_playing(statuses: Iterable[SlotStatus]) -> int:
    statuses = list(statuses)
    for i, status in enumerate(statuses):
        if status is SlotStatus.PLAYING:
            return i
    return len(statuses)


def reconcile(state: RoundState, snapshot: RoundSnapshot) -> RoundState:
    """
    Rebuild the round from an authoritative server snapshot.

    A completed snapshot moves an unsettled mirror only as far as RESOLVING;
    the dealer's cards are replayed through `HandEngine.settle_dealer`.

    Args:
        state: The client's current round
        snapshot: Server view of the same round

    Returns:
        Reconciled round with no pending effects

    Raises:
        InvalidSnapshotError: If the snapshot belongs to another round or
            would move the round backwards
    """
    if snapshot.round_id != state.round_id:
        raise InvalidSnapshotError(
            f"Snapshot for round {snapshot.round_id} cannot reconcile "
            f"round {state.round_id}"
        )

    divergences = 0
    slots: List[PlayerHandSlot] = []
    for i, (cards, status) in enumerate(
        zip(snapshot.player_hands, snapshot.hand_statuses)
    ):
        local = state.slots[i] if i < len(state.slots) else None
        if local is not None and local.status is SlotStatus.DOUBLED:
            # The server reports a doubled hand as "stand"
            if status is SlotStatus.STOOD:
                status = SlotStatus.DOUBLED
        playing = status is SlotStatus.PLAYING
        slot = PlayerHandSlot(
            hand=Hand(cards),
            status=status,
            can_double=playing and snapshot.can_double[i],
            can_split=playing and snapshot.can_split[i],
            wager=local.wager if local is not None else snapshot.bet_amount,
            split_depth=local.split_depth if local is not None else 1,
        )
        if local is None or local != slot:
            divergences += 1
        slots.append(slot)

    if len(state.slots) > len(slots):
        divergences += len(state.slots) - len(slots)

    statuses = [slot.status for slot in slots]
    if snapshot.completed:
        target = (
            RoundPhase.SETTLED
            if state.phase is RoundPhase.SETTLED
            else RoundPhase.RESOLVING
        )
    elif SlotStatus.PLAYING in statuses:
        target = RoundPhase.AWAITING_ACTION
    else:
        target = RoundPhase.RESOLVING

    if _PHASE_ORDER[target] < _PHASE_ORDER[state.phase]:
        raise InvalidSnapshotError(
            f"Snapshot would move round {state.round_id} from "
            f"{state.phase.value} back to {target.value}"
        )

    dealer = state.dealer_hand
    revealed = state.dealer_hole_card_revealed
    if target is RoundPhase.SETTLED and snapshot.dealer_revealed:
        if tuple(snapshot.dealer_hand) != dealer.cards:
            divergences += 1
            dealer = Hand(snapshot.dealer_hand)
    elif snapshot.dealer_hand and dealer.cards[:1] != snapshot.dealer_hand[:1]:
        divergences += 1
        dealer = Hand(snapshot.dealer_hand[:1])

    if target is RoundPhase.AWAITING_ACTION:
        index = snapshot.current_hand_index
        if not (0 <= index < len(slots) and slots[index].is_playing):
            index = _first_playing(statuses)
    else:
        index = len(slots)

    if index != state.active_slot_index:
        divergences += 1

    if divergences:
        logger.warning(
            f"Round {state.round_id}: reconciled {divergences} divergence(s) "
            f"with server snapshot"
        )

    return RoundState(
        round_id=state.round_id,
        dealer_hand=dealer,
        dealer_hole_card_revealed=revealed,
        slots=tuple(slots),
        active_slot_index=index,
        phase=target,
        effects=(),
    )
