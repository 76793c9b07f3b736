"""
State transition functions for the blackjack round mirror.

This module provides `HandEngine`, whose methods take a `RoundState` and an
input and return a new `RoundState` without modifying the original. The
engine performs no I/O: cards come from the server, and anything the host
should do (send an action, play a sound) is returned as effects on the new
snapshot.
"""

from dataclasses import replace
from typing import FrozenSet, Iterable, List, Optional, Tuple
import logging

from highroller.blackjack.action import (
    Action,
    Double,
    Hit,
    PlayerAction,
    Split,
    Stand,
)
from highroller.blackjack.hand import Hand
from highroller.blackjack.rules import Rules
from highroller.common.card import Card
from highroller.common.errors import IllegalActionError, InvalidWagerError
from highroller.effects.effect import Effect, EffectType, Sound, play_sound
from highroller.state.models import (
    Outcome,
    PlayerHandSlot,
    RoundPhase,
    RoundState,
    SlotOutcome,
    SlotStatus,
)

logger = logging.getLogger("highroller.state")


def is_positive_amount(amount) -> bool:
    """True for a real, positive money amount (NaN and booleans excluded)."""
    if isinstance(amount, bool):
        return False
    try:
        return amount > 0
    except TypeError:
        return False


class HandEngine:
    """
    Pure transitions for one blackjack round.

    Args:
        rules: Table rules; defaults to `Rules()`
    """

    def __init__(self, rules: Optional[Rules] = None):
        self.rules = rules or Rules()

    def make_slot(
        self,
        hand: Hand,
        wager: float,
        split_depth: int = 0,
        status: SlotStatus = SlotStatus.PLAYING,
    ) -> PlayerHandSlot:
        """Build a slot with its DOUBLE/SPLIT flags derived from the rules."""
        playing = status is SlotStatus.PLAYING
        return PlayerHandSlot(
            hand=hand,
            status=status,
            can_double=playing and self.rules.can_double(hand, split_depth),
            can_split=playing and self.rules.can_split(hand, split_depth),
            wager=wager,
            split_depth=split_depth,
        )

    def start_round(
        self,
        player_hand: Hand,
        dealer_hand: Hand,
        wager: float,
        round_id: Optional[str] = None,
    ) -> RoundState:
        """
        Create the state for a freshly dealt round.

        Args:
            player_hand: The player's two initial cards
            dealer_hand: The dealer's upcard, optionally followed by the hole card
            wager: Amount staked on the initial hand
            round_id: Server-issued round identifier (generated when omitted)

        Returns:
            A new round with a single slot

        Raises:
            InvalidWagerError: If the wager is not a positive amount
            IllegalActionError: If the initial deal has the wrong number of cards
        """
        if not is_positive_amount(wager):
            raise InvalidWagerError(f"Wager must be a positive amount, got {wager!r}")
        if len(player_hand) != 2:
            raise IllegalActionError(
                f"A round starts with two player cards, got {len(player_hand)}"
            )
        if not 1 <= len(dealer_hand) <= 2:
            raise IllegalActionError(
                f"A round starts with one or two dealer cards, got {len(dealer_hand)}"
            )

        effects = [play_sound(Sound.CARD_DEAL)]
        if player_hand.is_blackjack:
            slot = self.make_slot(player_hand, wager, status=SlotStatus.BLACKJACK)
            active_slot_index = 1
            phase = RoundPhase.RESOLVING
            effects.append(play_sound(Sound.BLACKJACK))
        else:
            slot = self.make_slot(player_hand, wager)
            active_slot_index = 0
            phase = RoundPhase.AWAITING_ACTION

        kwargs = {"round_id": round_id} if round_id is not None else {}
        state = RoundState(
            dealer_hand=dealer_hand,
            slots=(slot,),
            active_slot_index=active_slot_index,
            phase=phase,
            effects=tuple(effects),
            **kwargs,
        )
        logger.debug(f"Round {state.round_id} started in phase {phase.value}")
        return state

    def legal_actions(self, state: RoundState) -> FrozenSet[Action]:
        """Actions the active slot may take right now."""
        slot = state.active_slot
        if slot is None or not slot.is_playing:
            return frozenset()
        actions = {Action.HIT, Action.STAND}
        if slot.can_double:
            actions.add(Action.DOUBLE)
        if slot.can_split:
            actions.add(Action.SPLIT)
        return frozenset(actions)

    def check_action(self, state: RoundState, action_type: Action) -> None:
        """
        Validate an intent against the round.

        Raises:
            IllegalActionError: Naming the violated precondition
        """
        if not isinstance(action_type, Action):
            raise IllegalActionError(f"Unknown action {action_type!r}")
        if state.phase is not RoundPhase.AWAITING_ACTION:
            raise IllegalActionError(
                f"Cannot {action_type.value}: round is {state.phase.value}, "
                f"not awaiting an action"
            )
        slot = state.active_slot
        if slot is None or not slot.is_playing:
            raise IllegalActionError(
                f"Cannot {action_type.value}: slot {state.active_slot_index} "
                f"is not playing"
            )
        if action_type is Action.DOUBLE and not slot.can_double:
            raise IllegalActionError(
                f"Cannot double slot {state.active_slot_index}: doubling needs "
                f"exactly two cards and no prior hit"
            )
        if action_type is Action.SPLIT and not slot.can_split:
            raise IllegalActionError(
                f"Cannot split slot {state.active_slot_index}: splitting needs "
                f"a pair of equal value within the split limit"
            )

    def request_action(self, state: RoundState, action_type: Action) -> RoundState:
        """
        Validate an intent and ask the host to send it to the server.

        The round itself is unchanged; the returned snapshot carries a
        SEND_ACTION effect.
        """
        self.check_action(state, action_type)
        effect = Effect(
            EffectType.SEND_ACTION,
            {
                "round_id": state.round_id,
                "action": action_type.value,
                "slot_index": state.active_slot_index,
            },
        )
        return replace(state, effects=(effect,))

    def apply_action(self, state: RoundState, action: PlayerAction) -> RoundState:
        """
        Apply a resolved player action to the active slot.

        Args:
            state: Current round
            action: One of Hit, Stand, Double or Split carrying the drawn cards

        Returns:
            New round after the action

        Raises:
            IllegalActionError: If the action is not legal for the active slot
        """
        if not isinstance(action, (Hit, Stand, Double, Split)):
            raise IllegalActionError(f"Unknown action {action!r}")
        self.check_action(state, action.action)

        index = state.active_slot_index
        slot = state.slots[index]
        slots: List[PlayerHandSlot] = list(state.slots)
        effects: List[Effect] = []

        if isinstance(action, Hit):
            hand = slot.hand.with_card(action.card)
            slots[index] = replace(
                slot,
                hand=hand,
                status=SlotStatus.BUST if hand.is_bust else SlotStatus.PLAYING,
                can_double=False,
                can_split=False,
            )
            effects.append(play_sound(Sound.CARD_DEAL))

        elif isinstance(action, Stand):
            slots[index] = replace(
                slot, status=SlotStatus.STOOD, can_double=False, can_split=False
            )

        elif isinstance(action, Double):
            hand = slot.hand.with_card(action.card)
            slots[index] = replace(
                slot,
                hand=hand,
                wager=slot.wager * 2,
                status=SlotStatus.BUST if hand.is_bust else SlotStatus.DOUBLED,
                can_double=False,
                can_split=False,
            )
            effects.append(play_sound(Sound.CARD_DEAL))

        else:
            first, second = slot.hand.cards
            depth = slot.split_depth + 1
            slots[index] = self.make_slot(
                Hand.of(first, action.first_card), slot.wager, depth
            )
            slots.append(
                self.make_slot(Hand.of(second, action.second_card), slot.wager, depth)
            )
            effects.extend([play_sound(Sound.CARD_DEAL), play_sound(Sound.CARD_DEAL)])

        if slots[index].status is SlotStatus.BUST:
            effects.append(play_sound(Sound.BUST))

        new_state = replace(state, slots=tuple(slots), effects=tuple(effects))
        if not slots[index].is_playing:
            new_state = self._advance(new_state)

        logger.debug(
            f"Round {state.round_id}: {action.action.value} on slot {index} -> "
            f"{slots[index].status.value}"
        )
        return new_state

    def _advance(self, state: RoundState) -> RoundState:
        """Move to the next playing slot, or to RESOLVING if none is left."""
        for i in range(state.active_slot_index + 1, len(state.slots)):
            if state.slots[i].is_playing:
                return replace(state, active_slot_index=i)
        return replace(
            state, active_slot_index=len(state.slots), phase=RoundPhase.RESOLVING
        )

    def settle_dealer(
        self, state: RoundState, dealer_draws: Iterable[Card], strict: bool = True
    ) -> RoundState:
        """
        Replay the dealer's forced draws and settle the round.

        The server is the source of randomness; ``dealer_draws`` is the
        sequence of cards it dealt to the dealer after the initial deal
        (including the hole card when only the upcard was known).

        Args:
            state: Round in RESOLVING
            dealer_draws: Cards dealt to the dealer, in order
            strict: Raise if the sequence runs out while the dealer must still
                draw. With ``strict=False`` the dealer stands on whatever the
                server dealt (a player natural ends the round without a
                dealer draw).

        Raises:
            IllegalActionError: If the round is not resolving, or (strict
                only) the sequence runs out while the dealer must still draw
        """
        if state.phase is not RoundPhase.RESOLVING:
            raise IllegalActionError(
                f"Dealer can only play while resolving, round is {state.phase.value}"
            )

        draws = list(dealer_draws)
        dealer = state.dealer_hand
        used = 0
        while self.rules.should_dealer_hit(dealer):
            if used >= len(draws):
                if not strict:
                    break
                raise IllegalActionError(
                    f"Dealer must draw on {dealer.total} but the draw sequence "
                    f"ran out after {used} card(s)"
                )
            dealer = dealer.with_card(draws[used])
            used += 1

        if used < len(draws):
            logger.warning(
                f"Round {state.round_id}: ignoring {len(draws) - used} surplus "
                f"dealer card(s); dealer stands on {dealer.total}"
            )

        settled = replace(
            state,
            dealer_hand=dealer,
            dealer_hole_card_revealed=True,
            phase=RoundPhase.SETTLED,
        )
        effects = (play_sound(Sound.CARD_FLIP), self._result_sound(settled))
        logger.debug(f"Round {state.round_id} settled, dealer {dealer.total}")
        return replace(settled, effects=effects)

    def _result_sound(self, state: RoundState) -> Effect:
        outcomes = self.compute_outcome(state)
        net = sum(o.payout for o in outcomes) - state.total_wager
        if net > 0 and any(o.outcome is Outcome.BLACKJACK_WIN for o in outcomes):
            return play_sound(Sound.BLACKJACK, net=net)
        if net > 0:
            return play_sound(Sound.WIN, net=net)
        if net == 0:
            return play_sound(Sound.PUSH, net=net)
        return play_sound(Sound.LOSE, net=net)

    def compute_outcome(self, state: RoundState) -> Tuple[SlotOutcome, ...]:
        """
        Settle every slot against the dealer.

        Pure projection of a settled round; calling it repeatedly yields the
        same result.

        Raises:
            IllegalActionError: If the round is not settled
        """
        if state.phase is not RoundPhase.SETTLED:
            raise IllegalActionError(
                f"Outcomes need a settled round, round is {state.phase.value}"
            )

        dealer = state.dealer_hand
        outcomes = []
        for index, slot in enumerate(state.slots):
            wager = slot.wager
            if slot.status is SlotStatus.BUST:
                outcome, payout = Outcome.LOSS, 0.0
            elif slot.status is SlotStatus.BLACKJACK and not dealer.is_blackjack:
                outcome = Outcome.BLACKJACK_WIN
                payout = wager * self.rules.blackjack_payout + wager
            elif dealer.is_bust:
                outcome, payout = Outcome.WIN, wager * 2
            elif slot.hand.total > dealer.total:
                outcome, payout = Outcome.WIN, wager * 2
            elif slot.hand.total == dealer.total:
                outcome, payout = Outcome.PUSH, wager
            else:
                outcome, payout = Outcome.LOSS, 0.0
            outcomes.append(SlotOutcome(index, outcome, payout))

        return tuple(outcomes)
