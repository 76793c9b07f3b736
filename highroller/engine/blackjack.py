"""
Blackjack session.

This module provides `BlackjackSession`, which keeps the client-side round
mirror in step with the server. The backend deals every card; the session
replays those cards through `HandEngine` so the UI gets immediate local
transitions, then reconciles against the server's snapshot.
"""

from typing import Any, Awaitable, Dict, Optional, Tuple, Union
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
from highroller.common.errors import (
    ErrorInfo,
    IllegalActionError,
    InvalidSnapshotError,
    InvalidWagerError,
    classify_error,
)
from highroller.effects.dispatcher import EffectDispatcher
from highroller.engine.base import GameSession
from highroller.reveal.models import ServerError
from highroller.state.models import RoundPhase, RoundState, SlotOutcome
from highroller.state.reconcile import RoundSnapshot, new_cards, reconcile
from highroller.state.transitions import HandEngine, is_positive_amount

logger = logging.getLogger("highroller.engine")


class BlackjackSession(GameSession):
    """
    Session driving one blackjack round at a time.

    ``backend`` must provide two coroutine methods, each returning the
    server's round payload (a dict or a parsed `RoundSnapshot`):

    - ``start_round(wager)``
    - ``send_action(round_id, action, slot_index)``

    Config keys:
        rules: Mapping passed to `Rules.from_dict`
    """

    def __init__(
        self,
        backend: Any,
        dispatcher: Optional[EffectDispatcher] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(dispatcher, config)
        self.backend = backend
        self.engine = HandEngine(Rules.from_dict(self.config.get("rules")))
        self.last_error: Optional[ErrorInfo] = None

    @staticmethod
    def _snapshot(payload: Union[RoundSnapshot, Dict[str, Any]]) -> RoundSnapshot:
        if isinstance(payload, RoundSnapshot):
            return payload
        return RoundSnapshot.from_dict(payload)

    def _record_failure(self, error: Any, context: str) -> None:
        self.last_error = classify_error(error)
        logger.warning(
            f"{context} failed: {self.last_error.kind.value} ({self.last_error.message})"
        )

    async def _receive(
        self, request: Awaitable[Any], context: str
    ) -> Optional[RoundSnapshot]:
        """
        Await a backend call and parse its round payload.

        Transport failures, error payloads and malformed snapshots are
        recorded in `last_error` and yield None.
        """
        try:
            payload = await request
            if isinstance(payload, dict) and "error" in payload:
                self._record_failure(ServerError.from_dict(payload), context)
                return None
            snapshot = self._snapshot(payload)
        except Exception as exc:
            self._record_failure(exc, context)
            return None
        self.last_error = None
        return snapshot

    async def reset(self) -> None:
        self.state = None
        self.last_error = None

    async def start(self, wager: float) -> Optional[RoundState]:
        """
        Deal a new round.

        Returns:
            The new round, or the previous state if the backend call failed
            or returned an unusable deal

        Raises:
            InvalidWagerError: If the wager is not a positive amount
            IllegalActionError: If a round is still in progress
        """
        if not is_positive_amount(wager):
            raise InvalidWagerError(f"Wager must be a positive amount, got {wager!r}")
        if self.state is not None and self.state.is_active:
            raise IllegalActionError(f"Round {self.state.round_id} is still in progress")

        snapshot = await self._receive(self.backend.start_round(wager), "Starting a round")
        if snapshot is None:
            return self.state

        try:
            state = self.engine.start_round(
                Hand(snapshot.player_hands[0]),
                Hand(snapshot.dealer_hand[:1]),
                wager,
                round_id=snapshot.round_id,
            )
        except IllegalActionError as exc:
            self._record_failure(InvalidSnapshotError(str(exc)), "Reading the deal")
            return self.state
        await self._commit(state)
        await self._follow(snapshot)
        return self.state

    async def act(self, action_type: Action) -> RoundState:
        """
        Send a player decision and fold the server's answer into the round.

        A failed call or an unusable answer leaves the round as it was and
        sets `last_error`.

        Raises:
            IllegalActionError: If the action is not legal right now; the
                backend is not called
        """
        if self.state is None:
            raise IllegalActionError("No round in progress")
        await self._commit(self.engine.request_action(self.state, action_type))

        index = self.state.active_slot_index
        context = f"Sending {action_type.value}"
        snapshot = await self._receive(
            self.backend.send_action(self.state.round_id, action_type.value, index),
            context,
        )
        if snapshot is None:
            return self.state
        try:
            action = self._resolve(action_type, index, snapshot)
        except InvalidSnapshotError as exc:
            self._record_failure(exc, context)
            return self.state

        await self._commit(self.engine.apply_action(self.state, action))
        await self._follow(snapshot)
        return self.state

    def _resolve(
        self, action_type: Action, index: int, snapshot: RoundSnapshot
    ) -> PlayerAction:
        """Recover the drawn cards for ``action_type`` from the snapshot."""
        slot = self.state.slots[index]
        if index >= len(snapshot.player_hands):
            raise InvalidSnapshotError(f"Snapshot has no hand {index}")
        server_hand = snapshot.player_hands[index]

        if action_type is Action.STAND:
            return Stand()
        if action_type in (Action.HIT, Action.DOUBLE):
            drawn = self._exactly_one(new_cards(slot.hand.cards, server_hand))
            return Hit(drawn) if action_type is Action.HIT else Double(drawn)

        # Split: the server keeps the first card in place and appends the second
        first, second = slot.hand.cards
        added = snapshot.player_hands[len(self.state.slots):]
        if len(added) != 1:
            raise InvalidSnapshotError(
                f"Split should add one hand, snapshot added {len(added)}"
            )
        return Split(
            self._exactly_one(new_cards((first,), server_hand)),
            self._exactly_one(new_cards((second,), added[0])),
        )

    @staticmethod
    def _exactly_one(cards: Tuple) -> Any:
        if len(cards) != 1:
            raise InvalidSnapshotError(f"Expected one new card, got {len(cards)}")
        return cards[0]

    async def _follow(self, snapshot: RoundSnapshot) -> None:
        """Reconcile, then settle if the server has finished the round."""
        try:
            reconciled = reconcile(self.state, snapshot)
        except InvalidSnapshotError as exc:
            self._record_failure(exc, f"Reconciling round {self.state.round_id}")
            return
        await self._commit(reconciled)
        if snapshot.completed and self.state.phase is RoundPhase.RESOLVING:
            try:
                draws = new_cards(self.state.dealer_hand.cards, snapshot.dealer_hand)
            except InvalidSnapshotError as exc:
                self._record_failure(exc, f"Settling round {self.state.round_id}")
                return
            await self._commit(
                self.engine.settle_dealer(self.state, draws, strict=False)
            )

    def outcome(self) -> Tuple[SlotOutcome, ...]:
        """
        Settlement of the current round.

        Raises:
            IllegalActionError: If there is no settled round
        """
        if self.state is None:
            raise IllegalActionError("No round has been played")
        return self.engine.compute_outcome(self.state)
