"""
Case-opening session.

This module provides `CaseOpeningSession`, which drives `RevealCoordinator`
for a host application: it calls the purchase endpoint, plans the carousel
strip when an animation starts, credits the prize with retry once the reveal
completes and keeps a short history of recent openings.
"""

from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Union
import asyncio
import logging

import numpy as np

from highroller.common.errors import (
    IllegalTransitionError,
    InsufficientBalanceError,
    InvalidWagerError,
)
from highroller.common.retry import RetryPolicy, retry_async
from highroller.effects.dispatcher import EffectDispatcher, EventPriority
from highroller.effects.effect import Effect, EffectType
from highroller.engine.base import GameSession
from highroller.reveal.carousel import CarouselPlan, CarouselSettings, build_carousel
from highroller.reveal.coordinator import CreditFn, RevealCoordinator
from highroller.reveal.ledger import CreditLedger
from highroller.reveal.models import (
    AnimationMode,
    CaseDefinition,
    PurchaseResult,
    RevealPhase,
    RevealState,
    ServerError,
)

logger = logging.getLogger("highroller.engine")

PurchaseFn = Callable[
    [CaseDefinition], Awaitable[Union[PurchaseResult, ServerError, Dict[str, Any]]]
]

_STARTABLE = frozenset({RevealPhase.IDLE, RevealPhase.COMPLETE, RevealPhase.ERROR})


class CaseOpeningSession(GameSession):
    """
    Session driving case openings for one player.

    Args:
        purchase_fn: ``async (case) -> PurchaseResult | ServerError | dict``;
            may raise on transport failures
        credit_fn: ``async (result, transaction_id) -> None``
        ledger: Credit ledger, shared between sessions of the same player
        dispatcher: Dispatcher receiving each snapshot's effects
        config: Session options (``animation_mode``, ``carousel``,
            ``credit_retry``, ``history_size``)
        rng: Random generator for carousel planning
    """

    def __init__(
        self,
        purchase_fn: PurchaseFn,
        credit_fn: CreditFn,
        ledger: Optional[CreditLedger] = None,
        dispatcher: Optional[EffectDispatcher] = None,
        config: Optional[Dict[str, Any]] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        super().__init__(dispatcher, config)
        self.purchase_fn = purchase_fn
        self.credit_fn = credit_fn

        mode = self.config.get("animation_mode")
        self.coordinator = RevealCoordinator(
            ledger, AnimationMode(mode) if mode else None
        )
        self.carousel_settings = CarouselSettings.from_dict(self.config.get("carousel"))
        self.retry_policy = RetryPolicy.from_dict(self.config.get("credit_retry"))
        self.rng = rng if rng is not None else np.random.default_rng()
        self.sleep = asyncio.sleep

        self.history: Deque[PurchaseResult] = deque(
            maxlen=self.config.get("history_size", 10)
        )
        self.carousel: Optional[CarouselPlan] = None
        self.state = self.coordinator.reset()

        # Plan the strip before any host handler for the same effect runs
        self.dispatcher.on(
            EffectType.START_ANIMATION, self._plan_carousel, EventPriority.CRITICAL
        )

    @property
    def ledger(self) -> CreditLedger:
        return self.coordinator.ledger

    def _plan_carousel(self, effect: Effect) -> None:
        if effect.payload["mode"] is not AnimationMode.CAROUSEL:
            self.carousel = None
            return
        result = effect.payload["result"]
        try:
            self.carousel = build_carousel(
                self.state.case.items, result.item, self.rng, self.carousel_settings
            )
        except ValueError as e:
            logger.warning(f"Cannot plan carousel for {self.state.case.id}: {e}")
            self.carousel = None

    def _credit_outstanding(self) -> bool:
        return self.state.phase is RevealPhase.COMPLETE and not self.state.is_credited

    def _check_startable(self) -> None:
        if self.state.phase not in _STARTABLE:
            raise IllegalTransitionError(
                f"Opening {self.state.attempt_id} is still {self.state.phase.value}"
            )

    async def reset(self) -> RevealState:
        """Abandon the current attempt. A credit already in flight still lands."""
        if self._credit_outstanding():
            logger.warning(
                f"Abandoning uncredited prize {_transaction_id(self.state)} "
                f"of opening {self.state.attempt_id}"
            )
        self.carousel = None
        await self._commit(self.coordinator.reset())
        return self.state

    async def open_case(self, case: CaseDefinition, balance: float) -> RevealState:
        """
        Purchase ``case`` and start its animation.

        A local balance or price failure and any purchase failure end in the
        ERROR phase rather than raising. A previous prize whose credit has
        not landed is credited first.

        Raises:
            IllegalTransitionError: If another opening is still in progress,
                or the previous prize still cannot be credited
        """
        self._check_startable()
        if self._credit_outstanding():
            await self._credit()
            self._check_startable()
            if self._credit_outstanding():
                raise IllegalTransitionError(
                    f"Prize {_transaction_id(self.state)} of opening "
                    f"{self.state.attempt_id} is not credited yet"
                )
        self.carousel = None

        try:
            started = self.coordinator.begin(case, balance)
        except (InsufficientBalanceError, InvalidWagerError) as exc:
            await self._commit(self.coordinator.fail(self.coordinator.reset(), exc))
            return self.state
        await self._commit(started)

        try:
            response = await self.purchase_fn(case)
            if isinstance(response, dict):
                response = PurchaseResult.from_dict(response)
        except Exception as exc:
            response = exc

        if self.state is not started:
            logger.info(
                f"Dropping purchase response for abandoned attempt {started.attempt_id}"
            )
            return self.state

        await self._commit(self.coordinator.on_purchase_result(started, response))
        return self.state

    async def animation_complete(self) -> RevealState:
        """
        Report that the current animation finished.

        Reaching COMPLETE records the prize in `history` and credits it.
        Calling again after completion only retries a credit that has not
        landed yet.
        """
        if self.state.phase in (RevealPhase.IDLE, RevealPhase.ERROR):
            logger.debug(
                f"Ignoring animation completion in phase {self.state.phase.value}"
            )
            return self.state

        changed = await self._commit(self.coordinator.on_animation_complete(self.state))
        await self._after_completion(changed)
        return self.state

    async def animation_failed(self, error: Any) -> RevealState:
        """
        Report a failed animation.

        A paid prize falls back to reveal mode, or completes and is credited
        if it was already being revealed.
        """
        if self.state.phase in (RevealPhase.COMPLETE, RevealPhase.ERROR):
            logger.debug(f"Ignoring animation error after {self.state.phase.value}")
            return self.state
        self.carousel = None
        changed = await self._commit(self.coordinator.on_animation_error(self.state, error))
        await self._after_completion(changed)
        return self.state

    async def _after_completion(self, changed: bool) -> None:
        if self.state.phase is not RevealPhase.COMPLETE:
            return
        if changed:
            self.history.appendleft(self.state.pending_result)
        if not self.state.is_credited:
            await self._credit()

    async def _credit(self) -> None:
        attempt = self.state
        transaction_id = _transaction_id(attempt)
        credited = await retry_async(
            lambda: self.coordinator.credit_if_needed(attempt, self.credit_fn),
            self.retry_policy,
            lambda s: not s.is_credited,
            sleep=self.sleep,
        )
        current = self.state
        if _transaction_id(current) != transaction_id:
            if credited.is_credited:
                logger.info(
                    f"Credited {transaction_id} for abandoned attempt {attempt.attempt_id}"
                )
        elif not current.is_credited:
            await self._commit(credited)


def _transaction_id(state: RevealState) -> Optional[str]:
    if state.pending_result is None:
        return None
    return state.pending_result.transaction_id
