"""
Sequencing for a single case-opening attempt.

`RevealCoordinator` moves a `RevealState` through
purchase -> animation -> reveal -> credit. Phase changes are pure; the only
operation that touches the outside world is `credit_if_needed`, which awaits
the injected credit function through a `CreditLedger` so the prize is
credited at most once per transaction id however often animation callbacks
fire or the UI re-renders.
"""

from dataclasses import replace
from typing import Any, Awaitable, Callable, Optional, Union
import logging

from highroller.common.errors import (
    ErrorInfo,
    ErrorKind,
    IllegalTransitionError,
    InsufficientBalanceError,
    InvalidWagerError,
    classify_error,
)
from highroller.effects.effect import (
    Effect,
    EffectType,
    Sound,
    ToastLevel,
    play_sound,
    show_toast,
)
from highroller.reveal.carousel import choose_animation_mode
from highroller.reveal.ledger import CreditLedger
from highroller.reveal.models import (
    AnimationMode,
    CaseDefinition,
    PurchaseResult,
    Rarity,
    RevealPhase,
    RevealState,
    ServerError,
)
from highroller.state.transitions import is_positive_amount

logger = logging.getLogger("highroller.reveal")

CreditFn = Callable[[PurchaseResult, str], Awaitable[Any]]

_FAILABLE = frozenset(
    {
        RevealPhase.IDLE,
        RevealPhase.PURCHASED,
        RevealPhase.ANIMATING,
        RevealPhase.REVEALING,
    }
)
_CREDITABLE = frozenset({RevealPhase.REVEALING, RevealPhase.COMPLETE})
_NOTABLE_RARITIES = frozenset({Rarity.RARE, Rarity.EPIC, Rarity.LEGENDARY})


class RevealCoordinator:
    """
    State machine for case openings.

    Args:
        ledger: Credit bookkeeping shared by every attempt of this player;
            a private ledger is created when omitted
        animation_mode: Force a presentation mode instead of choosing one
            from the case's item pool
    """

    def __init__(
        self,
        ledger: Optional[CreditLedger] = None,
        animation_mode: Optional[AnimationMode] = None,
    ):
        self.ledger = ledger or CreditLedger()
        self.animation_mode = animation_mode

    @staticmethod
    def _log_transition(before: RevealState, after: RevealState, context: str) -> None:
        logger.debug(
            f"Attempt {after.attempt_id}: {before.phase.value} -> "
            f"{after.phase.value} ({context})"
        )

    @staticmethod
    def _require(state: RevealState, allowed, operation: str) -> None:
        if state.phase not in allowed:
            names = ", ".join(sorted(p.value for p in allowed))
            raise IllegalTransitionError(
                f"Cannot {operation} in phase {state.phase.value}; expected {names}"
            )

    def reset(self) -> RevealState:
        """Start a fresh attempt; nothing from a previous attempt survives."""
        return RevealState()

    def begin(self, case: CaseDefinition, balance_snapshot: float) -> RevealState:
        """
        Start an attempt for ``case``.

        Only a local check; the server performs the authoritative one.

        Raises:
            InvalidWagerError: If the case price is not positive
            InsufficientBalanceError: If the balance cannot cover the price
        """
        if not is_positive_amount(case.price):
            raise InvalidWagerError(f"Case price must be positive, got {case.price!r}")
        if balance_snapshot < case.price:
            raise InsufficientBalanceError(case.price, balance_snapshot)

        state = RevealState(
            phase=RevealPhase.PURCHASED,
            case=case,
            effects=(
                Effect(
                    EffectType.REQUEST_PURCHASE,
                    {"case_id": case.id, "price": case.price},
                ),
                play_sound(Sound.CASE_OPEN),
            ),
        )
        logger.debug(f"Attempt {state.attempt_id}: purchasing case {case.id}")
        return state

    def on_purchase_result(
        self,
        state: RevealState,
        result: Union[PurchaseResult, ServerError, BaseException],
    ) -> RevealState:
        """
        Fold the purchase response into the attempt.

        A successful purchase moves to ANIMATING with the result pending.
        Anything else moves to ERROR; nothing is credited for a failed
        purchase.
        """
        self._require(state, {RevealPhase.PURCHASED}, "apply a purchase result")

        if not isinstance(result, PurchaseResult):
            return self.fail(state, result)

        mode = self.animation_mode or choose_animation_mode(state.case)
        new_state = replace(
            state,
            phase=RevealPhase.ANIMATING,
            pending_result=result,
            animation_mode=mode,
            effects=(
                Effect(
                    EffectType.START_ANIMATION,
                    {"mode": mode, "case_id": state.case.id, "result": result},
                ),
                show_toast(
                    ToastLevel.SUCCESS, "Case opened", f"-{state.case.price} spent on case"
                ),
            ),
        )
        self._log_transition(state, new_state, "purchase succeeded")
        return new_state

    def on_animation_complete(self, state: RevealState) -> RevealState:
        """
        Advance after an animation finishes.

        ANIMATING moves to REVEALING and REVEALING moves to COMPLETE. In
        COMPLETE this is a no-op that returns ``state`` itself, because
        completion callbacks can fire more than once.

        Raises:
            IllegalTransitionError: From any other phase
        """
        if state.phase is RevealPhase.COMPLETE:
            return state
        self._require(
            state,
            {RevealPhase.ANIMATING, RevealPhase.REVEALING},
            "complete an animation",
        )

        result = state.pending_result
        if state.phase is RevealPhase.ANIMATING:
            effects = [play_sound(Sound.CASE_REVEAL)]
            if result.item.rarity in _NOTABLE_RARITIES:
                effects.append(
                    play_sound(Sound.RARITY_REVEAL, rarity=result.item.rarity)
                )
            new_state = replace(
                state, phase=RevealPhase.REVEALING, effects=tuple(effects)
            )
        else:
            effects = [show_toast(ToastLevel.SUCCESS, "You won", result.item.name)]
            if not state.is_credited:
                effects.append(
                    Effect(
                        EffectType.REQUEST_CREDIT,
                        {"transaction_id": result.transaction_id},
                    )
                )
            new_state = replace(
                state, phase=RevealPhase.COMPLETE, effects=tuple(effects)
            )

        self._log_transition(state, new_state, "animation complete")
        return new_state

    def on_animation_error(self, state: RevealState, error: Any) -> RevealState:
        """
        Handle a failed animation.

        A paid attempt that was animating falls back to the reveal-only
        presentation so the prize is still shown and credited. One that was
        already revealing completes, so its credit is requested. From any
        other phase the attempt fails.
        """
        if state.phase is RevealPhase.REVEALING:
            logger.warning(
                f"Attempt {state.attempt_id}: reveal animation failed ({error}), "
                f"completing"
            )
            return self.on_animation_complete(state)
        if state.phase is RevealPhase.ANIMATING:
            logger.warning(
                f"Attempt {state.attempt_id}: animation failed ({error}), "
                f"falling back to reveal"
            )
            new_state = replace(
                state,
                phase=RevealPhase.REVEALING,
                animation_mode=AnimationMode.REVEAL,
                effects=(
                    Effect(
                        EffectType.START_ANIMATION,
                        {
                            "mode": AnimationMode.REVEAL,
                            "case_id": state.case.id,
                            "result": state.pending_result,
                        },
                    ),
                    play_sound(Sound.CASE_REVEAL),
                ),
            )
            self._log_transition(state, new_state, "animation fallback")
            return new_state
        return self.fail(state, error)

    def fail(self, state: RevealState, error: Any) -> RevealState:
        """
        Move the attempt to ERROR.

        Args:
            state: Attempt in IDLE, PURCHASED, ANIMATING or REVEALING
            error: ServerError, ErrorInfo or exception to classify

        Raises:
            IllegalTransitionError: If the attempt is already complete or failed
        """
        self._require(state, _FAILABLE, "fail the attempt")
        info = classify_error(error)
        new_state = replace(
            state,
            phase=RevealPhase.ERROR,
            error_info=info,
            effects=(show_toast(ToastLevel.ERROR, "Error", info.user_message),),
        )
        logger.warning(
            f"Attempt {state.attempt_id} failed in {state.phase.value}: "
            f"{info.kind.value} ({info.message})"
        )
        return new_state

    async def credit_if_needed(
        self, state: RevealState, credit_fn: CreditFn
    ) -> RevealState:
        """
        Credit the pending prize unless it already has been.

        The credit function is invoked at most once per transaction id; a
        concurrent call for the same transaction waits on the first one. On
        failure the phase is kept and ``error_info`` records a retryable
        CREDIT_FAILED, so calling again is safe.

        Args:
            state: Attempt in REVEALING or COMPLETE
            credit_fn: ``async (result, transaction_id) -> None``

        Raises:
            IllegalTransitionError: If there is nothing revealed to credit
        """
        if state.is_credited:
            return state
        self._require(state, _CREDITABLE, "credit the prize")

        result = state.pending_result
        transaction_id = result.transaction_id
        try:
            await self.ledger.run_once(
                transaction_id, lambda: credit_fn(result, transaction_id)
            )
        except Exception as exc:
            info = ErrorInfo(
                ErrorKind.CREDIT_FAILED,
                f"Credit for {transaction_id} failed: {exc}",
                code=getattr(exc, "code", None),
                status=getattr(exc, "status", None),
            )
            logger.warning(f"Attempt {state.attempt_id}: {info.message}")
            return replace(
                state,
                error_info=info,
                effects=(show_toast(ToastLevel.WARNING, "Credit delayed", info.user_message),),
            )

        new_state = replace(
            state,
            credited_transaction_id=transaction_id,
            error_info=None,
            effects=(
                show_toast(
                    ToastLevel.SUCCESS,
                    "Winnings credited",
                    f"+{result.currency_awarded}",
                ),
            ),
        )
        logger.debug(f"Attempt {state.attempt_id}: credited {transaction_id}")
        return new_state
