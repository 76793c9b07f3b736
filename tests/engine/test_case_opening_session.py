"""
Tests for the CaseOpeningSession class.
"""

import asyncio
import logging

import numpy as np
import pytest
from unittest.mock import AsyncMock, MagicMock

from highroller.common.errors import ErrorKind, IllegalTransitionError
from highroller.effects import EffectDispatcher, EffectType
from highroller.engine.case_opening import CaseOpeningSession
from highroller.reveal.carousel import validate_carousel
from highroller.reveal.ledger import CreditLedger
from highroller.reveal.models import (
    AnimationMode,
    PurchaseResult,
    RevealPhase,
    ServerError,
)


@pytest.fixture
def purchase_fn(purchase_result):
    return AsyncMock(return_value=purchase_result)


@pytest.fixture
def credit_fn():
    return AsyncMock()


@pytest.fixture
def recorder():
    return MagicMock()


@pytest.fixture
def session(purchase_fn, credit_fn, recorder):
    dispatcher = EffectDispatcher()
    dispatcher.on_any(recorder)
    session = CaseOpeningSession(
        purchase_fn,
        credit_fn,
        dispatcher=dispatcher,
        config={"credit_retry": {"max_retries": 2, "base_delay": 0.5}},
        rng=np.random.default_rng(3),
    )
    session.sleep = AsyncMock()
    return session


def dispatched_types(recorder):
    return [c.args[0].type for c in recorder.call_args_list]


@pytest.mark.asyncio
async def test_full_opening(session, case, purchase_result, purchase_fn, credit_fn, recorder):
    state = await session.open_case(case, balance=100.0)

    purchase_fn.assert_awaited_once_with(case)
    assert state.phase is RevealPhase.ANIMATING
    assert session.carousel is not None
    assert validate_carousel(session.carousel)
    assert session.carousel.winning_item == purchase_result.item

    for _ in range(3):
        state = await session.animation_complete()

    assert state.phase is RevealPhase.COMPLETE
    assert state.credited_transaction_id == "tx-1"
    credit_fn.assert_awaited_once_with(purchase_result, "tx-1")
    assert list(session.history) == [purchase_result]
    assert dispatched_types(recorder).count(EffectType.REQUEST_CREDIT) == 1
    assert dispatched_types(recorder).count(EffectType.START_ANIMATION) == 1


@pytest.mark.asyncio
async def test_purchase_payload_dict_is_parsed(session, case, purchase_fn, purchase_result):
    purchase_fn.return_value = purchase_result.to_dict()

    state = await session.open_case(case, balance=100.0)

    assert state.pending_result == purchase_result


@pytest.mark.asyncio
async def test_purchase_failure(session, case, purchase_fn, credit_fn):
    purchase_fn.return_value = ServerError("INVALID_CASE", "No such case", 404)

    state = await session.open_case(case, balance=100.0)

    assert state.phase is RevealPhase.ERROR
    assert state.error_info.kind is ErrorKind.VALIDATION
    assert session.carousel is None

    assert (await session.animation_complete()) is state
    credit_fn.assert_not_awaited()


@pytest.mark.asyncio
async def test_purchase_exception(session, case, purchase_fn):
    purchase_fn.side_effect = asyncio.TimeoutError()

    state = await session.open_case(case, balance=100.0)

    assert state.phase is RevealPhase.ERROR
    assert state.error_info.kind is ErrorKind.NETWORK
    assert state.error_info.retryable


@pytest.mark.asyncio
async def test_insufficient_balance_never_purchases(session, case, purchase_fn):
    state = await session.open_case(case, balance=1.0)

    assert state.phase is RevealPhase.ERROR
    assert state.error_info.kind is ErrorKind.INSUFFICIENT_BALANCE
    purchase_fn.assert_not_awaited()


@pytest.mark.asyncio
async def test_retry_after_error(session, case, purchase_fn):
    purchase_fn.side_effect = [ConnectionError("offline"), purchase_fn.return_value]
    failed = await session.open_case(case, balance=100.0)
    assert failed.phase is RevealPhase.ERROR

    state = await session.open_case(case, balance=100.0)

    assert state.phase is RevealPhase.ANIMATING
    assert state.attempt_id != failed.attempt_id
    assert state.error_info is None


@pytest.mark.asyncio
async def test_credit_is_retried_with_backoff(session, case, credit_fn):
    credit_fn.side_effect = [ConnectionError("offline"), None]
    await session.open_case(case, balance=100.0)
    await session.animation_complete()

    state = await session.animation_complete()

    assert state.is_credited
    assert credit_fn.await_count == 2
    session.sleep.assert_awaited_once_with(0.5)


@pytest.mark.asyncio
async def test_credit_failure_survives_until_next_completion(session, case, credit_fn):
    credit_fn.side_effect = ConnectionError("offline")
    await session.open_case(case, balance=100.0)
    await session.animation_complete()

    state = await session.animation_complete()

    assert credit_fn.await_count == 3
    assert state.phase is RevealPhase.COMPLETE
    assert not state.is_credited
    assert state.error_info.kind is ErrorKind.CREDIT_FAILED

    credit_fn.side_effect = None
    state = await session.animation_complete()

    assert state.is_credited
    assert state.error_info is None
    assert credit_fn.await_count == 4
    assert len(session.history) == 1


@pytest.mark.asyncio
async def test_concurrent_completions_credit_once(session, case, purchase_result):
    release = asyncio.Event()
    calls = []

    async def slow_credit(result, transaction_id):
        calls.append(transaction_id)
        await release.wait()

    session.credit_fn = slow_credit
    await session.open_case(case, balance=100.0)
    await session.animation_complete()

    first = asyncio.ensure_future(session.animation_complete())
    second = asyncio.ensure_future(session.animation_complete())
    await asyncio.sleep(0)
    release.set()
    await asyncio.gather(first, second)

    assert calls == ["tx-1"]
    assert session.state.is_credited
    assert list(session.history) == [purchase_result]


@pytest.mark.asyncio
async def test_animation_failure_falls_back_to_reveal(session, case, credit_fn):
    await session.open_case(case, balance=100.0)

    state = await session.animation_failed(RuntimeError("canvas lost"))

    assert state.phase is RevealPhase.REVEALING
    assert state.animation_mode is AnimationMode.REVEAL
    assert session.carousel is None

    state = await session.animation_complete()
    assert state.is_credited
    credit_fn.assert_awaited_once()


@pytest.mark.asyncio
async def test_animation_failure_after_completion_is_ignored(session, case):
    await session.open_case(case, balance=100.0)
    await session.animation_complete()
    done = await session.animation_complete()

    assert (await session.animation_failed(RuntimeError("late"))) is done


@pytest.mark.asyncio
async def test_cannot_open_while_in_progress(session, case):
    await session.open_case(case, balance=100.0)
    with pytest.raises(IllegalTransitionError):
        await session.open_case(case, balance=100.0)


@pytest.mark.asyncio
async def test_reset_during_purchase_drops_response(case, purchase_result, credit_fn):
    release = asyncio.Event()

    async def slow_purchase(selected):
        await release.wait()
        return purchase_result

    session = CaseOpeningSession(slow_purchase, credit_fn)
    task = asyncio.ensure_future(session.open_case(case, balance=100.0))
    await asyncio.sleep(0)
    assert session.state.phase is RevealPhase.PURCHASED

    await session.reset()
    release.set()
    state = await task

    assert state.phase is RevealPhase.IDLE
    assert state.pending_result is None
    credit_fn.assert_not_awaited()


@pytest.mark.asyncio
async def test_history_keeps_most_recent(case, credit_fn, items):
    results = [
        PurchaseResult(items[i], float(i), f"tx-{i}") for i in range(3)
    ]
    session = CaseOpeningSession(
        AsyncMock(side_effect=results), credit_fn, config={"history_size": 2}
    )

    for _ in results:
        await session.open_case(case, balance=100.0)
        await session.animation_complete()
        await session.animation_complete()

    assert list(session.history) == [results[2], results[1]]
    assert credit_fn.await_count == 3


@pytest.mark.asyncio
async def test_forced_reveal_mode_skips_carousel(case, purchase_fn, credit_fn):
    session = CaseOpeningSession(
        purchase_fn, credit_fn, config={"animation_mode": "reveal"}
    )

    state = await session.open_case(case, balance=100.0)

    assert state.animation_mode is AnimationMode.REVEAL
    assert session.carousel is None


@pytest.mark.asyncio
async def test_shared_ledger_credits_once(case, purchase_fn, credit_fn):
    ledger = CreditLedger()
    for _ in range(2):
        session = CaseOpeningSession(purchase_fn, credit_fn, ledger=ledger)
        await session.open_case(case, balance=100.0)
        await session.animation_complete()
        state = await session.animation_complete()
        assert state.is_credited

    credit_fn.assert_awaited_once()


@pytest.mark.asyncio
async def test_animation_failure_while_revealing_still_credits(
    session, case, purchase_result, credit_fn
):
    await session.open_case(case, balance=100.0)
    await session.animation_complete()

    state = await session.animation_failed(RuntimeError("reveal lost"))

    assert state.phase is RevealPhase.COMPLETE
    assert state.is_credited
    credit_fn.assert_awaited_once_with(purchase_result, "tx-1")
    assert session.ledger.is_credited("tx-1")
    assert list(session.history) == [purchase_result]


@pytest.fixture
def second_result(items):
    return PurchaseResult(items[0], 1.0, "tx-2", "opening-2")


@pytest.mark.asyncio
async def test_uncredited_prize_is_credited_before_next_opening(
    case, purchase_result, second_result, credit_fn
):
    credit_fn.side_effect = ConnectionError("offline")
    session = CaseOpeningSession(
        AsyncMock(side_effect=[purchase_result, second_result]),
        credit_fn,
        config={"credit_retry": {"max_retries": 0}},
    )
    await session.open_case(case, balance=100.0)
    await session.animation_complete()
    first = await session.animation_complete()
    assert not first.is_credited

    credit_fn.side_effect = None
    state = await session.open_case(case, balance=100.0)

    assert session.ledger.is_credited("tx-1")
    assert state.phase is RevealPhase.ANIMATING
    assert state.pending_result == second_result

    await session.animation_complete()
    await session.animation_complete()

    assert session.ledger.is_credited("tx-2")
    assert [c.args[1] for c in credit_fn.await_args_list] == ["tx-1", "tx-1", "tx-2"]


@pytest.mark.asyncio
async def test_next_opening_refused_while_prize_uncredited(case, purchase_fn, credit_fn):
    credit_fn.side_effect = ConnectionError("offline")
    session = CaseOpeningSession(
        purchase_fn, credit_fn, config={"credit_retry": {"max_retries": 0}}
    )
    await session.open_case(case, balance=100.0)
    await session.animation_complete()
    done = await session.animation_complete()

    with pytest.raises(IllegalTransitionError):
        await session.open_case(case, balance=100.0)

    purchase_fn.assert_awaited_once()
    assert session.state.attempt_id == done.attempt_id
    assert session.state.phase is RevealPhase.COMPLETE
    assert session.state.error_info.kind is ErrorKind.CREDIT_FAILED
    assert credit_fn.await_count == 2


@pytest.mark.asyncio
async def test_concurrent_completions_are_not_logged_as_abandoned(session, case, caplog):
    release = asyncio.Event()

    async def slow_credit(result, transaction_id):
        await release.wait()

    session.credit_fn = slow_credit
    await session.open_case(case, balance=100.0)
    await session.animation_complete()

    with caplog.at_level(logging.INFO, logger="highroller.engine"):
        first = asyncio.ensure_future(session.animation_complete())
        second = asyncio.ensure_future(session.animation_complete())
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(first, second)

    assert session.state.is_credited
    assert "abandoned" not in caplog.text
