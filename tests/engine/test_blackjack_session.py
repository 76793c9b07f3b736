"""
Tests for the BlackjackSession class.

The backend is mocked; its payloads follow the server's round shape.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from highroller.blackjack.action import Action
from highroller.common.errors import (
    ErrorKind,
    IllegalActionError,
    InvalidWagerError,
)
from highroller.effects import EffectDispatcher, EffectType, Sound
from highroller.engine.blackjack import BlackjackSession
from highroller.state.models import Outcome, RoundPhase, SlotStatus


@pytest.fixture
def recorder():
    return MagicMock()


@pytest.fixture
def dispatcher(recorder):
    dispatcher = EffectDispatcher()
    dispatcher.on_any(recorder)
    return dispatcher


@pytest.fixture
def backend():
    backend = MagicMock()
    backend.start_round = AsyncMock()
    backend.send_action = AsyncMock()
    return backend


@pytest.fixture
def session(backend, dispatcher):
    return BlackjackSession(backend, dispatcher)


def played_sounds(recorder):
    effects = [c.args[0] for c in recorder.call_args_list]
    return [e.payload["sound"] for e in effects if e.type is EffectType.PLAY_SOUND]


def sent_effects(recorder, effect_type):
    return [c.args[0] for c in recorder.call_args_list if c.args[0].type is effect_type]


@pytest.mark.asyncio
async def test_start(session, backend, round_payload, recorder):
    backend.start_round.return_value = round_payload(
        "g-1", [["10c", "6d"]], ["9s"], can_double=[True]
    )

    state = await session.start(10.0)

    backend.start_round.assert_awaited_once_with(10.0)
    assert state.round_id == "g-1"
    assert state.phase is RoundPhase.AWAITING_ACTION
    assert state.slots[0].can_double
    assert state.dealer_hand.total == 9
    assert played_sounds(recorder) == [Sound.CARD_DEAL]
    assert session.last_error is None


@pytest.mark.asyncio
async def test_hit_to_bust_settles_round(session, backend, round_payload, recorder):
    backend.start_round.return_value = round_payload("g-1", [["10c", "6d"]], ["9s"])
    backend.send_action.return_value = round_payload(
        "g-1", [["10c", "6d", "8s"]], ["9s", "8c"],
        statuses=["bust"], revealed=True, completed=True,
    )
    await session.start(10.0)

    state = await session.act(Action.HIT)

    backend.send_action.assert_awaited_once_with("g-1", "hit", 0)
    assert state.slots[0].status is SlotStatus.BUST
    assert state.phase is RoundPhase.SETTLED
    assert state.dealer_hand.total == 17
    (outcome,) = session.outcome()
    assert outcome.outcome is Outcome.LOSS
    assert outcome.payout == 0.0
    assert sent_effects(recorder, EffectType.SEND_ACTION)[0].payload["action"] == "hit"
    assert played_sounds(recorder)[-3:] == [Sound.BUST, Sound.CARD_FLIP, Sound.LOSE]


@pytest.mark.asyncio
async def test_stand_replays_dealer_draws(session, backend, round_payload):
    backend.start_round.return_value = round_payload("g-1", [["10c", "9d"]], ["10d"])
    backend.send_action.return_value = round_payload(
        "g-1", [["10c", "9d"]], ["10d", "6c", "Kh"],
        statuses=["stand"], revealed=True, completed=True,
    )
    await session.start(10.0)

    state = await session.act(Action.STAND)

    assert state.dealer_hand.is_bust
    assert len(state.dealer_hand) == 3
    assert session.outcome()[0].outcome is Outcome.WIN
    assert session.outcome()[0].payout == 20.0


@pytest.mark.asyncio
async def test_double_keeps_doubled_wager(session, backend, round_payload):
    backend.start_round.return_value = round_payload(
        "g-1", [["5c", "6d"]], ["10d"], can_double=[True]
    )
    backend.send_action.return_value = round_payload(
        "g-1", [["5c", "6d", "9s"]], ["10d", "8c"],
        statuses=["stand"], revealed=True, completed=True,
    )
    await session.start(10.0)

    state = await session.act(Action.DOUBLE)

    assert state.slots[0].status is SlotStatus.DOUBLED
    assert state.slots[0].wager == 20.0
    assert session.outcome()[0].payout == 40.0


@pytest.mark.asyncio
async def test_split(session, backend, round_payload):
    backend.start_round.return_value = round_payload(
        "g-1", [["8c", "8d"]], ["6s"], can_double=[True], can_split=[True]
    )
    backend.send_action.return_value = round_payload(
        "g-1", [["8c", "3h"], ["8d", "Ks"]], ["6s"],
        can_double=[True, True], can_split=[False, False],
    )
    await session.start(10.0)

    state = await session.act(Action.SPLIT)

    backend.send_action.assert_awaited_once_with("g-1", "split", 0)
    assert len(state.slots) == 2
    assert [len(slot.hand) for slot in state.slots] == [2, 2]
    assert state.total_wager == 20.0
    assert state.active_slot_index == 0
    assert state.phase is RoundPhase.AWAITING_ACTION


@pytest.mark.asyncio
async def test_natural_blackjack_at_deal(session, backend, round_payload):
    backend.start_round.return_value = round_payload(
        "g-1", [["As", "Kh"]], ["9c", "7d"],
        statuses=["blackjack"], revealed=True, completed=True,
    )

    state = await session.start(10.0)

    assert state.phase is RoundPhase.SETTLED
    assert state.dealer_hand.total == 16
    (outcome,) = session.outcome()
    assert outcome.outcome is Outcome.BLACKJACK_WIN
    assert outcome.payout == 25.0


@pytest.mark.asyncio
async def test_network_failure_leaves_round_untouched(session, backend, round_payload):
    backend.start_round.return_value = round_payload("g-1", [["10c", "6d"]], ["9s"])
    backend.send_action.side_effect = ConnectionError("offline")
    before = await session.start(10.0)

    state = await session.act(Action.HIT)

    assert state.slots == before.slots
    assert state.phase is RoundPhase.AWAITING_ACTION
    assert session.last_error.kind is ErrorKind.NETWORK
    assert session.last_error.retryable


@pytest.mark.asyncio
async def test_illegal_action_never_reaches_backend(session, backend, round_payload):
    backend.start_round.return_value = round_payload("g-1", [["10c", "6d"]], ["9s"])
    await session.start(10.0)

    with pytest.raises(IllegalActionError):
        await session.act(Action.SPLIT)

    backend.send_action.assert_not_awaited()


@pytest.mark.asyncio
async def test_act_without_round(session):
    with pytest.raises(IllegalActionError):
        await session.act(Action.HIT)


@pytest.mark.asyncio
async def test_start_rejects_bad_wager_and_running_round(session, backend, round_payload):
    with pytest.raises(InvalidWagerError):
        await session.start(0)

    backend.start_round.return_value = round_payload("g-1", [["10c", "6d"]], ["9s"])
    await session.start(10.0)
    with pytest.raises(IllegalActionError):
        await session.start(10.0)
    backend.start_round.assert_awaited_once()


@pytest.mark.asyncio
async def test_start_failure_records_error(session, backend):
    backend.start_round.side_effect = ConnectionError("offline")

    state = await session.start(10.0)

    assert state is None
    assert session.last_error.kind is ErrorKind.NETWORK


@pytest.mark.asyncio
async def test_reset(session, backend, round_payload):
    backend.start_round.return_value = round_payload("g-1", [["10c", "6d"]], ["9s"])
    await session.start(10.0)

    await session.reset()

    assert session.state is None
    with pytest.raises(IllegalActionError):
        session.outcome()


def test_rules_from_config(backend):
    session = BlackjackSession(
        backend, config={"rules": {"blackjack_payout": 1.2, "dealer_hit_soft_17": False}}
    )
    assert session.engine.rules.blackjack_payout == 1.2
    assert not session.engine.rules.dealer_hit_soft_17


@pytest.mark.asyncio
async def test_error_payload_is_recorded_not_raised(session, backend, round_payload):
    backend.start_round.return_value = round_payload("g-1", [["10c", "6d"]], ["9s"])
    backend.send_action.return_value = {
        "error": {"code": "VALIDATION_ERROR", "message": "Invalid action"},
        "status": 400,
    }
    before = await session.start(10.0)

    state = await session.act(Action.HIT)

    assert state.slots == before.slots
    assert state.phase is RoundPhase.AWAITING_ACTION
    assert session.last_error.kind is ErrorKind.VALIDATION
    assert session.last_error.code == "VALIDATION_ERROR"
    assert session.last_error.status == 400


@pytest.mark.asyncio
async def test_malformed_snapshot_is_recorded(session, backend, round_payload):
    backend.start_round.return_value = round_payload("g-1", [["10c", "6d"]], ["9s"])
    backend.send_action.return_value = {"gameId": "g-1"}
    before = await session.start(10.0)

    state = await session.act(Action.STAND)

    assert state.slots == before.slots
    assert session.last_error.kind is ErrorKind.VALIDATION


@pytest.mark.asyncio
async def test_snapshot_without_drawn_card_is_recorded(session, backend, round_payload):
    backend.start_round.return_value = round_payload("g-1", [["10c", "6d"]], ["9s"])
    backend.send_action.return_value = round_payload("g-1", [["10c", "6d"]], ["9s"])
    before = await session.start(10.0)

    state = await session.act(Action.HIT)

    assert state.slots == before.slots
    assert session.last_error.kind is ErrorKind.VALIDATION


@pytest.mark.asyncio
async def test_error_payload_on_start(session, backend):
    backend.start_round.return_value = {"error": "Insufficient funds"}

    state = await session.start(10.0)

    assert state is None
    assert session.last_error.kind is ErrorKind.SERVER


@pytest.mark.asyncio
async def test_snapshot_for_another_round_is_recorded(session, backend, round_payload):
    backend.start_round.return_value = round_payload("g-1", [["10c", "6d"]], ["9s"])
    backend.send_action.return_value = round_payload("g-2", [["10c", "6d"]], ["9s"])
    await session.start(10.0)

    state = await session.act(Action.STAND)

    assert state.round_id == "g-1"
    assert session.last_error.kind is ErrorKind.VALIDATION
