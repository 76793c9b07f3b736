"""
Pytest configuration for tests at the root level.

This module contains pytest fixtures shared by the blackjack and
case-opening tests.
"""

import pytest

from highroller.blackjack.hand import Hand
from highroller.common.card import Card
from highroller.reveal.models import CaseDefinition, CaseItem, PurchaseResult, Rarity
from highroller.state.transitions import HandEngine


@pytest.fixture
def hand():
    """Build a Hand from short card notation: ``hand("As", "Kd")``."""

    def _hand(*cards):
        return Hand(tuple(Card.parse(c) for c in cards))

    return _hand


@pytest.fixture
def engine():
    """A HandEngine with the default table rules."""
    return HandEngine()


@pytest.fixture
def items():
    return (
        CaseItem("item-1", "Rusty Dagger", Rarity.COMMON, 1.0),
        CaseItem("item-2", "Silver Ring", Rarity.UNCOMMON, 5.0),
        CaseItem("item-3", "Golden Chalice", Rarity.RARE, 25.0),
        CaseItem("item-4", "Dragon Scale", Rarity.EPIC, 100.0),
        CaseItem("item-5", "Crown of Ages", Rarity.LEGENDARY, 1000.0),
    )


@pytest.fixture
def case(items):
    return CaseDefinition("case-1", "Treasure Case", 10.0, items)


@pytest.fixture
def purchase_result(items):
    return PurchaseResult(
        item=items[2],
        currency_awarded=25.0,
        transaction_id="tx-1",
        opening_id="opening-1",
    )


@pytest.fixture
def round_payload():
    """
    Build a backend round payload.

    Hands and the dealer hand are given in short card notation.
    """

    def _payload(
        game_id,
        player_hands,
        dealer_hand,
        statuses=None,
        current=0,
        revealed=False,
        completed=False,
        can_double=None,
        can_split=None,
        bet=10.0,
    ):
        count = len(player_hands)
        return {
            "gameId": game_id,
            "betAmount": bet,
            "playerHands": [
                [Card.parse(c).to_dict() for c in cards] for cards in player_hands
            ],
            "dealerHand": [Card.parse(c).to_dict() for c in dealer_hand],
            "handStatuses": statuses or ["playing"] * count,
            "currentHandIndex": current,
            "dealerRevealed": revealed,
            "gameStatus": "completed" if completed else "waiting_for_action",
            "canDouble": can_double if can_double is not None else [False] * count,
            "canSplit": can_split if can_split is not None else [False] * count,
        }

    return _payload
