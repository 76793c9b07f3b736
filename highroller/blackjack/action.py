"""
Player actions for a blackjack round.

`Action` names an intent before it is sent to the server. The dataclasses
below are the resolved actions applied to the round once the server has
supplied the cards, each carrying exactly the payload its variant needs.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

from highroller.common.card import Card


class Action(Enum):
    """Enum for the possible actions a player can take in a game of blackjack."""

    HIT = "hit"
    STAND = "stand"
    DOUBLE = "double"
    SPLIT = "split"


@dataclass(frozen=True)
class Hit:
    card: Card
    action = Action.HIT

    @property
    def cards(self) -> Tuple[Card, ...]:
        return (self.card,)


@dataclass(frozen=True)
class Stand:
    action = Action.STAND

    @property
    def cards(self) -> Tuple[Card, ...]:
        return ()


@dataclass(frozen=True)
class Double:
    card: Card
    action = Action.DOUBLE

    @property
    def cards(self) -> Tuple[Card, ...]:
        return (self.card,)


@dataclass(frozen=True)
class Split:
    """Split the active pair; ``first_card`` joins the original slot."""

    first_card: Card
    second_card: Card
    action = Action.SPLIT

    @property
    def cards(self) -> Tuple[Card, ...]:
        return (self.first_card, self.second_card)


PlayerAction = Union[Hit, Stand, Double, Split]
