"""
Blackjack primitives: hands, actions and table rules.
"""

from highroller.blackjack.action import (
    Action,
    Double,
    Hit,
    PlayerAction,
    Split,
    Stand,
)
from highroller.blackjack.hand import Hand, evaluate
from highroller.blackjack.rules import Rules

__all__ = [
    "Action",
    "Double",
    "Hit",
    "PlayerAction",
    "Split",
    "Stand",
    "Hand",
    "evaluate",
    "Rules",
]
