"""
Immutable blackjack hand.

Totals are recomputed from the cards on every access. Ace revaluation is not
monotonic (a hand can go from soft 17 to hard 12 on the next card), so no
running total is kept.
"""

from dataclasses import dataclass
from typing import Iterable, Tuple

from highroller.common.card import Card, Rank


def evaluate(cards: Iterable[Card]) -> Tuple[int, int]:
    """
    Compute a blackjack total.

    Every Ace starts at 11; while the total is over 21 and an Ace still
    counts 11, one Ace is demoted to 1.

    Args:
        cards: Cards to evaluate

    Returns:
        Tuple of (total, number of Aces still counted as 11)
    """
    total = 0
    soft_aces = 0
    for card in cards:
        total += card.rank.rank_value
        if card.rank is Rank.ACE:
            soft_aces += 1

    while total > 21 and soft_aces > 0:
        total -= 10
        soft_aces -= 1

    return total, soft_aces


@dataclass(frozen=True)
class Hand:
    """A hand in the game of blackjack."""

    cards: Tuple[Card, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "cards", tuple(self.cards))

    @classmethod
    def of(cls, *cards: Card) -> "Hand":
        return cls(tuple(cards))

    def with_card(self, card: Card) -> "Hand":
        """Return a new hand with ``card`` appended."""
        return Hand(self.cards + (card,))

    @property
    def total(self) -> int:
        return evaluate(self.cards)[0]

    @property
    def is_soft(self) -> bool:
        """Determine if the hand is soft (contains an ace counted as 11)."""
        return evaluate(self.cards)[1] > 0

    @property
    def is_blackjack(self) -> bool:
        return len(self.cards) == 2 and self.total == 21

    @property
    def is_bust(self) -> bool:
        return self.total > 21

    @property
    def is_pair(self) -> bool:
        """Two cards of equal rank value (a King and a Ten pair up)."""
        return (
            len(self.cards) == 2
            and self.cards[0].rank.rank_value == self.cards[1].rank.rank_value
        )

    def __len__(self) -> int:
        return len(self.cards)

    def __repr__(self) -> str:
        return f"Hand({list(self.cards)!r})"

    def __str__(self) -> str:
        return ", ".join(str(card) for card in self.cards)
