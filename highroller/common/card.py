"""
This module defines the `Suit`, `Rank`, and `Card` types used by the table games.

- `Suit`: An enum representing the four suits of a standard deck of playing
cards: Hearts, Diamonds, Clubs, and Spades.

- `Rank`: An enum representing the thirteen ranks of a standard deck: Ace,
Two through Ten, Jack, Queen, and King.

- `Card`: An immutable playing card. Cards arrive from the backend as small
dictionaries (``{"suit": "hearts", "value": "A"}``) and are converted with
`Card.from_dict` before they reach any game state.
"""

from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Dict


@unique
class Suit(Enum):
    """
    Enum for suits in a card deck.
    """

    HEARTS = "♥"
    DIAMONDS = "♦"
    CLUBS = "♣"
    SPADES = "♠"

    @classmethod
    def from_name(cls, name: str) -> "Suit":
        """Look up a suit by its backend name ("hearts") or symbol ("♥")."""
        if not isinstance(name, str):
            raise TypeError(f"Invalid suit: {name!r}")
        key = name.strip()
        for suit in cls:
            if key.upper() == suit.name or key == suit.value:
                return suit
        if len(key) == 1 and key.upper() in _SUIT_LETTERS:
            return _SUIT_LETTERS[key.upper()]
        raise TypeError(f"Invalid suit: {name!r}")

    def __str__(self) -> str:
        return self.value


@unique
class Rank(Enum):
    """
    Enum for ranks in a card deck.
    """

    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"

    @property
    def rank_value(self) -> int:
        """The blackjack value of the rank, with an Ace counted high."""
        if self is Rank.ACE:
            return 11
        if self in (Rank.JACK, Rank.QUEEN, Rank.KING):
            return 10
        return int(self.value)

    @classmethod
    def from_symbol(cls, symbol: str) -> "Rank":
        """Look up a rank by its symbol, e.g. "A", "10" or "k"."""
        if not isinstance(symbol, str):
            raise TypeError(f"Invalid rank: {symbol!r}")
        try:
            return cls(symbol.strip().upper())
        except ValueError as exc:
            raise TypeError(f"Invalid rank: {symbol!r}") from exc

    def __str__(self) -> str:
        return self.value


_SUIT_LETTERS = {
    "H": Suit.HEARTS,
    "D": Suit.DIAMONDS,
    "C": Suit.CLUBS,
    "S": Suit.SPADES,
}


@dataclass(frozen=True)
class Card:
    """
    Immutable playing card.

    >>> card = Card(Rank.ACE, Suit.SPADES)
    >>> print(card)
    A♠
    >>> Card.from_dict({"suit": "hearts", "value": "10"})
    Card(Rank.TEN, Suit.HEARTS)
    """

    rank: Rank
    suit: Suit

    def __post_init__(self):
        if not isinstance(self.rank, Rank):
            raise TypeError(f"Invalid rank: {self.rank!r}")
        if not isinstance(self.suit, Suit):
            raise TypeError(f"Invalid suit: {self.suit!r}")

    @property
    def value(self) -> int:
        """Blackjack value of the card (Ace high)."""
        return self.rank.rank_value

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        """
        Build a card from the backend payload shape.

        Args:
            data: Mapping with ``suit`` (e.g. "hearts") and ``value`` (e.g. "A")

        Returns:
            The corresponding Card

        Raises:
            TypeError: If the payload is not a mapping or names an unknown
                suit or rank
        """
        if not isinstance(data, dict):
            raise TypeError(f"Invalid card payload: {data!r}")
        rank = data.get("value", data.get("rank"))
        return cls(Rank.from_symbol(rank), Suit.from_name(data.get("suit")))

    @classmethod
    def parse(cls, text: str) -> "Card":
        """
        Parse short card notation such as "A♠", "10h" or "QD".

        The last character is the suit, everything before it the rank.
        """
        if not isinstance(text, str) or len(text.strip()) < 2:
            raise TypeError(f"Invalid card notation: {text!r}")
        text = text.strip()
        return cls(Rank.from_symbol(text[:-1]), Suit.from_name(text[-1]))

    def to_dict(self) -> Dict[str, str]:
        """Convert the card back to the backend payload shape."""
        return {"suit": self.suit.name.lower(), "value": self.rank.value}

    def __repr__(self) -> str:
        return f"Card(Rank.{self.rank.name}, Suit.{self.suit.name})"

    def __str__(self) -> str:
        return f"{self.rank.value}{self.suit.value}"
