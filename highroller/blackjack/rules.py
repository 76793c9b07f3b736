from typing import Any, Dict, Optional

from highroller.blackjack.hand import Hand


class Rules:
    """
    Table rules for the blackjack round mirror.

    Args:
        blackjack_payout: Winnings multiple for a natural (1.5 pays 3:2)
        dealer_hit_soft_17: Whether the dealer draws on a soft 17
        allow_double_after_split: Whether split hands may double
        max_split_depth: How many times one hand lineage may split; None
            means unlimited
    """

    def __init__(
        self,
        blackjack_payout: float = 1.5,
        dealer_hit_soft_17: bool = True,
        allow_double_after_split: bool = True,
        max_split_depth: Optional[int] = None,
    ):
        if max_split_depth is not None and max_split_depth < 0:
            raise ValueError("max_split_depth must be non-negative or None")
        self.blackjack_payout = blackjack_payout
        self.dealer_hit_soft_17 = dealer_hit_soft_17
        self.allow_double_after_split = allow_double_after_split
        self.max_split_depth = max_split_depth

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> "Rules":
        """Build rules from a config mapping, falling back to defaults."""
        config = config or {}
        return cls(
            blackjack_payout=config.get("blackjack_payout", 1.5),
            dealer_hit_soft_17=config.get("dealer_hit_soft_17", True),
            allow_double_after_split=config.get("allow_double_after_split", True),
            max_split_depth=config.get("max_split_depth"),
        )

    def to_dict(self) -> dict:
        """Convert rules to a dictionary for serialization."""
        return {
            "blackjack_payout": self.blackjack_payout,
            "dealer_hit_soft_17": self.dealer_hit_soft_17,
            "allow_double_after_split": self.allow_double_after_split,
            "max_split_depth": self.max_split_depth,
        }

    def should_dealer_hit(self, hand: Hand) -> bool:
        """Determine if the dealer should hit based on the game rules."""
        score = hand.total
        is_soft_17 = score == 17 and hand.is_soft
        return score < 17 or (is_soft_17 and self.dealer_hit_soft_17)

    def can_split(self, hand: Hand, split_depth: int) -> bool:
        """
        Check if a two-card hand may split.

        Args:
            hand: The player's hand
            split_depth: Number of splits already made in this hand's lineage

        Returns:
            bool: True if the hand can be split, False otherwise.
        """
        if not hand.is_pair:
            return False
        if self.max_split_depth is None:
            return True
        return split_depth < self.max_split_depth

    def can_double(self, hand: Hand, split_depth: int) -> bool:
        if len(hand) != 2:
            return False
        return split_depth == 0 or self.allow_double_after_split

    def __repr__(self) -> str:
        return f"Rules({self.to_dict()!r})"
