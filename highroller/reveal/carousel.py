"""
Carousel sequence planning for the case-opening animation.

The server decides the prize; this module only decides what the spinning
strip looks like around it. Filler items are drawn by rarity weight so the
strip resembles the case's real odds, and the winning item is placed far
enough from both ends that the animation never has to overshoot.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from highroller.reveal.models import AnimationMode, CaseDefinition, CaseItem, Rarity

DEFAULT_RARITY_WEIGHTS = {
    Rarity.COMMON: 60,
    Rarity.UNCOMMON: 25,
    Rarity.RARE: 10,
    Rarity.EPIC: 4,
    Rarity.LEGENDARY: 1,
}


@dataclass(frozen=True)
class CarouselSettings:
    """
    Sizing of the carousel strip.

    Attributes:
        sequence_length: Strip length for a large item pool
        min_sequence_length: Pools are padded to at least this many items
        max_sequence_multiplier: Cap strip length at pool size times this
        winning_position_min: Lowest index for the winning item
        winning_position_max: Exclusive upper bound for the winning index
        rarity_weights: Relative weight per rarity for filler draws
    """

    sequence_length: int = 75
    min_sequence_length: int = 20
    max_sequence_multiplier: int = 3
    winning_position_min: int = 30
    winning_position_max: int = 45
    rarity_weights: Dict[Rarity, float] = field(
        default_factory=lambda: dict(DEFAULT_RARITY_WEIGHTS)
    )

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> "CarouselSettings":
        config = dict(config or {})
        weights = config.pop("rarity_weights", None)
        settings = cls(**config)
        if weights:
            merged = dict(DEFAULT_RARITY_WEIGHTS)
            merged.update({Rarity(k) if isinstance(k, str) else k: v for k, v in weights.items()})
            settings = cls(**config, rarity_weights=merged)
        return settings


@dataclass(frozen=True)
class CarouselEntry:
    item: CaseItem
    is_winning: bool = False


@dataclass(frozen=True)
class CarouselPlan:
    entries: Tuple[CarouselEntry, ...]
    winning_index: int

    @property
    def winning_item(self) -> CaseItem:
        return self.entries[self.winning_index].item

    def __len__(self) -> int:
        return len(self.entries)


def _valid_items(items: Sequence[CaseItem]) -> Tuple[CaseItem, ...]:
    return tuple(item for item in items if item is not None and item.id and item.name)


def choose_animation_mode(case: CaseDefinition) -> AnimationMode:
    """Carousel when the case has any usable items, otherwise reveal only."""
    if _valid_items(case.items):
        return AnimationMode.CAROUSEL
    return AnimationMode.REVEAL


def calculate_winning_position(
    sequence_length: int,
    rng: np.random.Generator,
    settings: CarouselSettings = CarouselSettings(),
) -> int:
    """
    Pick the index of the winning item.

    A random position in ``[winning_position_min, winning_position_max)`` is
    clamped to keep a buffer of ``min(10, 10%)`` items on both sides.
    """
    if sequence_length <= 0:
        raise ValueError("Sequence length must be positive")
    low = settings.winning_position_min
    high = max(low + 1, settings.winning_position_max)
    position = int(rng.integers(low, high))

    buffer = min(10, sequence_length // 10)
    upper = max(buffer, sequence_length - buffer - 1)
    return max(buffer, min(position, upper))


def _draw_probabilities(
    items: Sequence[CaseItem], weights: Dict[Rarity, float]
) -> np.ndarray:
    # Each rarity's weight is shared evenly between the items of that rarity
    counts: Dict[Rarity, int] = {}
    for item in items:
        counts[item.rarity] = counts.get(item.rarity, 0) + 1
    raw = np.array(
        [weights.get(item.rarity, 1) / counts[item.rarity] for item in items],
        dtype=float,
    )
    return raw / raw.sum()


def build_carousel(
    items: Sequence[CaseItem],
    winning_item: CaseItem,
    rng: np.random.Generator,
    settings: CarouselSettings = CarouselSettings(),
) -> CarouselPlan:
    """
    Build the carousel strip around the server-chosen prize.

    Args:
        items: The case's item pool
        winning_item: Item the server awarded
        rng: Random generator for filler draws and placement
        settings: Strip sizing

    Returns:
        Plan with exactly one winning entry

    Raises:
        ValueError: If the pool has no usable items
    """
    pool = list(_valid_items(items))
    if not pool:
        raise ValueError("Case has no valid items for a carousel")

    originals = list(pool)
    while len(pool) < settings.min_sequence_length:
        pool.extend(originals[: settings.min_sequence_length - len(pool)])

    length = min(
        settings.sequence_length, len(pool) * settings.max_sequence_multiplier
    )
    winning_index = calculate_winning_position(length, rng, settings)

    probabilities = _draw_probabilities(pool, settings.rarity_weights)
    picks = rng.choice(len(pool), size=length, p=probabilities)

    entries = []
    for i, pick in enumerate(picks):
        if i == winning_index:
            entries.append(CarouselEntry(winning_item, is_winning=True))
        else:
            entries.append(CarouselEntry(pool[int(pick)]))

    return CarouselPlan(entries=tuple(entries), winning_index=winning_index)


def validate_carousel(plan: CarouselPlan) -> bool:
    """Exactly one winning entry, and it sits at ``winning_index``."""
    winners = [i for i, entry in enumerate(plan.entries) if entry.is_winning]
    return winners == [plan.winning_index]
