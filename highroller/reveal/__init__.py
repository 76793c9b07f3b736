"""
Case-opening attempt sequencing.

`RevealCoordinator` drives one attempt through purchase, animation, reveal
and credit; `CreditLedger` guarantees the credit happens at most once per
transaction id.
"""

from highroller.reveal.models import (
    AnimationMode,
    CaseDefinition,
    CaseItem,
    PurchaseResult,
    Rarity,
    RevealPhase,
    RevealState,
    ServerError,
)
from highroller.reveal.ledger import CreditInterruptedError, CreditLedger
from highroller.reveal.carousel import (
    CarouselEntry,
    CarouselPlan,
    CarouselSettings,
    build_carousel,
    calculate_winning_position,
    choose_animation_mode,
    validate_carousel,
)
from highroller.reveal.coordinator import RevealCoordinator

__all__ = [
    "AnimationMode",
    "CaseDefinition",
    "CaseItem",
    "PurchaseResult",
    "Rarity",
    "RevealPhase",
    "RevealState",
    "ServerError",
    "CreditInterruptedError",
    "CreditLedger",
    "CarouselEntry",
    "CarouselPlan",
    "CarouselSettings",
    "build_carousel",
    "calculate_winning_position",
    "choose_animation_mode",
    "validate_carousel",
    "RevealCoordinator",
]
