"""
Immutable models for a single case-opening attempt.

A `RevealState` belongs to exactly one attempt. A new attempt always starts
from a fresh state (`RevealCoordinator.reset`); nothing is carried over.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple
import uuid

from highroller.common.errors import ErrorInfo, InvalidSnapshotError
from highroller.effects.effect import Effect


class Rarity(Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class RevealPhase(Enum):
    """
    Phases of a case-opening attempt.

    IDLE -> PURCHASED -> ANIMATING -> REVEALING -> COMPLETE, with ERROR
    reachable from every non-terminal phase and left only through a reset.
    """

    IDLE = "idle"
    PURCHASED = "purchased"
    ANIMATING = "animating"
    REVEALING = "revealing"
    COMPLETE = "complete"
    ERROR = "error"


class AnimationMode(Enum):
    CAROUSEL = "carousel"
    REVEAL = "reveal"


@dataclass(frozen=True)
class CaseItem:
    """An item that can drop from a case."""

    id: str
    name: str
    rarity: Rarity = Rarity.COMMON
    base_value: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaseItem":
        try:
            return cls(
                id=str(data["id"]),
                name=str(data["name"]),
                rarity=Rarity(data.get("rarity") or "common"),
                base_value=float(data.get("base_value", 0.0)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise InvalidSnapshotError(f"Malformed case item: {exc!r}") from exc


@dataclass(frozen=True)
class CaseDefinition:
    """A purchasable case and its item pool."""

    id: str
    name: str
    price: float
    items: Tuple[CaseItem, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaseDefinition":
        try:
            return cls(
                id=str(data["id"]),
                name=str(data["name"]),
                price=float(data["price"]),
                items=tuple(CaseItem.from_dict(i) for i in data.get("items", ())),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidSnapshotError(f"Malformed case definition: {exc!r}") from exc


@dataclass(frozen=True)
class PurchaseResult:
    """
    Authoritative outcome of a case purchase.

    Attributes:
        item: The item won
        currency_awarded: Amount to credit once the prize is revealed
        transaction_id: Idempotence key for the credit
        opening_id: Server identifier of the opening, if supplied
    """

    item: CaseItem
    currency_awarded: float
    transaction_id: str
    opening_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PurchaseResult":
        """
        Parse a purchase response.

        Accepts both the flat shape (``item``, ``currency_awarded``,
        ``transaction_id``) and the nested ``opening_result`` shape.
        """
        try:
            body = data.get("opening_result", data)
            item = body.get("item_won", body.get("item"))
            transaction_id = data.get("transaction_id") or body.get("transaction_id")
            if not transaction_id:
                raise ValueError("missing transaction_id")
            opening_id = body.get("opening_id")
            return cls(
                item=CaseItem.from_dict(item),
                currency_awarded=float(body.get("currency_awarded", 0.0)),
                transaction_id=str(transaction_id),
                opening_id=str(opening_id) if opening_id is not None else None,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise InvalidSnapshotError(f"Malformed purchase result: {exc!r}") from exc

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item": {
                "id": self.item.id,
                "name": self.item.name,
                "rarity": self.item.rarity.value,
                "base_value": self.item.base_value,
            },
            "currency_awarded": self.currency_awarded,
            "transaction_id": self.transaction_id,
            "opening_id": self.opening_id,
        }


@dataclass(frozen=True)
class ServerError:
    """Error payload returned by the backend instead of a result."""

    code: Optional[str]
    message: str
    status: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], status: Optional[int] = None) -> "ServerError":
        error = data.get("error", data)
        if isinstance(error, str):
            return cls(code=None, message=error, status=status)
        return cls(
            code=error.get("code"),
            message=error.get("message", "Unknown server error"),
            status=status if status is not None else data.get("status"),
        )


@dataclass(frozen=True)
class RevealState:
    """
    Immutable state of one case-opening attempt.

    Attributes:
        attempt_id: Identifier of this attempt
        phase: Current phase
        case: The case being opened
        pending_result: Server outcome once the purchase succeeded
        credited_transaction_id: Set once the prize has been credited
        error_info: Failure details, if any
        animation_mode: Carousel or reveal-only presentation
        effects: Effects emitted by the transition that produced this state
    """

    attempt_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    phase: RevealPhase = RevealPhase.IDLE
    case: Optional[CaseDefinition] = None
    pending_result: Optional[PurchaseResult] = None
    credited_transaction_id: Optional[str] = None
    error_info: Optional[ErrorInfo] = None
    animation_mode: Optional[AnimationMode] = None
    effects: Tuple[Effect, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "effects", tuple(self.effects))

    @property
    def is_credited(self) -> bool:
        return self.credited_transaction_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "phase": self.phase.value,
            "case_id": self.case.id if self.case else None,
            "result": self.pending_result.to_dict() if self.pending_result else None,
            "credited_transaction_id": self.credited_transaction_id,
            "error": self.error_info.to_dict() if self.error_info else None,
            "animation_mode": (
                self.animation_mode.value if self.animation_mode else None
            ),
        }
