"""
Declarative side effects emitted by the state machines.

Transitions never call into the UI, the network or the sound system. Each
new snapshot carries a tuple of `Effect` values describing what the host
should do next; the host interprets them, typically through an
`EffectDispatcher`.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class EffectType(Enum):
    """Kinds of work a transition can ask the host to perform."""

    SEND_ACTION = "send_action"
    PLAY_SOUND = "play_sound"
    SHOW_TOAST = "show_toast"
    REQUEST_PURCHASE = "request_purchase"
    START_ANIMATION = "start_animation"
    REQUEST_CREDIT = "request_credit"


class Sound(Enum):
    """Sound cues understood by the host's audio layer."""

    CARD_DEAL = "card_deal"
    CARD_FLIP = "card_flip"
    WIN = "win"
    LOSE = "lose"
    PUSH = "push"
    BLACKJACK = "blackjack"
    BUST = "bust"
    CASE_OPEN = "case_open"
    CASE_REVEAL = "case_reveal"
    RARITY_REVEAL = "rarity_reveal"


class ToastLevel(Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


def _freeze(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(payload))


@dataclass(frozen=True)
class Effect:
    """
    A single instruction for the host.

    Attributes:
        type: What kind of work to perform
        payload: Read-only data the handler needs
    """

    type: EffectType
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "payload", _freeze(self.payload))

    def __eq__(self, other):
        if isinstance(other, Effect):
            return self.type == other.type and dict(self.payload) == dict(
                other.payload
            )
        return NotImplemented

    def __hash__(self):
        return hash((self.type, tuple(sorted(self.payload))))


def play_sound(sound: Sound, **extra: Any) -> Effect:
    return Effect(EffectType.PLAY_SOUND, {"sound": sound, **extra})


def show_toast(level: ToastLevel, title: str, message: str = "") -> Effect:
    return Effect(
        EffectType.SHOW_TOAST, {"level": level, "title": title, "message": message}
    )
