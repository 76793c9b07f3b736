"""
Effect system for the highroller state machines.

Transitions emit `Effect` values; the host routes them with an
`EffectDispatcher`.
"""

from highroller.effects.effect import (
    Effect,
    EffectType,
    Sound,
    ToastLevel,
    play_sound,
    show_toast,
)
from highroller.effects.dispatcher import EffectDispatcher, EventPriority

__all__ = [
    "Effect",
    "EffectType",
    "Sound",
    "ToastLevel",
    "play_sound",
    "show_toast",
    "EffectDispatcher",
    "EventPriority",
]
