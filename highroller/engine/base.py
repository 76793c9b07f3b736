"""
Base session class for the highroller host drivers.

A session owns one current snapshot of a state machine, feeds it inputs from
an injected backend and hands each new snapshot's effects to an
`EffectDispatcher`.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import logging

from highroller.effects.dispatcher import EffectDispatcher

logger = logging.getLogger("highroller.engine")


class GameSession(ABC):
    """
    Abstract base class for host sessions.

    Subclasses drive a single state machine. Effects are dispatched exactly
    once per snapshot: committing the object that is already current is a
    no-op, so duplicate callbacks that return the same state never replay
    sounds or toasts.
    """

    def __init__(
        self,
        dispatcher: Optional[EffectDispatcher] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the session.

        Args:
            dispatcher: Dispatcher receiving each snapshot's effects
            config: Configuration options for the session
        """
        self.dispatcher = dispatcher or EffectDispatcher()
        self.config = config or {}
        self.state = None

    async def _commit(self, new_state) -> bool:
        """
        Make ``new_state`` current and dispatch its effects.

        Returns:
            True if the snapshot changed
        """
        if new_state is self.state:
            return False
        self.state = new_state
        if new_state.effects:
            await self.dispatcher.dispatch_async(new_state.effects)
        return True

    @abstractmethod
    async def reset(self):
        """
        Discard the current snapshot and start over.
        """
        pass
