"""
Host-side dispatcher for effect lists.

The state machines describe their side effects as data. This module provides
the piece of the host that turns those descriptions into calls: handlers
subscribe to an `EffectType` (or to everything), and each snapshot's effects
are dispatched to them in priority order.
"""

from collections import defaultdict
from enum import Enum
from typing import Callable, Iterable, List, Tuple, Union
import inspect
import threading
import logging

from highroller.effects.effect import Effect, EffectType

# Create a logger for the effect system
logger = logging.getLogger("highroller.effects")


class EventPriority(Enum):
    """Priority levels for effect handlers."""

    LOW = 0
    NORMAL = 1
    HIGH = 2
    CRITICAL = 3


class EffectDispatcher:
    """
    Routes effects to subscribed handlers.

    Features:
    - Subscription per effect type with priorities
    - Once-only subscriptions
    - Catch-all subscriptions
    - A failing handler is logged and does not stop the others
    - Coroutine handlers are awaited by `dispatch_async`
    """

    def __init__(self):
        """Initialize the dispatcher."""
        self._listeners = defaultdict(list)
        self._global_listeners = []
        self._listener_lock = threading.RLock()

    @staticmethod
    def _insert(handlers: List[dict], handler: dict) -> None:
        # Higher priority first, FIFO within a priority
        for i, existing in enumerate(handlers):
            if existing["priority"] < handler["priority"]:
                handlers.insert(i, handler)
                break
        else:
            handlers.append(handler)

    def on(
        self,
        effect_type: Union[str, EffectType],
        callback: Callable,
        priority: EventPriority = EventPriority.NORMAL,
    ) -> Callable:
        """
        Subscribe to an effect type.

        Args:
            effect_type: The effect type to subscribe to (enum or its name)
            callback: Function to call with the Effect
            priority: Priority level for this handler

        Returns:
            Unsubscribe function that can be called to remove this subscription
        """
        if isinstance(effect_type, Enum):
            effect_type = effect_type.name

        handler = {"callback": callback, "priority": priority.value}

        with self._listener_lock:
            self._insert(self._listeners[effect_type], handler)

        def unsubscribe():
            with self._listener_lock:
                handlers = self._listeners[effect_type]
                for i, existing in enumerate(handlers):
                    if existing is handler:
                        handlers.pop(i)
                        break

        return unsubscribe

    def once(
        self,
        effect_type: Union[str, EffectType],
        callback: Callable,
        priority: EventPriority = EventPriority.NORMAL,
    ) -> Callable:
        """
        Subscribe to an effect type for a single occurrence.

        Returns:
            Unsubscribe function that can be called to remove this subscription
        """
        unsubscribe_ref = []

        def one_time_handler(effect):
            # Unsubscribe first so a re-entrant dispatch cannot call it twice
            if unsubscribe_ref:
                unsubscribe_ref[0]()
            return callback(effect)

        unsubscribe_ref.append(self.on(effect_type, one_time_handler, priority))
        return unsubscribe_ref[0]

    def on_any(
        self, callback: Callable, priority: EventPriority = EventPriority.NORMAL
    ) -> Callable:
        """
        Subscribe to all effects.

        Args:
            callback: Function to call with every Effect
            priority: Priority level for this handler

        Returns:
            Unsubscribe function that can be called to remove this subscription
        """
        handler = {"callback": callback, "priority": priority.value}

        with self._listener_lock:
            self._insert(self._global_listeners, handler)

        def unsubscribe():
            with self._listener_lock:
                for i, existing in enumerate(self._global_listeners):
                    if existing is handler:
                        self._global_listeners.pop(i)
                        break

        return unsubscribe

    def _handlers_for(self, effect: Effect) -> List[Callable]:
        with self._listener_lock:
            specific = list(self._listeners.get(effect.type.name, []))
            merged = specific + list(self._global_listeners)
        merged.sort(key=lambda handler: -handler["priority"])
        return [handler["callback"] for handler in merged]

    def emit(self, effect: Effect) -> None:
        """
        Deliver one effect to its handlers.

        Coroutines returned by handlers are closed unawaited; use
        `dispatch_async` when handlers are async.
        """
        # Call handlers outside of the lock to avoid deadlocks
        for callback in self._handlers_for(effect):
            try:
                result = callback(effect)
                if inspect.iscoroutine(result):
                    logger.warning(
                        f"Async handler for {effect.type.name} used with sync dispatch"
                    )
                    result.close()
            except Exception as e:
                logger.error(
                    f"Error in effect handler for {effect.type.name}: {e}",
                    exc_info=True,
                )

    def dispatch(self, effects: Iterable[Effect]) -> None:
        """Deliver a snapshot's effects in order."""
        for effect in effects:
            self.emit(effect)

    async def dispatch_async(self, effects: Iterable[Effect]) -> None:
        """Deliver a snapshot's effects in order, awaiting async handlers."""
        for effect in effects:
            for callback in self._handlers_for(effect):
                try:
                    result = callback(effect)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(
                        f"Error in effect handler for {effect.type.name}: {e}",
                        exc_info=True,
                    )

    def remove_all_listeners(self, effect_type: Union[str, EffectType] = None) -> None:
        """
        Remove all listeners for a specific effect type or all effects.

        Args:
            effect_type: Optional effect type. If None, removes every listener.
        """
        with self._listener_lock:
            if effect_type is None:
                self._listeners.clear()
                self._global_listeners.clear()
            else:
                if isinstance(effect_type, Enum):
                    effect_type = effect_type.name
                self._listeners[effect_type].clear()

    def listener_count(self) -> Tuple[int, int]:
        """Number of (typed, catch-all) subscriptions."""
        with self._listener_lock:
            typed = sum(len(handlers) for handlers in self._listeners.values())
            return typed, len(self._global_listeners)
