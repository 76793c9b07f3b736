"""
At-most-once credit bookkeeping keyed by transaction id.

The ledger outlives individual reveal states. A state reference that went
stale (the user reset or navigated away while a credit was in flight) still
records its credit here, and any later attempt to credit the same
transaction sees it.
"""

from typing import Awaitable, Callable, Dict, Set
import asyncio
import logging

logger = logging.getLogger("highroller.reveal")


class CreditInterruptedError(Exception):
    """Raised to callers joined on a credit whose owning caller was cancelled."""


class CreditLedger:
    """
    Runs each transaction's credit operation at most once to success.

    Concurrent callers for the same transaction share a single in-flight
    operation. A failed operation is forgotten so it can be retried.
    """

    def __init__(self):
        self._credited: Set[str] = set()
        self._in_flight: Dict[str, asyncio.Future] = {}

    def is_credited(self, transaction_id: str) -> bool:
        return transaction_id in self._credited

    def is_in_flight(self, transaction_id: str) -> bool:
        return transaction_id in self._in_flight

    async def run_once(
        self, transaction_id: str, operation: Callable[[], Awaitable[None]]
    ) -> bool:
        """
        Credit ``transaction_id`` unless it already has been.

        The in-flight marker is registered before the first await, so a
        second caller arriving while the first is suspended joins it instead
        of starting another operation.

        Args:
            transaction_id: Idempotence key
            operation: Zero-argument coroutine function performing the credit

        Returns:
            True if this call ran the operation, False if it was already
            credited or joined an in-flight credit

        Raises:
            Exception: Whatever the operation raised, to every caller waiting
                on it
            CreditInterruptedError: To joined callers, if the caller running
                the operation was cancelled
        """
        if transaction_id in self._credited:
            return False

        pending = self._in_flight.get(transaction_id)
        if pending is not None:
            await asyncio.shield(pending)
            return False

        future = asyncio.get_running_loop().create_future()
        self._in_flight[transaction_id] = future
        try:
            await operation()
        except Exception as exc:
            future.set_exception(exc)
            raise
        except BaseException:
            # Joined callers see a retryable failure instead of the cancellation
            future.set_exception(
                CreditInterruptedError(f"Credit for {transaction_id} was interrupted")
            )
            logger.warning(f"Credit for {transaction_id} interrupted in flight")
            raise
        else:
            self._credited.add(transaction_id)
            future.set_result(None)
            logger.debug(f"Transaction {transaction_id} credited")
            return True
        finally:
            # Mark any failure retrieved; joined callers re-raise it themselves
            future.exception()
            del self._in_flight[transaction_id]
