"""
Shared building blocks: cards, the error taxonomy and retry helpers.
"""

from highroller.common.card import Card, Rank, Suit
from highroller.common.errors import (
    ErrorInfo,
    ErrorKind,
    HighrollerError,
    IllegalActionError,
    IllegalTransitionError,
    InsufficientBalanceError,
    InvalidSnapshotError,
    InvalidWagerError,
    MessageCategory,
    USER_MESSAGES,
    classify_error,
    user_message,
)
from highroller.common.retry import RetryPolicy, retry_async

__all__ = [
    "Card",
    "Rank",
    "Suit",
    "ErrorInfo",
    "ErrorKind",
    "HighrollerError",
    "IllegalActionError",
    "IllegalTransitionError",
    "InsufficientBalanceError",
    "InvalidSnapshotError",
    "InvalidWagerError",
    "MessageCategory",
    "USER_MESSAGES",
    "classify_error",
    "user_message",
    "RetryPolicy",
    "retry_async",
]
