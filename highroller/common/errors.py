"""
Error taxonomy shared by the blackjack and case-opening state machines.

Two families live here:

- Precondition errors are exceptions. They mean the caller asked for
  something the current state does not allow (a button that should have been
  disabled, a wager of zero) and they are never retried.
- Runtime conditions (network failures, server rejections, a failed credit)
  are described by `ErrorInfo` and stored in the state object, so the UI can
  always render a valid snapshot instead of catching exceptions from async
  flows.

Every `ErrorKind` maps to exactly one `MessageCategory` and user-facing
message through `USER_MESSAGES`.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class HighrollerError(Exception):
    """Base class for precondition failures raised by the state machines."""


class IllegalActionError(HighrollerError):
    """Raised when a blackjack action is not legal for the current round."""


class InvalidWagerError(HighrollerError):
    """Raised when a wager or case price is not a positive amount."""


class IllegalTransitionError(HighrollerError):
    """Raised when a case-opening step is invoked from the wrong phase."""


class InsufficientBalanceError(HighrollerError):
    """Raised when the local balance snapshot cannot cover a case price."""

    def __init__(self, price: float, balance: float):
        super().__init__(f"Balance {balance} is below case price {price}")
        self.price = price
        self.balance = balance
        self.shortfall = price - balance


class InvalidSnapshotError(HighrollerError, ValueError):
    """Raised when a server payload (round snapshot, purchase result) cannot be parsed."""


class ErrorKind(Enum):
    """Classification of runtime failures carried in state."""

    NETWORK = "network"
    AUTHENTICATION = "authentication"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    VALIDATION = "validation"
    SERVER = "server"
    CREDIT_FAILED = "credit_failed"


class MessageCategory(Enum):
    """User-visible message categories, one per error kind."""

    CONNECTION_PROBLEM = "connection_problem"
    AUTHENTICATION_REQUIRED = "authentication_required"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INVALID_SELECTION = "invalid_selection"
    UNEXPECTED_ERROR = "unexpected_error"
    CREDIT_PENDING = "credit_pending"


USER_MESSAGES: Dict[ErrorKind, Tuple[MessageCategory, str]] = {
    ErrorKind.NETWORK: (
        MessageCategory.CONNECTION_PROBLEM,
        "Connection problem. Please check your network and try again.",
    ),
    ErrorKind.AUTHENTICATION: (
        MessageCategory.AUTHENTICATION_REQUIRED,
        "Please log in to continue playing.",
    ),
    ErrorKind.INSUFFICIENT_BALANCE: (
        MessageCategory.INSUFFICIENT_BALANCE,
        "Insufficient balance to open this case.",
    ),
    ErrorKind.VALIDATION: (
        MessageCategory.INVALID_SELECTION,
        "That selection is not available. Please choose another.",
    ),
    ErrorKind.SERVER: (
        MessageCategory.UNEXPECTED_ERROR,
        "Something went wrong. Please try again.",
    ),
    ErrorKind.CREDIT_FAILED: (
        MessageCategory.CREDIT_PENDING,
        "Your winnings are being credited. Retrying...",
    ),
}

RETRYABLE_KINDS = frozenset(
    {ErrorKind.NETWORK, ErrorKind.SERVER, ErrorKind.CREDIT_FAILED}
)

_AUTH_CODES = {"UNAUTHORIZED", "AUTHENTICATION_REQUIRED", "HTTP_401", "HTTP_403"}
_BALANCE_CODES = {"INSUFFICIENT_BALANCE", "INSUFFICIENT_FUNDS"}
_VALIDATION_CODES = {
    "VALIDATION_ERROR",
    "INVALID_SELECTION",
    "INVALID_CASE",
    "HTTP_400",
    "HTTP_404",
    "HTTP_409",
    "HTTP_422",
}
_NETWORK_CODES = {"NETWORK_ERROR", "TIMEOUT"}


def user_message(kind: ErrorKind) -> Tuple[MessageCategory, str]:
    """
    Look up the user-facing category and text for an error kind.

    Raises:
        KeyError: If the kind has no mapping, which is a bug in this module
    """
    return USER_MESSAGES[kind]


@dataclass(frozen=True)
class ErrorInfo:
    """
    Structured description of a runtime failure.

    Attributes:
        kind: Taxonomy entry used for retry decisions and messaging
        message: Technical message for logs and telemetry
        code: Server error code, if the backend supplied one
        status: HTTP status, if known
    """

    kind: ErrorKind
    message: str
    code: Optional[str] = None
    status: Optional[int] = None

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    @property
    def category(self) -> MessageCategory:
        return user_message(self.kind)[0]

    @property
    def user_message(self) -> str:
        return user_message(self.kind)[1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "status": self.status,
            "retryable": self.retryable,
            "category": self.category.value,
            "user_message": self.user_message,
        }


def _kind_from_code(code: Optional[str], status: Optional[int]) -> ErrorKind:
    normalized = (code or "").upper()
    if normalized in _AUTH_CODES or status in (401, 403):
        return ErrorKind.AUTHENTICATION
    if normalized in _BALANCE_CODES:
        return ErrorKind.INSUFFICIENT_BALANCE
    if normalized in _VALIDATION_CODES or status in (400, 404, 409, 422):
        return ErrorKind.VALIDATION
    if normalized in _NETWORK_CODES:
        return ErrorKind.NETWORK
    return ErrorKind.SERVER


def classify_error(error: Any) -> ErrorInfo:
    """
    Map a server error payload or an exception onto the taxonomy.

    Args:
        error: An object with ``code``/``message``/``status`` attributes (such
            as `highroller.reveal.models.ServerError`), an `ErrorInfo`, or any
            exception raised by the caller's network layer

    Returns:
        The classified ErrorInfo
    """
    if isinstance(error, ErrorInfo):
        return error

    if isinstance(error, InsufficientBalanceError):
        return ErrorInfo(ErrorKind.INSUFFICIENT_BALANCE, str(error))

    if isinstance(error, (InvalidWagerError, InvalidSnapshotError)):
        return ErrorInfo(ErrorKind.VALIDATION, str(error))

    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return ErrorInfo(ErrorKind.NETWORK, str(error) or type(error).__name__)

    code = getattr(error, "code", None)
    status = getattr(error, "status", None)
    if code is not None or status is not None:
        message = getattr(error, "message", None) or str(error)
        return ErrorInfo(_kind_from_code(code, status), message, code, status)

    # Socket-level failures that are not ConnectionError subclasses
    if isinstance(error, OSError):
        return ErrorInfo(ErrorKind.NETWORK, str(error) or type(error).__name__)

    return ErrorInfo(ErrorKind.SERVER, str(error) or type(error).__name__)
