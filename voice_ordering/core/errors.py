"""
Error Taxonomy

Machine-readable error codes shared by the dispatcher, its handlers and the
HTTP layer. Validation failures inside a handler become an ErrorResult;
unexpected exceptions are converted to EXECUTION_ERROR at the dispatcher
boundary.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Error codes carried by ErrorResult.code."""
    MISSING_PRODUCT = "MISSING_PRODUCT"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    PRODUCT_UNAVAILABLE = "PRODUCT_UNAVAILABLE"
    PRODUCT_NOT_IN_CART = "PRODUCT_NOT_IN_CART"
    CART_EMPTY = "CART_EMPTY"
    BUSINESS_HOURS = "BUSINESS_HOURS"
    MINIMUM_ORDER = "MINIMUM_ORDER"
    INVALID_TARGET = "INVALID_TARGET"
    NO_PREVIOUS_COMMAND = "NO_PREVIOUS_COMMAND"
    NO_PENDING_TRANSACTION = "NO_PENDING_TRANSACTION"
    INVALID_PAYMENT_METHOD = "INVALID_PAYMENT_METHOD"
    INVALID_INPUT = "INVALID_INPUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    TEMPORARY_ERROR = "TEMPORARY_ERROR"
    EXECUTION_ERROR = "EXECUTION_ERROR"


# Transient failures the caller may retry
RETRYABLE_CODES = frozenset({
    ErrorCode.NETWORK_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.TEMPORARY_ERROR,
})


def is_retryable(code: str) -> bool:
    """Return True if the error code denotes a transient failure."""
    try:
        return ErrorCode(code) in RETRYABLE_CODES
    except ValueError:
        return False


class VoiceCommandError(Exception):
    """
    Raised by handlers and helpers when a command cannot be carried out.

    The dispatcher turns it into an ErrorResult with the attached code.
    """

    def __init__(self, message: str, code: ErrorCode = ErrorCode.EXECUTION_ERROR):
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_CODES


class InitializationError(RuntimeError):
    """Raised when the service cannot start (missing locale data, no handlers)."""

    def __init__(self, message: str, component: Optional[str] = None):
        super().__init__(message)
        self.component = component
