"""Error taxonomy for lending operations."""

from enum import Enum


class ErrorKind(str, Enum):
    """Stable error kinds reported to callers."""

    UNAUTHENTICATED = "UNAUTHENTICATED"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    NOT_AVAILABLE = "NOT_AVAILABLE"
    INACTIVE = "INACTIVE"
    LIMIT_REACHED = "LIMIT_REACHED"
    DUPLICATE_LOAN = "DUPLICATE_LOAN"
    ALREADY_RETURNED = "ALREADY_RETURNED"
    RENEWAL_DENIED = "RENEWAL_DENIED"
    BELOW_BORROWED = "BELOW_BORROWED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONSISTENCY_FAULT = "CONSISTENCY_FAULT"
    UNAVAILABLE = "UNAVAILABLE"


class LendingError(Exception):
    """Raised inside a transaction to abort it with a typed error."""

    def __init__(self, kind: ErrorKind, message: str):
        self.kind = kind
        self.message = message
        super().__init__(f"{kind.value}: {message}")


class ConsistencyFault(LendingError):
    """An invariant over stored state was found violated."""

    def __init__(self, message: str):
        super().__init__(ErrorKind.CONSISTENCY_FAULT, message)


class TransactionUnavailable(Exception):
    """Storage stayed contended after all retry attempts."""

    def __init__(self, attempts: int, cause: Exception):
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Transaction failed after {attempts} attempts: {cause}")
