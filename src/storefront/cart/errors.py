"""Error taxonomy for cart operations seen by storefront code."""

from enum import Enum


class ErrorKind(Enum):
    REMOTE_UNAVAILABLE = "RemoteUnavailable"
    MERGE_INCOMPLETE = "MergeIncomplete"
    INVALID_OPERAND = "InvalidOperand"
    # Diagnostic only: a second merge was requested while one was in flight
    REENTRANT_MERGE_IGNORED = "ReentrantMergeIgnored"


class CartError(Exception):
    """Base class for cart failures. Carries an ErrorKind for the UI."""

    kind: ErrorKind

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class RemoteUnavailable(CartError):
    """The authenticated cart service could not be reached or failed."""

    kind = ErrorKind.REMOTE_UNAVAILABLE


class MergeIncomplete(CartError):
    """Merge-in reported success but the cart read back empty or absent."""

    kind = ErrorKind.MERGE_INCOMPLETE


class InvalidOperand(CartError):
    """A mutation was rejected: bad quantity, or a product that is not known."""

    kind = ErrorKind.INVALID_OPERAND
