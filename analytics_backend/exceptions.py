"""Domain exceptions for the analytics backend.

The scoring engines raise these, and the HTTP layer maps them to responses
through ``AnalyticsError.status_code``. They subclass ``ValueError`` where the
failure is a bad input value, so callers can catch either the specific error
or the broader built-in.

Usage Examples:
- raise UnsupportedKindError("Unsupported analysis type: poetry")
- raise InvalidBatchSizeError(size=11, max_items=10)
- raise EntityFaultError("Feature at index 2 is not a finite number")
"""

from typing import Any, Dict


class AnalyticsError(Exception):
    """Base class for every error raised by the analytics core."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_type": type(self).__name__,
            "status_code": self.status_code,
        }


class UnsupportedKindError(AnalyticsError, ValueError):
    """Raised when an analysis, model or statistics kind is not recognised.

    Always a caller or programming error; retrying with the same input
    cannot succeed.
    """

    status_code = 400


class InvalidBatchSizeError(AnalyticsError, ValueError):
    """Raised when a batch is empty or larger than the allowed ceiling."""

    status_code = 400

    def __init__(self, size: int, max_items: int):
        super().__init__(f"Requests must be an array with 1-{max_items} items, got {size}")
        self.size = size
        self.max_items = max_items


class EntityFaultError(AnalyticsError):
    """Raised when a single item cannot be processed, e.g. a malformed feature vector.

    Inside batch processing this is captured per item and never aborts the
    batch.
    """

    status_code = 422
