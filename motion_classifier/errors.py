"""Exception types raised by the motion classification core."""

from __future__ import annotations


class MotionClassifierError(Exception):
    """Base class for every error raised by this package."""


class ParseError(MotionClassifierError, ValueError):
    """A sample line could not be parsed into exactly three finite numbers."""


class MalformedRowError(ParseError):
    """A CSV row does not have the expected arity of numeric fields."""

    def __init__(self, message: str, row_number: int | None = None) -> None:
        super().__init__(message)
        self.row_number = row_number


class InsufficientDataError(MotionClassifierError):
    """Not enough samples to fill a window (for a class or for the live buffer)."""

    def __init__(self, message: str, class_id: int | None = None, available: int = 0, required: int = 0) -> None:
        super().__init__(message)
        self.class_id = class_id
        self.available = available
        self.required = required


class DimensionMismatchError(MotionClassifierError, ValueError):
    """A feature vector width does not match what the model expects."""

    def __init__(self, expected: int, actual, context: str = "feature vector") -> None:
        super().__init__(f"{context} has width {actual}, expected {expected}")
        self.expected = expected
        self.actual = actual


class ModelNotFoundError(MotionClassifierError):
    """No usable model is stored (missing files or unreadable contents)."""


class EmptyDatasetError(MotionClassifierError):
    """Training was requested on a dataset without any rows."""
