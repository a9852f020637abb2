class AttendanceError(Exception):
    """Base class for errors raised by the attendance service."""


class FormatError(AttendanceError):
    """A serialized descriptor or embedding is malformed."""


class DimensionMismatchError(AttendanceError):
    """Two embeddings being compared have different lengths."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Face descriptors have different dimensions: {expected} != {actual}"
        )
        self.expected = expected
        self.actual = actual


class StoreError(AttendanceError):
    """A record, identity, contact or log store operation failed."""


class DuplicateEventError(StoreError):
    """The record store rejected an event that already exists for the day."""


class TransportError(AttendanceError):
    """An email or SMS delivery attempt failed."""


class CacheError(AttendanceError):
    """The attendance cache backend could not be reached or answered badly."""
