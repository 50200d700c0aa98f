"""Typed errors shared across the core domain layer."""


class RecordValidationError(ValueError):
    """A profile, experience or recommendation record is malformed.

    Raised when parsing or validating records at the persistence boundary.
    Carries the offending field name when one is known.
    """

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class IncompleteStateError(ValueError):
    """An observation lacks what the exploit rule needs (e.g. a profile)."""
