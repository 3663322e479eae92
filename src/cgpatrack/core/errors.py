class CgpaTrackError(Exception):
    """Base class for every error raised by cgpatrack."""


class ValidationError(CgpaTrackError):
    """Raised when an input payload is malformed. Nothing has been written."""


class Conflict(ValidationError):
    """Raised when a grade definition would reuse another definition's points."""


class NotFound(CgpaTrackError):
    pass


class InvariantViolation(CgpaTrackError):
    pass


class StorageError(CgpaTrackError):
    """Raised when the backing store fails (connectivity, permissions, constraints)."""


class ConcurrencyConflict(StorageError):
    """Raised when a semester was modified between reading and writing its cached GPA."""
