"""Project error hierarchy."""


class SwipeScoreError(Exception):
    """Base error."""


class ValidationError(SwipeScoreError):
    """Raised when a submitted vote batch is missing, malformed or empty."""


class StorageError(SwipeScoreError):
    """Base for failures reported by a versioned store."""


class ConflictError(StorageError):
    """Conditional write rejected: the stored version no longer matches."""


class TransientStorageError(StorageError):
    """Backend unreachable, timed out, or returned an unreadable record."""


class ContentionExhaustedError(SwipeScoreError):
    """Every commit attempt lost the race to a concurrent writer."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"commit abandoned after {attempts} conflicting attempt(s)")
        self.attempts = attempts


class FatalCommitError(SwipeScoreError):
    """Commit loop stopped on a non-conflict failure."""


class StorageDeadlineError(TransientStorageError):
    """A store call was cut off because the caller's deadline ran out."""
