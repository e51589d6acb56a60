"""Errors raised by the redaction engine.

Structural errors abort an operation before any row is written. Per-item
errors are recorded in the aggregate status instead of being raised.
"""

from typing import Any


class RedactionError(Exception):
    """Base class for redaction engine errors."""

    code = "redaction_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(RedactionError):
    """None of the requested ids resolved to a row."""

    code = "not_found"


class LockoutError(RedactionError):
    """The change would lock non-elevated actors out of a record."""

    code = "lockout"


class CurrentVersionError(RedactionError):
    """Hiding the subject's current revision without acknowledgment."""

    code = "current_version"


class ConcurrentModificationError(RedactionError):
    """A compare-and-swap update matched zero rows."""

    code = "concurrent_modification"


class StorageMigrationError(RedactionError):
    """A file migration phase failed."""

    code = "storage_migration"

    def __init__(self, phase: str, failures: list[dict[str, str]]):
        super().__init__(
            f"File migration failed in phase {phase!r}", phase=phase, failures=failures
        )
        self.phase = phase
        self.failures = failures


class IntegrityError(RedactionError):
    """A queried row matched no known physical source shape."""

    code = "integrity"


class PreCommitError(RedactionError):
    """A pre-commit hook failed; nothing was written."""

    code = "pre_commit"


class UnknownKindError(RedactionError):
    code = "unknown_kind"


class InvalidIdError(RedactionError):
    code = "invalid_id"


class PermissionDeniedError(RedactionError):
    code = "permission_denied"
