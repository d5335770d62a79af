"""
Error types raised by the matching engine.

None of these are retried by the engine; callers decide whether to reload,
re-search or surface the failure to the operator.
"""

from typing import Any, Optional


class ReconciliationError(Exception):
    """Base exception with a stable error code and HTTP status."""
    code = "reconciliation_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        data = {"error": self.code, "message": self.message}
        if self.details is not None:
            data["details"] = self.details
        return data


class NotFoundError(ReconciliationError):
    """Requested reconciliation file does not exist."""
    code = "not_found"
    status_code = 404


class IndexOutOfRangeError(ReconciliationError):
    """Entry index is stale or invalid for the file; re-search."""
    code = "index_out_of_range"
    status_code = 422


class StorageError(ReconciliationError):
    """Backend read or write failure."""
    code = "storage_error"
    status_code = 503


class ConflictError(ReconciliationError):
    """The stored file changed since it was read."""
    code = "conflict"
    status_code = 409


class AlreadyMatchedError(ConflictError):
    code = "already_matched"


class NotMatchedError(ConflictError):
    code = "not_matched"


class FileClosedError(ConflictError):
    """Closed files are read-only."""
    code = "file_closed"


class EntityDirectoryError(ReconciliationError):
    """The entity directory could not be reached or answered an error."""
    code = "entity_directory_error"
    status_code = 502

    def __init__(self, message: str, status_code: int = 0, details: Any = None):
        super().__init__(message, details)
        self.upstream_status = status_code
