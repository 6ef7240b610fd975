"""Error taxonomy for the sync engine.

Per-file failures (EmptyContent, DestinationRejected, NetworkFailure) are
contained to the file being processed. AuthExpired is the only error that
halts a whole batch or scheduler tick.
"""

from typing import Optional


class SyncError(Exception):
    """Base class for failures while pushing a file to a destination."""


class AuthExpired(SyncError):
    """The file store rejected our credentials (HTTP 401 or equivalent)."""

    def __init__(self, message: str = "File store session expired. Re-authenticate."):
        super().__init__(message)


class EmptyContent(SyncError):
    """The fetched document has no extractable text."""

    def __init__(self, file_name: str):
        self.file_name = file_name
        super().__init__(f"No text content in '{file_name}'")


class EnrichmentFailure(SyncError):
    """Summary generation failed. Never fatal for a push."""


class DestinationRejected(SyncError):
    """The destination answered with a 4xx/5xx or refused the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        self.message = message
        prefix = f"HTTP {status_code}: " if status_code else ""
        super().__init__(f"{prefix}{message}")


class NetworkFailure(SyncError):
    """Transport-level failure talking to the file store or destination."""


class NotConnected(Exception):
    """Raised when a push is requested while the file store is disconnected."""

    def __init__(self):
        super().__init__("Not connected to the file store")


class SyncInProgress(Exception):
    """Raised when the reconciliation lock is already held."""

    def __init__(self):
        super().__init__("A synchronization pass is already running")


class ProfileNotFound(KeyError):
    """Raised when a profile id does not exist in the configuration."""

    def __init__(self, profile_id: str):
        self.profile_id = profile_id
        super().__init__(f"Profile not found: {profile_id}")


class LastProfileError(ValueError):
    """Raised when deleting the only remaining profile."""

    def __init__(self):
        super().__init__("Cannot delete the last remaining profile")


class FileNotInSnapshot(KeyError):
    """Raised when a file id is not part of the current remote snapshot."""

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"File not in current listing: {file_id}")
