"""Per-file sync status derivation.

The remote store's modification time and the local clock used to stamp a
completed push are not synchronized; a fixed tolerance keeps a fresh push
from being re-flagged as stale.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum

SKEW_BUFFER = timedelta(seconds=60)


class FileStatus(str, Enum):
    """Status of a (file, profile) pair."""

    IGNORED = "ignored"    # Not watched by the profile
    PENDING = "pending"    # Never pushed, or changed since the last push
    SYNCED = "synced"      # Destination copy is current
    SYNCING = "syncing"    # Push in flight (overlay only)
    ERROR = "error"        # Last push failed (overlay only)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def derive_status(
    watched: bool,
    last_synced_at: datetime | None,
    remote_modified_at: datetime,
) -> FileStatus:
    """Derive the status of one file for one profile.

    Only IGNORED, PENDING and SYNCED are ever returned; SYNCING and ERROR
    are overlaid by the dispatchers.
    """
    if not watched:
        return FileStatus.IGNORED
    if last_synced_at is None:
        return FileStatus.PENDING
    if _as_utc(remote_modified_at) > _as_utc(last_synced_at) + SKEW_BUFFER:
        return FileStatus.PENDING
    return FileStatus.SYNCED
