"""Per-profile watch sets and sync history.

Both maps are keyed by profile id first. Every accessor is scoped to a
single profile and returns a copy, so one profile's data can never be
read through or mutated via another's.
"""

import logging
from datetime import datetime, timezone

from ...core.state_persistence import StateBackend

logger = logging.getLogger(__name__)

WATCHED_KEY = "watched"
HISTORY_KEY = "history"


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WatchHistoryStore:
    """Durable, profile-scoped WatchSet and SyncHistory.

    Mutations are plain synchronous updates of the live in-memory maps
    followed by a write-through to the backend. There is no await between
    read and write, so under a single event loop two pushes completing back
    to back cannot overwrite each other's history entries.
    """

    def __init__(self, backend: StateBackend):
        self._backend = backend
        self._watched: dict[str, set[str]] = {}
        self._history: dict[str, dict[str, datetime]] = {}
        self._load()

    def _load(self) -> None:
        raw_watched = self._backend.read(WATCHED_KEY) or {}
        for profile_id, file_ids in raw_watched.items():
            self._watched[profile_id] = {str(f) for f in file_ids}

        raw_history = self._backend.read(HISTORY_KEY) or {}
        for profile_id, entries in raw_history.items():
            parsed = {}
            for file_id, stamp in entries.items():
                when = _parse_timestamp(stamp)
                if when is None:
                    logger.warning(f"Ignoring unreadable history entry {profile_id}/{file_id}: {stamp!r}")
                    continue
                parsed[file_id] = when
            self._history[profile_id] = parsed

        logger.debug(
            "Loaded watch sets for %d profiles, history for %d profiles",
            len(self._watched), len(self._history),
        )

    def _flush_watched(self) -> None:
        self._backend.write(
            WATCHED_KEY,
            {pid: sorted(ids) for pid, ids in self._watched.items()},
        )

    def _flush_history(self) -> None:
        self._backend.write(
            HISTORY_KEY,
            {
                pid: {fid: when.isoformat() for fid, when in entries.items()}
                for pid, entries in self._history.items()
            },
        )

    # --- Watch sets ---

    def watched_ids(self, profile_id: str) -> frozenset[str]:
        return frozenset(self._watched.get(profile_id, ()))

    def is_watched(self, profile_id: str, file_id: str) -> bool:
        return file_id in self._watched.get(profile_id, ())

    def toggle_watch(self, profile_id: str, file_id: str) -> bool:
        """Flip membership of file_id in the profile's WatchSet.

        Returns:
            The new membership.
        """
        watched = self._watched.setdefault(profile_id, set())
        if file_id in watched:
            watched.discard(file_id)
            now_watched = False
        else:
            watched.add(file_id)
            now_watched = True
        self._flush_watched()
        logger.info(f"Profile {profile_id}: {'watching' if now_watched else 'stopped watching'} {file_id}")
        return now_watched

    # --- History ---

    def history(self, profile_id: str) -> dict[str, datetime]:
        return dict(self._history.get(profile_id, {}))

    def last_synced(self, profile_id: str, file_id: str) -> datetime | None:
        return self._history.get(profile_id, {}).get(file_id)

    def record_sync(self, profile_id: str, file_id: str, timestamp: datetime | None = None) -> datetime:
        """Insert or overwrite the last successful push time of one file."""
        when = timestamp or datetime.now(timezone.utc)
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        self._history.setdefault(profile_id, {})[file_id] = when
        self._flush_history()
        return when
