"""Sync controller: connection state, reconciliation lock and view state.

Owns the single exclusion domain shared by scheduler ticks, manual batches
and manual single-file pushes, plus the transient status overlays and the
latest remote snapshot shown for the active profile.
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Iterator

from ...core.errors import FileNotInSnapshot, NotConnected, SyncInProgress
from ...core.settings import Profile, SettingsManager
from ..providers.base_provider import RemoteFile
from .projector import DerivedFileView, filter_by_name, project_files
from .status import FileStatus
from .sync_store import WatchHistoryStore

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Connection/reconciliation state of the engine."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    RECONCILING = "reconciling"


class SyncController:
    """Single owner of the engine's mutable runtime state.

    Example:
        >>> controller = SyncController(settings_manager, store)
        >>> controller.connect()
        >>> with controller.reconciling():
        ...     ...  # push files
    """

    def __init__(self, settings_manager: SettingsManager, store: WatchHistoryStore):
        self.settings_manager = settings_manager
        self.store = store
        self._connected = False
        self._reconciling = False
        self._snapshot: list[RemoteFile] = []
        self._overlays: dict[str, FileStatus] = {}

    # --- Connection state ---

    @property
    def state(self) -> ConnectionState:
        if not self._connected:
            return ConnectionState.DISCONNECTED
        if self._reconciling:
            return ConnectionState.RECONCILING
        return ConnectionState.CONNECTED

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_reconciling(self) -> bool:
        """True while a pass holds the lock, whatever the connection state."""
        return self._reconciling

    def connect(self) -> None:
        if not self._connected:
            self._connected = True
            logger.info("File store connected")

    def disconnect(self, reason: str = "") -> None:
        """Drop to DISCONNECTED. Blocks all pushes until connect()."""
        if self._connected:
            logger.warning(f"File store disconnected{': ' + reason if reason else ''}")
        self._connected = False

    def ensure_connected(self) -> None:
        if not self.is_connected:
            raise NotConnected()

    @contextmanager
    def reconciling(self) -> Iterator[None]:
        """Hold the reconciliation lock for the duration of the block.

        Raises:
            NotConnected: If the file store is disconnected
            SyncInProgress: If another pass holds the lock
        """
        self.ensure_connected()
        if self.is_reconciling:
            raise SyncInProgress()
        self._reconciling = True
        try:
            yield
        finally:
            self._reconciling = False

    # --- Profiles ---

    @property
    def active_profile(self) -> Profile:
        return self.settings_manager.get().active_profile

    def resolve_profile(self, profile_id: str | None = None) -> Profile:
        if profile_id is None:
            return self.active_profile
        return self.settings_manager.get().get_profile(profile_id)

    def is_displayed(self, profile_id: str) -> bool:
        return profile_id == self.settings_manager.get().active_profile_id

    def select_profile(self, profile_id: str) -> Profile:
        profile = self.settings_manager.set_active_profile(profile_id)
        self._overlays.clear()
        logger.info(f"Now managing profile {profile.name}")
        return profile

    # --- Snapshot and overlays ---

    @property
    def snapshot(self) -> list[RemoteFile]:
        return list(self._snapshot)

    def publish_snapshot(self, files: list[RemoteFile], reset_overlays: bool = False) -> None:
        self._snapshot = list(files)
        if reset_overlays:
            self._overlays.clear()
        else:
            # Rows that left the listing take their markers with them
            present = {f.id for f in files}
            self._overlays = {k: v for k, v in self._overlays.items() if k in present}

    def find_file(self, file_id: str) -> RemoteFile:
        for remote in self._snapshot:
            if remote.id == file_id:
                return remote
        raise FileNotInSnapshot(file_id)

    def mark(self, profile_id: str, file_id: str, status: FileStatus) -> None:
        """Overlay a status on a row, only if the profile is on display."""
        if self.is_displayed(profile_id):
            self._overlays[file_id] = status

    def clear_mark(self, profile_id: str, file_id: str) -> None:
        """Drop a row marker so the row is derived from watch and history again."""
        if self.is_displayed(profile_id):
            self._overlays.pop(file_id, None)

    def overlay(self, file_id: str) -> FileStatus | None:
        return self._overlays.get(file_id)

    def toggle_watch(self, file_id: str) -> bool:
        profile_id = self.settings_manager.get().active_profile_id
        self.clear_mark(profile_id, file_id)
        return self.store.toggle_watch(profile_id, file_id)

    def view(self, search: str | None = None) -> list[DerivedFileView]:
        """The sorted file list for the active profile."""
        profile_id = self.settings_manager.get().active_profile_id
        views = project_files(
            self._snapshot,
            self.store.watched_ids(profile_id),
            self.store.history(profile_id),
            self._overlays,
        )
        return filter_by_name(views, search)
