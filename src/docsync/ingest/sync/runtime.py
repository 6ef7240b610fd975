"""Assembly of the sync engine.

The migrator runs before any component reads persisted state; everything
else is built on top of the migrated backend.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Optional

from ...core.errors import AuthExpired
from ...core.settings import SettingsManager
from ...core.state_persistence import StateBackend, StateBackendError, create_backend
from ..providers.base_provider import FileStoreProvider, SummaryProvider
from ..providers.dify_provider import DifyDestination
from ..providers.gemini_provider import GeminiSummarizer
from ..providers.google_drive_provider import GoogleDriveProvider
from .controller import SyncController
from .dispatcher import DestinationFactory, SyncDispatcher
from .migrator import MigrationReport, SchemaMigrator
from .sync_scheduler import AutoSyncScheduler
from .sync_store import WatchHistoryStore

logger = logging.getLogger(__name__)


class SyncRuntime:
    """All sync components sharing one backend, controller and lock."""

    def __init__(
        self,
        backend: StateBackend,
        file_store: FileStoreProvider,
        destination_factory: DestinationFactory = DifyDestination,
        summarizer_factory: Optional[Callable[[str], SummaryProvider]] = GeminiSummarizer,
    ):
        """Migrate persisted state, then build the components.

        Args:
            backend: Persistence backend
            file_store: Remote file store collaborator
            destination_factory: Builds a destination client per profile
            summarizer_factory: Builds the enrichment step from an API key
        """
        self.backend = backend
        try:
            self.migration: MigrationReport = SchemaMigrator(backend).migrate()
        except StateBackendError:
            logger.error("State backend unavailable; not starting on default state")
            raise

        self.settings = SettingsManager(backend)
        self.store = WatchHistoryStore(backend)
        self.controller = SyncController(self.settings, self.store)
        self.file_store = file_store

        summarizer = None
        api_key = self.settings.gemini_api_key
        if summarizer_factory is not None and api_key:
            summarizer = summarizer_factory(api_key)
        else:
            logger.info("No Gemini API key configured; documents are pushed without summaries")

        self.dispatcher = SyncDispatcher(
            self.controller, self.store, file_store, destination_factory, summarizer)
        self.scheduler = AutoSyncScheduler(
            self.controller, self.dispatcher, self.store, self.settings, file_store)

    async def connect(self) -> None:
        """Authenticate with the file store, then arm auto-sync if enabled."""
        await asyncio.to_thread(self.file_store.authenticate)
        self.controller.connect()
        self.scheduler.refresh()

    def disconnect(self) -> None:
        self.controller.disconnect("user request")
        self.controller.publish_snapshot([], reset_overlays=True)
        self.scheduler.refresh()

    async def refresh_snapshot(self, query_term: Optional[str] = None):
        """Fetch a new listing for display."""
        self.controller.ensure_connected()
        try:
            files = await self.file_store.list_files(query_term)
        except AuthExpired as e:
            self.controller.disconnect(str(e))
            self.scheduler.refresh()
            raise
        self.controller.publish_snapshot(files, reset_overlays=True)
        return files

    def start(self) -> None:
        self.scheduler.start()

    def shutdown(self) -> None:
        self.scheduler.shutdown()


def create_runtime(data_dir: Optional[str | Path] = None) -> SyncRuntime:
    """Build the production runtime from environment configuration."""
    backend = create_backend(
        data_dir or os.getenv("DOCSYNC_DATA_DIR", "data"),
        os.getenv("DOCSYNC_STATE_URL"),
    )
    return SyncRuntime(backend, GoogleDriveProvider())
