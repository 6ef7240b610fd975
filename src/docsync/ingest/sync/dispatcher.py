"""Manual sync dispatcher.

Pushes a single file, or every pending/failed watched file of a profile,
outside the scheduled cycle. The scheduler reuses push_file for its own
per-profile reconciliation.
"""

import logging
from datetime import datetime
from typing import Callable

from pydantic import BaseModel, Field

from ...core.errors import AuthExpired, EmptyContent, EnrichmentFailure, SyncError
from ...core.settings import Profile
from ..providers.base_provider import (
    DestinationProvider,
    FileStoreProvider,
    RemoteFile,
    SummaryProvider,
)
from .controller import SyncController
from .projector import project_files
from .status import FileStatus
from .sync_store import WatchHistoryStore

logger = logging.getLogger(__name__)

NO_SUMMARY = "N/A"
SUMMARY_UNAVAILABLE = "Summary unavailable."

DestinationFactory = Callable[[Profile], DestinationProvider]


class SyncOutcome(BaseModel):
    """Result of pushing one file to one profile."""

    file_id: str
    file_name: str
    profile_id: str
    status: FileStatus
    message: str = ""
    synced_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.status == FileStatus.SYNCED


class BatchReport(BaseModel):
    """Result of a sequential batch push."""

    profile_id: str
    outcomes: list[SyncOutcome] = Field(default_factory=list)
    aborted: bool = False
    error: str | None = None

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)


def build_document(file: RemoteFile, summary: str, content: str) -> str:
    """Prefix the content with a metadata header for the knowledge base."""
    return (
        "---\n"
        f"File: {file.name}\n"
        f"Modified: {file.modified_at.isoformat()}\n"
        f"Summary: {summary}\n"
        f"Link: {file.view_url or 'N/A'}\n"
        "---\n"
        f"{content}"
    )


class SyncDispatcher:
    """Pushes files from the file store into destination profiles.

    Example:
        >>> dispatcher = SyncDispatcher(controller, store, drive, DifyDestination)
        >>> outcome = await dispatcher.sync_one("file-id")
        >>> report = await dispatcher.sync_all_pending()
    """

    def __init__(
        self,
        controller: SyncController,
        store: WatchHistoryStore,
        file_store: FileStoreProvider,
        destination_factory: DestinationFactory,
        summarizer: SummaryProvider | None = None,
    ):
        """Initialize the dispatcher.

        Args:
            controller: Owner of connection state and overlays
            store: Watch sets and history
            file_store: Remote listing/content collaborator
            destination_factory: Builds a destination client for a profile
            summarizer: Optional enrichment step
        """
        self.controller = controller
        self.store = store
        self.file_store = file_store
        self.destination_factory = destination_factory
        self.summarizer = summarizer

    async def _summarize(self, file: RemoteFile, content: str) -> str:
        if self.summarizer is None:
            return NO_SUMMARY
        try:
            return await self.summarizer.summarize(content)
        except EnrichmentFailure as e:
            logger.warning(f"Summary for {file.name} failed, continuing without: {e}")
            return SUMMARY_UNAVAILABLE

    async def push_file(self, file: RemoteFile, profile: Profile) -> SyncOutcome:
        """Fetch, enrich and push one file to one profile.

        Per-file failures are contained and reported as an ERROR outcome.

        Raises:
            NotConnected: If the file store is disconnected
            AuthExpired: After disconnecting the controller
        """
        self.controller.ensure_connected()
        self.controller.mark(profile.id, file.id, FileStatus.SYNCING)

        def failed(message: str) -> SyncOutcome:
            self.controller.mark(profile.id, file.id, FileStatus.ERROR)
            return SyncOutcome(
                file_id=file.id,
                file_name=file.name,
                profile_id=profile.id,
                status=FileStatus.ERROR,
                message=message,
            )

        try:
            content = await self.file_store.fetch_content(file)
            if not content or not content.strip():
                raise EmptyContent(file.name)

            summary = await self._summarize(file, content)
            destination = self.destination_factory(profile)
            result = await destination.create_document(
                profile.dataset_id, file.name, build_document(file, summary, content))

        except AuthExpired as e:
            failed(str(e))
            self.controller.disconnect(str(e))
            raise
        except SyncError as e:
            logger.error(f"Sync of {file.name} to {profile.name} failed: {e}")
            return failed(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error syncing {file.name} to {profile.name}")
            return failed(f"Unexpected error: {e}")

        synced_at = self.store.record_sync(profile.id, file.id)
        self.controller.clear_mark(profile.id, file.id)
        logger.info(f"Synced {file.name} to {profile.name}")
        return SyncOutcome(
            file_id=file.id,
            file_name=file.name,
            profile_id=profile.id,
            status=FileStatus.SYNCED,
            message=result.message,
            synced_at=synced_at,
        )

    async def sync_one(self, file_id: str, profile_id: str | None = None) -> SyncOutcome:
        """Push one file from the current snapshot.

        Args:
            file_id: File to push
            profile_id: Target profile, or None for the active one

        Raises:
            ProfileNotFound, FileNotInSnapshot, NotConnected, SyncInProgress, AuthExpired
        """
        profile = self.controller.resolve_profile(profile_id)
        file = self.controller.find_file(file_id)
        with self.controller.reconciling():
            return await self.push_file(file, profile)

    def _batch_candidates(self, profile: Profile) -> list[RemoteFile]:
        if self.controller.is_displayed(profile.id):
            views = self.controller.view()
        else:
            views = project_files(
                self.controller.snapshot,
                self.store.watched_ids(profile.id),
                self.store.history(profile.id),
            )
        wanted = {
            v.id for v in views
            if v.watched and v.status in (FileStatus.PENDING, FileStatus.ERROR)
        }
        # Keep the displayed order
        by_id = {f.id: f for f in self.controller.snapshot}
        return [by_id[v.id] for v in views if v.id in wanted]

    async def sync_all_pending(self, profile_id: str | None = None) -> BatchReport:
        """Push every pending or failed watched file, one at a time.

        An expired session halts the batch; files already pushed keep
        their history entries.
        """
        profile = self.controller.resolve_profile(profile_id)
        report = BatchReport(profile_id=profile.id)

        with self.controller.reconciling():
            candidates = self._batch_candidates(profile)
            if not candidates:
                logger.info(f"Nothing pending for {profile.name}")
                return report

            logger.info(f"Batch sync of {len(candidates)} files to {profile.name}")
            for file in candidates:
                try:
                    report.outcomes.append(await self.push_file(file, profile))
                except AuthExpired as e:
                    report.aborted = True
                    report.error = str(e)
                    break

        logger.info(
            f"Batch finished for {profile.name}: "
            f"{report.success_count} synced, {report.failure_count} failed"
        )
        return report
