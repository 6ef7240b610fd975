"""Scheduler for unattended reconciliation of all profiles.

Uses APScheduler's AsyncIOScheduler with one interval job. Each tick takes
a single remote snapshot and reconciles every profile against it, one
profile and one file at a time.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from pydantic import BaseModel, Field

from ...core.errors import AuthExpired, NotConnected, SyncError, SyncInProgress
from ...core.settings import SettingsManager
from ..providers.base_provider import FileStoreProvider
from .controller import SyncController
from .dispatcher import SyncDispatcher
from .status import FileStatus, derive_status
from .sync_store import WatchHistoryStore

logger = logging.getLogger(__name__)

JOB_ID = "auto_sync"


class JobStatus(str, Enum):
    """Status of a sync job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    SKIPPED = "skipped"      # Lock held by another pass
    ABORTED = "aborted"      # Session expired mid-tick
    FAILED = "failed"


class SyncJob(BaseModel):
    """Represents one scheduler tick."""

    id: str
    status: JobStatus = JobStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    profiles_processed: list[str] = Field(default_factory=list)
    results: list[dict[str, Any]] = Field(default_factory=list)
    error: str | None = None

    @property
    def duration_seconds(self) -> float | None:
        """Calculate job duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def success_count(self) -> int:
        """Count of successfully pushed files."""
        return sum(1 for r in self.results if r.get("success"))

    @property
    def failure_count(self) -> int:
        """Count of failed files."""
        return sum(1 for r in self.results if not r.get("success"))


class AutoSyncScheduler:
    """Timer-driven reconciliation across every profile.

    The timer is armed only while auto-sync is enabled and the file store
    is connected. Overlapping ticks are dropped, not queued: the tick
    claims the controller's reconciliation lock and gives up if it is held.
    """

    def __init__(
        self,
        controller: SyncController,
        dispatcher: SyncDispatcher,
        store: WatchHistoryStore,
        settings_manager: SettingsManager,
        file_store: FileStoreProvider,
        max_history: int = 50,
    ):
        """Initialize the scheduler.

        Args:
            controller: Shared state and reconciliation lock
            dispatcher: Performs individual pushes
            store: Watch sets and history
            settings_manager: Source of profiles and auto-sync options
            file_store: Remote listing collaborator
            max_history: Number of tick records kept in memory
        """
        self.controller = controller
        self.dispatcher = dispatcher
        self.store = store
        self.settings_manager = settings_manager
        self.file_store = file_store
        self.max_history = max_history

        self._scheduler: AsyncIOScheduler | None = None
        self._jobs: dict[str, SyncJob] = {}
        self._job_counter = 0

    # --- Timer lifecycle ---

    def start(self) -> None:
        """Start the background scheduler and arm the job if enabled."""
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler()
            self._scheduler.start()
            logger.info("Sync scheduler started")
        self.refresh()

    def refresh(self) -> None:
        """Re-arm or disarm the job from the current config and connection."""
        if self._scheduler is None:
            return
        settings = self.settings_manager.get()
        if settings.auto_sync and self.controller.is_connected:
            self._scheduler.add_job(
                self.run_tick,
                trigger=IntervalTrigger(minutes=settings.sync_interval_minutes),
                id=JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info(f"Auto-sync armed every {settings.sync_interval_minutes} min")
        else:
            self._disarm()

    def _disarm(self) -> None:
        if self._scheduler is not None and self._scheduler.get_job(JOB_ID):
            self._scheduler.remove_job(JOB_ID)
            logger.info("Auto-sync disarmed")

    @property
    def is_armed(self) -> bool:
        return self._scheduler is not None and self._scheduler.get_job(JOB_ID) is not None

    @property
    def next_run_time(self) -> datetime | None:
        if not self.is_armed:
            return None
        return self._scheduler.get_job(JOB_ID).next_run_time

    def shutdown(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Sync scheduler stopped")

    # --- Ticks ---

    def _generate_job_id(self) -> str:
        """Generate unique job ID."""
        self._job_counter += 1
        return f"tick_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{self._job_counter}"

    def _remember(self, job: SyncJob) -> None:
        self._jobs[job.id] = job
        while len(self._jobs) > self.max_history:
            self._jobs.pop(next(iter(self._jobs)))

    async def run_tick(self) -> SyncJob:
        """Reconcile every profile against one fresh snapshot.

        Returns:
            The recorded SyncJob
        """
        job = SyncJob(id=self._generate_job_id(), started_at=datetime.now())
        self._remember(job)

        try:
            with self.controller.reconciling():
                job.status = JobStatus.RUNNING
                await self._reconcile_all(job)
                if job.status == JobStatus.RUNNING:
                    job.status = JobStatus.COMPLETED

        except (SyncInProgress, NotConnected) as e:
            logger.info(f"Skipping auto-sync tick: {e}")
            job.status = JobStatus.SKIPPED
            job.error = str(e)

        except Exception as e:
            logger.error(f"Auto-sync tick {job.id} failed: {e}")
            job.status = JobStatus.FAILED
            job.error = str(e)

        finally:
            job.completed_at = datetime.now()

        if job.status == JobStatus.ABORTED:
            self._disarm()
        return job

    async def _reconcile_all(self, job: SyncJob) -> None:
        try:
            files = await self.file_store.list_files()
        except AuthExpired as e:
            self.controller.disconnect(str(e))
            job.status = JobStatus.ABORTED
            job.error = str(e)
            return
        except SyncError as e:
            logger.error(f"Auto-sync listing failed: {e}")
            job.status = JobStatus.FAILED
            job.error = str(e)
            return

        self.controller.publish_snapshot(files)

        for profile in self.settings_manager.get().profiles:
            watched = self.store.watched_ids(profile.id)
            if not watched:
                continue

            history = self.store.history(profile.id)
            pending = [
                f for f in files
                if derive_status(f.id in watched, history.get(f.id), f.modified_at) == FileStatus.PENDING
            ]

            if pending:
                logger.info(f"Auto-sync: {len(pending)} changed files for {profile.name}")

            for file in pending:
                try:
                    outcome = await self.dispatcher.push_file(file, profile)
                except AuthExpired as e:
                    logger.error(f"Auto-sync halted during {profile.name}: {e}")
                    job.status = JobStatus.ABORTED
                    job.error = str(e)
                    return

                job.results.append({
                    "profile": profile.id,
                    "file": file.id,
                    "name": file.name,
                    "success": outcome.success,
                    "error": None if outcome.success else outcome.message,
                })

            job.profiles_processed.append(profile.id)

    def get_job(self, job_id: str) -> SyncJob | None:
        """Get a job by ID."""
        return self._jobs.get(job_id)

    def get_recent_jobs(self, limit: int = 10) -> list[SyncJob]:
        """Get recently executed ticks, newest first."""
        jobs = list(self._jobs.values())
        jobs.reverse()
        return jobs[:limit]
