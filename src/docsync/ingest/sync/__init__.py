"""Sync reconciliation engine: Drive files mirrored into knowledge bases."""

from .controller import ConnectionState, SyncController
from .dispatcher import BatchReport, SyncDispatcher, SyncOutcome
from .migrator import MigrationReport, SchemaMigrator
from .projector import DerivedFileView, filter_by_name, project_files
from .runtime import SyncRuntime, create_runtime
from .status import SKEW_BUFFER, FileStatus, derive_status
from .sync_scheduler import AutoSyncScheduler, JobStatus, SyncJob
from .sync_store import WatchHistoryStore

__all__ = [
    "AutoSyncScheduler",
    "BatchReport",
    "ConnectionState",
    "DerivedFileView",
    "FileStatus",
    "JobStatus",
    "MigrationReport",
    "SKEW_BUFFER",
    "SchemaMigrator",
    "SyncController",
    "SyncDispatcher",
    "SyncJob",
    "SyncOutcome",
    "SyncRuntime",
    "WatchHistoryStore",
    "create_runtime",
    "derive_status",
    "filter_by_name",
    "project_files",
]
