"""API endpoints for file sync operations.

Provides endpoints for:
- Listing the remote snapshot with per-profile status
- Watching files and pushing them manually
- Triggering and inspecting auto-sync ticks
"""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..core.errors import SyncError
from ..ingest.sync import DerivedFileView, SyncJob, SyncOutcome, SyncRuntime
from .deps import CONTROL_ERRORS, get_sync_runtime, raise_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


# Request/Response Models
class FileListResponse(BaseModel):
    """The file list as shown for the active profile."""

    state: str
    profile_id: str
    files: list[DerivedFileView]


class WatchResponse(BaseModel):
    """Watch membership after a toggle."""

    file_id: str
    profile_id: str
    watched: bool


class BatchResponse(BaseModel):
    """Response from a manual batch push."""

    profile_id: str
    aborted: bool
    error: str | None
    success_count: int
    failure_count: int
    outcomes: list[SyncOutcome]


class SyncJobResponse(BaseModel):
    """Response for one scheduler tick."""

    job_id: str
    status: str
    started_at: str | None
    completed_at: str | None
    duration_seconds: float | None
    profiles_processed: list[str]
    success_count: int
    failure_count: int
    results: list[dict[str, Any]]
    error: str | None = None


class SyncHistoryResponse(BaseModel):
    """Response for tick history."""

    jobs: list[SyncJobResponse]


class SyncStatusResponse(BaseModel):
    """Engine and scheduler status."""

    state: str
    active_profile_id: str
    auto_sync: bool
    sync_interval_minutes: int
    armed: bool
    next_run_time: datetime | None
    last_job: SyncJobResponse | None


class SyncConfigUpdate(BaseModel):
    """Auto-sync options. Unset fields are left unchanged."""

    auto_sync: bool | None = None
    sync_interval_minutes: int | None = Field(default=None, ge=1)


def _job_response(job: SyncJob) -> SyncJobResponse:
    return SyncJobResponse(
        job_id=job.id,
        status=job.status.value,
        started_at=job.started_at.isoformat() if job.started_at else None,
        completed_at=job.completed_at.isoformat() if job.completed_at else None,
        duration_seconds=job.duration_seconds,
        profiles_processed=job.profiles_processed,
        success_count=job.success_count,
        failure_count=job.failure_count,
        results=job.results,
        error=job.error,
    )


def _file_list(runtime: SyncRuntime, search: str | None = None) -> FileListResponse:
    controller = runtime.controller
    return FileListResponse(
        state=controller.state.value,
        profile_id=controller.active_profile.id,
        files=controller.view(search),
    )


# Endpoints
@router.get("/files", response_model=FileListResponse)
async def list_files(
    search: str | None = None,
    runtime: SyncRuntime = Depends(get_sync_runtime),
) -> FileListResponse:
    """Get the current snapshot projected for the active profile.

    Args:
        search: Optional case-insensitive name filter applied locally
    """
    return _file_list(runtime, search)


@router.post("/files/refresh", response_model=FileListResponse)
async def refresh_files(
    query: str | None = None,
    runtime: SyncRuntime = Depends(get_sync_runtime),
) -> FileListResponse:
    """Fetch a new listing from the file store.

    Args:
        query: Optional name term passed to the remote search
    """
    try:
        await runtime.refresh_snapshot(query)
    except CONTROL_ERRORS as e:
        raise_http_error(e)
    except SyncError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return _file_list(runtime)


@router.post("/files/{file_id}/watch", response_model=WatchResponse)
async def toggle_watch(
    file_id: str,
    runtime: SyncRuntime = Depends(get_sync_runtime),
) -> WatchResponse:
    """Flip watch membership of a file for the active profile."""
    watched = runtime.controller.toggle_watch(file_id)
    return WatchResponse(
        file_id=file_id,
        profile_id=runtime.controller.active_profile.id,
        watched=watched,
    )


@router.post("/files/{file_id}/sync", response_model=SyncOutcome)
async def sync_file(
    file_id: str,
    profile_id: str | None = None,
    runtime: SyncRuntime = Depends(get_sync_runtime),
) -> SyncOutcome:
    """Push one file now, watched or not.

    Args:
        file_id: File from the current snapshot
        profile_id: Target profile, defaults to the active one
    """
    try:
        return await runtime.dispatcher.sync_one(file_id, profile_id)
    except CONTROL_ERRORS as e:
        if not runtime.controller.is_connected:
            runtime.scheduler.refresh()
        raise_http_error(e)


@router.post("/all", response_model=BatchResponse)
async def sync_all(
    profile_id: str | None = None,
    runtime: SyncRuntime = Depends(get_sync_runtime),
) -> BatchResponse:
    """Push every pending or failed watched file of a profile."""
    try:
        report = await runtime.dispatcher.sync_all_pending(profile_id)
    except CONTROL_ERRORS as e:
        raise_http_error(e)

    if report.aborted:
        runtime.scheduler.refresh()
    return BatchResponse(
        profile_id=report.profile_id,
        aborted=report.aborted,
        error=report.error,
        success_count=report.success_count,
        failure_count=report.failure_count,
        outcomes=report.outcomes,
    )


@router.post("/trigger", response_model=SyncJobResponse)
async def trigger_sync(runtime: SyncRuntime = Depends(get_sync_runtime)) -> SyncJobResponse:
    """Run one auto-sync tick immediately.

    A tick that finds another pass running is recorded as skipped.
    """
    job = await runtime.scheduler.run_tick()
    return _job_response(job)


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(runtime: SyncRuntime = Depends(get_sync_runtime)) -> SyncStatusResponse:
    """Get connection state and auto-sync schedule."""
    settings = runtime.settings.get()
    recent = runtime.scheduler.get_recent_jobs(limit=1)
    return SyncStatusResponse(
        state=runtime.controller.state.value,
        active_profile_id=settings.active_profile_id,
        auto_sync=settings.auto_sync,
        sync_interval_minutes=settings.sync_interval_minutes,
        armed=runtime.scheduler.is_armed,
        next_run_time=runtime.scheduler.next_run_time,
        last_job=_job_response(recent[0]) if recent else None,
    )


@router.get("/history", response_model=SyncHistoryResponse)
async def get_sync_history(
    limit: int = 10,
    runtime: SyncRuntime = Depends(get_sync_runtime),
) -> SyncHistoryResponse:
    """Get recent tick history.

    Args:
        limit: Maximum number of jobs to return
    """
    jobs = runtime.scheduler.get_recent_jobs(limit=limit)
    return SyncHistoryResponse(jobs=[_job_response(job) for job in jobs])


@router.put("/config", response_model=SyncStatusResponse)
async def update_sync_config(
    update: SyncConfigUpdate,
    runtime: SyncRuntime = Depends(get_sync_runtime),
) -> SyncStatusResponse:
    """Change auto-sync options and re-arm the timer."""
    runtime.settings.update_sync_options(
        auto_sync=update.auto_sync,
        sync_interval_minutes=update.sync_interval_minutes,
    )
    runtime.scheduler.refresh()
    logger.info(f"Auto-sync options updated: {update.model_dump(exclude_none=True)}")
    return await get_sync_status(runtime)
