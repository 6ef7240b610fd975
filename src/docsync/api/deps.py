"""Shared API dependencies: the sync runtime and error translation."""

from typing import NoReturn, Optional

from fastapi import HTTPException

from ..core.errors import (
    AuthExpired,
    FileNotInSnapshot,
    LastProfileError,
    NotConnected,
    ProfileNotFound,
    SyncInProgress,
)
from ..ingest.sync import SyncRuntime

CONTROL_ERRORS = (
    AuthExpired,
    FileNotInSnapshot,
    LastProfileError,
    NotConnected,
    ProfileNotFound,
    SyncInProgress,
)

_runtime: Optional[SyncRuntime] = None


def set_sync_runtime(runtime: Optional[SyncRuntime]) -> None:
    """Install the runtime served by the routers (None to clear)."""
    global _runtime
    _runtime = runtime


def has_sync_runtime() -> bool:
    return _runtime is not None


def get_sync_runtime() -> SyncRuntime:
    """Get the sync runtime installed at startup."""
    if _runtime is None:
        raise HTTPException(status_code=503, detail="Sync engine not initialized")
    return _runtime


def raise_http_error(error: Exception) -> NoReturn:
    """Translate an engine control error into an HTTPException."""
    if isinstance(error, (ProfileNotFound, FileNotInSnapshot)):
        raise HTTPException(status_code=404, detail=error.args[0]) from error
    if isinstance(error, (SyncInProgress, NotConnected)):
        raise HTTPException(status_code=409, detail=str(error)) from error
    if isinstance(error, LastProfileError):
        raise HTTPException(status_code=400, detail=str(error)) from error
    if isinstance(error, AuthExpired):
        raise HTTPException(status_code=401, detail=str(error)) from error
    raise error
