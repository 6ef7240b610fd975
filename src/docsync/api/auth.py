"""Connection endpoints for the file store session."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..core.errors import SyncError
from ..ingest.sync import SyncRuntime
from .deps import get_sync_runtime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class ConnectionResponse(BaseModel):
    state: str


@router.post("/connect", response_model=ConnectionResponse)
async def connect(runtime: SyncRuntime = Depends(get_sync_runtime)) -> ConnectionResponse:
    """Authenticate with the file store and load the first listing."""
    try:
        await runtime.connect()
    except FileNotFoundError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SyncError as e:
        logger.error(f"Connect failed: {e}")
        raise HTTPException(status_code=401, detail=str(e))

    try:
        await runtime.refresh_snapshot()
    except SyncError as e:
        logger.warning(f"Connected, but the first listing failed: {e}")
    return ConnectionResponse(state=runtime.controller.state.value)


@router.post("/disconnect", response_model=ConnectionResponse)
async def disconnect(runtime: SyncRuntime = Depends(get_sync_runtime)) -> ConnectionResponse:
    """Drop the session and disarm auto-sync."""
    runtime.disconnect()
    return ConnectionResponse(state=runtime.controller.state.value)
