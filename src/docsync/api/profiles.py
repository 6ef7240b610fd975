"""API endpoints for destination profiles."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..core.settings import DEFAULT_DIFY_BASE_URL, Profile, ProfileUpdate
from ..ingest.sync import SyncRuntime
from .deps import CONTROL_ERRORS, get_sync_runtime, raise_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


class ProfileCreate(BaseModel):
    """Request to add a profile."""

    name: str
    api_key: str = ""
    dataset_id: str = ""
    base_url: str = DEFAULT_DIFY_BASE_URL


class ProfileResponse(BaseModel):
    """A profile as exposed over the API. The API key is masked."""

    id: str
    name: str
    api_key: str
    dataset_id: str
    base_url: str
    active: bool

    @classmethod
    def from_profile(cls, profile: Profile, active_id: str) -> "ProfileResponse":
        return cls(
            id=profile.id,
            name=profile.name,
            api_key=profile.masked_api_key,
            dataset_id=profile.dataset_id,
            base_url=profile.base_url,
            active=profile.id == active_id,
        )


def _respond(runtime: SyncRuntime, profile: Profile) -> ProfileResponse:
    return ProfileResponse.from_profile(profile, runtime.settings.get().active_profile_id)


@router.get("", response_model=list[ProfileResponse])
async def list_profiles(runtime: SyncRuntime = Depends(get_sync_runtime)) -> list[ProfileResponse]:
    """Get all profiles, the active one flagged."""
    settings = runtime.settings.get()
    return [ProfileResponse.from_profile(p, settings.active_profile_id) for p in settings.profiles]


@router.post("", response_model=ProfileResponse, status_code=201)
async def create_profile(
    request: ProfileCreate,
    runtime: SyncRuntime = Depends(get_sync_runtime),
) -> ProfileResponse:
    """Add a profile. It starts with an empty watch set and history."""
    try:
        profile = runtime.settings.add_profile(Profile(**request.model_dump()))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _respond(runtime, profile)


@router.put("/{profile_id}", response_model=ProfileResponse)
async def update_profile(
    profile_id: str,
    update: ProfileUpdate,
    runtime: SyncRuntime = Depends(get_sync_runtime),
) -> ProfileResponse:
    """Update name, credentials or dataset of a profile."""
    try:
        profile = runtime.settings.update_profile(profile_id, update)
    except CONTROL_ERRORS as e:
        raise_http_error(e)
    return _respond(runtime, profile)


@router.delete("/{profile_id}", status_code=204)
async def delete_profile(
    profile_id: str,
    runtime: SyncRuntime = Depends(get_sync_runtime),
) -> None:
    """Remove a profile. Its watch set and history are left in storage."""
    was_active = runtime.controller.is_displayed(profile_id)
    try:
        runtime.settings.delete_profile(profile_id)
    except CONTROL_ERRORS as e:
        raise_http_error(e)
    if was_active:
        runtime.controller.select_profile(runtime.settings.get().active_profile_id)


@router.post("/{profile_id}/activate", response_model=ProfileResponse)
async def activate_profile(
    profile_id: str,
    runtime: SyncRuntime = Depends(get_sync_runtime),
) -> ProfileResponse:
    """Switch the managed profile. Status overlays of the old one are dropped."""
    try:
        profile = runtime.controller.select_profile(profile_id)
    except CONTROL_ERRORS as e:
        raise_http_error(e)
    return _respond(runtime, profile)
