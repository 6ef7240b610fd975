"""Projection of a remote snapshot onto one profile's watch set and history."""

from datetime import datetime
from typing import Iterable, Mapping

from pydantic import BaseModel, ConfigDict

from ..providers.base_provider import RemoteFile
from .status import FileStatus, derive_status


class DerivedFileView(BaseModel):
    """One row of the file list for the active profile. Never persisted."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    content_kind: str
    modified_at: datetime
    view_url: str | None = None
    status: FileStatus
    last_synced: datetime | None = None
    watched: bool


def _sort_key(view: DerivedFileView) -> tuple:
    pending_first = not (view.watched and view.status == FileStatus.PENDING)
    return (not view.watched, pending_first, -view.modified_at.timestamp())


def project_files(
    files: Iterable[RemoteFile],
    watched_ids: frozenset[str] | set[str],
    history: Mapping[str, datetime],
    overlays: Mapping[str, FileStatus] | None = None,
) -> list[DerivedFileView]:
    """Combine a snapshot with one profile's state into a sorted list.

    Order: watched before unwatched, pending first among watched, then most
    recently modified first. Sorting uses the derived status; in-flight and
    error overlays are applied afterwards so rows keep their position.
    """
    views = []
    for remote in files:
        watched = remote.id in watched_ids
        last_synced = history.get(remote.id)
        views.append(DerivedFileView(
            id=remote.id,
            name=remote.name,
            content_kind=remote.content_kind,
            modified_at=remote.modified_at,
            view_url=remote.view_url,
            status=derive_status(watched, last_synced, remote.modified_at),
            last_synced=last_synced,
            watched=watched,
        ))

    views.sort(key=_sort_key)

    if overlays:
        views = [
            view.model_copy(update={"status": overlays[view.id]}) if view.id in overlays else view
            for view in views
        ]
    return views


def filter_by_name(views: list[DerivedFileView], term: str | None) -> list[DerivedFileView]:
    """Case-insensitive name filter for the local search box."""
    if not term:
        return views
    needle = term.casefold()
    return [view for view in views if needle in view.name.casefold()]
