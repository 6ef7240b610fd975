"""Abstract base classes for the sync engine's collaborators.

Defines the interface for the remote file store (listing + content),
the destination knowledge base, and the optional summary enrichment,
plus the validated RemoteFile shape that crosses the boundary.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class RemoteFile(BaseModel):
    """One file from a remote listing snapshot.

    Attributes:
        id: Stable remote identifier
        name: Display name
        content_kind: MIME type reported by the store
        modified_at: Last modification time (timezone-aware)
        view_url: Link to open the file in the store's UI
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    content_kind: str
    modified_at: datetime
    view_url: str | None = None

    @field_validator("modified_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_drive(cls, payload: dict[str, Any]) -> "RemoteFile":
        """Build from a Drive `files.list` entry.

        Raises:
            ValidationError: If required fields are missing or malformed
        """
        return cls(
            id=payload.get("id"),
            name=payload.get("name"),
            content_kind=payload.get("mimeType"),
            modified_at=payload.get("modifiedTime"),
            view_url=payload.get("webViewLink"),
        )


def parse_listing(entries: Iterable[dict[str, Any]]) -> list[RemoteFile]:
    """Validate raw listing entries, dropping (and logging) malformed ones."""
    files = []
    for entry in entries:
        try:
            files.append(RemoteFile.from_drive(entry))
        except ValidationError as e:
            logger.warning(f"Skipping malformed listing entry {entry.get('id')!r}: {e}")
    return files


class DestinationResult(BaseModel):
    """Outcome of a successful destination push."""

    success: bool = True
    message: str = ""
    document_id: str | None = None


class FileStoreProvider(ABC):
    """Remote file store: listing and content retrieval.

    Implementations signal expired credentials with AuthExpired and any
    other transport or HTTP failure with NetworkFailure.
    """

    @abstractmethod
    def authenticate(self) -> None:
        """Establish (or refresh) the session with the store."""
        pass

    @abstractmethod
    async def list_files(self, query_term: str | None = None) -> list[RemoteFile]:
        """Return one snapshot of syncable files.

        Args:
            query_term: Optional name filter applied on the store side
        """
        pass

    @abstractmethod
    async def fetch_content(self, file: RemoteFile) -> str:
        """Return the text content of a file (converted when needed)."""
        pass


class DestinationProvider(ABC):
    """A knowledge-base destination reachable with one profile's credentials."""

    @abstractmethod
    async def create_document(self, dataset_id: str, name: str, text: str) -> DestinationResult:
        """Index one text document into a dataset.

        Raises:
            DestinationRejected: On 4xx/5xx or missing credentials
            NetworkFailure: On transport errors
        """
        pass


class SummaryProvider(ABC):
    """Optional enrichment step producing a short summary of a document."""

    @abstractmethod
    async def summarize(self, text: str) -> str:
        """Summarize text.

        Raises:
            EnrichmentFailure: When no summary could be produced
        """
        pass
