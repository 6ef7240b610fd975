"""Collaborators of the sync engine: file store, destination, enrichment."""

from .base_provider import (
    DestinationProvider,
    DestinationResult,
    FileStoreProvider,
    RemoteFile,
    SummaryProvider,
    parse_listing,
)
from .dify_provider import DifyDestination
from .gemini_provider import GeminiSummarizer
from .google_drive_provider import GoogleDriveProvider


__all__ = [
    # Base classes
    "DestinationProvider",
    "DestinationResult",
    "FileStoreProvider",
    "RemoteFile",
    "SummaryProvider",
    "parse_listing",
    # Implementations
    "DifyDestination",
    "GeminiSummarizer",
    "GoogleDriveProvider",
]
