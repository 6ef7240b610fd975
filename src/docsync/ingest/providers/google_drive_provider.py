"""Google Drive Provider - List and download documents from Google Drive.

Supports Google Docs, PDF, plain text and DOCX files.
Handles OAuth authentication and content export.
"""

import asyncio
import io
import logging
import os
import pickle
import time
from pathlib import Path
from typing import Any, Optional

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload

from ...core.errors import AuthExpired, NetworkFailure
from ..document_extractor import SUPPORTED_MIME_TYPES, DocumentExtractor
from .base_provider import FileStoreProvider, RemoteFile, parse_listing

logger = logging.getLogger(__name__)

LIST_FIELDS = "nextPageToken, files(id, name, mimeType, modifiedTime, webViewLink)"


def build_query(query_term: Optional[str] = None) -> str:
    """Drive search query for syncable, non-trashed files."""
    kinds = " or ".join(f"mimeType = '{kind}'" for kind in SUPPORTED_MIME_TYPES)
    query = f"trashed = false and ({kinds})"
    if query_term:
        safe_term = query_term.replace("\\", "\\\\").replace("'", "\\'")
        query += f" and name contains '{safe_term}'"
    return query


class GoogleDriveProvider(FileStoreProvider):
    """Provider for listing and downloading Google Drive content.

    Handles:
    - User authentication via OAuth 2.0
    - Paged file listing across all drives
    - Exporting Google Docs to text
    - Downloading PDFs and other files

    The Google client is blocking; the async methods run it in a worker
    thread so the event loop is only suspended, never blocked.

    Example:
        >>> provider = GoogleDriveProvider()
        >>> provider.authenticate()
        >>> files = await provider.list_files()
    """

    SCOPES = ['https://www.googleapis.com/auth/drive.readonly']

    # Google-native types that must be exported rather than downloaded
    EXPORT_TYPES = {
        'application/vnd.google-apps.document': 'text/plain',
    }

    def __init__(
        self,
        credentials_path: Optional[Path] = None,
        token_path: Optional[Path] = None,
        page_size: int = 100,
        max_files: int = 1000,
        service: Any = None,
        extractor: Optional[DocumentExtractor] = None,
    ) -> None:
        """Initialize the Google Drive provider.

        Args:
            credentials_path: OAuth client secrets file.
            token_path: Where the user token is cached.
            page_size: Files per listing page.
            max_files: Upper bound on files in one snapshot.
            service: Pre-built Drive service (skips authentication).
            extractor: Text extractor for downloaded bytes.
        """
        self.credentials_path = credentials_path or Path(
            os.getenv("DOCSYNC_CREDENTIALS_PATH", "credentials.json"))
        self.token_path = token_path or Path(
            os.getenv("DOCSYNC_TOKEN_PATH", "token.pickle"))
        self.page_size = page_size
        self.max_files = max_files
        self.creds = None
        self.service = service
        self.extractor = extractor or DocumentExtractor()

    def authenticate(self) -> None:
        """Authenticate with Google Drive using OAuth 2.0.

        Loads the cached token or triggers the consent flow.
        """
        if self.token_path.exists():
            with open(self.token_path, 'rb') as token:
                self.creds = pickle.load(token)

        # Refresh or login if needed
        if not self.creds or not self.creds.valid:
            if self.creds and self.creds.expired and self.creds.refresh_token:
                try:
                    self.creds.refresh(Request())
                except RefreshError as e:
                    raise AuthExpired(f"Google token refresh failed: {e}") from e
            else:
                if not self.credentials_path.exists():
                    raise FileNotFoundError(
                        f"Missing {self.credentials_path}. "
                        "Download it from Google Cloud Console."
                    )

                flow = InstalledAppFlow.from_client_secrets_file(
                    str(self.credentials_path), self.SCOPES)
                self.creds = flow.run_local_server(port=0)

            # Save credentials
            with open(self.token_path, 'wb') as token:
                pickle.dump(self.creds, token)

        self.service = build('drive', 'v3', credentials=self.creds)
        logger.info("Successfully authenticated with Google Drive")

    def _retry_operation(self, func, *args, **kwargs):
        """Retry an operation with exponential backoff.

        Only connection-level errors are retried. HTTP errors are mapped
        to the sync error taxonomy and raised immediately.
        """
        max_retries = 5
        base_delay = 1

        for attempt in range(max_retries):
            try:
                return func(*args, **kwargs)
            except HttpError as e:
                raise self._translate_http_error(e) from e
            except RefreshError as e:
                raise AuthExpired(f"Google token refresh failed: {e}") from e
            except (ConnectionError, OSError) as e:
                if attempt == max_retries - 1:
                    logger.error(f"Operation failed after {max_retries} attempts: {e}")
                    raise NetworkFailure(str(e)) from e

                delay = base_delay * (2 ** attempt)
                logger.warning(f"Operation failed (attempt {attempt+1}/{max_retries}): {e}. Retrying in {delay}s...")
                time.sleep(delay)

    @staticmethod
    def _translate_http_error(error: HttpError) -> Exception:
        status = getattr(error.resp, "status", None)
        if status is not None and int(status) == 401:
            return AuthExpired()
        return NetworkFailure(f"Drive API error {status}: {error}")

    def _require_service(self):
        if not self.service:
            self.authenticate()
        return self.service

    def list_files_sync(self, query_term: Optional[str] = None) -> list[dict[str, Any]]:
        """Fetch raw listing entries, following page tokens.

        Args:
            query_term: Optional name filter.

        Returns:
            List of file metadata dicts as returned by the API.
        """
        def _list():
            service = self._require_service()
            page_token = None
            entries: list[dict[str, Any]] = []

            while True:
                response = service.files().list(
                    q=build_query(query_term),
                    pageSize=self.page_size,
                    fields=LIST_FIELDS,
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True,
                    pageToken=page_token,
                ).execute()

                entries.extend(response.get('files', []))
                page_token = response.get('nextPageToken')
                if page_token is None or len(entries) >= self.max_files:
                    break

            return entries[:self.max_files]

        return self._retry_operation(_list)

    def download_file(self, file_id: str, mime_type: str) -> bytes:
        """Download or export a file's raw bytes.

        Args:
            file_id: The Drive file ID.
            mime_type: The source MIME type.
        """
        def _download():
            service = self._require_service()

            if mime_type in self.EXPORT_TYPES:
                request = service.files().export_media(
                    fileId=file_id, mimeType=self.EXPORT_TYPES[mime_type])
            else:
                request = service.files().get_media(fileId=file_id, supportsAllDrives=True)

            fh = io.BytesIO()
            downloader = MediaIoBaseDownload(fh, request)
            done = False
            while done is False:
                _, done = downloader.next_chunk()

            return fh.getvalue()

        return self._retry_operation(_download)

    async def list_files(self, query_term: Optional[str] = None) -> list[RemoteFile]:
        entries = await asyncio.to_thread(self.list_files_sync, query_term)
        files = parse_listing(entries)
        logger.info(f"Drive listing returned {len(files)} files")
        return files

    async def fetch_content(self, file: RemoteFile) -> str:
        data = await asyncio.to_thread(self.download_file, file.id, file.content_kind)
        result = self.extractor.extract(data, file.content_kind, source=file.name)
        if not result.success:
            logger.warning(f"Could not extract text from {file.name}: {result.error}")
            return ""
        return result.content
