"""Shared fakes for the sync engine tests."""

from datetime import datetime, timezone

import pytest

from docsync.core.errors import AuthExpired
from docsync.core.settings import CONFIG_KEY, CURRENT_SCHEMA_VERSION
from docsync.core.state_persistence import MemoryStateBackend
from docsync.ingest.providers.base_provider import (
    DestinationProvider,
    DestinationResult,
    FileStoreProvider,
    RemoteFile,
    SummaryProvider,
)
from docsync.ingest.sync import SyncRuntime

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_file(file_id: str, name: str | None = None, modified_at: datetime = NOW) -> RemoteFile:
    return RemoteFile(
        id=file_id,
        name=name or f"{file_id}.txt",
        content_kind="text/plain",
        modified_at=modified_at,
        view_url=f"https://drive.example/{file_id}",
    )


def make_config(*profile_ids: str, active: str | None = None, **options) -> dict:
    """A current-shape config document with one profile per id."""
    profile_ids = profile_ids or ("p1",)
    return {
        "schema_version": CURRENT_SCHEMA_VERSION,
        "profiles": [
            {
                "id": pid,
                "name": f"Profile {pid}",
                "api_key": f"key-{pid}-secret",
                "dataset_id": f"ds-{pid}",
                "base_url": "https://dify.example/v1",
            }
            for pid in profile_ids
        ],
        "active_profile_id": active or profile_ids[0],
        "auto_sync": False,
        "sync_interval_minutes": 5,
        "gemini_api_key": None,
        **options,
    }


class FakeFileStore(FileStoreProvider):
    """In-memory file store."""

    def __init__(self, files: list[RemoteFile] | None = None):
        self.files = list(files or [])
        self.contents: dict[str, str] = {}
        self.fetch_errors: dict[str, Exception] = {}
        self.list_error: Exception | None = None
        self.auth_error: Exception | None = None
        self.authenticated = 0
        self.list_calls = 0
        self.fetched: list[str] = []

    def authenticate(self) -> None:
        if self.auth_error:
            raise self.auth_error
        self.authenticated += 1

    async def list_files(self, query_term: str | None = None) -> list[RemoteFile]:
        self.list_calls += 1
        if self.list_error:
            raise self.list_error
        if query_term:
            return [f for f in self.files if query_term.lower() in f.name.lower()]
        return list(self.files)

    async def fetch_content(self, file: RemoteFile) -> str:
        self.fetched.append(file.id)
        if file.id in self.fetch_errors:
            raise self.fetch_errors[file.id]
        return self.contents.get(file.id, f"Contents of {file.name}")


class FakeDestination(DestinationProvider):
    def __init__(self, factory: "FakeDestinationFactory", profile):
        self.factory = factory
        self.profile = profile

    async def create_document(self, dataset_id: str, name: str, text: str) -> DestinationResult:
        error = self.factory.errors.get((self.profile.id, name))
        if error is not None:
            raise error
        self.factory.pushes.append((self.profile.id, dataset_id, name, text))
        return DestinationResult(message="ok", document_id=f"doc-{len(self.factory.pushes)}")


class FakeDestinationFactory:
    """Builds FakeDestinations and records every accepted push.

    Errors are keyed by (profile_id, file_name).
    """

    def __init__(self):
        self.pushes: list[tuple[str, str, str, str]] = []
        self.errors: dict[tuple[str, str], Exception] = {}
        self.profiles_built: list[str] = []

    def __call__(self, profile) -> FakeDestination:
        self.profiles_built.append(profile.id)
        return FakeDestination(self, profile)

    def pushed_names(self, profile_id: str) -> list[str]:
        return [name for pid, _, name, _ in self.pushes if pid == profile_id]


class FakeSummarizer(SummaryProvider):
    def __init__(self, summary: str = "A short summary.", error: Exception | None = None):
        self.summary = summary
        self.error = error
        self.calls = 0

    async def summarize(self, text: str) -> str:
        self.calls += 1
        if self.error:
            raise self.error
        return self.summary


class AuthExpiringFileStore(FakeFileStore):
    """Lets `allowed` fetches through, then reports an expired session."""

    def __init__(self, files, allowed: int):
        super().__init__(files)
        self.allowed = allowed

    async def fetch_content(self, file: RemoteFile) -> str:
        if len(self.fetched) >= self.allowed:
            self.fetched.append(file.id)
            raise AuthExpired()
        return await super().fetch_content(file)


def build_runtime(
    files: list[RemoteFile] | None = None,
    initial: dict | None = None,
    file_store: FakeFileStore | None = None,
    summarizer: SummaryProvider | None = None,
) -> tuple[SyncRuntime, FakeFileStore, FakeDestinationFactory]:
    backend = MemoryStateBackend(initial if initial is not None else {CONFIG_KEY: make_config()})
    store = file_store or FakeFileStore(files)
    factory = FakeDestinationFactory()
    runtime = SyncRuntime(backend, store, destination_factory=factory, summarizer_factory=None)
    runtime.dispatcher.summarizer = summarizer
    return runtime, store, factory


@pytest.fixture
def backend() -> MemoryStateBackend:
    return MemoryStateBackend()

