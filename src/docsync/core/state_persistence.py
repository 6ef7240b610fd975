"""State Persistence Layer - Durable storage for config, watch sets and history.

Every persisted document is a JSON value stored under a string key
("config", "watched", "history", plus legacy keys read by the migrator).
Backends are synchronous: writes are small and the sync engine relies on
store mutations completing without yielding to the event loop.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional
import copy
import json
import logging
import re

import httpx

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class StateBackendError(Exception):
    """Raised when a backend cannot read or write a document."""


class StateDocumentCorrupt(StateBackendError):
    """A stored document was read but is not valid JSON."""


class StateBackend(ABC):
    """Abstract base class for state storage backends."""

    @abstractmethod
    def read(self, key: str) -> Optional[Any]:
        """Return the stored JSON value, or None if the key is absent."""
        pass

    @abstractmethod
    def write(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under key."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if something was deleted."""
        pass

    def read_raw(self, key: str) -> Optional[str]:
        """Return the stored document text without decoding it.

        Used by the migrator to back up documents that fail to parse.
        """
        value = self.read(key)
        return None if value is None else json.dumps(value)


class MemoryStateBackend(StateBackend):
    """In-process backend. Nothing survives the process."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = copy.deepcopy(initial or {})
        self.write_count = 0

    def read(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    def write(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
        self.write_count += 1

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return sorted(self._data)


class FileStateBackend(StateBackend):
    """File-based storage, one JSON file per key.

    Example:
        >>> backend = FileStateBackend("./data")
        >>> backend.write("config", {"schema_version": 3})
        >>> backend.read("config")
        {'schema_version': 3}
    """

    def __init__(self, base_path: str | Path):
        """Initialize with base directory for state files.

        Args:
            base_path: Directory to store state files.
        """
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid state key: {key!r}")
        return self.base_path / f"{key}.json"

    def read_raw(self, key: str) -> Optional[str]:
        path = self._get_path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StateBackendError(f"Failed to read {path}: {e}") from e

    def read(self, key: str) -> Optional[Any]:
        raw = self.read_raw(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StateDocumentCorrupt(f"Corrupt state document '{key}': {e}") from e

    def write(self, key: str, value: Any) -> None:
        path = self._get_path(key)
        # Write atomically using temp file
        temp_path = path.with_suffix(".tmp")
        try:
            temp_path.write_text(json.dumps(value, indent=2), encoding="utf-8")
            temp_path.replace(path)
        except OSError as e:
            raise StateBackendError(f"Failed to write {path}: {e}") from e

    def delete(self, key: str) -> bool:
        path = self._get_path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StateBackendError(f"Failed to delete {path}: {e}") from e
        return True


class RemoteStateBackend(StateBackend):
    """Backend talking to the companion config server.

    The server exposes `GET/POST {base_url}/{key}`; a 404 on GET means the
    key has never been written.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_seconds,
        )

    def read(self, key: str) -> Optional[Any]:
        try:
            response = self._client.get(f"/{key}")
        except httpx.HTTPError as e:
            raise StateBackendError(f"GET {key} failed: {e}") from e
        if response.status_code == 404:
            return None
        if response.is_error:
            raise StateBackendError(f"GET {key} returned HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise StateDocumentCorrupt(f"Corrupt state document '{key}': {e}") from e

    def read_raw(self, key: str) -> Optional[str]:
        try:
            response = self._client.get(f"/{key}")
        except httpx.HTTPError as e:
            raise StateBackendError(f"GET {key} failed: {e}") from e
        if response.status_code == 404:
            return None
        if response.is_error:
            raise StateBackendError(f"GET {key} returned HTTP {response.status_code}")
        return response.text

    def _post(self, key: str, **kwargs: Any) -> None:
        try:
            response = self._client.post(f"/{key}", **kwargs)
        except httpx.HTTPError as e:
            raise StateBackendError(f"POST {key} failed: {e}") from e
        if response.is_error:
            raise StateBackendError(f"POST {key} returned HTTP {response.status_code}")

    def write(self, key: str, value: Any) -> None:
        self._post(key, json=value)

    def delete(self, key: str) -> bool:
        # The config server has no DELETE; an explicit null marks the key unset.
        # httpx sends no body for json=None, so post the literal
        self._post(key, content=b"null", headers={"Content-Type": "application/json"})
        return True

    def close(self) -> None:
        self._client.close()


def create_backend(data_dir: str | Path, state_url: Optional[str] = None) -> StateBackend:
    """Pick the remote backend when a state URL is configured, else files on disk."""
    if state_url:
        logger.info("Using remote state backend at %s", state_url)
        return RemoteStateBackend(state_url)
    logger.info("Using file state backend in %s", data_dir)
    return FileStateBackend(data_dir)
