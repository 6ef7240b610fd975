"""Schema migration for persisted config, watch sets and history.

Shapes:
    v1  flat config with destination fields at the top level (camelCase),
        a global watch list under "watched_files" and a global history map
        under "sync_history".
    v2  config with a profile list (camelCase), but watch list and history
        still global, with no profile dimension.
    v3  snake_case config with "schema_version", "watched" and "history"
        keyed by profile id.

Flat entries are attributed to the profile that is (or becomes) active.
Legacy keys are deleted only after their contents have been written back
in the current shape.

The browser edition stored a v2-style config under "docsync_config_v3" and
profile-keyed maps under "docsync_watched_files_map" and
"docsync_sync_history_map". These are folded in the same way: the config is
used only when no current config exists, the maps are merged per profile.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from ...core.settings import (
    CONFIG_KEY,
    CURRENT_SCHEMA_VERSION,
    DEFAULT_DIFY_BASE_URL,
    AppConfig,
    default_config,
    default_profile,
)
from ...core.state_persistence import StateBackend, StateDocumentCorrupt
from .sync_store import HISTORY_KEY, WATCHED_KEY

logger = logging.getLogger(__name__)

LEGACY_WATCHED_KEY = "watched_files"
LEGACY_HISTORY_KEY = "sync_history"

# Keys written by the browser edition; maps are already keyed by profile
BROWSER_CONFIG_KEY = "docsync_config_v3"
BROWSER_WATCHED_KEY = "docsync_watched_files_map"
BROWSER_HISTORY_KEY = "docsync_sync_history_map"

_CONFIG_RENAMES = {
    "activeProfileId": "active_profile_id",
    "autoSync": "auto_sync",
    "syncInterval": "sync_interval_minutes",
    "geminiApiKey": "gemini_api_key",
}

_PROFILE_RENAMES = {
    "difyApiKey": "api_key",
    "difyDatasetId": "dataset_id",
    "difyBaseUrl": "base_url",
}


class _Unreadable(Exception):
    """A persisted document exists but cannot be decoded or understood."""


@dataclass
class MigrationReport:
    """What the migrator found and did."""
    from_version: int
    to_version: int = CURRENT_SCHEMA_VERSION
    changed: bool = False
    attributed_profile_id: Optional[str] = None
    migrated_watch_entries: int = 0
    migrated_history_entries: int = 0
    recovered_keys: list[str] = field(default_factory=list)


def _rename(data: dict[str, Any], renames: dict[str, str]) -> dict[str, Any]:
    out = {}
    for key, value in data.items():
        new_key = renames.get(key, key)
        # Never let a legacy alias clobber an explicit current-shape value
        if new_key in out and key != new_key:
            continue
        out[new_key] = value
    return out


def _merge_history(target: dict[str, str], file_id: str, stamp: Any) -> bool:
    """Store stamp for file_id unless the existing entry is newer."""
    when = _parse_stamp(stamp)
    if when is None:
        logger.warning(f"Unreadable legacy history entry {file_id}: {stamp!r}")
        return False
    existing = _parse_stamp(target.get(file_id))
    if existing is None or when > existing:
        target[file_id] = when.isoformat()
    return True


def _parse_stamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class SchemaMigrator:
    """Upgrades persisted state to the current per-profile shape.

    Must run before anything else reads the backend. Running it again on
    current-shape data performs no writes.

    Example:
        >>> report = SchemaMigrator(backend).migrate()
        >>> report.from_version
        1
    """

    def __init__(self, backend: StateBackend):
        self.backend = backend

    def _read(self, key: str, report: MigrationReport) -> Any:
        """Read one document, quarantining it if it is not valid JSON.

        Backend outages propagate: an unreachable store is not corrupt data.
        """
        try:
            return self.backend.read(key)
        except StateDocumentCorrupt as e:
            self._quarantine(key, report, str(e))
            return None

    def _quarantine(self, key: str, report: MigrationReport, reason: str) -> None:
        """Keep an unreadable document under <key>.corrupt, then reset key."""
        logger.error(f"Persisted '{key}' is unreadable ({reason}); backing up to '{key}.corrupt'")
        raw = self.backend.read_raw(key)
        if raw is not None:
            self.backend.write(f"{key}.corrupt", {"raw": raw, "reason": reason})
        self.backend.delete(key)
        report.recovered_keys.append(key)
        report.changed = True

    # --- Config ---

    def _detect_version(self, raw: dict[str, Any]) -> int:
        if "schema_version" in raw:
            try:
                return int(raw["schema_version"])
            except (TypeError, ValueError) as e:
                raise _Unreadable(f"bad schema_version {raw['schema_version']!r}") from e
        if "profiles" in raw:
            return 2
        return 1

    def _upgrade_config(self, raw: Any) -> tuple[AppConfig, int]:
        if not isinstance(raw, dict):
            raise _Unreadable(f"expected an object, got {type(raw).__name__}")

        version = self._detect_version(raw)
        data = _rename(raw, _CONFIG_RENAMES)

        if version < 2 and "profiles" not in data:
            # Synthesize the single destination of a v1 install
            flat = _rename(raw, _PROFILE_RENAMES)
            profile = default_profile()
            profile.api_key = flat.get("api_key") or ""
            profile.dataset_id = flat.get("dataset_id") or ""
            profile.base_url = flat.get("base_url") or DEFAULT_DIFY_BASE_URL
            data["profiles"] = [profile.model_dump()]

        profiles = []
        for entry in data.get("profiles") or []:
            if isinstance(entry, dict):
                profiles.append(_rename(entry, _PROFILE_RENAMES))
        data["profiles"] = profiles

        known = set(AppConfig.model_fields)
        dropped = sorted(k for k in data if k not in known)
        if dropped:
            logger.info(f"Ignoring config fields with no current meaning: {dropped}")
        data = {k: v for k, v in data.items() if k in known}
        data["schema_version"] = CURRENT_SCHEMA_VERSION

        try:
            config = AppConfig.model_validate(data)
        except ValidationError as e:
            raise _Unreadable(str(e)) from e

        if not config.profiles:
            config.profiles = [default_profile()]
        if config.active_profile_id not in {p.id for p in config.profiles}:
            config.active_profile_id = config.profiles[0].id
        return config, version

    # --- Watch sets ---

    def _upgrade_watched(
        self, raw: Any, legacy: Any, active_id: str, report: MigrationReport,
    ) -> tuple[dict[str, list[str]], bool]:
        changed = False
        result: dict[str, list[str]] = {}

        if isinstance(raw, list):
            legacy = [*(legacy or []), *raw] if isinstance(legacy, list) else raw
            raw = {}
            changed = True
        elif raw is not None and not isinstance(raw, dict):
            raise _Unreadable(f"expected an object, got {type(raw).__name__}")

        for profile_id, ids in (raw or {}).items():
            if not isinstance(ids, list):
                raise _Unreadable(f"watch list of {profile_id} is not a list")
            clean = [str(i) for i in ids if isinstance(i, (str, int))]
            if len(clean) != len(ids):
                logger.warning(f"Dropped {len(ids) - len(clean)} non-id watch entries of {profile_id}")
                changed = True
            result[profile_id] = clean

        if isinstance(legacy, list) and legacy:
            target = result.setdefault(active_id, [])
            for file_id in legacy:
                file_id = str(file_id)
                if file_id not in target:
                    target.append(file_id)
                    report.migrated_watch_entries += 1
            changed = True
        return result, changed

    # --- History ---

    def _upgrade_history(
        self, raw: Any, legacy: Any, active_id: str, report: MigrationReport,
    ) -> tuple[dict[str, dict[str, str]], bool]:
        changed = False
        result: dict[str, dict[str, str]] = {}
        flat: dict[str, Any] = dict(legacy) if isinstance(legacy, dict) else {}

        if raw is not None and not isinstance(raw, dict):
            raise _Unreadable(f"expected an object, got {type(raw).__name__}")

        for key, value in (raw or {}).items():
            if isinstance(value, dict):
                result[key] = {str(fid): str(stamp) for fid, stamp in value.items()}
            else:
                # Flat file_id -> timestamp entry without a profile dimension
                flat[key] = value
                changed = True

        if flat:
            target = result.setdefault(active_id, {})
            for file_id, stamp in flat.items():
                if _merge_history(target, str(file_id), stamp):
                    report.migrated_history_entries += 1
            changed = True
        return result, changed

    # --- Entry point ---

    def migrate(self) -> MigrationReport:
        """Bring every persisted document to the current shape.

        Raises:
            StateBackendError: If the backend cannot be reached. No key is
                reset in that case.
        """
        report = MigrationReport(from_version=CURRENT_SCHEMA_VERSION)
        source_key = CONFIG_KEY
        raw_config = self._read(CONFIG_KEY, report)
        if raw_config is None:
            raw_config = self._read(BROWSER_CONFIG_KEY, report)
            if raw_config is not None:
                source_key = BROWSER_CONFIG_KEY

        if raw_config is None:
            config, version = default_config(), CURRENT_SCHEMA_VERSION
            report.changed = True
        else:
            try:
                config, version = self._upgrade_config(raw_config)
            except _Unreadable as e:
                self._quarantine(source_key, report, str(e))
                config, version = default_config(), 0
            if version != CURRENT_SCHEMA_VERSION or config.model_dump(mode="json") != raw_config:
                report.changed = True
        report.from_version = version
        active_id = config.active_profile_id
        report.attributed_profile_id = active_id

        watched_changed = self._migrate_watched(active_id, report)
        history_changed = self._migrate_history(active_id, report)

        if report.changed or watched_changed or history_changed:
            self.backend.write(CONFIG_KEY, config.model_dump(mode="json"))
            report.changed = True
            logger.info(
                f"Migrated state v{report.from_version} -> v{report.to_version}: "
                f"{report.migrated_watch_entries} watch and "
                f"{report.migrated_history_entries} history entries attributed to {active_id}"
            )
        else:
            logger.debug("Persisted state already current")

        if source_key != CONFIG_KEY and source_key not in report.recovered_keys:
            self.backend.delete(source_key)
        return report

    def _read_browser_map(self, key: str, active_id: str, report: MigrationReport, upgrade) -> Any:
        raw = self._read(key, report)
        if raw is None:
            return None
        try:
            mapped, _ = upgrade(raw, None, active_id, report)
        except _Unreadable as e:
            self._quarantine(key, report, str(e))
            return None
        return mapped

    def _migrate_watched(self, active_id: str, report: MigrationReport) -> bool:
        raw = self._read(WATCHED_KEY, report)
        legacy = self._read(LEGACY_WATCHED_KEY, report)
        browser = self._read_browser_map(BROWSER_WATCHED_KEY, active_id, report, self._upgrade_watched)
        try:
            watched, changed = self._upgrade_watched(raw, legacy, active_id, report)
        except _Unreadable as e:
            self._quarantine(WATCHED_KEY, report, str(e))
            watched, changed = self._upgrade_watched(None, legacy, active_id, report)
            changed = True

        if browser is not None:
            for profile_id, ids in browser.items():
                target = watched.setdefault(profile_id, [])
                for file_id in ids:
                    if file_id not in target:
                        target.append(file_id)
                        report.migrated_watch_entries += 1
            changed = True

        if changed:
            self.backend.write(WATCHED_KEY, watched)
        for key, value in ((LEGACY_WATCHED_KEY, legacy), (BROWSER_WATCHED_KEY, browser)):
            if value is not None:
                self.backend.delete(key)
                changed = True
        return changed

    def _migrate_history(self, active_id: str, report: MigrationReport) -> bool:
        raw = self._read(HISTORY_KEY, report)
        legacy = self._read(LEGACY_HISTORY_KEY, report)
        browser = self._read_browser_map(BROWSER_HISTORY_KEY, active_id, report, self._upgrade_history)
        try:
            history, changed = self._upgrade_history(raw, legacy, active_id, report)
        except _Unreadable as e:
            self._quarantine(HISTORY_KEY, report, str(e))
            history, changed = self._upgrade_history(None, legacy, active_id, report)
            changed = True

        if browser is not None:
            for profile_id, entries in browser.items():
                target = history.setdefault(profile_id, {})
                for file_id, stamp in entries.items():
                    if _merge_history(target, file_id, stamp):
                        report.migrated_history_entries += 1
            changed = True

        if changed:
            self.backend.write(HISTORY_KEY, history)
        for key, value in ((LEGACY_HISTORY_KEY, legacy), (BROWSER_HISTORY_KEY, browser)):
            if value is not None:
                self.backend.delete(key)
                changed = True
        return changed
