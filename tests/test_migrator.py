"""Tests for the schema migrator."""

import json

import httpx
import pytest
from conftest import make_config

from docsync.core.settings import CONFIG_KEY, CURRENT_SCHEMA_VERSION, DEFAULT_PROFILE_ID
from docsync.core.state_persistence import (
    FileStateBackend,
    MemoryStateBackend,
    RemoteStateBackend,
    StateBackendError,
)
from docsync.ingest.sync.migrator import (
    BROWSER_CONFIG_KEY,
    BROWSER_HISTORY_KEY,
    BROWSER_WATCHED_KEY,
    LEGACY_HISTORY_KEY,
    LEGACY_WATCHED_KEY,
    SchemaMigrator,
)
from docsync.ingest.sync.sync_store import HISTORY_KEY, WATCHED_KEY, WatchHistoryStore

STAMP = "2024-06-01T12:00:00+00:00"


class TestLegacyShapes:
    """Upgrades from older persisted shapes."""

    def test_flat_watch_list_goes_to_active_profile(self):
        config = make_config("P1", "P2", active="P1")
        config.pop("schema_version")
        backend = MemoryStateBackend({
            CONFIG_KEY: config,
            LEGACY_WATCHED_KEY: ["x", "y"],
        })

        report = SchemaMigrator(backend).migrate()

        store = WatchHistoryStore(backend)
        assert store.watched_ids("P1") == {"x", "y"}
        assert store.watched_ids("P2") == frozenset()
        assert report.attributed_profile_id == "P1"
        assert report.migrated_watch_entries == 2
        assert LEGACY_WATCHED_KEY not in backend.keys()

    def test_v1_flat_config(self):
        backend = MemoryStateBackend({
            CONFIG_KEY: {
                "difyApiKey": "app-123456789",
                "difyDatasetId": "ds-1",
                "autoSync": True,
                "syncInterval": 10,
            },
            LEGACY_WATCHED_KEY: ["x"],
            LEGACY_HISTORY_KEY: {"x": STAMP},
        })

        report = SchemaMigrator(backend).migrate()

        config = backend.read(CONFIG_KEY)
        assert report.from_version == 1
        assert config["schema_version"] == CURRENT_SCHEMA_VERSION
        assert config["auto_sync"] is True
        assert config["sync_interval_minutes"] == 10
        assert config["active_profile_id"] == DEFAULT_PROFILE_ID
        profile = config["profiles"][0]
        assert profile["api_key"] == "app-123456789"
        assert profile["dataset_id"] == "ds-1"
        assert backend.read(WATCHED_KEY) == {DEFAULT_PROFILE_ID: ["x"]}
        assert backend.read(HISTORY_KEY) == {DEFAULT_PROFILE_ID: {"x": STAMP}}

    def test_v2_camel_case_profiles(self):
        backend = MemoryStateBackend({
            CONFIG_KEY: {
                "profiles": [
                    {"id": "a", "name": "A", "difyApiKey": "k", "difyDatasetId": "d"},
                    {"id": "b", "name": "B"},
                ],
                "activeProfileId": "b",
            },
            HISTORY_KEY: {"f1": STAMP},
        })

        report = SchemaMigrator(backend).migrate()

        config = backend.read(CONFIG_KEY)
        assert report.from_version == 2
        assert config["active_profile_id"] == "b"
        assert config["profiles"][0]["api_key"] == "k"
        assert backend.read(HISTORY_KEY) == {"b": {"f1": STAMP}}

    def test_legacy_history_keeps_newer_stamp(self):
        backend = MemoryStateBackend({
            CONFIG_KEY: make_config("p1"),
            HISTORY_KEY: {"p1": {"f1": "2024-07-01T00:00:00+00:00"}},
            LEGACY_HISTORY_KEY: {"f1": STAMP, "f2": STAMP},
        })

        SchemaMigrator(backend).migrate()

        history = backend.read(HISTORY_KEY)["p1"]
        assert history["f1"] == "2024-07-01T00:00:00+00:00"
        assert history["f2"] == STAMP


class TestIdempotence:
    """Running on current data writes nothing."""

    def test_second_run_is_noop(self):
        backend = MemoryStateBackend({
            CONFIG_KEY: make_config("P1"),
            LEGACY_WATCHED_KEY: ["x"],
        })
        SchemaMigrator(backend).migrate()
        snapshot = {key: backend.read(key) for key in backend.keys()}
        writes = backend.write_count

        report = SchemaMigrator(backend).migrate()

        assert not report.changed
        assert backend.write_count == writes
        assert {key: backend.read(key) for key in backend.keys()} == snapshot

    def test_current_shape_untouched(self):
        backend = MemoryStateBackend({
            CONFIG_KEY: make_config("p1", "p2"),
            WATCHED_KEY: {"p1": ["a"], "p2": ["b"]},
            HISTORY_KEY: {"p2": {"b": STAMP}},
        })

        report = SchemaMigrator(backend).migrate()

        assert not report.changed
        assert backend.write_count == 0

    def test_empty_backend_gets_defaults(self, backend):
        report = SchemaMigrator(backend).migrate()

        assert report.changed
        assert backend.read(CONFIG_KEY)["active_profile_id"] == DEFAULT_PROFILE_ID


class TestUnreadableState:
    """Corrupt documents fall back to valid state and are kept aside."""

    def test_corrupt_config_file(self, tmp_path):
        (tmp_path / "config.json").write_text("{not json", encoding="utf-8")
        backend = FileStateBackend(tmp_path)

        report = SchemaMigrator(backend).migrate()

        assert CONFIG_KEY in report.recovered_keys
        assert backend.read(CONFIG_KEY)["profiles"][0]["id"] == DEFAULT_PROFILE_ID
        backup = json.loads((tmp_path / "config.corrupt.json").read_text(encoding="utf-8"))
        assert backup["raw"] == "{not json"

    def test_wrong_typed_watch_document(self):
        backend = MemoryStateBackend({
            CONFIG_KEY: make_config("p1"),
            WATCHED_KEY: "garbage",
        })

        report = SchemaMigrator(backend).migrate()

        assert WATCHED_KEY in report.recovered_keys
        assert backend.read(WATCHED_KEY) == {}
        assert backend.read(f"{WATCHED_KEY}.corrupt")["raw"] == '"garbage"'

    def test_bad_schema_version(self):
        backend = MemoryStateBackend({CONFIG_KEY: {"schema_version": "three"}})

        report = SchemaMigrator(backend).migrate()

        assert report.recovered_keys == [CONFIG_KEY]
        assert backend.read(CONFIG_KEY)["schema_version"] == CURRENT_SCHEMA_VERSION


class TestBrowserEditionKeys:
    """State exported from the browser edition is folded in."""

    def test_browser_state_replaces_missing_config(self):
        backend = MemoryStateBackend({
            BROWSER_CONFIG_KEY: {
                "googleClientId": "client",
                "geminiApiKey": "g-key",
                "profiles": [
                    {"id": "default-trade", "name": "TradeStars KB", "difyApiKey": "k", "difyDatasetId": "d"},
                    {"id": "research", "name": "Research"},
                ],
                "activeProfileId": "research",
                "autoSync": True,
                "syncInterval": 15,
            },
            BROWSER_WATCHED_KEY: {"default-trade": ["a"], "research": ["b", "c"]},
            BROWSER_HISTORY_KEY: {"research": {"b": STAMP}},
        })

        report = SchemaMigrator(backend).migrate()

        config = backend.read(CONFIG_KEY)
        assert config["active_profile_id"] == "research"
        assert config["gemini_api_key"] == "g-key"
        assert config["sync_interval_minutes"] == 15
        assert "googleClientId" not in config
        assert backend.read(WATCHED_KEY) == {"default-trade": ["a"], "research": ["b", "c"]}
        assert backend.read(HISTORY_KEY) == {"research": {"b": STAMP}}
        assert report.migrated_watch_entries == 3
        assert report.migrated_history_entries == 1
        assert backend.keys() == [CONFIG_KEY, HISTORY_KEY, WATCHED_KEY]

    def test_browser_maps_merge_with_current_state(self):
        backend = MemoryStateBackend({
            CONFIG_KEY: make_config("p1", "p2"),
            BROWSER_CONFIG_KEY: {"profiles": [{"id": "other", "name": "Other"}], "activeProfileId": "other"},
            WATCHED_KEY: {"p1": ["a"]},
            HISTORY_KEY: {"p1": {"a": "2024-07-01T00:00:00+00:00"}},
            BROWSER_WATCHED_KEY: {"p1": ["a", "b"], "p2": ["c"]},
            BROWSER_HISTORY_KEY: {"p1": {"a": STAMP, "b": STAMP}},
        })

        SchemaMigrator(backend).migrate()

        assert backend.read(CONFIG_KEY)["active_profile_id"] == "p1"
        assert backend.read(WATCHED_KEY) == {"p1": ["a", "b"], "p2": ["c"]}
        history = backend.read(HISTORY_KEY)["p1"]
        assert history == {"a": "2024-07-01T00:00:00+00:00", "b": STAMP}
        assert BROWSER_WATCHED_KEY not in backend.keys()
        assert BROWSER_HISTORY_KEY not in backend.keys()
        assert BROWSER_CONFIG_KEY in backend.keys()

        writes = backend.write_count
        assert not SchemaMigrator(backend).migrate().changed
        assert backend.write_count == writes


class TestUnavailableBackend:
    """An unreachable store is never mistaken for corrupt data."""

    def test_server_error_leaves_config_alone(self):
        store = {
            CONFIG_KEY: make_config("p1", "p2", active="p2"),
            WATCHED_KEY: {"p2": ["a"]},
        }
        posts = []

        def handler(request: httpx.Request) -> httpx.Response:
            key = request.url.path.rsplit("/", 1)[-1]
            if request.method == "POST":
                posts.append(key)
                store[key] = json.loads(request.content)
                return httpx.Response(200)
            if key == CONFIG_KEY:
                return httpx.Response(503, text="upstream busy")
            if key not in store:
                return httpx.Response(404)
            return httpx.Response(200, json=store[key])

        client = httpx.Client(base_url="https://state.example/api", transport=httpx.MockTransport(handler))
        backend = RemoteStateBackend("https://state.example/api", client=client)

        with pytest.raises(StateBackendError):
            SchemaMigrator(backend).migrate()

        assert posts == []
        assert [p["id"] for p in store[CONFIG_KEY]["profiles"]] == ["p1", "p2"]
        assert store[CONFIG_KEY]["active_profile_id"] == "p2"

    def test_unreadable_file_is_kept(self, tmp_path):
        (tmp_path / "config.json").mkdir()
        backend = FileStateBackend(tmp_path)

        with pytest.raises(StateBackendError):
            SchemaMigrator(backend).migrate()

        assert (tmp_path / "config.json").is_dir()
        assert not (tmp_path / "config.corrupt.json").exists()
