"""Tests for the sync controller and runtime assembly."""

import pytest
from conftest import FakeFileStore, build_runtime, make_config, make_file

from docsync.core.errors import AuthExpired, NotConnected, SyncInProgress
from docsync.core.settings import CONFIG_KEY
from docsync.core.state_persistence import MemoryStateBackend
from docsync.ingest.sync import ConnectionState, FileStatus, SyncRuntime
from docsync.ingest.sync.migrator import LEGACY_WATCHED_KEY


class TestConnectionState:
    """Tests for the connection state machine."""

    def test_starts_disconnected(self):
        runtime, _, _ = build_runtime()

        assert runtime.controller.state == ConnectionState.DISCONNECTED
        with pytest.raises(NotConnected):
            runtime.controller.ensure_connected()

    def test_reconciling_is_exclusive(self):
        runtime, _, _ = build_runtime()
        controller = runtime.controller
        controller.connect()

        with controller.reconciling():
            assert controller.state == ConnectionState.RECONCILING
            assert controller.is_connected
            with pytest.raises(SyncInProgress):
                with controller.reconciling():
                    pass

        assert controller.state == ConnectionState.CONNECTED

    def test_lock_released_on_error(self):
        runtime, _, _ = build_runtime()
        controller = runtime.controller
        controller.connect()

        with pytest.raises(RuntimeError):
            with controller.reconciling():
                raise RuntimeError("boom")

        assert controller.state == ConnectionState.CONNECTED

    def test_disconnect_inside_pass_stays_disconnected(self):
        runtime, _, _ = build_runtime()
        controller = runtime.controller
        controller.connect()

        with controller.reconciling():
            controller.disconnect("session expired")

        assert controller.state == ConnectionState.DISCONNECTED

    def test_reconnect_during_pass_keeps_lock(self):
        runtime, _, _ = build_runtime()
        controller = runtime.controller
        controller.connect()

        with controller.reconciling():
            controller.disconnect("user")
            controller.connect()

            assert controller.state == ConnectionState.RECONCILING
            with pytest.raises(SyncInProgress):
                with controller.reconciling():
                    pass

        assert controller.state == ConnectionState.CONNECTED
        assert not controller.is_reconciling


class TestOverlays:
    """Transient row markers belong to the displayed profile only."""

    def test_marks_ignored_for_other_profiles(self):
        runtime, _, _ = build_runtime(initial={CONFIG_KEY: make_config("p1", "p2")})
        controller = runtime.controller

        controller.mark("p2", "a", FileStatus.SYNCING)
        controller.mark("p1", "b", FileStatus.ERROR)

        assert controller.overlay("a") is None
        assert controller.overlay("b") == FileStatus.ERROR

    def test_profile_switch_clears_overlays(self):
        runtime, _, _ = build_runtime(initial={CONFIG_KEY: make_config("p1", "p2")})
        controller = runtime.controller
        controller.mark("p1", "a", FileStatus.ERROR)

        controller.select_profile("p2")

        assert controller.overlay("a") is None
        assert controller.active_profile.id == "p2"

    def test_toggle_watch_clears_marker(self):
        runtime, _, _ = build_runtime([make_file("a")])
        controller = runtime.controller
        controller.publish_snapshot([make_file("a")])
        controller.mark("p1", "a", FileStatus.ERROR)

        assert controller.toggle_watch("a") is True
        assert controller.view()[0].status == FileStatus.PENDING

    def test_snapshot_drops_markers_of_vanished_files(self):
        runtime, _, _ = build_runtime()
        controller = runtime.controller
        controller.publish_snapshot([make_file("a"), make_file("b")])
        controller.mark("p1", "a", FileStatus.ERROR)
        controller.mark("p1", "b", FileStatus.ERROR)

        controller.publish_snapshot([make_file("b")])

        assert controller.overlay("a") is None
        assert controller.overlay("b") == FileStatus.ERROR


class TestSyncRuntime:
    """Tests for runtime assembly."""

    def test_migrates_before_loading(self):
        backend = MemoryStateBackend({
            CONFIG_KEY: make_config("P1"),
            LEGACY_WATCHED_KEY: ["x", "y"],
        })

        runtime = SyncRuntime(backend, FakeFileStore(), destination_factory=None, summarizer_factory=None)

        assert runtime.migration.migrated_watch_entries == 2
        assert runtime.store.watched_ids("P1") == {"x", "y"}

    def test_summarizer_built_from_configured_key(self):
        backend = MemoryStateBackend({CONFIG_KEY: make_config("p1", gemini_api_key="g-key")})
        keys = []

        def factory(api_key):
            keys.append(api_key)
            return object()

        runtime = SyncRuntime(backend, FakeFileStore(), destination_factory=None, summarizer_factory=factory)

        assert keys == ["g-key"]
        assert runtime.dispatcher.summarizer is not None

    @pytest.mark.asyncio
    async def test_connect_and_refresh(self):
        runtime, store, _ = build_runtime([make_file("a"), make_file("b")])

        await runtime.connect()
        files = await runtime.refresh_snapshot("a.txt")

        assert store.authenticated == 1
        assert [f.id for f in files] == ["a"]
        assert runtime.controller.is_connected

    @pytest.mark.asyncio
    async def test_refresh_with_expired_session_disconnects(self):
        runtime, store, _ = build_runtime([make_file("a")])
        await runtime.connect()
        store.list_error = AuthExpired()

        with pytest.raises(AuthExpired):
            await runtime.refresh_snapshot()

        assert not runtime.controller.is_connected
