"""Tests for the item registry's lifecycle handling and concurrency rules."""

import asyncio
import logging
import time
from pathlib import Path

import pytest

from conftest import RecordingBridge
from workshop_emu.api.client import WorkshopAPIClient
from workshop_emu.core import registry as registry_module
from workshop_emu.core.orchestrator import DownloadOrchestrator
from workshop_emu.core.registry import ItemRegistry
from workshop_emu.exceptions import CleanupError
from workshop_emu.models.item import ItemState
from workshop_emu.models.result import FailureKind, InstallResult


class StubOrchestrator:
    """Orchestrator double that records calls and returns canned results."""

    def __init__(self, result: InstallResult | None = None, delay: float = 0.0):
        self.result = result or InstallResult.succeeded(app_id=480)
        self.delay = delay
        self.calls: list[tuple[int, Path]] = []
        self.states_seen: list[ItemState] = []
        self.registry: ItemRegistry | None = None
        self.active = 0
        self.peak = 0

    async def install(self, item_id, target_path, cancel_event=None):
        self.calls.append((item_id, target_path))
        if self.registry is not None:
            self.states_seen.append(self.registry.get_state(item_id))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        if self.result.success:
            target_path.mkdir(parents=True, exist_ok=True)
        return self.result


class CancellableOrchestrator:
    """Orchestrator double that runs until its cancel event is set."""

    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False

    async def install(self, item_id, target_path, cancel_event=None):
        self.started.set()
        await cancel_event.wait()
        self.cancelled = True
        return InstallResult.failed(FailureKind.CANCELLED)


class SlowToStopOrchestrator:
    """
    Orchestrator double whose first install runs until cancelled and then takes
    a while to stop. Later installs succeed.
    """

    def __init__(self, stop_delay: float):
        self.stop_delay = stop_delay
        self.started = asyncio.Event()
        self.calls = 0

    async def install(self, item_id, target_path, cancel_event=None):
        self.calls += 1
        if self.calls == 1:
            self.started.set()
            await cancel_event.wait()
            await asyncio.sleep(self.stop_delay)
            return InstallResult.failed(FailureKind.CANCELLED)
        target_path.mkdir(parents=True, exist_ok=True)
        return InstallResult.succeeded(app_id=480)


@pytest.fixture
def make_registry(make_config, bridge):
    def _make(orchestrator=None, **overrides):
        orchestrator = orchestrator or StubOrchestrator()
        registry = ItemRegistry(make_config(**overrides), orchestrator, bridge)
        if isinstance(orchestrator, StubOrchestrator):
            orchestrator.registry = registry
        return registry

    return _make


class TestSubscribe:
    def test_subscribe_is_idempotent(self, make_registry, bridge):
        registry = make_registry()

        assert registry.subscribe(10) is True
        assert registry.subscribe(10) is False

        assert registry.list_ids() == [10]
        assert registry.get_state(10) is ItemState.SUBSCRIBED
        assert bridge.subscribed == [10]

    def test_subscribe_keeps_insertion_order(self, make_registry):
        registry = make_registry()
        for item_id in (30, 10, 20):
            registry.subscribe(item_id)
        assert registry.list_ids() == [30, 10, 20]
        assert registry.count() == 3

    def test_notification_is_sent_after_the_item_is_visible(self, make_config):
        bridge = RecordingBridge()
        registry = ItemRegistry(make_config(), StubOrchestrator(), bridge)
        bridge.registry = registry

        registry.subscribe(10)

        assert bridge.states_on_subscribe == [ItemState.SUBSCRIBED]

    def test_failing_bridge_does_not_break_subscribe(self, make_config):
        class BrokenBridge(RecordingBridge):
            def notify_subscribed(self, item_id):
                raise RuntimeError("host callback exploded")

        registry = ItemRegistry(make_config(), StubOrchestrator(), BrokenBridge())

        assert registry.subscribe(10) is True
        assert registry.get_state(10) is ItemState.SUBSCRIBED


class TestInstall:
    @pytest.mark.asyncio
    async def test_install_unknown_item_subscribes_first(self, make_registry, bridge):
        registry = make_registry()
        bridge.registry = registry

        result = await registry.install(10)

        assert result.success
        assert bridge.states_on_subscribe == [ItemState.SUBSCRIBED]
        assert registry.orchestrator.states_seen == [ItemState.INSTALLING]
        assert registry.get_state(10) is ItemState.INSTALLED
        assert bridge.results == [(10, True, 480)]

    @pytest.mark.asyncio
    async def test_install_uses_computed_path(self, make_registry):
        registry = make_registry()

        await registry.install(10)

        assert registry.orchestrator.calls == [(10, registry.get_local_path(10))]
        assert registry.get_local_path(10) == registry.items_path / "10"

    @pytest.mark.asyncio
    async def test_installed_item_is_not_downloaded_again(self, make_registry, bridge):
        registry = make_registry()
        await registry.install(10)

        result = await registry.install(10)

        assert result.success
        assert len(registry.orchestrator.calls) == 1
        assert len(bridge.results) == 1

    @pytest.mark.asyncio
    async def test_concurrent_installs_share_one_transfer(self, make_registry):
        registry = make_registry(StubOrchestrator(delay=0.05))

        first, second = await asyncio.gather(registry.install(10), registry.install(10))

        assert first.success and second.success
        assert len(registry.orchestrator.calls) == 1

    @pytest.mark.asyncio
    async def test_failed_install_stays_installing(self, make_registry, bridge):
        orchestrator = StubOrchestrator(InstallResult.failed(FailureKind.STALLED))
        registry = make_registry(orchestrator)

        result = await registry.install(10)

        assert not result.success
        assert registry.get_state(10) is ItemState.INSTALLING
        assert registry.host_state_flags(10) == 16
        assert bridge.results == [(10, False, None)]

        again = await registry.install(10)
        assert again.failure is FailureKind.STALLED
        assert len(orchestrator.calls) == 1

    @pytest.mark.asyncio
    async def test_known_app_id_fills_in_missing_discovery(self, make_registry, bridge):
        orchestrator = StubOrchestrator()
        registry = make_registry(orchestrator)
        await registry.install(10)

        orchestrator.result = InstallResult.succeeded(app_id=None)
        await registry.install(11)

        assert registry.known_app_id == 480
        assert bridge.results == [(10, True, 480), (11, True, 480)]

    @pytest.mark.asyncio
    async def test_install_concurrency_is_bounded(self, make_registry):
        orchestrator = StubOrchestrator(delay=0.05)
        registry = make_registry(orchestrator, max_concurrent_installs=2)

        results = await asyncio.gather(*(registry.install(i) for i in range(1, 7)))

        assert all(result.success for result in results)
        assert len(orchestrator.calls) == 6
        assert orchestrator.peak == 2


class TestUnsubscribe:
    @pytest.mark.asyncio
    async def test_unknown_item_is_a_noop(self, make_registry):
        registry = make_registry()
        registry.subscribe(10)

        assert await registry.unsubscribe(99) is False
        assert registry.list_ids() == [10]

    @pytest.mark.asyncio
    async def test_removes_item_and_files(self, make_registry):
        registry = make_registry()
        await registry.install(10)
        item_dir = registry.get_local_path(10)
        (item_dir / "file.txt").write_text("x")
        leftover = item_dir.with_name("10.zip")
        leftover.write_bytes(b"zip")

        assert await registry.unsubscribe(10) is True

        assert registry.get_state(10) is ItemState.NONE
        assert registry.list_ids() == []
        assert not item_dir.exists()
        assert not leftover.exists()

    @pytest.mark.asyncio
    async def test_subscribed_item_without_files(self, make_registry):
        registry = make_registry()
        registry.subscribe(10)

        assert await registry.unsubscribe(10) is True
        assert registry.count() == 0

    @pytest.mark.asyncio
    async def test_cancels_running_install(self, make_registry, bridge):
        orchestrator = CancellableOrchestrator()
        registry = make_registry(orchestrator)

        install = asyncio.create_task(registry.install(10))
        await orchestrator.started.wait()

        assert await asyncio.wait_for(registry.unsubscribe(10), timeout=2) is True
        result = await install

        assert orchestrator.cancelled
        assert result.failure is FailureKind.CANCELLED
        assert registry.get_state(10) is ItemState.NONE
        assert bridge.results == [(10, False, None)]

    @pytest.mark.asyncio
    async def test_removal_is_visible_before_files_are_deleted(self, make_registry):
        orchestrator = CancellableOrchestrator()
        registry = make_registry(orchestrator)
        install = asyncio.create_task(registry.install(10))
        await orchestrator.started.wait()

        unsubscribe = asyncio.create_task(registry.unsubscribe(10))
        await asyncio.sleep(0)

        assert registry.list_ids() == []
        await unsubscribe
        await install

    @pytest.mark.asyncio
    async def test_reinstall_waits_for_pending_removal(self, make_registry, bridge):
        orchestrator = SlowToStopOrchestrator(stop_delay=0.1)
        registry = make_registry(orchestrator)
        first = asyncio.create_task(registry.install(10))
        await orchestrator.started.wait()

        unsubscribe = asyncio.create_task(registry.unsubscribe(10))
        await asyncio.sleep(0)
        second = await asyncio.wait_for(registry.install(10), timeout=2)
        await unsubscribe
        await first

        assert second.success
        assert registry.get_state(10) is ItemState.INSTALLED
        assert registry.get_local_path(10).is_dir()
        assert bridge.results == [(10, False, None), (10, True, 480)]

    @pytest.mark.asyncio
    async def test_files_are_removed_when_install_ignores_cancel(
        self, make_registry, caplog
    ):
        orchestrator = StubOrchestrator(
            InstallResult.failed(FailureKind.STALLED), delay=0.5
        )
        registry = make_registry(orchestrator, unsubscribe_wait_attempts=3)
        item_dir = registry.get_local_path(10)
        install = asyncio.create_task(registry.install(10))
        await asyncio.sleep(0.01)
        item_dir.mkdir()
        (item_dir / "chunk.bin").write_bytes(b"x")

        start = time.monotonic()
        with caplog.at_level(logging.WARNING, logger="workshop_emu.core.registry"):
            assert await registry.unsubscribe(10) is True
        elapsed = time.monotonic() - start

        assert elapsed < 0.4
        assert not item_dir.exists()
        assert "still installing" in caplog.text
        await install

    @pytest.mark.asyncio
    async def test_cleanup_errors_are_logged(self, make_registry, monkeypatch, caplog):
        registry = make_registry()
        await registry.install(10)
        archive = registry.get_local_path(10).with_name("10.zip")
        archive.write_bytes(b"zip")

        def refuse(path):
            raise CleanupError(f"Could not delete directory '{path}': permission denied")

        monkeypatch.setattr(registry_module, "remove_tree", refuse)
        with caplog.at_level(logging.ERROR, logger="workshop_emu.core.registry"):
            assert await registry.unsubscribe(10) is True

        assert registry.list_ids() == []
        assert "permission denied" in caplog.text
        assert not archive.exists()


class TestInterruptedInstall:
    @pytest.mark.asyncio
    async def test_waiters_get_a_cancelled_result(self, make_registry, bridge):
        orchestrator = CancellableOrchestrator()
        registry = make_registry(orchestrator)
        owner = asyncio.create_task(registry.install(10))
        await orchestrator.started.wait()
        waiter = asyncio.create_task(registry.install(10))
        await asyncio.sleep(0.01)

        owner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await owner
        result = await asyncio.wait_for(waiter, timeout=2)

        assert result.failure is FailureKind.CANCELLED
        assert registry.get_state(10) is ItemState.INSTALLING
        assert bridge.results == [(10, False, None)]

    @pytest.mark.asyncio
    async def test_later_install_reports_cancellation(self, make_registry):
        orchestrator = CancellableOrchestrator()
        registry = make_registry(orchestrator)
        owner = asyncio.create_task(registry.install(10))
        await orchestrator.started.wait()
        owner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await owner

        retry = await registry.install(10)

        assert retry.failure is FailureKind.CANCELLED


class TestLoadFromDisk:
    def test_numeric_directories_become_installed_items(self, make_config, tmp_path):
        items = tmp_path / "items"
        for name in ("456", "123", "abc", "123.partial"):
            (items / name).mkdir(parents=True)
        (items / "789").write_text("a file, not a directory")
        (items / "55.zip").write_bytes(b"")

        registry = ItemRegistry(make_config(), StubOrchestrator())

        assert registry.list_ids() == [123, 456]
        assert all(item.state is ItemState.INSTALLED for item in registry.items())
        assert registry.host_state_flags(123) == 4

    def test_reload_replaces_collection(self, make_registry):
        registry = make_registry()
        registry.subscribe(10)
        (registry.items_path / "20").mkdir()

        assert registry.load_from_disk() == 1
        assert registry.list_ids() == [20]

    def test_creates_missing_root(self, make_config, tmp_path):
        registry = ItemRegistry(
            make_config(items_path=str(tmp_path / "new" / "root")), StubOrchestrator()
        )
        assert registry.items_path.is_dir()
        assert registry.count() == 0


class TestHostQueries:
    def test_list_ids_respects_capacity(self, make_registry):
        registry = make_registry()
        for item_id in (1, 2, 3):
            registry.subscribe(item_id)

        assert registry.list_ids(2) == [1, 2]
        assert registry.list_ids(0) == []
        assert registry.count() == 3

    def test_unknown_item_state(self, make_registry):
        registry = make_registry()
        assert registry.get_state(5) is ItemState.NONE
        assert registry.host_state_flags(5) == 0
        assert registry.get_item(5) is None

    def test_refresh_installed_resends_results(self, make_registry, bridge):
        registry = make_registry()
        (registry.items_path / "7").mkdir()
        registry.load_from_disk()
        registry.subscribe(8)

        assert registry.refresh_installed() == 1
        assert bridge.results == [(7, True, None)]


@pytest.mark.asyncio
async def test_end_to_end_install_and_recovery(fake_service, make_config, bridge):
    config = make_config(api_base_url=fake_service.base_url)
    client = WorkshopAPIClient(config)
    try:
        registry = ItemRegistry(config, DownloadOrchestrator(config, client), bridge)
        result = await registry.install(2503622437)
    finally:
        await client.close()

    assert result.success
    assert bridge.results == [(2503622437, True, 480)]
    assert (registry.get_local_path(2503622437) / "mod.txt").is_file()

    recovered = ItemRegistry(config, StubOrchestrator())
    assert recovered.list_ids() == [2503622437]
    assert recovered.get_state(2503622437) is ItemState.INSTALLED
