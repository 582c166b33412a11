"""
The item registry: the single owner of every known workshop item and the entry
point for all host-facing subscribe, install and unsubscribe requests.
"""

import asyncio
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from workshop_emu.core.notifications import NotificationBridge, NullNotificationBridge
from workshop_emu.core.orchestrator import DownloadOrchestrator
from workshop_emu.exceptions import CleanupError
from workshop_emu.media.extractor import staging_path
from workshop_emu.models.config import EmuConfig
from workshop_emu.models.item import Item, ItemState, item_path
from workshop_emu.models.result import FailureKind, InstallResult
from workshop_emu.utils.path import create_dir, is_item_dir_name, remove_file, remove_tree

log = logging.getLogger(__name__)


@dataclass
class InstallJob:
    """Bookkeeping for one in-flight install of an item."""

    future: asyncio.Future
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def running(self) -> bool:
        return not self.future.done()


class ItemRegistry:
    """
    Owns the ordered collection of items and serializes every change to it.

    One lock guards the collection. It is only ever held for the mutation or
    lookup itself and never across a network call or a sleep, so unrelated
    transfers do not wait on each other. Notifications are sent outside the
    lock.
    """

    def __init__(
        self,
        config: EmuConfig,
        orchestrator: DownloadOrchestrator,
        bridge: Optional[NotificationBridge] = None,
    ):
        self.config = config
        self.items_path = Path(config.items_path)
        self.orchestrator = orchestrator
        self.bridge: NotificationBridge = bridge or NullNotificationBridge()
        self.known_app_id: Optional[int] = None

        self._items: list[Item] = []
        self._lock = threading.Lock()
        self._jobs: dict[int, InstallJob] = {}
        self._removals: dict[int, asyncio.Future] = {}
        self._install_slots = asyncio.Semaphore(config.max_concurrent_installs)

        create_dir(self.items_path)
        self.load_from_disk()

    # Lookups

    def _find(self, item_id: int) -> Optional[Item]:
        """Must be called with the lock held."""
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def get_item(self, item_id: int) -> Optional[Item]:
        with self._lock:
            return self._find(item_id)

    def get_state(self, item_id: int) -> ItemState:
        """Returns the item's state, or NONE for unknown items."""
        with self._lock:
            item = self._find(item_id)
            return item.state if item else ItemState.NONE

    def host_state_flags(self, item_id: int) -> int:
        """The item's state in the host platform's bitmask encoding."""
        return self.get_state(item_id).host_flags

    def get_local_path(self, item_id: int) -> Path:
        """The install directory of an item, whether or not it exists yet."""
        return item_path(self.items_path, item_id)

    def list_ids(self, capacity: Optional[int] = None) -> list[int]:
        """Returns item IDs in collection order, at most `capacity` of them."""
        with self._lock:
            ids = [item.id for item in self._items]
        return ids if capacity is None else ids[: max(capacity, 0)]

    def count(self) -> int:
        with self._lock:
            return len(self._items)

    def items(self) -> list[Item]:
        """A snapshot of the collection."""
        with self._lock:
            return list(self._items)

    # Host operations

    def subscribe(self, item_id: int) -> bool:
        """
        Registers interest in an item.

        Returns False (and does nothing) if the item is already known in any
        state.
        """
        with self._lock:
            if self._find(item_id) is not None:
                return False
            self._items.append(
                Item.create(self.items_path, item_id, ItemState.SUBSCRIBED)
            )

        log.info(f"Subscribed to item {item_id}.")
        self._emit(self.bridge.notify_subscribed, item_id)
        return True

    async def install(self, item_id: int) -> InstallResult:
        """
        Downloads and installs an item, subscribing to it first if needed.

        Installed items succeed immediately. If the item is already being
        installed, no second transfer is started and the caller waits for the
        running one instead. An unsubscribe of the same item that is still
        deleting files is allowed to finish before anything is downloaded.
        """
        await self._wait_for_removal(item_id)
        self.subscribe(item_id)

        with self._lock:
            item = self._find(item_id)
            if item is None:
                log.warning(f"[yellow]Item {item_id} was removed before install.[/yellow]")
                return InstallResult.failed(FailureKind.CANCELLED)

            if item.state is ItemState.INSTALLED:
                return InstallResult.succeeded(app_id=self.known_app_id, path=item.path)

            if item.state is ItemState.INSTALLING:
                running = self._jobs.get(item_id)
                if running is None:
                    # A previous attempt failed and left the item in INSTALLING.
                    return InstallResult.failed(
                        item.last_failure or FailureKind.FETCH,
                        app_id=self.known_app_id,
                    )
                job = None
            else:
                item.state = ItemState.INSTALLING
                job = InstallJob(future=asyncio.get_running_loop().create_future())
                self._jobs[item_id] = job

        if job is None:
            log.debug(f"Item {item_id} is already installing; waiting for it.")
            return await asyncio.shield(running.future)

        result: Optional[InstallResult] = None
        try:
            result = await self._run_install(item, job)
            return result
        finally:
            with self._lock:
                if self._jobs.get(item_id) is job:
                    del self._jobs[item_id]
            if result is None:
                result = self._abandon_install(item)
            job.future.set_result(result)

    async def _run_install(self, item: Item, job: InstallJob) -> InstallResult:
        log.info(f"Installing item {item.id}...")
        async with self._install_slots:
            result = await self.orchestrator.install(item.id, item.path, job.cancel_event)

        if result.app_id and not self.known_app_id:
            self.known_app_id = result.app_id
            log.debug(f"Owning app ID discovered: {result.app_id}")

        with self._lock:
            if result.success:
                item.state = ItemState.INSTALLED
                item.last_failure = None
            else:
                item.last_failure = result.failure

        if result.success:
            log.info(f"[green]✓ Install successful for item {item.id}.[/green]")
        else:
            log.error(f"[red]✗ Install error for item {item.id}.[/red]")

        self._emit(
            self.bridge.notify_download_result,
            item.id,
            result.success,
            result.app_id or self.known_app_id,
        )
        return result

    def _abandon_install(self, item: Item) -> InstallResult:
        """Settles an install whose task was cancelled before it produced a result."""
        with self._lock:
            item.last_failure = FailureKind.CANCELLED
        log.warning(f"[yellow]Install of item {item.id} was interrupted.[/yellow]")
        self._emit(self.bridge.notify_download_result, item.id, False, self.known_app_id)
        return InstallResult.failed(FailureKind.CANCELLED, app_id=self.known_app_id)

    async def unsubscribe(self, item_id: int) -> bool:
        """
        Forgets an item and deletes its local files.

        The item disappears from the collection immediately. Any running
        install is signalled to stop, then the local files are removed once it
        has wound down or the wait budget is exhausted. Installs of the same
        item requested meanwhile wait for the files to be gone. Returns False
        for unknown items.
        """
        with self._lock:
            item = self._find(item_id)
            if item is None:
                return False
            self._items.remove(item)
            job = self._jobs.get(item_id)
            removal = asyncio.get_running_loop().create_future()
            self._removals[item_id] = removal

        if job is not None:
            job.cancel_event.set()

        try:
            await self._wait_for_install(item, job)
            await asyncio.to_thread(self._remove_item_files, item)
        finally:
            with self._lock:
                if self._removals.get(item_id) is removal:
                    del self._removals[item_id]
            removal.set_result(None)

        log.info(f"Unsubscribed from item {item_id}.")
        return True

    async def _wait_for_removal(self, item_id: int) -> None:
        while True:
            with self._lock:
                removal = self._removals.get(item_id)
            if removal is None:
                return
            log.debug(f"Item {item_id} is being removed; waiting before install.")
            await asyncio.shield(removal)

    async def _wait_for_install(self, item: Item, job: Optional[InstallJob]) -> None:
        """
        Waits for an in-flight install of a removed item to finish.

        This is advisory only. After the wait budget runs out the files are
        deleted regardless.
        """
        if job is None:
            return
        for _ in range(self.config.unsubscribe_wait_attempts):
            if item.state is not ItemState.INSTALLING or not job.running:
                return
            await asyncio.sleep(self.config.unsubscribe_wait_interval)
        if job.running:
            log.warning(
                f"[yellow]Item {item.id} is still installing; removing its files "
                "anyway.[/yellow]"
            )

    def _remove_item_files(self, item: Item) -> None:
        for path, remover in (
            (item.path, remove_tree),
            (staging_path(item.path), remove_tree),
            (item.archive, remove_file),
        ):
            try:
                remover(path)
            except CleanupError as e:
                log.error(f"[red]Unsubscribe cleanup for item {item.id}: {e}[/red]")

    def load_from_disk(self) -> int:
        """
        Rebuilds the collection from the install directories under the items root.

        Every subdirectory whose name is a plain decimal number becomes an
        INSTALLED item. Returns the number of items found.
        """
        item_ids = self._scan_item_ids()
        with self._lock:
            self._items.clear()
            self._items.extend(
                Item.create(self.items_path, item_id, ItemState.INSTALLED)
                for item_id in item_ids
            )
        log.debug(f"Loaded {len(item_ids)} installed items from '{self.items_path}'.")
        return len(item_ids)

    def _scan_item_ids(self) -> list[int]:
        try:
            with os.scandir(self.items_path) as entries:
                names = [
                    entry.name
                    for entry in entries
                    if entry.is_dir() and is_item_dir_name(entry.name)
                ]
        except FileNotFoundError:
            return []
        # "0123" and "123" parse to the same ID
        return list(dict.fromkeys(sorted(int(name) for name in names)))

    def refresh_installed(self) -> int:
        """Re-sends a successful download result for every installed item."""
        installed = [
            item.id for item in self.items() if item.state is ItemState.INSTALLED
        ]
        for item_id in installed:
            self._emit(
                self.bridge.notify_download_result, item_id, True, self.known_app_id
            )
        return len(installed)

    @staticmethod
    def _emit(notify: Callable[..., None], *args) -> None:
        """Delivers a notification; a failing bridge never breaks the registry."""
        try:
            notify(*args)
        except Exception as e:
            log.error(
                f"[red]Notification {getattr(notify, '__name__', notify)} failed "
                f"for {args}: {e}[/red]",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
