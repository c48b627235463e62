"""Read-side caches over fake stores and the synchronizer that waits on them.

Each :class:`Informer` runs a background thread that lists its resource
once, then applies watch changes as they arrive and re-reads the store every
resync period. A cache is converged once its initial list has completed and
no received change is still waiting to be applied.
"""
from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Dict, List, Optional, Tuple

from action_harness.config import HarnessSettings
from action_harness.models import StoredObject
from action_harness.store import CHANGE_DELETED, Change, FakeStore

logger = logging.getLogger("action_harness.cache")

_POLL_INTERVAL: float = 0.01


class Informer:
    """Background-refreshed cache of one resource in one store."""

    def __init__(self, store: FakeStore, resource: str, resync_period: float) -> None:
        self.store = store
        self.resource = resource
        self.resync_period = resync_period
        self._lock = threading.Lock()
        self._items: Dict[Tuple[str, str], StoredObject] = {}
        self._listed = threading.Event()
        self._changes: Optional["queue.Queue[Change]"] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def identifier(self) -> str:
        return f"{self.store.name}/{self.resource}"

    @property
    def started(self) -> bool:
        return self._thread is not None

    def start(self, stop: threading.Event) -> None:
        """Start the refresh thread; a no-op when already started."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self.run, args=(stop,), name=f"informer-{self.identifier}", daemon=True,
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def has_synced(self) -> bool:
        if not self._listed.is_set() or self._changes is None:
            return False
        return self._changes.unfinished_tasks == 0

    def run(self, stop: threading.Event) -> None:
        changes = self.store.watch(self.resource)
        self._changes = changes
        self._replace(self.store.list(self.resource))
        self._listed.set()
        logger.debug("Informer %s synced", self.identifier)

        next_resync = time.monotonic() + self.resync_period
        while not stop.is_set():
            wait = max(0.0, min(_POLL_INTERVAL, next_resync - time.monotonic()))
            try:
                change = changes.get(timeout=wait)
            except queue.Empty:
                change = None
            if change is not None:
                self._apply(change)
                changes.task_done()
            if time.monotonic() >= next_resync:
                self._replace(self.store.snapshot(self.resource))
                next_resync = time.monotonic() + self.resync_period
        logger.debug("Informer %s stopped", self.identifier)

    def lister(self) -> List[StoredObject]:
        """Cached objects, ordered by (namespace, name)."""
        with self._lock:
            return [self._items[k] for k in sorted(self._items)]

    def get(self, namespace: str, name: str) -> Optional[StoredObject]:
        with self._lock:
            return self._items.get((namespace, name))

    def _replace(self, objects: List[StoredObject]) -> None:
        with self._lock:
            self._items = {(o.namespace, o.name): o for o in objects}

    def _apply(self, change: Change) -> None:
        key = (change.obj.namespace, change.obj.name)
        with self._lock:
            if change.change_type == CHANGE_DELETED:
                self._items.pop(key, None)
            else:
                self._items[key] = change.obj


class InformerFactory:
    """Shared caches over a single store, one informer per resource."""

    def __init__(self, store: FakeStore, resync_period: float) -> None:
        self.store = store
        self.resync_period = resync_period
        self._informers: Dict[str, Informer] = {}

    def informer_for(self, resource: str) -> Informer:
        if resource not in self._informers:
            self._informers[resource] = Informer(self.store, resource, self.resync_period)
        return self._informers[resource]

    @property
    def informers(self) -> List[Informer]:
        return list(self._informers.values())

    def start(self, stop: threading.Event) -> None:
        for informer in self._informers.values():
            informer.start(stop)

    def wait_for_cache_sync(
        self,
        stop: threading.Event,
        timeout: Optional[float] = None,
    ) -> Dict[str, bool]:
        """Block until every informer has synced, ``stop`` is set or ``timeout`` passes.

        Returns:
            Mapping of resource name to whether its informer synced.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            status = {r: i.has_synced() for r, i in self._informers.items()}
            if all(status.values()) or stop.is_set():
                return status
            if deadline is not None and time.monotonic() >= deadline:
                return status
            time.sleep(_POLL_INTERVAL)

    def join(self, timeout: Optional[float] = None) -> None:
        for informer in self._informers.values():
            informer.join(timeout)


class CacheSynchronizer:
    """Drives every registered cache to convergence before results are judged."""

    def __init__(self, settings: Optional[HarnessSettings] = None) -> None:
        self.settings = settings or HarnessSettings()
        self._factories: Dict[str, InformerFactory] = {}

    def register(self, name: str, factory: InformerFactory) -> None:
        self._factories[name] = factory

    def factory(self, name: str) -> InformerFactory:
        return self._factories[name]

    def unsynced(self) -> List[str]:
        return sorted(
            i.identifier
            for f in self._factories.values()
            for i in f.informers
            if not i.has_synced()
        )

    def sync(self, stop: threading.Event, timeout: Optional[float] = None) -> List[str]:
        """Start all caches and wait for them to converge.

        Args:
            stop: Shared stop signal; setting it abandons the wait.
            timeout: Seconds before the wait is abandoned; defaults to
                ``settings.sync_timeout``.

        Returns:
            Sorted identifiers (``"<store>/<resource>"``) of caches still not
            converged; empty on success.
        """
        for factory in self._factories.values():
            factory.start(stop)
        if not self.unsynced():
            return []
        if timeout is None:
            timeout = self.settings.sync_timeout
        deadline = time.monotonic() + timeout
        for factory in self._factories.values():
            remaining = max(0.0, deadline - time.monotonic())
            factory.wait_for_cache_sync(stop, remaining)
        pending = self.unsynced()
        if pending:
            logger.warning("Caches not synced after %.2fs: %s", timeout, pending)
        return pending

    def wait_for_resync(self) -> None:
        """Sleep one resync period plus a small buffer.

        Trades determinism for tolerance of batching delays in the stores;
        prefer :meth:`sync` wherever possible.
        """
        time.sleep(self.settings.resync_wait)

    def join(self, timeout: Optional[float] = None) -> None:
        for factory in self._factories.values():
            factory.join(timeout)
