"""Harness context: declares expectations, runs the checks, reports in one pass.

Typical use::

    h = HarnessContext(
        seed_objects={"default": [("widgets", existing)]},
        expected_operations=[expect_create("ns1", "widgets", want)],
        expected_events=["Normal Created widget created"],
    )
    h.start()
    reconcile(h.store(), h.recorder, h.clock)
    h.verify()

``verify()`` runs every structural check, aggregates all divergences into a
single :class:`VerificationError` and always stops the harness.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from action_harness.cache import CacheSynchronizer, InformerFactory
from action_harness.clock import Clock, ClockSlot, RealClock
from action_harness.config import HarnessSettings
from action_harness.events import EventSink, compare_events
from action_harness.matching import ExpectedOperation, MatchResult, match_operations
from action_harness.models import (
    CheckErrored,
    CheckFailed,
    Diagnostic,
    HarnessStateError,
    Operation,
    StoredObject,
    SyncTimeout,
    SyncTimeoutError,
    VerificationError,
)
from action_harness.names import StringGenerator, rand_string
from action_harness.reactors import Reactor, ReactorTracker, generate_name_reactor
from action_harness.store import FakeStore

logger = logging.getLogger("action_harness.harness")

DEFAULT_STORE: str = "default"

CheckFn = Callable[..., None]
SeedObjects = Mapping[str, Sequence[Tuple[str, StoredObject]]]


class HarnessState(str, Enum):
    UNSTARTED = "unstarted"
    STARTED = "started"
    VERIFIED = "verified"
    STOPPED = "stopped"


@dataclass(frozen=True)
class VerificationReport:
    """What a passing verification observed."""

    match: MatchResult
    events: Tuple[str, ...]
    reactors: Dict[str, bool]


class HarnessContext:
    """Owns fake stores, caches, event sink, reactor tracker and clock for one test.

    Args:
        seed_objects: Objects preloaded into each store, keyed by store name,
            as ``(resource, object)`` pairs.
        expected_operations: Operations the code under test must perform.
        expected_events: Event strings it must emit (a multiset).
        clock: Clock installed while the harness runs; real time if omitted.
        string_generator: Suffix generator for ``generate_name`` creates.
        check_fn: Custom validation run last by :meth:`verify`, called as
            ``check_fn(harness, *args)``.
        settings: Timing and matching configuration.
        store_names: Stores to build; defaults to the seeded ones, or a
            single ``"default"`` store.
    """

    def __init__(
        self,
        seed_objects: Optional[SeedObjects] = None,
        expected_operations: Sequence[ExpectedOperation] = (),
        expected_events: Sequence[str] = (),
        clock: Optional[Clock] = None,
        string_generator: Optional[StringGenerator] = None,
        check_fn: Optional[CheckFn] = None,
        settings: Optional[HarnessSettings] = None,
        store_names: Optional[Sequence[str]] = None,
    ) -> None:
        self.seed_objects: Dict[str, List[Tuple[str, StoredObject]]] = {
            k: list(v) for k, v in (seed_objects or {}).items()
        }
        self.expected_operations: Tuple[ExpectedOperation, ...] = tuple(expected_operations)
        self.expected_events: Tuple[str, ...] = tuple(expected_events)
        self.string_generator: StringGenerator = string_generator or rand_string
        self.check_fn = check_fn
        self.settings = settings or HarnessSettings()
        if store_names is None:
            store_names = list(self.seed_objects) or [DEFAULT_STORE]
        unknown = set(self.seed_objects) - set(store_names)
        if unknown:
            raise ValueError(f"Seed objects for undeclared stores: {sorted(unknown)}")
        self.store_names: Tuple[str, ...] = tuple(store_names)

        self._configured_clock: Clock = clock or RealClock()
        self.clock = ClockSlot()
        self.recorder = EventSink()
        self.reactors = ReactorTracker()
        self.synchronizer = CacheSynchronizer(self.settings)
        self._stores: Dict[str, FakeStore] = {}
        self._stop: Optional[threading.Event] = None
        self.state = HarnessState.UNSTARTED

    def __enter__(self) -> "HarnessContext":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Build stores and caches, install the clock."""
        if self.state is not HarnessState.UNSTARTED:
            raise HarnessStateError(f"start() called in state {self.state.value!r}")
        self.clock.install(self._configured_clock)
        name_reactor = generate_name_reactor(
            self.string_generator, self.settings.name_suffix_length,
        )
        for name in self.store_names:
            store = FakeStore(name, self.seed_objects.get(name, ()), clock=self.clock)
            store.prepend_reactor("create", "*", name_reactor)
            self._stores[name] = store
            self.synchronizer.register(
                name, InformerFactory(store, self.settings.resync_period),
            )
        self._stop = threading.Event()
        self.state = HarnessState.STARTED
        logger.info("Harness started with stores %s", list(self.store_names))

    def stop(self) -> None:
        """Halt background caches and restore the clock.

        Idempotent, but not safe to call concurrently.
        """
        if self._stop is None:
            return
        self._stop.set()
        self._stop = None
        self.synchronizer.join(timeout=self.settings.sync_timeout)
        self.clock.restore()
        if self.state is HarnessState.STARTED:
            self.state = HarnessState.STOPPED
        logger.info("Harness stopped")

    def _require_started(self, method: str) -> threading.Event:
        if self.state is not HarnessState.STARTED or self._stop is None:
            raise HarnessStateError(f"{method}() called in state {self.state.value!r}")
        return self._stop

    # -- accessors ---------------------------------------------------------

    def store(self, name: str = DEFAULT_STORE) -> FakeStore:
        if name not in self._stores:
            raise KeyError(f"Unknown store {name!r}; have {sorted(self._stores)}")
        return self._stores[name]

    def informer_factory(self, name: str = DEFAULT_STORE) -> InformerFactory:
        return self.synchronizer.factory(name)

    def now(self) -> datetime:
        return self.clock.now()

    def events(self) -> List[str]:
        return self.recorder.all()

    def actions(self) -> List[Operation]:
        """Every store's action log, concatenated in store order."""
        out: List[Operation] = []
        for name in self.store_names:
            if name in self._stores:
                out.extend(self._stores[name].actions())
        return out

    def ensure_reactor_called(self, name: str, fn: Reactor) -> Reactor:
        """Wrap ``fn`` so :meth:`verify` fails unless it reports handled."""
        return self.reactors.wrap(name, fn)

    # -- checks ------------------------------------------------------------

    def all_reactors_called(self) -> List[Diagnostic]:
        return list(self.reactors.all_called())

    def match_actions(self) -> MatchResult:
        return match_operations(
            self.actions(), self.expected_operations, self.settings.read_only_verbs,
        )

    def all_actions_executed(self) -> List[Diagnostic]:
        return self.match_actions().diagnostics()

    def all_events_called(self) -> List[Diagnostic]:
        mismatch = compare_events(self.expected_events, self.events())
        return [] if mismatch is None else [mismatch]

    def sync(self, timeout: Optional[float] = None) -> None:
        """Start every cache and block until all have converged.

        Raises:
            SyncTimeoutError: If some cache has not converged in time.
        """
        stop = self._require_started("sync")
        unsynced = self.synchronizer.sync(stop, timeout)
        if unsynced:
            raise SyncTimeoutError(unsynced)

    def wait_for_resync(self) -> None:
        self.synchronizer.wait_for_resync()

    def verify(self, *args: Any) -> VerificationReport:
        """Run every check, then the custom hook, then stop the harness.

        Args:
            *args: Passed through to ``check_fn`` after the harness itself,
                typically the return values of the function under test.

        Returns:
            A report of what was observed, when nothing diverged.

        Raises:
            VerificationError: Listing every divergence found.
            HarnessStateError: If the harness is not started.
        """
        self._require_started("verify")
        diagnostics: List[Diagnostic] = []
        cause: Optional[BaseException] = None
        match = MatchResult()
        try:
            diagnostics.extend(self.all_reactors_called())
            try:
                match = self.match_actions()
            except Exception as e:
                logger.warning("Matcher raised while matching actions: %r", e)
                diagnostics.append(CheckErrored(check="actions", error=repr(e)))
                cause = e
            else:
                diagnostics.extend(match.diagnostics())
            diagnostics.extend(self.all_events_called())
            try:
                self.sync()
            except SyncTimeoutError as e:
                diagnostics.append(SyncTimeout(unsynced=e.unsynced))
            else:
                if self.check_fn is not None:
                    try:
                        self.check_fn(self, *args)
                    except AssertionError as e:
                        diagnostics.append(CheckFailed(message=str(e) or repr(e)))
                    except Exception as e:
                        logger.warning("Custom check raised: %r", e)
                        diagnostics.append(CheckErrored(check="custom", error=repr(e)))
                        cause = cause or e
            report = VerificationReport(
                match=match, events=tuple(self.events()), reactors=self.reactors.fired,
            )
        finally:
            self.state = HarnessState.VERIFIED
            self.stop()

        if diagnostics:
            logger.warning("Verification failed with %d error(s)", len(diagnostics))
            raise VerificationError(diagnostics) from cause
        logger.info("Verification passed (%d operation(s) matched)", len(match.matched))
        return report
