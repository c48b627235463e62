"""
action-harness: declarative expectation verification for side-effecting code.

A test declares the mutating operations, emitted events and required reactor
invocations it expects; after the code under test runs against fake stores,
the harness synchronizes its caches, reconciles what happened against what
was declared and reports every divergence in one aggregated error.

Example:
    >>> from action_harness import HarnessContext, StoredObject, expect_create
    >>> want = StoredObject(namespace="ns1", name="w", spec={"size": 5})
    >>> h = HarnessContext(expected_operations=[expect_create("ns1", "widgets", want)])
    >>> h.start()
    >>> _ = h.store().create("widgets", want)
    >>> _ = h.verify()
"""

__version__ = "0.1.0"

# Core data models
from action_harness.models import (
    ActionHarnessError,
    CheckErrored,
    CheckFailed,
    Diagnostic,
    EventListMismatch,
    HarnessStateError,
    MatcherMismatch,
    MissingOperation,
    ObjectExistsError,
    ObjectNotFoundError,
    Operation,
    ReactorNotFired,
    StoredObject,
    SyncTimeout,
    SyncTimeoutError,
    UnexpectedOperation,
    VerificationError,
)

# Configuration
from action_harness.config import HarnessSettings

# Clock
from action_harness.clock import Clock, ClockSlot, FakeClock, RealClock

# Event sink
from action_harness.events import (
    EVENT_TYPE_NORMAL,
    EVENT_TYPE_WARNING,
    EventSink,
    compare_events,
    equal_sorted,
)

# Name generation
from action_harness.names import StringGenerator, rand_string, seeded_generator

# Reactors
from action_harness.reactors import (
    ReactionResult,
    Reactor,
    ReactorChain,
    ReactorTracker,
    generate_name_reactor,
)

# Fake backing store
from action_harness.store import FakeStore

# Matchers
from action_harness.matchers import (
    Matcher,
    all_of,
    anything,
    model_matcher,
    name_equals,
    payload_equals,
    payload_subset,
    schema_matcher,
)

# Action log matching
from action_harness.matching import (
    ExpectedOperation,
    MatchResult,
    expect_create,
    expect_custom,
    expect_delete,
    expect_get,
    expect_patch,
    expect_update,
    expect_update_subresource,
    match_operations,
)

# Cache synchronization
from action_harness.cache import CacheSynchronizer, Informer, InformerFactory

# Harness
from action_harness.harness import HarnessContext, HarnessState, VerificationReport

__all__ = [
    "__version__",
    # Models
    "ActionHarnessError",
    "CheckErrored",
    "CheckFailed",
    "Diagnostic",
    "EventListMismatch",
    "HarnessStateError",
    "MatcherMismatch",
    "MissingOperation",
    "ObjectExistsError",
    "ObjectNotFoundError",
    "Operation",
    "ReactorNotFired",
    "StoredObject",
    "SyncTimeout",
    "SyncTimeoutError",
    "UnexpectedOperation",
    "VerificationError",
    # Configuration
    "HarnessSettings",
    # Clock
    "Clock",
    "ClockSlot",
    "FakeClock",
    "RealClock",
    # Events
    "EVENT_TYPE_NORMAL",
    "EVENT_TYPE_WARNING",
    "EventSink",
    "compare_events",
    "equal_sorted",
    # Names
    "StringGenerator",
    "rand_string",
    "seeded_generator",
    # Reactors
    "ReactionResult",
    "Reactor",
    "ReactorChain",
    "ReactorTracker",
    "generate_name_reactor",
    # Store
    "FakeStore",
    # Matchers
    "Matcher",
    "all_of",
    "anything",
    "model_matcher",
    "name_equals",
    "payload_equals",
    "payload_subset",
    "schema_matcher",
    # Matching
    "ExpectedOperation",
    "MatchResult",
    "expect_create",
    "expect_custom",
    "expect_delete",
    "expect_get",
    "expect_patch",
    "expect_update",
    "expect_update_subresource",
    "match_operations",
    # Cache
    "CacheSynchronizer",
    "Informer",
    "InformerFactory",
    # Harness
    "HarnessContext",
    "HarnessState",
    "VerificationReport",
]
