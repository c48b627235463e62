"""Core data models for action-harness."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID


def new_operation_id() -> str:
    """Return a fresh 26-char ULID string for a captured operation."""
    return str(ULID())


class StoredObject(BaseModel):
    """An object held by a fake backing store.

    The harness is agnostic to the schema of what it stores; ``spec`` is an
    opaque mapping that matchers inspect.
    """

    model_config = ConfigDict(frozen=True)

    namespace: str = Field(default="", description="Namespace ('' for cluster scoped)")
    name: str = Field(default="", description="Object name")
    generate_name: str = Field(
        default="",
        description="Name prefix; a random suffix is appended on create when name is empty",
    )
    labels: Dict[str, str] = Field(default_factory=dict)
    spec: Dict[str, Any] = Field(default_factory=dict, description="Opaque object body")
    resource_version: int = Field(default=0, ge=0)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the payload dict carried by an Operation."""
        return self.model_dump()


class Operation(BaseModel):
    """Immutable record of a single call observed on a backing store."""

    model_config = ConfigDict(frozen=True)

    operation_id: str = Field(default_factory=new_operation_id, min_length=26, max_length=26)
    namespace: str = ""
    resource: str = Field(..., min_length=1)
    subresource: str = ""
    verb: str = Field(..., min_length=1)
    name: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None

    def __repr__(self) -> str:
        """Human-readable representation."""
        return (
            f"Operation(id={self.operation_id[:8]}..., "
            f"verb={self.verb}, "
            f"resource={self.resource}, "
            f"subresource={self.subresource!r}, "
            f"namespace={self.namespace!r})"
        )

    def scalar_key(self) -> Tuple[str, str, str, str]:
        """The fields that must be equal before a matcher is consulted."""
        return (self.namespace, self.resource, self.subresource, self.verb)


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class Diagnostic(BaseModel):
    """Base for every entry of an aggregated verification failure."""

    model_config = ConfigDict(frozen=True)

    kind: str

    def render(self) -> str:
        return self.kind


class MatcherMismatch(Diagnostic):
    """A scalar-matching expectation whose matcher rejected an operation."""

    kind: Literal["matcher_mismatch"] = "matcher_mismatch"
    operation_id: str
    expectation: str
    reason: str

    def render(self) -> str:
        return f"action did not match {self.expectation}: {self.reason}"


class MissingOperation(Diagnostic):
    """An expectation that no captured operation satisfied."""

    kind: Literal["missing_operation"] = "missing_operation"
    expectation: str

    def render(self) -> str:
        return f"missing action: {self.expectation}"


class UnexpectedOperation(Diagnostic):
    """A captured operation that satisfied no expectation."""

    kind: Literal["unexpected_operation"] = "unexpected_operation"
    operation_id: str
    description: str
    mismatch: Optional[str] = None

    def render(self) -> str:
        text = f"unexpected action: {self.description}"
        if self.mismatch is not None:
            text += f" (closest expectation rejected it: {self.mismatch})"
        return text


class ReactorNotFired(Diagnostic):
    """A required reactor that never reported handled."""

    kind: Literal["reactor_not_fired"] = "reactor_not_fired"
    name: str

    def render(self) -> str:
        return f"reactor not called: {self.name}"


class EventListMismatch(Diagnostic):
    """Emitted events differ from the declared multiset."""

    kind: Literal["event_list_mismatch"] = "event_list_mismatch"
    expected: Tuple[str, ...]
    actual: Tuple[str, ...]

    def render(self) -> str:
        return (
            f"got unexpected events, exp={list(self.expected)!r} "
            f"got={list(self.actual)!r}"
        )


class SyncTimeout(Diagnostic):
    """Caches that had not converged when the sync wait was abandoned."""

    kind: Literal["sync_timeout"] = "sync_timeout"
    unsynced: Tuple[str, ...]

    def render(self) -> str:
        return f"caches not synced: {', '.join(self.unsynced)}"


class CheckFailed(Diagnostic):
    """The custom validation hook raised an AssertionError."""

    kind: Literal["check_failed"] = "check_failed"
    message: str

    def render(self) -> str:
        return f"custom check failed: {self.message}"


class CheckErrored(Diagnostic):
    """A check raised something other than an AssertionError."""

    kind: Literal["check_errored"] = "check_errored"
    check: str
    error: str

    def render(self) -> str:
        return f"{self.check} check raised {self.error}"


# Custom Exceptions
class ActionHarnessError(Exception):
    """Base exception for all library errors."""
    pass


class HarnessStateError(ActionHarnessError):
    """Lifecycle method called from a state that does not allow it."""
    pass


class ObjectNotFoundError(ActionHarnessError):
    """Fake store lookup for an object that does not exist."""

    def __init__(self, resource: str, namespace: str, name: str) -> None:
        self.resource = resource
        self.namespace = namespace
        self.name = name
        super().__init__(f"{resource} {name!r} not found in namespace {namespace!r}")


class ObjectExistsError(ActionHarnessError):
    """Fake store create for an object that already exists."""

    def __init__(self, resource: str, namespace: str, name: str) -> None:
        self.resource = resource
        self.namespace = namespace
        self.name = name
        super().__init__(f"{resource} {name!r} already exists in namespace {namespace!r}")


class SyncTimeoutError(ActionHarnessError):
    """Raised when caches do not converge before the wait is abandoned."""

    def __init__(self, unsynced: Sequence[str]) -> None:
        self.unsynced: Tuple[str, ...] = tuple(unsynced)
        super().__init__(f"timed out waiting for caches to sync: {', '.join(self.unsynced)}")


class VerificationError(ActionHarnessError):
    """Aggregated failure carrying every diagnostic of a verification pass."""

    def __init__(self, diagnostics: Sequence[Diagnostic]) -> None:
        self.diagnostics: Tuple[Diagnostic, ...] = tuple(diagnostics)
        super().__init__(self._format())

    def _format(self) -> str:
        lines: List[str] = [f"{len(self.diagnostics)} verification error(s):"]
        lines.extend(f"  - {d.render()}" for d in self.diagnostics)
        return "\n".join(lines)

    def of_kind(self, kind: str) -> List[Diagnostic]:
        """Return the diagnostics with the given ``kind``."""
        return [d for d in self.diagnostics if d.kind == kind]
