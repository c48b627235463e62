"""In-memory fake backing store that records every call it receives.

Each call becomes an :class:`Operation` appended to the store's action log,
then runs through the store's :class:`ReactorChain`. When no reactor handles
it, the default reaction applies it to the in-memory object tracker.
"""
from __future__ import annotations

import logging
import queue
import threading
from collections import defaultdict
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

from action_harness.clock import Clock, RealClock
from action_harness.models import (
    ObjectExistsError,
    ObjectNotFoundError,
    Operation,
    StoredObject,
)
from action_harness.reactors import ReactionResult, Reactor, ReactorChain

logger = logging.getLogger("action_harness.store")

ObjectKey = Tuple[str, str, str]

CHANGE_ADDED: str = "ADDED"
CHANGE_MODIFIED: str = "MODIFIED"
CHANGE_DELETED: str = "DELETED"


class Change(NamedTuple):
    change_type: str
    resource: str
    obj: StoredObject


def _deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        elif isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class FakeStore:
    """Fake client plus object tracker for one backing store."""

    def __init__(
        self,
        name: str = "default",
        objects: Iterable[Tuple[str, StoredObject]] = (),
        clock: Optional[Clock] = None,
    ) -> None:
        self.name = name
        self.clock: Clock = clock or RealClock()
        self.reactors = ReactorChain()
        self._lock = threading.RLock()
        self._objects: Dict[ObjectKey, StoredObject] = {}
        self._actions: List[Operation] = []
        self._watchers: Dict[str, List["queue.Queue[Change]"]] = defaultdict(list)
        for resource, obj in objects:
            self._objects[(resource, obj.namespace, obj.name)] = obj

    def __repr__(self) -> str:
        return f"FakeStore(name={self.name!r}, objects={len(self._objects)})"

    # -- reactor shortcuts -------------------------------------------------

    def prepend_reactor(self, verb: str, resource: str, reactor: Reactor) -> None:
        self.reactors.prepend_reactor(verb, resource, reactor)

    def add_reactor(self, verb: str, resource: str, reactor: Reactor) -> None:
        self.reactors.add_reactor(verb, resource, reactor)

    # -- action log --------------------------------------------------------

    def actions(self) -> List[Operation]:
        """Snapshot of the append-only action log, in call order."""
        with self._lock:
            return list(self._actions)

    # -- cache support -----------------------------------------------------

    def subscribe(self, resource: str) -> "queue.Queue[Change]":
        """Return a queue receiving every subsequent change to ``resource``."""
        q: "queue.Queue[Change]" = queue.Queue()
        with self._lock:
            self._watchers[resource].append(q)
        return q

    def snapshot(self, resource: str, namespace: str = "") -> List[StoredObject]:
        """Current objects of ``resource`` without recording an operation."""
        with self._lock:
            return [
                obj
                for (res, ns, _), obj in sorted(self._objects.items())
                if res == resource and (not namespace or ns == namespace)
            ]

    # -- verbs -------------------------------------------------------------

    def get(self, resource: str, namespace: str, name: str) -> StoredObject:
        return self._invoke(Operation(
            verb="get", resource=resource, namespace=namespace, name=name,
        ))

    def list(self, resource: str, namespace: str = "") -> List[StoredObject]:
        op = Operation(verb="list", resource=resource, namespace=namespace)
        self._raise_reaction_error(self._record_and_react(op)[1])
        return self.snapshot(resource, namespace)

    def watch(self, resource: str, namespace: str = "") -> "queue.Queue[Change]":
        op = Operation(verb="watch", resource=resource, namespace=namespace)
        self._raise_reaction_error(self._record_and_react(op)[1])
        return self.subscribe(resource)

    def create(self, resource: str, obj: StoredObject, subresource: str = "") -> StoredObject:
        return self._invoke(Operation(
            verb="create",
            resource=resource,
            subresource=subresource,
            namespace=obj.namespace,
            name=obj.name,
            payload=obj.to_payload(),
        ))

    def update(self, resource: str, obj: StoredObject, subresource: str = "") -> StoredObject:
        return self._invoke(Operation(
            verb="update",
            resource=resource,
            subresource=subresource,
            namespace=obj.namespace,
            name=obj.name,
            payload=obj.to_payload(),
        ))

    def update_status(self, resource: str, obj: StoredObject) -> StoredObject:
        return self.update(resource, obj, subresource="status")

    def patch(
        self,
        resource: str,
        namespace: str,
        name: str,
        patch: Dict[str, Any],
        subresource: str = "",
    ) -> StoredObject:
        return self._invoke(Operation(
            verb="patch",
            resource=resource,
            subresource=subresource,
            namespace=namespace,
            name=name,
            payload=patch,
        ))

    def delete(self, resource: str, namespace: str, name: str) -> None:
        self._invoke(Operation(
            verb="delete", resource=resource, namespace=namespace, name=name,
        ))

    # -- internals ---------------------------------------------------------

    def _record_and_react(self, op: Operation) -> Tuple[Operation, Optional[ReactionResult]]:
        op = op.model_copy(update={"timestamp": self.clock.now()})
        result: Optional[ReactionResult] = None
        try:
            op, result = self.reactors.react(op)
        finally:
            with self._lock:
                self._actions.append(op)
            logger.debug("Store %s recorded %r", self.name, op)
        return op, result

    def _invoke(self, op: Operation) -> Any:
        op, result = self._record_and_react(op)
        if result is None:
            return self._default_reaction(op)
        if result.error is not None:
            raise result.error
        return result.obj

    @staticmethod
    def _raise_reaction_error(result: Optional[ReactionResult]) -> None:
        if result is not None and result.error is not None:
            raise result.error

    def _default_reaction(self, op: Operation) -> Optional[StoredObject]:
        key: ObjectKey = (op.resource, op.namespace, op.name)
        with self._lock:
            current = self._objects.get(key)
            if op.verb == "get":
                if current is None:
                    raise ObjectNotFoundError(*key)
                return current
            if op.verb == "create":
                obj = StoredObject.model_validate(op.payload)
                if not obj.name:
                    raise ValueError(f"{op.resource}: name or generate_name is required")
                if current is not None:
                    raise ObjectExistsError(*key)
                obj = obj.model_copy(update={"resource_version": 1})
                self._objects[key] = obj
                self._notify(CHANGE_ADDED, op.resource, obj)
                return obj
            if current is None:
                raise ObjectNotFoundError(*key)
            if op.verb == "update":
                obj = StoredObject.model_validate(op.payload)
                obj = obj.model_copy(update={"resource_version": current.resource_version + 1})
            elif op.verb == "patch":
                obj = current.model_copy(update={
                    "spec": _deep_merge(current.spec, op.payload),
                    "resource_version": current.resource_version + 1,
                })
            elif op.verb == "delete":
                del self._objects[key]
                self._notify(CHANGE_DELETED, op.resource, current)
                return None
            else:
                raise ValueError(f"Unsupported verb: {op.verb!r}")
            self._objects[key] = obj
            self._notify(CHANGE_MODIFIED, op.resource, obj)
            return obj

    def _notify(self, change_type: str, resource: str, obj: StoredObject) -> None:
        for q in self._watchers.get(resource, []):
            q.put(Change(change_type, resource, obj))
