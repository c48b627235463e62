"""Reactor chain and required-reactor tracking.

A reactor is a callback run against every operation a fake store receives.
It returns a :class:`ReactionResult`; when ``handled`` is true the chain
stops and the store returns the reactor's object (or raises its error)
instead of applying the default reaction.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple

from action_harness.models import Operation, ReactorNotFired, StoredObject
from action_harness.names import StringGenerator

logger = logging.getLogger("action_harness.reactors")

WILDCARD: str = "*"


class ReactionResult(NamedTuple):
    handled: bool
    obj: Optional[StoredObject] = None
    error: Optional[Exception] = None


Reactor = Callable[[Operation], ReactionResult]


class _ChainEntry(NamedTuple):
    verb: str
    resource: str
    reactor: Reactor

    def applies_to(self, op: Operation) -> bool:
        return (self.verb in (WILDCARD, op.verb)) and (
            self.resource in (WILDCARD, op.resource)
        )


def _rewrite(op: Operation, obj: StoredObject) -> Operation:
    return op.model_copy(update={"payload": obj.to_payload(), "name": obj.name})


class ReactorChain:
    """Ordered registry of reactors keyed by verb/resource (``"*"`` matches any)."""

    def __init__(self) -> None:
        self._entries: List[_ChainEntry] = []

    def prepend_reactor(self, verb: str, resource: str, reactor: Reactor) -> None:
        self._entries.insert(0, _ChainEntry(verb, resource, reactor))

    def add_reactor(self, verb: str, resource: str, reactor: Reactor) -> None:
        self._entries.append(_ChainEntry(verb, resource, reactor))

    def __len__(self) -> int:
        return len(self._entries)

    def react(self, op: Operation) -> Tuple[Operation, Optional[ReactionResult]]:
        """Run applicable reactors in order until one reports handled.

        A reactor that does not handle the operation may still hand back a
        modified object; later reactors (and the default reaction) see the
        operation rewritten with it.

        Returns:
            The possibly rewritten operation and the handling result, or
            ``None`` when no reactor handled it.
        """
        for entry in list(self._entries):
            if not entry.applies_to(op):
                continue
            result = entry.reactor(op)
            if result.handled:
                return op, result
            if result.obj is not None and op.verb in ("create", "update"):
                op = _rewrite(op, result.obj)
        return op, None


class ReactorTracker:
    """Records whether each required reactor fired at least once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._fired: Dict[str, bool] = {}

    def wrap(self, name: str, inner: Reactor) -> Reactor:
        """Register ``name`` as required and return a reactor around ``inner``.

        The returned reactor passes the inner result through unchanged,
        marking ``name`` as fired the first time ``inner`` reports handled.
        """
        with self._lock:
            self._fired[name] = False

        def wrapped(op: Operation) -> ReactionResult:
            result = inner(op)
            if not result.handled:
                return result
            with self._lock:
                if not self._fired[name]:
                    logger.debug("Required reactor %r fired on %r", name, op)
                self._fired[name] = True
            return result

        return wrapped

    @property
    def required(self) -> List[str]:
        with self._lock:
            return sorted(self._fired)

    @property
    def fired(self) -> Dict[str, bool]:
        with self._lock:
            return dict(self._fired)

    def all_called(self) -> List[ReactorNotFired]:
        with self._lock:
            return [
                ReactorNotFired(name=name)
                for name, fired in sorted(self._fired.items())
                if not fired
            ]


def generate_name_reactor(generator: StringGenerator, length: int = 5) -> Reactor:
    """Reactor assigning ``generate_name + suffix`` to unnamed created objects.

    Never reports handled, so the create continues down the chain.
    """

    def react(op: Operation) -> ReactionResult:
        obj = StoredObject.model_validate(op.payload)
        if obj.generate_name and not obj.name:
            named = obj.model_copy(update={"name": obj.generate_name + generator(length)})
            return ReactionResult(handled=False, obj=named)
        return ReactionResult(handled=False, obj=obj)

    return react
