"""Reconciliation of captured operations against declared expectations.

The actual log is treated as an unordered multiset. Matching is greedy and
single-pass over the log: for each operation the remaining expectations are
scanned in declaration order, and the first one whose scalar fields are equal
and whose matcher accepts it is consumed. This is deliberately not an optimal
bipartite assignment; expectations sharing a (namespace, resource,
subresource, verb) tuple must be distinguishable by their matchers when
declaration order should not decide.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from action_harness.matchers import Matcher, all_of, name_equals, payload_equals
from action_harness.models import (
    Diagnostic,
    MatcherMismatch,
    MissingOperation,
    Operation,
    StoredObject,
    UnexpectedOperation,
)

logger = logging.getLogger("action_harness.matching")

READ_ONLY_VERBS: Tuple[str, ...] = ("list", "watch")


def describe_operation(verb: str, resource: str, namespace: str) -> str:
    return f"{verb} {resource!r} in namespace {namespace}"


@dataclass(frozen=True)
class ExpectedOperation:
    """A declared pattern some captured operation must satisfy."""

    namespace: str
    resource: str
    subresource: str
    verb: str
    matcher: Matcher
    description: str = ""

    def scalar_key(self) -> Tuple[str, str, str, str]:
        return (self.namespace, self.resource, self.subresource, self.verb)

    def matches(self, op: Operation) -> Optional[str]:
        """None when ``op`` satisfies the matcher, else the mismatch reason."""
        return self.matcher(op)

    def describe(self) -> str:
        resource = self.resource
        if self.subresource:
            resource = f"{resource}/{self.subresource}"
        text = describe_operation(self.verb, resource, self.namespace)
        if self.description:
            text += f" ({self.description})"
        return text


ObjectLike = Union[StoredObject, Mapping[str, Any]]


def _payload(obj: ObjectLike) -> Mapping[str, Any]:
    if isinstance(obj, StoredObject):
        return obj.to_payload()
    return obj


def expect_create(
    namespace: str,
    resource: str,
    obj: Optional[ObjectLike] = None,
    matcher: Optional[Matcher] = None,
) -> ExpectedOperation:
    """Expect a create whose payload deep-equals ``obj`` (or satisfies ``matcher``)."""
    if matcher is None:
        if obj is None:
            raise ValueError("expect_create needs an object or a matcher")
        matcher = payload_equals(_payload(obj))
    return ExpectedOperation(namespace, resource, "", "create", matcher)


def expect_update(
    namespace: str,
    resource: str,
    obj: Optional[ObjectLike] = None,
    matcher: Optional[Matcher] = None,
) -> ExpectedOperation:
    return expect_update_subresource(namespace, resource, "", obj, matcher)


def expect_update_subresource(
    namespace: str,
    resource: str,
    subresource: str,
    obj: Optional[ObjectLike] = None,
    matcher: Optional[Matcher] = None,
) -> ExpectedOperation:
    if matcher is None:
        if obj is None:
            raise ValueError("expect_update needs an object or a matcher")
        matcher = payload_equals(_payload(obj))
    return ExpectedOperation(namespace, resource, subresource, "update", matcher)


def expect_patch(
    namespace: str,
    resource: str,
    name: str,
    patch: Mapping[str, Any],
    subresource: str = "",
) -> ExpectedOperation:
    return ExpectedOperation(
        namespace, resource, subresource, "patch",
        all_of(name_equals(name), payload_equals(patch)),
        description=name,
    )


def expect_delete(namespace: str, resource: str, name: str) -> ExpectedOperation:
    return ExpectedOperation(
        namespace, resource, "", "delete", name_equals(name), description=name,
    )


def expect_get(namespace: str, resource: str, name: str) -> ExpectedOperation:
    return ExpectedOperation(
        namespace, resource, "", "get", name_equals(name), description=name,
    )


def expect_custom(
    namespace: str,
    resource: str,
    verb: str,
    matcher: Matcher,
    subresource: str = "",
    description: str = "",
) -> ExpectedOperation:
    return ExpectedOperation(namespace, resource, subresource, verb, matcher, description)


@dataclass(frozen=True)
class MatchResult:
    """Outcome of reconciling an action log against expectations."""

    matched: Tuple[Tuple[ExpectedOperation, Operation], ...] = ()
    missing: Tuple[ExpectedOperation, ...] = ()
    unexpected: Tuple[UnexpectedOperation, ...] = ()
    mismatches: Tuple[MatcherMismatch, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.missing and not self.unexpected

    def diagnostics(self) -> List[Diagnostic]:
        """Every divergence: mismatches, then missing, then unexpected."""
        out: List[Diagnostic] = list(self.mismatches)
        out.extend(MissingOperation(expectation=e.describe()) for e in self.missing)
        out.extend(self.unexpected)
        return out


def match_operations(
    actual: Iterable[Operation],
    expected: Sequence[ExpectedOperation],
    read_only_verbs: Iterable[str] = READ_ONLY_VERBS,
) -> MatchResult:
    """Greedily assign each captured operation to at most one expectation.

    Args:
        actual: Captured operations in log order.
        expected: Declared expectations in declaration order.
        read_only_verbs: Verbs dropped from ``actual`` before matching.

    Returns:
        MatchResult listing every matched pair, every expectation left
        unmatched and every operation no expectation accepted.
    """
    skip = frozenset(read_only_verbs)
    remaining: List[ExpectedOperation] = list(expected)
    matched: List[Tuple[ExpectedOperation, Operation]] = []
    unexpected: List[UnexpectedOperation] = []
    mismatches: List[MatcherMismatch] = []

    for op in actual:
        if op.verb in skip:
            continue
        key = op.scalar_key()
        rejected: List[Tuple[ExpectedOperation, str]] = []
        found = False
        for i, candidate in enumerate(remaining):
            if candidate.scalar_key() != key:
                continue
            reason = candidate.matches(op)
            # several expectations may share a resource; a later one may match
            if reason is not None:
                rejected.append((candidate, reason))
                continue
            del remaining[i]
            matched.append((candidate, op))
            found = True
            logger.debug("Matched %r to %s", op, candidate.describe())
            break
        if found:
            continue

        for candidate, reason in rejected:
            mismatches.append(MatcherMismatch(
                operation_id=op.operation_id,
                expectation=candidate.describe(),
                reason=reason,
            ))
        resource = op.resource if not op.subresource else f"{op.resource}/{op.subresource}"
        unexpected.append(UnexpectedOperation(
            operation_id=op.operation_id,
            description=describe_operation(op.verb, resource, op.namespace),
            mismatch=rejected[0][1] if len(rejected) == 1 else None,
        ))
        logger.debug("Unexpected %r (%d candidate(s) rejected it)", op, len(rejected))

    return MatchResult(
        matched=tuple(matched),
        missing=tuple(remaining),
        unexpected=tuple(unexpected),
        mismatches=tuple(mismatches),
    )
