"""Unit tests for the reactor chain, tracker and name generation reactor."""
import pytest

from action_harness.models import Operation, ReactorNotFired, StoredObject
from action_harness.names import seeded_generator
from action_harness.reactors import (
    ReactionResult,
    ReactorChain,
    ReactorTracker,
    generate_name_reactor,
)


def handled(op):
    return ReactionResult(handled=True, obj=StoredObject(name="from-reactor"))


def not_handled(op):
    return ReactionResult(handled=False)


class TestReactorChain:
    """Ordering and wildcard matching."""

    def test_empty_chain_handles_nothing(self, make_operation):
        op = make_operation()
        out, result = ReactorChain().react(op)
        assert result is None
        assert out == op

    def test_first_handled_wins(self, make_operation):
        calls = []
        chain = ReactorChain()

        def first(op):
            calls.append("first")
            return ReactionResult(handled=True)

        def second(op):
            calls.append("second")
            return ReactionResult(handled=True)

        chain.add_reactor("*", "*", first)
        chain.add_reactor("*", "*", second)
        _, result = chain.react(make_operation())
        assert result is not None and result.handled
        assert calls == ["first"]

    def test_prepend_runs_before_add(self, make_operation):
        calls = []
        chain = ReactorChain()
        chain.add_reactor("*", "*", lambda op: calls.append("added") or ReactionResult(False))
        chain.prepend_reactor("*", "*", lambda op: calls.append("prepended") or ReactionResult(False))
        chain.react(make_operation())
        assert calls == ["prepended", "added"]

    @pytest.mark.parametrize(
        "verb,resource,applies",
        [
            ("*", "*", True),
            ("create", "*", True),
            ("*", "widgets", True),
            ("create", "widgets", True),
            ("update", "*", False),
            ("*", "gadgets", False),
        ],
    )
    def test_wildcards(self, make_operation, verb, resource, applies):
        chain = ReactorChain()
        chain.add_reactor(verb, resource, handled)
        _, result = chain.react(make_operation(verb="create", resource="widgets"))
        assert (result is not None) is applies

    def test_error_is_returned_unchanged(self, make_operation):
        boom = RuntimeError("boom")
        chain = ReactorChain()
        chain.add_reactor("*", "*", lambda op: ReactionResult(True, None, boom))
        _, result = chain.react(make_operation())
        assert result is not None
        assert result.error is boom

    def test_unhandled_object_rewrites_operation(self, make_operation):
        chain = ReactorChain()
        renamed = StoredObject(namespace="ns1", name="renamed")
        chain.add_reactor("create", "*", lambda op: ReactionResult(False, renamed))
        out, result = chain.react(make_operation(payload=StoredObject(namespace="ns1").to_payload()))
        assert result is None
        assert out.name == "renamed"
        assert out.payload["name"] == "renamed"


class TestReactorTracker:
    """Required reactors must report handled at least once."""

    def test_registered_reactor_not_fired(self):
        tracker = ReactorTracker()
        tracker.wrap("audit", handled)
        assert tracker.all_called() == [ReactorNotFired(name="audit")]

    def test_fired_when_handled(self, make_operation):
        tracker = ReactorTracker()
        wrapped = tracker.wrap("audit", handled)
        wrapped(make_operation())
        assert tracker.all_called() == []
        assert tracker.fired == {"audit": True}

    def test_not_fired_when_unhandled(self, make_operation):
        tracker = ReactorTracker()
        wrapped = tracker.wrap("audit", not_handled)
        wrapped(make_operation())
        assert tracker.fired == {"audit": False}

    def test_result_passed_through_unchanged(self, make_operation):
        expected = ReactionResult(True, StoredObject(name="x"), ValueError("nope"))
        tracker = ReactorTracker()
        wrapped = tracker.wrap("audit", lambda op: expected)
        assert wrapped(make_operation()) is expected

    def test_never_reset(self, make_operation):
        state = {"handle": True}
        tracker = ReactorTracker()
        wrapped = tracker.wrap("audit", lambda op: ReactionResult(state["handle"]))
        wrapped(make_operation())
        state["handle"] = False
        wrapped(make_operation())
        assert tracker.fired["audit"] is True

    def test_unwrapped_reactors_impose_nothing(self):
        assert ReactorTracker().all_called() == []

    def test_all_called_lists_every_unfired_name(self):
        tracker = ReactorTracker()
        tracker.wrap("b", handled)
        tracker.wrap("a", handled)
        assert [d.name for d in tracker.all_called()] == ["a", "b"]
        assert tracker.required == ["a", "b"]


class TestGenerateNameReactor:
    """generate_name handling on create."""

    def test_assigns_suffix(self):
        reactor = generate_name_reactor(lambda n: "x" * n, 5)
        op = Operation(
            namespace="ns1", resource="widgets", verb="create",
            payload=StoredObject(namespace="ns1", generate_name="w-").to_payload(),
        )
        result = reactor(op)
        assert not result.handled
        assert result.obj is not None
        assert result.obj.name == "w-xxxxx"

    def test_keeps_explicit_name(self):
        reactor = generate_name_reactor(lambda n: "x" * n)
        op = Operation(
            namespace="ns1", resource="widgets", verb="create",
            payload=StoredObject(namespace="ns1", name="fixed", generate_name="w-").to_payload(),
        )
        result = reactor(op)
        assert result.obj is not None
        assert result.obj.name == "fixed"

    def test_seeded_generator_is_deterministic(self):
        first = generate_name_reactor(seeded_generator(7))
        second = generate_name_reactor(seeded_generator(7))
        op = Operation(
            namespace="ns1", resource="widgets", verb="create",
            payload=StoredObject(generate_name="w-").to_payload(),
        )
        assert first(op).obj == second(op).obj
