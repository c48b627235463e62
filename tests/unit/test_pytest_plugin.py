"""Unit tests for the pytest helpers."""
import pytest

from action_harness import HarnessContext, HarnessState, ReactionResult, expect_delete
from action_harness.pytest_plugin import assert_verified


class TestAssertVerified:

    def test_passes_through_report(self):
        h = HarnessContext()
        h.start()
        report = assert_verified(h)
        assert report.match.ok

    def test_lists_every_divergence(self):
        h = HarnessContext(expected_operations=[expect_delete("ns1", "widgets", "w1")])
        h.start()
        h.ensure_reactor_called("audit", lambda op: ReactionResult(True))
        with pytest.raises(AssertionError) as exc_info:
            assert_verified(h)
        message = str(exc_info.value)
        assert message.startswith("Harness verification failed:")
        assert "reactor_not_fired: reactor not called: audit" in message
        assert "missing_operation: missing action: delete 'widgets' in namespace ns1 (w1)" in message


class TestHarnessFactory:

    def test_builds_unstarted_harness(self, harness_factory):
        h = harness_factory()
        assert isinstance(h, HarnessContext)
        assert h.state is HarnessState.UNSTARTED

    def test_passes_kwargs(self, harness_factory):
        h = harness_factory(expected_events=["Normal Created"])
        assert h.expected_events == ("Normal Created",)

    def test_started_harness_left_running_is_fine(self, harness_factory):
        h = harness_factory()
        h.start()
        h.informer_factory().informer_for("widgets")
        h.sync()
        # teardown stops it
