"""End-to-end: a small reconcile loop verified through the harness."""
from datetime import timedelta

import pytest

from action_harness import (
    EVENT_TYPE_NORMAL,
    HarnessContext,
    HarnessSettings,
    ReactionResult,
    StoredObject,
    VerificationError,
    expect_create,
    expect_custom,
    expect_update_subresource,
    payload_subset,
    seeded_generator,
)
from action_harness.pytest_plugin import assert_verified

FAST = HarnessSettings(resync_period=0.05, resync_buffer=0.01, sync_timeout=2.0)


def reconcile(h: HarnessContext, namespace: str, name: str) -> str:
    """Ensure every widget owns one gadget, then stamp its status."""
    widgets = h.informer_factory().informer_for("widgets")
    h.sync()
    widget = widgets.get(namespace, name)
    if widget is None:
        return "gone"
    gadget = h.store().create("gadgets", StoredObject(
        namespace=namespace,
        generate_name=f"{name}-",
        spec={"owner": name, "size": widget.spec["size"]},
    ))
    h.recorder.event(widget, EVENT_TYPE_NORMAL, "GadgetCreated", gadget.name)
    status = dict(widget.spec, observed_at=h.now().isoformat())
    h.store().update_status("widgets", widget.model_copy(update={"spec": status}))
    return gadget.name


@pytest.fixture
def source_widget() -> StoredObject:
    return StoredObject(namespace="ns1", name="w1", spec={"size": 5})


def _expected_status(fake_clock, source_widget):
    return expect_update_subresource(
        "ns1", "widgets", "status",
        matcher=payload_subset({
            "spec.size": 5,
            "spec.observed_at": fake_clock.now().isoformat(),
        }),
    )


class TestReconcileFlow:

    def test_happy_path(self, harness_factory, fake_clock, source_widget):
        gadget_name = "w1-" + seeded_generator(1)(5)

        def check(harness, result):
            assert result == gadget_name
            gadgets = harness.informer_factory().informer_for("gadgets")
            assert [g.name for g in gadgets.lister()] == [gadget_name]

        h = harness_factory(
            seed_objects={"default": [("widgets", source_widget)]},
            expected_operations=[
                expect_create("ns1", "gadgets", matcher=payload_subset({
                    "name": gadget_name, "spec.owner": "w1", "spec.size": 5,
                })),
                _expected_status(fake_clock, source_widget),
            ],
            expected_events=[f"Normal GadgetCreated {gadget_name}"],
            clock=fake_clock,
            string_generator=seeded_generator(1),
            check_fn=check,
            settings=FAST,
        )
        h.start()
        h.informer_factory().informer_for("gadgets")
        result = reconcile(h, "ns1", "w1")
        assert_verified(h, result)

    def test_regression_reports_every_divergence(self, harness_factory, fake_clock, source_widget):
        h = harness_factory(
            seed_objects={"default": [("widgets", source_widget)]},
            expected_operations=[
                expect_create("ns1", "gadgets", matcher=payload_subset({"spec.size": 6})),
            ],
            expected_events=["Normal GadgetCreated"],
            clock=fake_clock,
            settings=FAST,
        )
        h.start()
        fake_clock.step(timedelta(hours=1))
        reconcile(h, "ns1", "w1")
        with pytest.raises(AssertionError) as exc_info:
            assert_verified(h)
        message = str(exc_info.value)
        assert "unexpected_operation" in message
        assert "missing_operation" in message
        assert "event_list_mismatch" in message
        assert "update 'widgets/status' in namespace ns1" in message
        cause = exc_info.value.__cause__
        assert isinstance(cause, VerificationError)
        # create mismatch, missing create, unexpected create,
        # unexpected status update, event mismatch
        assert len(cause.diagnostics) == 5

    def test_reactor_simulates_api_failure(self, harness_factory, source_widget):
        h = harness_factory(
            seed_objects={"default": [("widgets", source_widget)]},
            expected_operations=[expect_custom("ns1", "gadgets", "create", lambda op: None)],
            settings=FAST,
        )
        h.start()
        h.store().prepend_reactor(
            "create", "gadgets",
            h.ensure_reactor_called(
                "reject-gadgets",
                lambda op: ReactionResult(True, None, RuntimeError("quota exceeded")),
            ),
        )
        with pytest.raises(RuntimeError, match="quota exceeded"):
            reconcile(h, "ns1", "w1")
        assert_verified(h)

    def test_missing_widget_is_a_noop(self, harness_factory):
        h = harness_factory(settings=FAST)
        h.start()
        assert reconcile(h, "ns1", "nope") == "gone"
        assert_verified(h)
