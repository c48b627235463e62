"""pytest integration for action-harness.

Enable it from a ``conftest.py`` with
``pytest_plugins = ["action_harness.pytest_plugin"]``:

    def test_reconcile(harness_factory):
        h = harness_factory(expected_operations=[...])
        h.start()
        ...
        assert_verified(h)
"""
from __future__ import annotations

from typing import Any, Callable, Iterator, List

import pytest

from action_harness.harness import HarnessContext, VerificationReport
from action_harness.models import VerificationError


def assert_verified(harness: HarnessContext, *args: Any) -> VerificationReport:
    """Verify the harness, re-raising every divergence as an AssertionError."""
    try:
        return harness.verify(*args)
    except VerificationError as e:
        lines = [f"  {d.kind}: {d.render()}" for d in e.diagnostics]
        raise AssertionError(
            "Harness verification failed:\n" + "\n".join(lines)
        ) from e


@pytest.fixture
def harness_factory() -> Iterator[Callable[..., HarnessContext]]:
    """Build harnesses that are stopped at teardown whatever the test did."""
    created: List[HarnessContext] = []

    def make(**kwargs: Any) -> HarnessContext:
        harness = HarnessContext(**kwargs)
        created.append(harness)
        return harness

    yield make
    for harness in created:
        harness.stop()
