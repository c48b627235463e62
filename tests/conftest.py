"""Shared pytest fixtures for all tests."""
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from action_harness import FakeClock, Operation, StoredObject

pytest_plugins = ["action_harness.pytest_plugin"]


def _make_operation(**overrides: Any) -> Operation:
    """Build an Operation with defaults for all required fields."""
    defaults: dict[str, Any] = {
        "namespace": "ns1",
        "resource": "widgets",
        "verb": "create",
        "payload": {},
    }
    defaults.update(overrides)
    return Operation(**defaults)


@pytest.fixture
def make_operation() -> Callable[..., Operation]:
    return _make_operation


@pytest.fixture
def widget() -> StoredObject:
    return StoredObject(namespace="ns1", name="w1", spec={"size": 5})


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 26, 10, 0, 0, tzinfo=timezone.utc))
