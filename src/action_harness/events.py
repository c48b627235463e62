"""Event sink collecting notification strings emitted by the code under test."""
import logging
import threading
from typing import Any, List, Optional, Sequence

from action_harness.models import EventListMismatch

logger = logging.getLogger("action_harness.events")

EVENT_TYPE_NORMAL: str = "Normal"
EVENT_TYPE_WARNING: str = "Warning"


class EventSink:
    """Append-only collector of emitted event strings.

    Safe to call from inside a reactor: recording never blocks on anything
    but a short internal lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: List[str] = []

    def record(self, event: str) -> None:
        with self._lock:
            self._events.append(event)
        logger.debug("Recorded event %r", event)

    def event(self, obj: Any, event_type: str, reason: str, message: str) -> None:
        """Record ``"<type> <reason> <message>"``; ``obj`` is accepted for
        recorder API parity and otherwise ignored."""
        self.record(f"{event_type} {reason} {message}")

    def eventf(self, obj: Any, event_type: str, reason: str, fmt: str, *args: Any) -> None:
        self.event(obj, event_type, reason, fmt % args if args else fmt)

    def all(self) -> List[str]:
        """Snapshot of every recorded event, in emission order."""
        with self._lock:
            return list(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


def equal_sorted(expected: Sequence[str], actual: Sequence[str]) -> bool:
    """Multiset equality: order-insensitive, count-sensitive."""
    return sorted(expected) == sorted(actual)


def compare_events(
    expected: Sequence[str],
    actual: Sequence[str],
) -> Optional[EventListMismatch]:
    """Return a mismatch diagnostic, or None when the multisets are equal."""
    if equal_sorted(expected, actual):
        return None
    return EventListMismatch(expected=tuple(expected), actual=tuple(actual))
