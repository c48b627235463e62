"""Pluggable deep-match predicates for expected operations.

A matcher takes a captured :class:`Operation` and returns ``None`` when it
matches, or a human-readable reason describing why it does not.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from action_harness.models import Operation

Matcher = Callable[[Operation], Optional[str]]

_MISSING = object()


def _diff(expected: Any, actual: Any, path: str, out: List[str]) -> None:
    if isinstance(expected, Mapping) and isinstance(actual, Mapping):
        for key in sorted(set(expected) | set(actual), key=str):
            sub = f"{path}.{key}" if path else str(key)
            _diff(expected.get(key, _MISSING), actual.get(key, _MISSING), sub, out)
        return
    if isinstance(expected, list) and isinstance(actual, list) and len(expected) == len(actual):
        for i, (e, a) in enumerate(zip(expected, actual)):
            _diff(e, a, f"{path}[{i}]", out)
        return
    if expected is _MISSING:
        out.append(f"payload field {path!r}: unexpected, got {actual!r}")
    elif actual is _MISSING:
        out.append(f"payload field {path!r}: expected {expected!r}, missing")
    elif expected != actual:
        out.append(f"payload field {path!r}: expected {expected!r}, got {actual!r}")


def payload_diff(expected: Mapping[str, Any], actual: Mapping[str, Any]) -> List[str]:
    """Field-level differences between two payloads, one line per field."""
    out: List[str] = []
    _diff(expected, actual, "", out)
    return out


def _lookup(payload: Mapping[str, Any], dotted: str) -> Any:
    node: Any = payload
    for part in dotted.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return _MISSING
        node = node[part]
    return node


def anything() -> Matcher:
    """Matcher accepting every operation."""

    def match(op: Operation) -> Optional[str]:
        return None

    return match


def name_equals(name: str) -> Matcher:
    """The operation targets the object called ``name``."""

    def match(op: Operation) -> Optional[str]:
        if op.name == name:
            return None
        return f"name: expected {name!r}, got {op.name!r}"

    return match


def payload_equals(expected: Mapping[str, Any]) -> Matcher:
    """Deep equality of the whole payload."""
    expected = dict(expected)

    def match(op: Operation) -> Optional[str]:
        diffs = payload_diff(expected, op.payload)
        if not diffs:
            return None
        return "; ".join(diffs)

    return match


def payload_subset(fields: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Matcher:
    """Every given field equals; keys may be dotted paths into the payload.

    Example:
        >>> payload_subset({"spec.size": 5})
    """
    wanted: Dict[str, Any] = {**(fields or {}), **kwargs}

    def match(op: Operation) -> Optional[str]:
        diffs: List[str] = []
        for path, value in wanted.items():
            actual = _lookup(op.payload, path)
            if actual is _MISSING:
                diffs.append(f"payload field {path!r}: expected {value!r}, missing")
            elif actual != value:
                diffs.append(f"payload field {path!r}: expected {value!r}, got {actual!r}")
        return "; ".join(diffs) if diffs else None

    return match


def model_matcher(model: Type[BaseModel]) -> Matcher:
    """Payload must validate against a pydantic model."""

    def match(op: Operation) -> Optional[str]:
        try:
            model.model_validate(op.payload)
        except PydanticValidationError as e:
            return "; ".join(
                f"payload field {'.'.join(str(loc) for loc in err['loc'])!r}: {err['msg']}"
                for err in e.errors()
            )
        return None

    return match


def schema_matcher(schema: Dict[str, Any]) -> Matcher:
    """Payload must validate against a JSON Schema (Draft 2020-12).

    Raises:
        ImportError: If jsonschema is not installed.
    """
    try:
        from jsonschema import Draft202012Validator  # type: ignore[import-untyped]
    except ImportError:
        raise ImportError(
            "jsonschema is required for schema_matcher. "
            "Install with: pip install 'action-harness[schema]'"
        )
    validator = Draft202012Validator(schema)

    def match(op: Operation) -> Optional[str]:
        errors = sorted(validator.iter_errors(op.payload), key=lambda e: [str(p) for p in e.absolute_path])
        if not errors:
            return None
        reasons = []
        for error in errors:
            json_path = "$" + "".join(
                f"[{p}]" if isinstance(p, int) else f".{p}" for p in error.absolute_path
            )
            reasons.append(f"{json_path}: {error.message}")
        return "; ".join(reasons)

    return match


def all_of(*matchers: Matcher) -> Matcher:
    """Every matcher must accept; reasons of all failing ones are joined."""

    def match(op: Operation) -> Optional[str]:
        reasons = [r for r in (m(op) for m in matchers) if r is not None]
        return "; ".join(reasons) if reasons else None

    return match
