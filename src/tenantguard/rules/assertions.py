"""Assertion library used by rule bodies.

Every function returns an :class:`~tenantguard.models.AssertionOutcome` and
never raises on a missing field: absence resolves to a failing outcome.
Fields of nested mappings are addressed with dotted paths
(``Settings.Versioning``); an exact key always wins over the dotted form.
"""

from __future__ import annotations

import numbers
import re
from typing import Any, Collection, Iterable, Mapping

from tenantguard.models import MISSING, AssertionOutcome

SELF = "."


def resolve(obj: Any, path: str) -> Any:
    """Return the value at ``path`` inside ``obj``, or ``MISSING``."""
    if path == SELF:
        return obj
    if not isinstance(obj, Mapping):
        return MISSING
    if path in obj:
        return obj[path]
    current = obj
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return MISSING
        current = current[part]
    return current


def is_empty(value: Any) -> bool:
    """True for MISSING, None, an empty string or an empty collection."""
    if value is MISSING or value is None:
        return True
    if isinstance(value, (str, bytes, Mapping, list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def values_equal(actual: Any, expected: Any) -> bool:
    """Type-aware equality: booleans only equal booleans, numbers compare numerically."""
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if _is_number(actual) or _is_number(expected):
        return _is_number(actual) and _is_number(expected) and actual == expected
    if isinstance(actual, str) or isinstance(expected, str):
        return isinstance(actual, str) and isinstance(expected, str) and actual == expected
    return actual == expected


def _show(value: Any) -> str:
    if value is MISSING:
        return "missing"
    if isinstance(value, str):
        return f"'{value}'"
    if _is_number(value):
        return str(value)
    return repr(value)


def create(condition: Any, message: str, path: str | None = None) -> AssertionOutcome:
    return AssertionOutcome(passed=bool(condition), message=message, path=path)


def pass_(message: str = "") -> AssertionOutcome:
    return AssertionOutcome(passed=True, message=message)


def fail(message: str = "") -> AssertionOutcome:
    return AssertionOutcome(passed=False, message=message)


def has_field(obj: Any, field: str) -> AssertionOutcome:
    """Pass if ``field`` is present in ``obj``, whatever its value."""
    if resolve(obj, field) is MISSING:
        return AssertionOutcome(False, f"Field '{field}' does not exist", field)
    return AssertionOutcome(True, f"Field '{field}' exists", field)


def has_field_value(obj: Any, field: str, expected: Any) -> AssertionOutcome:
    actual = resolve(obj, field)
    if actual is MISSING:
        return AssertionOutcome(False, f"Field '{field}' does not exist", field)
    if values_equal(actual, expected):
        return AssertionOutcome(True, f"Field '{field}' is {_show(expected)}", field)
    return AssertionOutcome(
        False,
        f"Field '{field}' is {_show(actual)}, expected {_show(expected)}",
        field,
    )


def not_null(value: Any, name: str = "value") -> AssertionOutcome:
    if is_empty(value):
        return AssertionOutcome(False, f"{name} is empty", None if name == "value" else name)
    return AssertionOutcome(True, f"{name} is set", None if name == "value" else name)


def null(value: Any, name: str = "value") -> AssertionOutcome:
    if is_empty(value):
        return AssertionOutcome(True, f"{name} is empty", None if name == "value" else name)
    return AssertionOutcome(
        False, f"{name} should be empty but is {_show(value)}",
        None if name == "value" else name,
    )


def _compare(value: Any, path: str, threshold: Any, message: str | None,
             op: str) -> AssertionOutcome:
    actual = resolve(value, path)
    display = "value" if path == SELF else f"'{path}'"
    field = None if path == SELF else path
    if actual is MISSING:
        return AssertionOutcome(False, message or f"Field {display} does not exist", field)
    if not _is_number(actual):
        return AssertionOutcome(
            False, message or f"{display} is {_show(actual)}, which is not a number", field
        )
    ok = actual >= threshold if op == ">=" else actual <= threshold
    if ok:
        return AssertionOutcome(True, f"{display} is {actual} ({op} {threshold})", field)
    return AssertionOutcome(
        False,
        message or f"{display} is {actual}, expected {op} {threshold}",
        field,
    )


def greater_or_equal(value: Any, path: str, threshold: Any,
                     message: str | None = None) -> AssertionOutcome:
    """Pass if the number at ``path`` (``"."`` for ``value`` itself) is >= ``threshold``.

    The default failure message cites both the actual value and the
    threshold; ``message`` replaces it.
    """
    return _compare(value, path, threshold, message, ">=")


def less_or_equal(value: Any, path: str, threshold: Any,
                  message: str | None = None) -> AssertionOutcome:
    """Counterpart of :func:`greater_or_equal`."""
    return _compare(value, path, threshold, message, "<=")


def is_in(value: Any, allowed: Iterable[Any], name: str = "value") -> AssertionOutcome:
    allowed = list(allowed) if not isinstance(allowed, Collection) else allowed
    path = None if name == "value" else name
    if value is MISSING:
        return AssertionOutcome(False, f"{name} does not exist", path)
    if any(values_equal(value, candidate) for candidate in allowed):
        return AssertionOutcome(True, f"{name} is {_show(value)}", path)
    choices = ", ".join(_show(a) for a in allowed)
    return AssertionOutcome(
        False, f"{name} is {_show(value)}, expected one of: {choices}", path
    )


def match(value: Any, pattern: str, name: str = "value") -> AssertionOutcome:
    path = None if name == "value" else name
    if not isinstance(value, str):
        return AssertionOutcome(False, f"{name} is {_show(value)}, which is not a string", path)
    if re.search(pattern, value):
        return AssertionOutcome(True, f"{name} matches '{pattern}'", path)
    return AssertionOutcome(False, f"{name} {_show(value)} does not match '{pattern}'", path)


def not_match(value: Any, pattern: str, name: str = "value") -> AssertionOutcome:
    path = None if name == "value" else name
    if not isinstance(value, str):
        return AssertionOutcome(False, f"{name} is {_show(value)}, which is not a string", path)
    if re.search(pattern, value):
        return AssertionOutcome(False, f"{name} {_show(value)} matches '{pattern}'", path)
    return AssertionOutcome(True, f"{name} does not match '{pattern}'", path)
