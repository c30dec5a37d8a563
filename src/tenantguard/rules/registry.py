"""Rule registry: rules keyed by identifier, in registration order."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Iterator, Mapping, Union

from tenantguard.errors import DuplicateRuleError, RegistryFrozenError, RuleNotFoundError
from tenantguard.models import RuleDefinition, Severity

logger = logging.getLogger(__name__)

TagFilter = Union[Callable[[Mapping[str, Any]], bool], Mapping[str, Any], None]


def _normalize(value: Any) -> Any:
    if isinstance(value, Severity):
        return value.value
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _matches(actual: Any, expected: Any) -> bool:
    if isinstance(expected, (list, tuple, set, frozenset)):
        return any(_matches(actual, e) for e in expected)
    if isinstance(actual, (list, tuple, set, frozenset)):
        return _normalize(expected) in {_normalize(a) for a in actual}
    if isinstance(actual, Severity) and isinstance(expected, str):
        try:
            return actual == Severity.parse(expected)
        except ValueError:
            return False
    return _normalize(actual) == _normalize(expected)


def metadata_filter(**criteria: Any) -> Callable[[Mapping[str, Any]], bool]:
    """Build a metadata predicate from keyword criteria.

    String comparisons are case-insensitive, a collection value means
    "any of", and a ``None`` criterion is ignored::

        metadata_filter(category="Regular Backups", severity=["high", "critical"])
    """
    active = {k: v for k, v in criteria.items() if v is not None and v != ()}

    def _filter(metadata: Mapping[str, Any]) -> bool:
        for key, expected in active.items():
            if key not in metadata or not _matches(metadata[key], expected):
                return False
        return True

    return _filter


class RuleRegistry:
    """Collection of rule definitions keyed by identifier.

    Populated once at startup, then frozen; it is read-only during an
    evaluation run and safe to share between worker threads.
    """

    def __init__(self, rules: Iterable[RuleDefinition] | None = None) -> None:
        self._rules: dict[str, RuleDefinition] = {}
        self._frozen = False
        if rules:
            self.register_all(rules)

    def register(self, rule: RuleDefinition) -> None:
        """Add a rule. Raises DuplicateRuleError if the id is taken."""
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register {rule.rule_id}: registry is frozen"
            )
        if rule.rule_id in self._rules:
            raise DuplicateRuleError(rule.rule_id)
        self._rules[rule.rule_id] = rule

    def register_all(self, rules: Iterable[RuleDefinition]) -> None:
        count = 0
        for rule in rules:
            self.register(rule)
            count += 1
        logger.info("Registry now has %d rules (+%d)", len(self._rules), count)

    def lookup(self, rule_id: str) -> RuleDefinition:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise RuleNotFoundError(rule_id) from None

    def all_matching(self, tag_filter: TagFilter = None) -> list[RuleDefinition]:
        """Return rules whose metadata satisfies ``tag_filter``, in registration order.

        ``tag_filter`` is a callable taking the metadata mapping, a mapping of
        criteria (see :func:`metadata_filter`), or ``None`` for every rule.
        """
        if tag_filter is None:
            return list(self._rules.values())
        if isinstance(tag_filter, Mapping):
            tag_filter = metadata_filter(**tag_filter)
        return [r for r in self._rules.values() if tag_filter(r.metadata)]

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[RuleDefinition]:
        return iter(self._rules.values())

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules
