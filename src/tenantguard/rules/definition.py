"""Rule declaration helpers."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator

from tenantguard.errors import RuleLoadError
from tenantguard.models import Body, Predicate, RuleDefinition, Severity

logger = logging.getLogger(__name__)


def _as_tuple(value: str | Iterable[str] | None) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def define_rule(rule_id: str, body: Body, *,
                severity: str | Severity,
                category: str,
                predicate: Predicate | None = None,
                type_filter: str | Iterable[str] | None = None,
                title: str = "",
                description: str = "",
                tags: str | Iterable[str] | None = None,
                source: str = "",
                **metadata: Any) -> RuleDefinition:
    """Build a validated, immutable :class:`RuleDefinition`.

    Raises:
        RuleLoadError: on a blank identifier, a non-callable body or
            predicate, an unknown severity or a missing category.
    """
    where = f" ({source})" if source else ""
    if not isinstance(rule_id, str) or not rule_id.strip():
        raise RuleLoadError(f"Rule is missing an identifier{where}")
    if not callable(body):
        raise RuleLoadError(f"Rule {rule_id}{where}: body must be callable")
    if predicate is not None and not callable(predicate):
        raise RuleLoadError(f"Rule {rule_id}{where}: predicate must be callable")
    try:
        sev = Severity.parse(severity)
    except ValueError:
        raise RuleLoadError(
            f"Rule {rule_id}{where}: unknown severity {severity!r}"
        ) from None
    if not isinstance(category, str) or not category.strip():
        raise RuleLoadError(f"Rule {rule_id}{where}: category is required")

    tag_tuple = _as_tuple(tags)
    meta = {**metadata, "severity": sev, "category": category, "tags": tag_tuple}
    return RuleDefinition(
        rule_id=rule_id.strip(),
        body=body,
        predicate=predicate,
        type_filter=_as_tuple(type_filter),
        metadata=MappingProxyType(meta),
        title=title or rule_id,
        description=description,
        tags=tag_tuple,
        source=source,
    )


class RuleSet:
    """An ordered collection of Python-declared rules.

    Rules are declared with the :meth:`rule` decorator and handed to a
    registry explicitly; nothing is registered globally::

        backups = RuleSet("backups")

        @backups.rule("SPO.RecycleBin.Retention", severity="high",
                      category="Regular Backups")
        def recycle_bin(site):
            yield assertions.greater_or_equal(site, "RecycleBinRetentionPeriod", 30)
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._rules: list[RuleDefinition] = []

    def rule(self, rule_id: str, *, when: Predicate | None = None,
             **kwargs: Any) -> Callable[[Body], Body]:
        description = kwargs.pop("description", None)
        source = kwargs.pop("source", None)

        def decorator(fn: Body) -> Body:
            definition = define_rule(
                rule_id, fn,
                predicate=when,
                description=description or (fn.__doc__ or "").strip(),
                source=source or f"{fn.__module__}.{fn.__name__}",
                **kwargs,
            )
            self.add(definition)
            return fn
        return decorator

    def add(self, definition: RuleDefinition) -> None:
        self._rules.append(definition)
        logger.debug("Declared rule %s in %s", definition.rule_id, self.name or "rule set")

    @property
    def rules(self) -> list[RuleDefinition]:
        return list(self._rules)

    def __iter__(self) -> Iterator[RuleDefinition]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)
