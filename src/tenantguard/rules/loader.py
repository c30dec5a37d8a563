"""YAML rule loader: compiles declarative rule files into rule definitions."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable

import yaml

from tenantguard.errors import RuleLoadError
from tenantguard.models import AssertionOutcome, RuleDefinition, TargetObject
from tenantguard.rules import assertions
from tenantguard.rules.definition import define_rule

logger = logging.getLogger(__name__)

BUILTIN_RULES_DIR = Path(__file__).parent / "data"

Step = Callable[[TargetObject], AssertionOutcome]

_KNOWN_KEYS = {"id", "title", "description", "severity", "category", "type",
               "tags", "when", "assert"}
# define_rule() parameter names that may not appear as free-form metadata
_RESERVED_KEYS = {"rule_id", "body", "predicate", "type_filter", "source", "metadata"}


def _require(args: Any, keys: tuple[str, ...], step: str) -> dict[str, Any]:
    if not isinstance(args, dict):
        raise ValueError(f"'{step}' expects a mapping with {', '.join(keys)}")
    missing = [k for k in keys if k not in args]
    if missing:
        raise ValueError(f"'{step}' is missing {', '.join(missing)}")
    return args


def _field_name(args: Any, step: str) -> str:
    if isinstance(args, str):
        return args
    return str(_require(args, ("field",), step)["field"])


def _number(value: Any, step: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{step}' threshold must be a number, got {value!r}")
    return value


def _pattern(value: Any, step: str) -> str:
    try:
        re.compile(value)
    except (re.error, TypeError) as e:
        raise ValueError(f"'{step}' has an invalid pattern {value!r}: {e}") from e
    return value


def _compile_step(name: str, args: Any) -> Step:
    """Compile one ``{name: args}`` step into a closure over the assertion library."""
    if name == "has_field":
        field = _field_name(args, name)
        return lambda obj: assertions.has_field(obj, field)
    if name == "has_field_value":
        a = _require(args, ("field", "value"), name)
        field, expected = str(a["field"]), a["value"]
        return lambda obj: assertions.has_field_value(obj, field, expected)
    if name in ("not_null", "null"):
        field = _field_name(args, name)
        fn = assertions.not_null if name == "not_null" else assertions.null
        return lambda obj: fn(assertions.resolve(obj, field), field)
    if name in ("greater_or_equal", "less_or_equal"):
        a = _require(args, ("field", "threshold"), name)
        field = str(a["field"])
        threshold = _number(a["threshold"], name)
        message = a.get("message")
        fn = getattr(assertions, name)
        return lambda obj: fn(obj, field, threshold, message)
    if name == "in":
        a = _require(args, ("field", "values"), name)
        field, allowed = str(a["field"]), a["values"]
        if not isinstance(allowed, list):
            raise ValueError("'in' values must be a list")
        return lambda obj: assertions.is_in(assertions.resolve(obj, field), allowed, field)
    if name in ("match", "not_match"):
        a = _require(args, ("field", "pattern"), name)
        field = str(a["field"])
        pattern = _pattern(a["pattern"], name)
        fn = assertions.match if name == "match" else assertions.not_match
        return lambda obj: fn(assertions.resolve(obj, field), pattern, field)
    if name == "pass":
        message = "" if args is None else str(args)
        return lambda obj: assertions.pass_(message)
    if name == "fail":
        message = "" if args is None else str(args)
        return lambda obj: assertions.fail(message)
    raise ValueError(f"Unknown assertion step '{name}'")


def compile_steps(steps: Any) -> list[Step]:
    if steps is None:
        return []
    if not isinstance(steps, list):
        raise ValueError("steps must be a list")
    compiled = []
    for step in steps:
        if isinstance(step, str):
            # Bare step names: "pass" or "fail" with no message
            step = {step: None}
        if not isinstance(step, dict) or len(step) != 1:
            raise ValueError(f"Each step must be a single-key mapping, got {step!r}")
        (name, args), = step.items()
        compiled.append(_compile_step(str(name), args))
    return compiled


def _make_body(steps: list[Step]):
    def body(obj: TargetObject):
        for step in steps:
            yield step(obj)
    return body


def _make_predicate(steps: list[Step]):
    def predicate(obj: TargetObject) -> bool:
        return all(step(obj).passed for step in steps)
    return predicate


class RuleLoader:
    """Load compliance rules from YAML files.

    Any malformed rule aborts loading with :class:`RuleLoadError`; rules are
    never silently dropped.
    """

    def load_file(self, filepath: str | Path) -> list[RuleDefinition]:
        """Load rules from a single YAML file."""
        filepath = Path(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"Rule file not found: {filepath}")

        try:
            with open(filepath, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RuleLoadError(f"Invalid YAML in {filepath}: {e}") from e

        if data is None:
            logger.warning("No rules found in %s", filepath)
            return []

        rules = self.parse_rules(data, source=str(filepath))
        logger.info("Loaded %d rules from %s", len(rules), filepath.name)
        return rules

    def load_directory(self, dirpath: str | Path) -> list[RuleDefinition]:
        """Load all rule files from a directory, in sorted path order."""
        dirpath = Path(dirpath)
        if not dirpath.is_dir():
            raise NotADirectoryError(f"Not a directory: {dirpath}")
        files = sorted([*dirpath.rglob("*.yml"), *dirpath.rglob("*.yaml")])
        rules = []
        for filepath in files:
            rules.extend(self.load_file(filepath))
        return rules

    def load_builtin_rules(self) -> list[RuleDefinition]:
        """Load the YAML rule sets shipped with TenantGuard."""
        if not BUILTIN_RULES_DIR.is_dir():
            logger.warning("Built-in rules directory not found at %s", BUILTIN_RULES_DIR)
            return []
        return self.load_directory(BUILTIN_RULES_DIR)

    def parse_rules(self, data: dict[str, Any], source: str = "<memory>") -> list[RuleDefinition]:
        """Parse the ``rules`` list of an already-decoded rule document."""
        if not isinstance(data, dict):
            raise RuleLoadError(f"{source}: rule document must be a mapping")
        if "rules" not in data:
            raise RuleLoadError(f"{source}: rule document has no 'rules' list")
        entries = data["rules"]
        if not isinstance(entries, list):
            raise RuleLoadError(f"{source}: 'rules' must be a list")
        defaults = {
            "category": data.get("category"),
            "severity": data.get("severity", "medium"),
        }
        return [self._parse_rule(entry, defaults, source, i)
                for i, entry in enumerate(entries)]

    def _parse_rule(self, data: Any, defaults: dict[str, Any],
                    source: str, index: int) -> RuleDefinition:
        """Parse a single rule from YAML data."""
        if not isinstance(data, dict):
            raise RuleLoadError(f"{source}: rule #{index + 1} is not a mapping")
        rule_id = data.get("id")
        label = rule_id or f"#{index + 1}"
        if "assert" not in data:
            raise RuleLoadError(f"{source}: rule {label} has no 'assert' body")

        try:
            body_steps = compile_steps(data["assert"])
            when_steps = compile_steps(data.get("when"))
        except ValueError as e:
            raise RuleLoadError(f"{source}: rule {label}: {e}") from e

        extra = {str(k): v for k, v in data.items() if k not in _KNOWN_KEYS}
        reserved = _RESERVED_KEYS.intersection(extra)
        if reserved:
            raise RuleLoadError(
                f"{source}: rule {label} uses reserved keys: {', '.join(sorted(reserved))}"
            )
        return define_rule(
            rule_id,
            _make_body(body_steps),
            severity=data.get("severity", defaults["severity"]),
            category=data.get("category", defaults["category"]),
            predicate=_make_predicate(when_steps) if when_steps else None,
            type_filter=data.get("type"),
            title=data.get("title", ""),
            description=data.get("description", ""),
            tags=data.get("tags"),
            source=source,
            **extra,
        )
