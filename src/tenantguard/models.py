"""Core data models for TenantGuard."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Union

TargetObject = Mapping[str, Any]


class _Missing:
    """Sentinel for a field that is absent from a target object."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


class Severity(enum.Enum):
    """Rule severity levels."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFORMATIONAL = "informational"

    @property
    def score(self) -> int:
        return {"critical": 10, "high": 8, "medium": 5, "low": 2,
                "informational": 0}[self.value]

    def __lt__(self, other: Severity) -> bool:
        return self.score < other.score

    @classmethod
    def parse(cls, value: Union[str, "Severity"]) -> "Severity":
        """Parse a severity name, case-insensitive. ``info`` is accepted."""
        if isinstance(value, Severity):
            return value
        name = str(value).strip().lower()
        if name == "info":
            name = "informational"
        return cls(name)


class VerdictStatus(enum.Enum):
    """Outcome of one rule against one target object."""

    PASS = "pass"
    FAIL = "fail"
    SKIPPED = "skipped"
    ERROR = "error"


class RunStatus(enum.Enum):
    """Overall status of an evaluation run."""

    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"
    INCOMPLETE = "incomplete"

    @property
    def exit_code(self) -> int:
        return {"pass": 0, "fail": 1, "error": 2, "incomplete": 3}[self.value]


@dataclass(frozen=True)
class AssertionOutcome:
    """Result of one assertion against a target object."""

    passed: bool
    message: str = ""
    path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"passed": self.passed, "message": self.message, "path": self.path}


Body = Callable[[TargetObject], Union[Iterable[AssertionOutcome], AssertionOutcome, None]]
Predicate = Callable[[TargetObject], bool]


@dataclass(frozen=True)
class RuleDefinition:
    """A registered compliance rule.

    ``metadata`` always carries ``severity`` (a :class:`Severity`) and
    ``category``. Build instances with
    :func:`tenantguard.rules.definition.define_rule` so they are validated.
    """

    rule_id: str
    body: Body
    predicate: Predicate | None = None
    type_filter: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)
    title: str = ""
    description: str = ""
    tags: tuple[str, ...] = ()
    source: str = ""

    @property
    def severity(self) -> Severity:
        return self.metadata["severity"]

    @property
    def category(self) -> str:
        return self.metadata["category"]


@dataclass(frozen=True)
class RuleVerdict:
    """The reduced result of one rule against one target object."""

    rule_id: str
    target_id: str
    status: VerdictStatus
    outcomes: tuple[AssertionOutcome, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def failed_outcomes(self) -> list[AssertionOutcome]:
        return [o for o in self.outcomes if not o.passed]

    @property
    def severity(self) -> Severity:
        return self.metadata.get("severity", Severity.INFORMATIONAL)

    @property
    def category(self) -> str:
        return self.metadata.get("category", "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "target": self.target_id,
            "status": self.status.value,
            "severity": self.severity.value,
            "category": self.category,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "error": self.error,
        }


def _add_nested(into: dict[str, dict[str, int]],
                other: Mapping[str, Mapping[str, int]]) -> None:
    for key, counts in other.items():
        bucket = into.setdefault(key, {})
        for status, count in counts.items():
            bucket[status] = bucket.get(status, 0) + count


@dataclass(frozen=True)
class EvaluationReport:
    """Run-level report over one or more target objects.

    Counts are keyed by the string values of :class:`VerdictStatus` and
    :class:`Severity` so the report serializes without conversion.
    """

    verdicts: tuple[RuleVerdict, ...] = ()
    status_counts: Mapping[str, int] = field(default_factory=dict)
    severity_counts: Mapping[str, Mapping[str, int]] = field(default_factory=dict)
    category_counts: Mapping[str, Mapping[str, int]] = field(default_factory=dict)
    objects_evaluated: int = 0
    complete: bool = True

    @property
    def total(self) -> int:
        return sum(self.status_counts.values())

    def count(self, status: VerdictStatus) -> int:
        return self.status_counts.get(status.value, 0)

    @property
    def status(self) -> RunStatus:
        if self.count(VerdictStatus.FAIL):
            return RunStatus.FAIL
        if self.count(VerdictStatus.ERROR):
            return RunStatus.ERROR
        return RunStatus.PASS

    @property
    def run_status(self) -> RunStatus:
        """Like :attr:`status`, but INCOMPLETE when the run was cancelled."""
        if not self.complete:
            return RunStatus.INCOMPLETE
        return self.status

    @property
    def failures(self) -> list[RuleVerdict]:
        return [v for v in self.verdicts if v.status == VerdictStatus.FAIL]

    @property
    def errors(self) -> list[RuleVerdict]:
        return [v for v in self.verdicts if v.status == VerdictStatus.ERROR]

    def failures_by_severity(self) -> dict[str, int]:
        return {sev: counts.get(VerdictStatus.FAIL.value, 0)
                for sev, counts in self.severity_counts.items()}

    def merge(self, other: EvaluationReport) -> EvaluationReport:
        """Combine two reports. Verdicts of ``other`` follow ours."""
        status_counts = dict(self.status_counts)
        for status, count in other.status_counts.items():
            status_counts[status] = status_counts.get(status, 0) + count
        severity_counts: dict[str, dict[str, int]] = {}
        _add_nested(severity_counts, self.severity_counts)
        _add_nested(severity_counts, other.severity_counts)
        category_counts: dict[str, dict[str, int]] = {}
        _add_nested(category_counts, self.category_counts)
        _add_nested(category_counts, other.category_counts)
        return EvaluationReport(
            verdicts=self.verdicts + other.verdicts,
            status_counts=status_counts,
            severity_counts=severity_counts,
            category_counts=category_counts,
            objects_evaluated=self.objects_evaluated + other.objects_evaluated,
            complete=self.complete and other.complete,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.run_status.value,
            "complete": self.complete,
            "objects_evaluated": self.objects_evaluated,
            "summary": {
                "total": self.total,
                **{s.value: self.count(s) for s in VerdictStatus},
            },
            "by_severity": {k: dict(v) for k, v in self.severity_counts.items()},
            "by_category": {k: dict(v) for k, v in self.category_counts.items()},
            "verdicts": [v.to_dict() for v in self.verdicts],
        }
