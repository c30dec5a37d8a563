"""Folds rule verdicts into run-level evaluation reports."""

from __future__ import annotations

import threading
from typing import Iterable

from tenantguard.errors import AggregationFault
from tenantguard.models import EvaluationReport, RuleVerdict, Severity, VerdictStatus


class ResultAggregator:
    """Thread-safe, append-only sink for rule verdicts.

    Counts are updated incrementally as verdicts arrive. With
    ``keep_verdicts=False`` only the counts are retained, so arbitrarily
    large batches can be folded in constant memory.
    """

    def __init__(self, keep_verdicts: bool = True) -> None:
        self.keep_verdicts = keep_verdicts
        self._lock = threading.Lock()
        self._verdicts: list[RuleVerdict] = []
        self._status_counts: dict[str, int] = {}
        self._severity_counts: dict[str, dict[str, int]] = {}
        self._category_counts: dict[str, dict[str, int]] = {}
        self._objects = 0

    def add(self, verdict: RuleVerdict) -> None:
        if not isinstance(verdict, RuleVerdict):
            raise AggregationFault(f"Cannot aggregate {type(verdict).__name__}")
        if not isinstance(verdict.status, VerdictStatus):
            raise AggregationFault(
                f"Verdict for {verdict.rule_id} has invalid status {verdict.status!r}"
            )
        severity = verdict.severity
        if not isinstance(severity, Severity):
            raise AggregationFault(
                f"Verdict for {verdict.rule_id} has invalid severity {severity!r}"
            )
        status = verdict.status.value
        with self._lock:
            if self.keep_verdicts:
                self._verdicts.append(verdict)
            self._status_counts[status] = self._status_counts.get(status, 0) + 1
            sev_bucket = self._severity_counts.setdefault(severity.value, {})
            sev_bucket[status] = sev_bucket.get(status, 0) + 1
            cat_bucket = self._category_counts.setdefault(verdict.category, {})
            cat_bucket[status] = cat_bucket.get(status, 0) + 1

    def extend(self, verdicts: Iterable[RuleVerdict]) -> None:
        for verdict in verdicts:
            self.add(verdict)

    def mark_object(self, count: int = 1) -> None:
        """Record that ``count`` more target objects were fully evaluated."""
        with self._lock:
            self._objects += count

    def merge(self, other: ResultAggregator) -> None:
        """Fold a partial aggregator (e.g. from another worker) into this one."""
        partial = other.report()
        with self._lock:
            if self.keep_verdicts:
                self._verdicts.extend(partial.verdicts)
            for status, count in partial.status_counts.items():
                self._status_counts[status] = self._status_counts.get(status, 0) + count
            for into, source in ((self._severity_counts, partial.severity_counts),
                                 (self._category_counts, partial.category_counts)):
                for key, counts in source.items():
                    bucket = into.setdefault(key, {})
                    for status, count in counts.items():
                        bucket[status] = bucket.get(status, 0) + count
            self._objects += partial.objects_evaluated

    def report(self, complete: bool = True) -> EvaluationReport:
        """Snapshot the current state as an immutable report."""
        with self._lock:
            return EvaluationReport(
                verdicts=tuple(self._verdicts),
                status_counts=dict(self._status_counts),
                severity_counts={k: dict(v) for k, v in self._severity_counts.items()},
                category_counts={k: dict(v) for k, v in self._category_counts.items()},
                objects_evaluated=self._objects,
                complete=complete,
            )


def aggregate(verdicts: Iterable[RuleVerdict], complete: bool = True,
              objects: int = 0) -> EvaluationReport:
    """Pure fold of ``verdicts`` into an :class:`EvaluationReport`."""
    aggregator = ResultAggregator()
    aggregator.extend(verdicts)
    if objects:
        aggregator.mark_object(objects)
    return aggregator.report(complete=complete)


def merge_reports(*reports: EvaluationReport) -> EvaluationReport:
    """Merge partial reports left to right. The merge is associative."""
    merged = EvaluationReport()
    for report in reports:
        merged = merged.merge(report)
    return merged
