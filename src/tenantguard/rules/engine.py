"""Compliance rule evaluation engine."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Iterable, Mapping, Sequence

from tenantguard.errors import ApplicabilityFault, BodyFault
from tenantguard.models import (
    AssertionOutcome,
    EvaluationReport,
    RuleDefinition,
    RuleVerdict,
    TargetObject,
    VerdictStatus,
)
from tenantguard.report.aggregator import ResultAggregator
from tenantguard.rules.registry import RuleRegistry, TagFilter

logger = logging.getLogger(__name__)

DEFAULT_TYPE_FIELD = "ObjectType"
DEFAULT_ID_FIELDS = ("Identity", "Url", "Name", "Id")


class EvaluationEngine:
    """Evaluates registered rules against target objects.

    Rules within one object run sequentially in registry order. Distinct
    objects may run on a thread pool; results are always folded in input
    order so the report does not depend on the worker count.
    """

    def __init__(self, registry: RuleRegistry,
                 type_field: str = DEFAULT_TYPE_FIELD,
                 id_fields: Sequence[str] = DEFAULT_ID_FIELDS) -> None:
        self.registry = registry
        self.type_field = type_field
        self.id_fields = tuple(id_fields)

    def target_id(self, target: TargetObject, index: int = 0) -> str:
        """Identify a target by its first present id field."""
        if isinstance(target, Mapping):
            for name in self.id_fields:
                value = target.get(name)
                if value not in (None, ""):
                    return str(value)
        return f"object-{index}"

    def _type_applies(self, rule: RuleDefinition, target: TargetObject) -> bool:
        if not rule.type_filter:
            return True
        object_type = target.get(self.type_field) if isinstance(target, Mapping) else None
        return object_type in rule.type_filter

    def evaluate_rule(self, rule: RuleDefinition, target: TargetObject,
                      target_id: str) -> RuleVerdict:
        """Evaluate one rule against one target. Never raises for rule faults."""
        try:
            applies = self._type_applies(rule, target) and (
                rule.predicate is None or bool(rule.predicate(target))
            )
        except Exception as e:
            fault = ApplicabilityFault(rule.rule_id, target_id, e)
            logger.warning("%s", fault)
            return RuleVerdict(rule.rule_id, target_id, VerdictStatus.ERROR,
                               metadata=rule.metadata, error=str(fault))
        if not applies:
            logger.debug("Rule %s skipped for %s", rule.rule_id, target_id)
            return RuleVerdict(rule.rule_id, target_id, VerdictStatus.SKIPPED,
                               metadata=rule.metadata)

        outcomes: list[AssertionOutcome] = []
        try:
            result = rule.body(target)
            if result is None:
                pass
            elif isinstance(result, AssertionOutcome):
                outcomes.append(result)
            else:
                for outcome in result:
                    if not isinstance(outcome, AssertionOutcome):
                        raise TypeError(
                            f"rule body produced {type(outcome).__name__}, "
                            "expected AssertionOutcome"
                        )
                    outcomes.append(outcome)
        except Exception as e:
            fault = BodyFault(rule.rule_id, target_id, e)
            logger.warning("%s", fault)
            return RuleVerdict(rule.rule_id, target_id, VerdictStatus.ERROR,
                               tuple(outcomes), rule.metadata, str(fault))

        status = (VerdictStatus.FAIL if any(not o.passed for o in outcomes)
                  else VerdictStatus.PASS)
        logger.debug("Rule %s on %s: %s (%d outcomes)",
                     rule.rule_id, target_id, status.value, len(outcomes))
        return RuleVerdict(rule.rule_id, target_id, status, tuple(outcomes), rule.metadata)

    def evaluate_object(self, target: TargetObject,
                        rules: Iterable[RuleDefinition] | None = None,
                        target_id: str | None = None) -> list[RuleVerdict]:
        """Evaluate rules (default: every registered rule) against one object."""
        if rules is None:
            rules = self.registry.all_matching()
        if target_id is None:
            target_id = self.target_id(target)
        return [self.evaluate_rule(rule, target, target_id) for rule in rules]

    def evaluate(self, targets: Iterable[TargetObject],
                 rule_filter: TagFilter = None, *,
                 max_workers: int | None = 1,
                 cancel_event: threading.Event | None = None,
                 aggregator: ResultAggregator | None = None) -> EvaluationReport:
        """Evaluate every matching rule against every target.

        Args:
            targets: Already-fetched configuration objects.
            rule_filter: Metadata filter passed to ``registry.all_matching``.
            max_workers: Thread pool size; ``0`` or ``None`` uses the CPU count.
            cancel_event: Checked before each object starts. When set, the
                remaining objects are not evaluated and the report is flagged
                incomplete.
            aggregator: Sink to fold verdicts into; a fresh one by default.
        """
        rules = self.registry.all_matching(rule_filter)
        aggregator = aggregator if aggregator is not None else ResultAggregator()
        workers = max_workers or os.cpu_count() or 1
        logger.info("Evaluating %d rules with %d worker(s)", len(rules), workers)

        if workers == 1:
            complete = self._evaluate_sequential(targets, rules, cancel_event, aggregator)
        else:
            complete = self._evaluate_parallel(targets, rules, cancel_event,
                                               aggregator, workers)
        report = aggregator.report(complete=complete)
        logger.info("Evaluation %s: %d objects, %d verdicts (%d fail, %d error)",
                    "complete" if complete else "cancelled",
                    report.objects_evaluated, report.total,
                    report.count(VerdictStatus.FAIL), report.count(VerdictStatus.ERROR))
        return report

    def _evaluate_sequential(self, targets: Iterable[TargetObject],
                             rules: list[RuleDefinition],
                             cancel_event: threading.Event | None,
                             aggregator: ResultAggregator) -> bool:
        for index, target in enumerate(targets):
            if cancel_event is not None and cancel_event.is_set():
                return False
            aggregator.extend(self.evaluate_object(target, rules, self.target_id(target, index)))
            aggregator.mark_object()
        return True

    def _evaluate_parallel(self, targets: Iterable[TargetObject],
                           rules: list[RuleDefinition],
                           cancel_event: threading.Event | None,
                           aggregator: ResultAggregator, workers: int) -> bool:
        pending: dict[int, Future] = {}
        finished: dict[int, list[RuleVerdict]] = {}
        next_to_fold = 0
        complete = True

        def run(index: int, target: TargetObject) -> list[RuleVerdict] | None:
            if cancel_event is not None and cancel_event.is_set():
                return None
            return self.evaluate_object(target, rules, self.target_id(target, index))

        def fold_ready() -> None:
            nonlocal next_to_fold
            while next_to_fold in finished:
                aggregator.extend(finished.pop(next_to_fold))
                aggregator.mark_object()
                next_to_fold += 1

        with ThreadPoolExecutor(max_workers=workers) as pool:
            iterator = enumerate(targets)
            exhausted = False
            while True:
                # Keep a bounded window of in-flight objects
                while not exhausted and len(pending) < workers * 2:
                    if cancel_event is not None and cancel_event.is_set():
                        exhausted = True
                        complete = False
                        break
                    try:
                        index, target = next(iterator)
                    except StopIteration:
                        exhausted = True
                        break
                    pending[index] = pool.submit(run, index, target)
                if not pending:
                    break
                done, _ = wait(pending.values(), return_when=FIRST_COMPLETED)
                for index in [i for i, f in pending.items() if f in done]:
                    verdicts = pending.pop(index).result()
                    if verdicts is None:
                        complete = False
                        exhausted = True
                    else:
                        finished[index] = verdicts
                if complete:
                    fold_ready()

        # After a cancellation, fold whatever finished, still in input order
        for index in sorted(finished):
            aggregator.extend(finished[index])
            aggregator.mark_object()
        return complete
