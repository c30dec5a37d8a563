"""Tests for the evaluation engine."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from tenantguard.models import AssertionOutcome, RunStatus, VerdictStatus
from tenantguard.rules import assertions
from tenantguard.rules.builtin import builtin_rules
from tenantguard.rules.definition import define_rule
from tenantguard.rules.engine import EvaluationEngine
from tenantguard.rules.registry import RuleRegistry


def _engine(*rules):
    return EvaluationEngine(RuleRegistry(rules))


def _verdict(engine, target, rule_id):
    for verdict in engine.evaluate_object(target):
        if verdict.rule_id == rule_id:
            return verdict
    raise AssertionError(f"no verdict for {rule_id}")


class TestBuiltinRules:
    def test_recycle_bin_retention_too_short(self, builtin_engine):
        verdict = _verdict(builtin_engine, {"RecycleBinRetentionPeriod": 15},
                           "SPO.RecycleBin.Retention")
        assert verdict.status == VerdictStatus.FAIL
        message = verdict.failed_outcomes[0].message
        assert "15" in message
        assert "30" in message

    def test_recycle_bin_retention_ok(self, builtin_engine):
        verdict = _verdict(builtin_engine, {"RecycleBinRetentionPeriod": 93},
                           "SPO.RecycleBin.Retention")
        assert verdict.status == VerdictStatus.PASS

    def test_backup_test_past_due_fails(self, builtin_engine, as_of):
        stale = (as_of - timedelta(days=120)).isoformat()
        verdict = _verdict(builtin_engine,
                           {"RecycleBinRetentionPeriod": 93, "LastBackupTestDate": stale},
                           "SPO.RecycleBin.Retention")
        assert verdict.status == VerdictStatus.FAIL
        assert verdict.failed_outcomes[0].path == "LastBackupTestDate"
        assert len(verdict.outcomes) == 2

    def test_backup_test_recent_passes(self, builtin_engine, as_of):
        recent = as_of - timedelta(days=10)
        verdict = _verdict(builtin_engine,
                           {"RecycleBinRetentionPeriod": 30, "LastBackupTestDate": recent},
                           "SPO.RecycleBin.Retention")
        assert verdict.status == VerdictStatus.PASS

    def test_backup_test_bad_date(self, builtin_engine):
        verdict = _verdict(builtin_engine,
                           {"RecycleBinRetentionPeriod": 30, "LastBackupTestDate": "soon"},
                           "SPO.RecycleBin.Retention")
        assert verdict.status == VerdictStatus.FAIL

    def test_versioning_enabled(self, builtin_engine):
        verdict = _verdict(builtin_engine,
                           {"Url": "https://contoso.sharepoint.com/sites/a",
                            "EnableVersioning": True},
                           "SPO.Site.Versioning")
        assert verdict.status == VerdictStatus.PASS
        assert verdict.failed_outcomes == []

    def test_versioning_enabled_without_url(self, builtin_engine):
        verdict = _verdict(builtin_engine, {"EnableVersioning": True},
                           "SPO.Site.Versioning")
        assert verdict.status == VerdictStatus.PASS
        assert verdict.failed_outcomes == []

    def test_versioning_disabled(self, builtin_engine):
        verdict = _verdict(builtin_engine,
                           {"Url": "https://contoso.sharepoint.com/sites/a",
                            "EnableVersioning": False},
                           "SPO.Site.Versioning")
        assert verdict.status == VerdictStatus.FAIL

    def test_versioning_skipped_without_fields(self, builtin_engine):
        verdict = _verdict(builtin_engine, {"Title": "No url"}, "SPO.Site.Versioning")
        assert verdict.status == VerdictStatus.SKIPPED
        assert verdict.outcomes == ()

    def test_as_of_is_fixed_at_build(self):
        now = datetime.now(timezone.utc)
        rules = builtin_rules()
        engine = _engine(*rules)
        target = {"RecycleBinRetentionPeriod": 30,
                  "LastBackupTestDate": (now - timedelta(days=1)).isoformat()}
        assert _verdict(engine, target, "SPO.RecycleBin.Retention").status == VerdictStatus.PASS


class TestVerdictLaws:
    def test_predicate_false_is_skipped(self):
        def body(obj):
            yield assertions.fail("should not run")

        engine = _engine(define_rule("R", body, severity="low", category="c",
                                     predicate=lambda o: False))
        verdict = engine.evaluate_object({"x": 1})[0]
        assert verdict.status == VerdictStatus.SKIPPED
        assert verdict.outcomes == ()

    def test_type_filter_mismatch_is_skipped(self):
        engine = _engine(define_rule("R", lambda o: assertions.fail(), severity="low",
                                     category="c", type_filter=["Mailbox"]))
        assert engine.evaluate_object({"ObjectType": "Site"})[0].status == VerdictStatus.SKIPPED
        assert engine.evaluate_object({"ObjectType": "Mailbox"})[0].status == VerdictStatus.FAIL

    def test_vacuous_pass(self):
        def body(obj):
            if obj.get("Enabled"):
                yield assertions.fail("never")

        engine = _engine(define_rule("R", body, severity="low", category="c"))
        verdict = engine.evaluate_object({"Enabled": False})[0]
        assert verdict.status == VerdictStatus.PASS
        assert verdict.outcomes == ()

    def test_none_and_single_outcome_bodies(self):
        engine = _engine(
            define_rule("NONE", lambda o: None, severity="low", category="c"),
            define_rule("ONE", lambda o: assertions.fail("x"), severity="low", category="c"),
            define_rule("LIST", lambda o: [assertions.pass_(), assertions.pass_()],
                        severity="low", category="c"),
        )
        statuses = [v.status for v in engine.evaluate_object({})]
        assert statuses == [VerdictStatus.PASS, VerdictStatus.FAIL, VerdictStatus.PASS]

    def test_body_fault_keeps_partial_outcomes(self, faulty_rule):
        engine = _engine(faulty_rule)
        verdict = engine.evaluate_object({"Name": "site"})[0]
        assert verdict.status == VerdictStatus.ERROR
        assert len(verdict.outcomes) == 1
        assert verdict.outcomes[0].message == "first check ran"
        assert "KeyError" in verdict.error
        assert "body fault" in verdict.error

    def test_predicate_fault_is_error(self):
        engine = _engine(define_rule("R", lambda o: None, severity="low", category="c",
                                     predicate=lambda o: o["Missing"]))
        verdict = engine.evaluate_object({})[0]
        assert verdict.status == VerdictStatus.ERROR
        assert "applicability fault" in verdict.error

    def test_non_outcome_yield_is_error(self):
        engine = _engine(define_rule("R", lambda o: [True], severity="low", category="c"))
        assert engine.evaluate_object({})[0].status == VerdictStatus.ERROR

    def test_fault_isolation(self, faulty_rule):
        ok = define_rule("OK", lambda o: assertions.pass_(), severity="low", category="c")
        engine = _engine(faulty_rule, ok)
        report = engine.evaluate([{"Name": "a"}, {"Name": "b"}])
        assert [v.status for v in report.verdicts] == [
            VerdictStatus.ERROR, VerdictStatus.PASS,
            VerdictStatus.ERROR, VerdictStatus.PASS,
        ]
        assert report.status == RunStatus.ERROR

    def test_malformed_target(self, builtin_engine):
        verdicts = builtin_engine.evaluate_object(42)
        assert all(v.status in (VerdictStatus.ERROR, VerdictStatus.SKIPPED) for v in verdicts)

    def test_verdict_copies_metadata(self):
        rule = define_rule("R", lambda o: None, severity="high", category="Backups")
        verdict = _engine(rule).evaluate_object({})[0]
        assert verdict.metadata["category"] == "Backups"
        assert verdict.severity.value == "high"


class TestTargetId:
    def test_id_fields(self):
        engine = _engine()
        assert engine.target_id({"Identity": "a", "Url": "u"}) == "a"
        assert engine.target_id({"Url": "u"}) == "u"
        assert engine.target_id({}, 7) == "object-7"
        assert engine.target_id(None, 2) == "object-2"


class TestEvaluate:
    def test_idempotent(self, builtin_engine, sample_targets):
        first = builtin_engine.evaluate(sample_targets)
        second = builtin_engine.evaluate(sample_targets)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_parallel_matches_sequential(self, builtin_engine, sample_targets):
        targets = sample_targets * 20
        sequential = builtin_engine.evaluate(targets)
        parallel = builtin_engine.evaluate(targets, max_workers=4)
        assert parallel == sequential
        assert parallel.objects_evaluated == len(targets)

    def test_rule_filter(self, builtin_engine, sample_targets):
        report = builtin_engine.evaluate(sample_targets,
                                         {"category": "Regular Backups"})
        assert report.total == 2 * len(sample_targets)
        assert report.status == RunStatus.FAIL

    def test_cancel_before_start(self, builtin_engine, sample_targets):
        cancel = threading.Event()
        cancel.set()
        report = builtin_engine.evaluate(sample_targets, cancel_event=cancel)
        assert not report.complete
        assert report.run_status == RunStatus.INCOMPLETE
        assert report.objects_evaluated == 0

    def test_cancel_midway_keeps_progress(self, sample_targets):
        cancel = threading.Event()

        def body(obj):
            if obj.get("Name") == "stop":
                cancel.set()
            yield assertions.pass_()

        engine = _engine(define_rule("R", body, severity="low", category="c"))
        targets = [{"Name": "a"}, {"Name": "stop"}, {"Name": "c"}, {"Name": "d"}]
        report = engine.evaluate(targets, cancel_event=cancel)
        assert not report.complete
        assert report.objects_evaluated == 2
        assert [v.target_id for v in report.verdicts] == ["a", "stop"]

    def test_cancel_parallel_is_incomplete(self, sample_targets):
        cancel = threading.Event()

        def body(obj):
            cancel.set()
            yield AssertionOutcome(True, "ran")

        engine = _engine(define_rule("R", body, severity="low", category="c"))
        report = engine.evaluate([{"Name": str(i)} for i in range(50)],
                                 max_workers=2, cancel_event=cancel)
        assert not report.complete
        assert 1 <= report.objects_evaluated < 50

    def test_empty_batch(self, builtin_engine):
        report = builtin_engine.evaluate([])
        assert report.status == RunStatus.PASS
        assert report.total == 0

    @pytest.mark.parametrize("workers", [0, None])
    def test_cpu_count_workers(self, builtin_engine, sample_targets, workers):
        report = builtin_engine.evaluate(sample_targets, max_workers=workers)
        assert report.objects_evaluated == len(sample_targets)
