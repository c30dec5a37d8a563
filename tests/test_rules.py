"""Tests for rule declaration, the YAML loader and the rule registry."""

import pytest

from tenantguard.errors import (
    DuplicateRuleError,
    RegistryFrozenError,
    RuleLoadError,
    RuleNotFoundError,
)
from tenantguard.models import Severity
from tenantguard.rules import assertions
from tenantguard.rules.definition import RuleSet, define_rule
from tenantguard.rules.loader import RuleLoader
from tenantguard.rules.registry import RuleRegistry, metadata_filter


def _noop(obj):
    return None


class TestDefineRule:
    def test_metadata(self):
        rule = define_rule("R1", _noop, severity="HIGH", category="Regular Backups",
                           tags=["sharepoint"], remediation="Fix it")
        assert rule.severity == Severity.HIGH
        assert rule.category == "Regular Backups"
        assert rule.metadata["remediation"] == "Fix it"
        assert rule.tags == ("sharepoint",)
        assert rule.title == "R1"

    def test_metadata_is_read_only(self):
        rule = define_rule("R1", _noop, severity="low", category="c")
        with pytest.raises(TypeError):
            rule.metadata["severity"] = Severity.CRITICAL

    def test_info_alias(self):
        rule = define_rule("R1", _noop, severity="info", category="c")
        assert rule.severity == Severity.INFORMATIONAL

    @pytest.mark.parametrize("kwargs", [
        {"rule_id": ""},
        {"body": "not callable"},
        {"severity": "urgent"},
        {"category": ""},
        {"predicate": 5},
    ])
    def test_rejects_malformed(self, kwargs):
        args = {"rule_id": "R1", "body": _noop, "severity": "low", "category": "c"}
        args.update(kwargs)
        with pytest.raises(RuleLoadError):
            define_rule(args.pop("rule_id"), args.pop("body"), **args)


class TestRuleSet:
    def test_decorator_collects_in_order(self):
        rs = RuleSet("test")

        @rs.rule("A", severity="low", category="c")
        def first(obj):
            """First rule."""
            yield assertions.pass_()

        @rs.rule("B", severity="high", category="c", when=lambda o: True)
        def second(obj):
            yield assertions.pass_()

        assert [r.rule_id for r in rs] == ["A", "B"]
        assert rs.rules[0].description == "First rule."
        assert rs.rules[1].predicate is not None
        assert first.__name__ == "first"


class TestRuleLoader:
    def test_load_builtin(self):
        rules = RuleLoader().load_builtin_rules()
        assert len(rules) >= 10
        ids = [r.rule_id for r in rules]
        assert len(ids) == len(set(ids))
        for rule in rules:
            assert isinstance(rule.severity, Severity)
            assert rule.category

    def test_load_file(self, rules_dir):
        rules = RuleLoader().load_file(rules_dir / "sample.yml")
        assert [r.rule_id for r in rules] == ["TEST.VersionLimit", "TEST.Mailbox.Recovery"]
        version, mailbox = rules
        assert version.severity == Severity.MEDIUM
        assert version.category == "Regular Backups"
        assert mailbox.severity == Severity.HIGH
        assert mailbox.category == "Data Protection"
        assert mailbox.type_filter == ("Mailbox",)

    def test_compiled_body_and_predicate(self, rules_dir):
        version = RuleLoader().load_file(rules_dir / "sample.yml")[0]
        assert version.predicate({"MajorVersionLimit": 10})
        assert not version.predicate({})
        outcomes = list(version.body({"MajorVersionLimit": 10}))
        assert len(outcomes) == 1
        assert not outcomes[0].passed

    def test_load_directory(self, rules_dir):
        (rules_dir / "more.yaml").write_text(
            "category: Extra\nrules:\n  - id: X.1\n    assert: [pass]\n"
        )
        rules = RuleLoader().load_directory(rules_dir)
        assert {r.rule_id for r in rules} == {"TEST.VersionLimit", "TEST.Mailbox.Recovery", "X.1"}

    def test_load_nonexistent_file(self):
        with pytest.raises(FileNotFoundError):
            RuleLoader().load_file("/nonexistent/rules.yml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert RuleLoader().load_file(path) == []

    @pytest.mark.parametrize("rule_yaml", [
        "  - title: no id\n    assert: [pass]\n",
        "  - id: A\n",
        "  - id: A\n    assert:\n      - frobnicate: X\n",
        "  - id: A\n    assert:\n      - greater_or_equal: {field: X}\n",
        "  - id: A\n    assert:\n      - greater_or_equal: {field: X, threshold: ten}\n",
        "  - id: A\n    assert:\n      - match: {field: X, pattern: '('}\n",
        "  - id: A\n    severity: urgent\n    assert: [pass]\n",
        "  - id: A\n    body: x\n    assert: [pass]\n",
    ])
    def test_malformed_rules_rejected(self, tmp_path, rule_yaml):
        path = tmp_path / "bad.yml"
        path.write_text("category: Testing\nrules:\n" + rule_yaml)
        with pytest.raises(RuleLoadError):
            RuleLoader().load_file(path)

    @pytest.mark.parametrize("document", [
        "5\n",
        "- id: A\n  assert: [pass]\n",
        "category: Testing\nrule:\n  - id: A\n    assert: [pass]\n",
    ])
    def test_malformed_document_rejected(self, tmp_path, document):
        path = tmp_path / "bad.yml"
        path.write_text(document)
        with pytest.raises(RuleLoadError):
            RuleLoader().load_file(path)

    def test_validate_command_reports_malformed_document(self, tmp_path):
        from click.testing import CliRunner

        from tenantguard.cli import cli

        path = tmp_path / "bad.yml"
        path.write_text("5\n")
        result = CliRunner().invoke(cli, ["validate", str(path)])
        assert result.exit_code == 1
        assert "rule document must be a mapping" in result.output

    def test_missing_category_rejected(self):
        with pytest.raises(RuleLoadError):
            RuleLoader().parse_rules({"rules": [{"id": "A", "assert": ["pass"]}]})

    def test_rules_must_be_list(self):
        with pytest.raises(RuleLoadError):
            RuleLoader().parse_rules({"category": "c", "rules": {"id": "A"}})


class TestRuleRegistry:
    def _rules(self):
        return [
            define_rule("A", _noop, severity="high", category="Regular Backups",
                        tags=["sharepoint"]),
            define_rule("B", _noop, severity="low", category="Auditing",
                        tags=["exchange"]),
            define_rule("C", _noop, severity="critical", category="Regular Backups"),
        ]

    def test_register_and_lookup(self):
        registry = RuleRegistry(self._rules())
        assert len(registry) == 3
        assert registry.lookup("B").category == "Auditing"
        assert "A" in registry

    def test_duplicate_identifier(self):
        registry = RuleRegistry(self._rules())
        with pytest.raises(DuplicateRuleError) as exc:
            registry.register(define_rule("A", _noop, severity="low", category="x"))
        assert isinstance(exc.value, RuleLoadError)
        assert exc.value.rule_id == "A"

    def test_duplicate_in_initial_rules(self):
        rules = self._rules()
        with pytest.raises(RuleLoadError):
            RuleRegistry(rules + [rules[0]])

    def test_lookup_missing(self):
        with pytest.raises(RuleNotFoundError):
            RuleRegistry().lookup("nope")

    def test_frozen(self):
        registry = RuleRegistry(self._rules())
        registry.freeze()
        assert registry.frozen
        with pytest.raises(RegistryFrozenError):
            registry.register(define_rule("D", _noop, severity="low", category="x"))

    def test_all_matching_order(self):
        registry = RuleRegistry(self._rules())
        assert [r.rule_id for r in registry.all_matching()] == ["A", "B", "C"]
        backups = registry.all_matching({"category": "Regular Backups"})
        assert [r.rule_id for r in backups] == ["A", "C"]

    def test_all_matching_callable(self):
        registry = RuleRegistry(self._rules())
        severe = registry.all_matching(lambda m: m["severity"].score >= 8)
        assert [r.rule_id for r in severe] == ["A", "C"]

    def test_metadata_filter(self):
        registry = RuleRegistry(self._rules())
        assert [r.rule_id for r in registry.all_matching(
            metadata_filter(severity=["HIGH", "critical"]))] == ["A", "C"]
        assert [r.rule_id for r in registry.all_matching(
            metadata_filter(tags="exchange"))] == ["B"]
        assert [r.rule_id for r in registry.all_matching(
            metadata_filter(category="regular backups", severity=None))] == ["A", "C"]
        assert registry.all_matching(metadata_filter(severity="bogus")) == []
