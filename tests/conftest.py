"""Shared test fixtures."""

from datetime import datetime, timezone

import pytest

from tenantguard.rules import assertions
from tenantguard.rules.builtin import builtin_rules
from tenantguard.rules.definition import define_rule
from tenantguard.rules.engine import EvaluationEngine
from tenantguard.rules.registry import RuleRegistry

AS_OF = datetime(2024, 6, 30, tzinfo=timezone.utc)

SAMPLE_RULES_YAML = """
category: Regular Backups
severity: high
rules:
  - id: TEST.VersionLimit
    title: Version limit
    severity: medium
    tags: [sharepoint]
    when:
      - has_field: MajorVersionLimit
    assert:
      - greater_or_equal: {field: MajorVersionLimit, threshold: 100}

  - id: TEST.Mailbox.Recovery
    type: [Mailbox]
    category: Data Protection
    assert:
      - has_field_value: {field: SingleItemRecoveryEnabled, value: true}
"""

SAMPLE_TARGETS = [
    {"ObjectType": "Site", "Url": "https://contoso.sharepoint.com/sites/a",
     "EnableVersioning": True, "RecycleBinRetentionPeriod": 30},
    {"ObjectType": "Site", "Url": "https://contoso.sharepoint.com/sites/b",
     "EnableVersioning": False, "RecycleBinRetentionPeriod": 15},
    {"ObjectType": "Mailbox", "Identity": "adele@contoso.com",
     "SingleItemRecoveryEnabled": True},
]


def _boom(obj):
    yield assertions.pass_("first check ran")
    raise KeyError("Missing")


@pytest.fixture
def builtin_registry():
    registry = RuleRegistry(builtin_rules(as_of=AS_OF))
    registry.freeze()
    return registry


@pytest.fixture
def builtin_engine(builtin_registry):
    return EvaluationEngine(builtin_registry)


@pytest.fixture
def faulty_rule():
    return define_rule("TEST.Faulty", _boom, severity="low", category="Testing")


@pytest.fixture
def sample_targets():
    return [dict(t) for t in SAMPLE_TARGETS]


@pytest.fixture
def rules_dir(tmp_path):
    directory = tmp_path / "rules"
    directory.mkdir()
    (directory / "sample.yml").write_text(SAMPLE_RULES_YAML)
    return directory


@pytest.fixture
def as_of():
    return AS_OF
