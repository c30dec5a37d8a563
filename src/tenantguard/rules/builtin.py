"""Built-in rules that need branching logic beyond the YAML step vocabulary."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

from tenantguard.models import MISSING, RuleDefinition, TargetObject
from tenantguard.rules import assertions
from tenantguard.rules.definition import RuleSet

RECYCLE_BIN_MIN_DAYS = 30
BACKUP_TEST_INTERVAL = timedelta(days=92)


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def build_rule_set(as_of: datetime | None = None) -> RuleSet:
    """Declare the built-in Python rules.

    ``as_of`` is the reference time for date-based checks. It is fixed when
    the rule set is built so that repeated evaluations agree.
    """
    as_of = _as_datetime(as_of) if as_of else datetime.now(timezone.utc)
    backups = RuleSet("builtin")

    @backups.rule(
        "SPO.RecycleBin.Retention",
        title="Recycle bin retention is adequate",
        severity="high",
        category="Regular Backups",
        tags=("sharepoint", "recycle-bin"),
        when=lambda obj: "RecycleBinRetentionPeriod" in obj,
    )
    def recycle_bin_retention(obj: TargetObject):
        """Deleted content must stay restorable for at least 30 days, and the
        restore procedure must have been tested in the last quarter."""
        yield assertions.greater_or_equal(
            obj, "RecycleBinRetentionPeriod", RECYCLE_BIN_MIN_DAYS
        )
        last_test = assertions.resolve(obj, "LastBackupTestDate")
        if last_test is MISSING:
            return
        tested_at = _as_datetime(last_test)
        if tested_at is None:
            yield assertions.fail(
                f"LastBackupTestDate {last_test!r} is not a valid date"
            )
            return
        age = as_of - tested_at
        yield assertions.create(
            age <= BACKUP_TEST_INTERVAL,
            f"Last backup restore test was {age.days} days ago "
            f"(at most {BACKUP_TEST_INTERVAL.days} allowed)",
            "LastBackupTestDate",
        )

    @backups.rule(
        "SPO.Site.Versioning",
        title="Document versioning is enabled",
        severity="high",
        category="Regular Backups",
        tags=("sharepoint", "versioning"),
        when=lambda obj: "EnableVersioning" in obj,
    )
    def site_versioning(obj: TargetObject):
        """Libraries must keep versions so earlier document states can be restored."""
        yield assertions.has_field_value(obj, "EnableVersioning", True)

    return backups


def builtin_rules(as_of: datetime | None = None) -> list[RuleDefinition]:
    return build_rule_set(as_of).rules
