"""TenantGuard CLI: Click-based command-line interface.

Commands:
  evaluate   Evaluate exported configuration objects against the rules
  rules      List loaded compliance rules
  validate   Check that rule files load cleanly
  serve      Run the REST API
  demo       Evaluate a built-in sample tenant
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from tenantguard import __version__
from tenantguard.errors import TenantGuardError

SEVERITY_CHOICES = ["critical", "high", "medium", "low", "informational"]
SEV_COLOR = {"critical": "red", "high": "red", "medium": "yellow",
             "low": "blue", "informational": "white"}
STATUS_COLOR = {"pass": "green", "fail": "red", "error": "magenta",
                "incomplete": "yellow"}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def _build_checker(config_path: str | None, rules_dir: str | None,
                   workers: int | None = None, no_builtin: bool = False):
    from tenantguard.check.checker import ComplianceChecker
    from tenantguard.config import load_config

    try:
        config = load_config(config_path, max_workers=workers,
                             include_builtin=False if no_builtin else None)
        return ComplianceChecker(config=config, rules_dir=rules_dir)
    except (TenantGuardError, OSError) as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(version=__version__, prog_name="TenantGuard")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """TenantGuard: compliance rules for tenant configuration.

    Evaluate exported site, mailbox, policy and tenant settings against
    backup, retention and data protection rules.
    """
    _setup_logging(verbose)


@cli.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("-c", "--config", "config_path", type=click.Path(exists=True),
              help="YAML engine configuration")
@click.option("-r", "--rules-dir", type=click.Path(exists=True, file_okay=False),
              help="Additional rules directory")
@click.option("--category", multiple=True, help="Only rules in this category")
@click.option("-s", "--severity", multiple=True,
              type=click.Choice(SEVERITY_CHOICES), help="Only rules of this severity")
@click.option("-t", "--tag", multiple=True, help="Only rules with this tag")
@click.option("-w", "--workers", type=int, help="Worker threads (0 = CPU count)")
@click.option("-o", "--output", type=click.Path(), help="Output report file")
@click.option("--format", "fmt", type=click.Choice(["text", "json"]),
              default="text", help="Report format")
@click.option("--no-builtin", is_flag=True, help="Do not load the shipped rule set")
def evaluate(path: str, config_path: str | None, rules_dir: str | None,
             category: tuple[str, ...], severity: tuple[str, ...], tag: tuple[str, ...],
             workers: int | None, output: str | None, fmt: str, no_builtin: bool) -> None:
    """Evaluate objects in a JSON/YAML file or directory.

    Exit status: 0 pass, 1 fail, 2 error, 3 incomplete.
    """
    from tenantguard.report.generator import ReportGenerator
    from tenantguard.rules.registry import metadata_filter

    checker = _build_checker(config_path, rules_dir, workers, no_builtin)
    reporter = ReportGenerator()

    rule_filter = None
    if category or severity or tag:
        rule_filter = metadata_filter(category=list(category) or None,
                                      severity=list(severity) or None,
                                      tags=list(tag) or None)
    try:
        targets = checker.targets.load(path)
    except (TenantGuardError, OSError) as e:
        raise click.ClickException(str(e)) from e

    report = checker.check_targets(targets, rule_filter)

    if fmt == "json" and not output:
        click.echo(reporter.generate_json(report))
    else:
        _display_summary(report)
        for v in sorted(report.failures + report.errors,
                        key=lambda x: x.severity.score, reverse=True):
            label = click.style(f"  [{v.severity.value.upper():13s}] ",
                                fg=SEV_COLOR.get(v.severity.value, "white"))
            click.echo(label + f"{v.rule_id} on {v.target_id} ({v.status.value})")
            for outcome in v.failed_outcomes:
                click.echo(f"      {outcome.message}")
            if v.error:
                click.echo(f"      {v.error}")

    if output:
        if fmt == "json":
            reporter.generate_json(report, output)
        else:
            reporter.generate_text(report, output)
        click.echo(f"\nReport saved: {output}")

    sys.exit(report.run_status.exit_code)


@cli.command()
@click.option("-c", "--config", "config_path", type=click.Path(exists=True))
@click.option("-r", "--rules-dir", type=click.Path(exists=True, file_okay=False))
@click.option("--category", help="Filter by category")
@click.option("-s", "--severity", type=click.Choice(SEVERITY_CHOICES),
              help="Filter by severity")
def rules(config_path: str | None, rules_dir: str | None,
          category: str | None, severity: str | None) -> None:
    """List loaded compliance rules."""
    from tenantguard.rules.registry import metadata_filter

    checker = _build_checker(config_path, rules_dir)
    rule_list = checker.registry.all_matching(
        metadata_filter(category=category, severity=severity)
    )

    click.echo(f"Loaded rules: {len(rule_list)}")
    click.echo()
    for rule in rule_list:
        click.echo(
            f"  {rule.rule_id:36s} "
            + click.style(f"[{rule.severity.value:13s}]",
                          fg=SEV_COLOR.get(rule.severity.value, "white"))
            + f" {rule.category}: {rule.title}"
        )


@cli.command()
@click.argument("rules_path", type=click.Path(exists=True))
def validate(rules_path: str) -> None:
    """Check that a rule file or directory loads without errors."""
    from tenantguard.rules.loader import RuleLoader
    from tenantguard.rules.registry import RuleRegistry

    loader = RuleLoader()
    target = Path(rules_path)
    try:
        loaded = (loader.load_directory(target) if target.is_dir()
                  else loader.load_file(target))
        RuleRegistry(loaded)
    except TenantGuardError as e:
        raise click.ClickException(str(e)) from e
    click.echo(click.style(f"OK: {len(loaded)} rules", fg="green"))


@cli.command()
@click.option("-p", "--port", default=5000, help="API port")
@click.option("-h", "--host", default="127.0.0.1", help="API host")
@click.option("-c", "--config", "config_path", type=click.Path(exists=True))
@click.option("--debug", is_flag=True, help="Enable debug mode")
def serve(port: int, host: str, config_path: str | None, debug: bool) -> None:
    """Run the TenantGuard REST API."""
    from tenantguard.api.app import create_app

    app = create_app(_build_checker(config_path, None))
    click.echo(f"TenantGuard API: http://{host}:{port}/api/v1/status")
    app.run(host=host, port=port, debug=debug)


DEMO_OBJECTS = [
    {"ObjectType": "Site", "Url": "https://contoso.sharepoint.com/sites/finance",
     "EnableVersioning": True, "MajorVersionLimit": 50,
     "RecycleBinRetentionPeriod": 15, "SecondStageRecycleBinEnabled": True},
    {"ObjectType": "Site", "Url": "https://contoso.sharepoint.com/sites/hr",
     "EnableVersioning": False, "RecycleBinRetentionPeriod": 93},
    {"ObjectType": "Mailbox", "Identity": "adele@contoso.com",
     "RecipientTypeDetails": "UserMailbox", "RetainDeletedItemsFor": 14,
     "SingleItemRecoveryEnabled": True, "LitigationHoldEnabled": False,
     "AuditEnabled": True, "AuditLogAgeLimitDays": 90},
    {"ObjectType": "Tenant", "Identity": "contoso",
     "SharingCapability": "ExternalUserAndGuestSharing",
     "RequireAnonymousLinksExpireInDays": 0,
     "UnifiedAuditLogIngestionEnabled": True},
]


@cli.command()
def demo() -> None:
    """Evaluate a sample tenant export."""
    from tenantguard.check.checker import ComplianceChecker

    click.echo(click.style("=" * 70, fg="blue"))
    click.echo(click.style("  TenantGuard Demo: Tenant Configuration Compliance",
                           fg="blue", bold=True))
    click.echo(click.style("=" * 70, fg="blue"))

    checker = ComplianceChecker()
    click.echo(f"\nRules loaded: {len(checker.registry)}")
    click.echo(f"Objects: {len(DEMO_OBJECTS)}\n")

    report = checker.check_targets(DEMO_OBJECTS)
    _display_summary(report)

    for v in report.failures:
        click.echo(f"\n--- {v.rule_id} on {v.target_id} ---")
        for outcome in v.failed_outcomes:
            click.echo(click.style(f"  {outcome.message}", fg="red"))

    click.echo("\n" + click.style(
        "Demo complete. Run 'tenantguard evaluate <export.json>' on your own data.", fg="blue"))


def _display_summary(report) -> None:
    """Display run status and verdict counts."""
    status = report.run_status.value
    click.echo(click.style(f"\nStatus: {status.upper()}",
                           fg=STATUS_COLOR.get(status, "white"), bold=True))
    click.echo(f"Objects evaluated: {report.objects_evaluated}")
    click.echo(f"Verdicts: {report.total}")
    for name in ("pass", "fail", "skipped", "error"):
        click.echo(f"  {name.capitalize():8s} {report.status_counts.get(name, 0)}")


if __name__ == "__main__":
    cli()
