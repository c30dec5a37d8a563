"""Compliance checking orchestrator: builds the registry and runs evaluations."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterable

from tenantguard.config import EngineConfig
from tenantguard.ingest.loader import TargetLoader
from tenantguard.models import EvaluationReport, RuleDefinition, TargetObject
from tenantguard.rules.builtin import builtin_rules
from tenantguard.rules.engine import EvaluationEngine
from tenantguard.rules.loader import RuleLoader
from tenantguard.rules.registry import RuleRegistry, TagFilter, metadata_filter

logger = logging.getLogger(__name__)


class ComplianceChecker:
    """Main compliance checking orchestrator.

    Loads rules into a registry once, freezes it, and evaluates target
    objects against it. Any rule load error aborts construction.
    """

    def __init__(self, config: EngineConfig | None = None,
                 rules_dir: str | Path | None = None,
                 additional_rules: Iterable[RuleDefinition] | None = None,
                 as_of: datetime | None = None) -> None:
        self.config = config or EngineConfig()
        self.config.validate()
        self.loader = RuleLoader()
        self.targets = TargetLoader()
        self.registry = RuleRegistry()

        if self.config.include_builtin:
            self.registry.register_all(builtin_rules(as_of))
            self.registry.register_all(self.loader.load_builtin_rules())

        rule_dirs = list(self.config.rules_dirs)
        if rules_dir:
            rule_dirs.append(str(rules_dir))
        for directory in rule_dirs:
            self.registry.register_all(self.loader.load_directory(directory))

        if additional_rules:
            self.registry.register_all(additional_rules)

        self.registry.freeze()
        self.engine = EvaluationEngine(
            self.registry,
            type_field=self.config.type_field,
            id_fields=self.config.id_fields,
        )
        logger.info("ComplianceChecker initialized with %d rules", len(self.registry))

    def rule_filter(self) -> TagFilter:
        """Rule selection from the configuration, or None for all rules."""
        criteria = {k: v for k, v in self.config.selection().items() if v}
        return metadata_filter(**criteria) if criteria else None

    def check_targets(self, targets: Iterable[TargetObject],
                      rule_filter: TagFilter = None,
                      cancel_event: threading.Event | None = None) -> EvaluationReport:
        """Evaluate objects; ``rule_filter`` defaults to the configured selection."""
        return self.engine.evaluate(
            targets,
            rule_filter if rule_filter is not None else self.rule_filter(),
            max_workers=self.config.max_workers,
            cancel_event=cancel_event,
        )

    def check_file(self, filepath: str | Path,
                   rule_filter: TagFilter = None) -> EvaluationReport:
        """Evaluate every object in one exported file."""
        return self.check_targets(self.targets.load_file(filepath), rule_filter)

    def check_directory(self, directory: str | Path,
                        rule_filter: TagFilter = None) -> EvaluationReport:
        """Evaluate every object in every exported file under ``directory``."""
        return self.check_targets(self.targets.load_directory(directory), rule_filter)
