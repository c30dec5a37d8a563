"""Rule declaration, YAML loading, registry and evaluation engine."""

from tenantguard.rules.definition import RuleSet, define_rule
from tenantguard.rules.engine import EvaluationEngine
from tenantguard.rules.loader import RuleLoader
from tenantguard.rules.registry import RuleRegistry, metadata_filter

__all__ = [
    "EvaluationEngine",
    "RuleLoader",
    "RuleRegistry",
    "RuleSet",
    "define_rule",
    "metadata_filter",
]
