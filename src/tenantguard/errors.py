"""Exception hierarchy for TenantGuard."""

from __future__ import annotations


class TenantGuardError(Exception):
    """Base class for all TenantGuard errors."""


class RuleLoadError(TenantGuardError):
    """A rule declaration is malformed or cannot be registered.

    Raised while building the registry, before any evaluation starts.
    """


class DuplicateRuleError(RuleLoadError):
    """A rule identifier was registered twice."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Duplicate rule identifier: {rule_id}")
        self.rule_id = rule_id


class RegistryFrozenError(RuleLoadError):
    """A rule was registered after the registry was frozen."""


class RuleNotFoundError(TenantGuardError, KeyError):
    """No rule is registered under the requested identifier."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Rule not found: {rule_id}")
        self.rule_id = rule_id

    def __str__(self) -> str:
        return self.args[0]


class EvaluationFault(TenantGuardError):
    """A fault raised by a rule while evaluating one target object."""

    kind = "fault"

    def __init__(self, rule_id: str, target_id: str, cause: BaseException) -> None:
        self.rule_id = rule_id
        self.target_id = target_id
        self.cause = cause
        super().__init__(
            f"{self.kind} in rule {rule_id} for {target_id}: "
            f"{type(cause).__name__}: {cause}"
        )


class ApplicabilityFault(EvaluationFault):
    """The applicability predicate raised."""

    kind = "applicability fault"


class BodyFault(EvaluationFault):
    """The rule body raised or produced something other than an outcome."""

    kind = "body fault"


class AggregationFault(TenantGuardError):
    """Aggregation received input it cannot fold. Always fatal."""


class TargetLoadError(TenantGuardError):
    """Target objects could not be read from a file."""


class ConfigError(TenantGuardError):
    """Invalid engine configuration."""
