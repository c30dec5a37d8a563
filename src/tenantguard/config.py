"""
config.py
---------
Engine configuration, loadable from a YAML file.

Example file::

    max_workers: 4
    type_field: ObjectType
    id_fields: [Identity, Url, Name]
    rules_dirs: [./custom-rules]
    include_builtin: true
    category: Regular Backups
    severity: [high, critical]
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from tenantguard.errors import ConfigError
from tenantguard.models import Severity


@dataclass
class EngineConfig:
    """
    Configuration for a TenantGuard evaluation run.

    Attributes:
        max_workers: Thread pool size for evaluating objects; 0 means one
            worker per CPU.
        type_field: Target field holding the object type used by rule type filters.
        id_fields: Target fields tried, in order, to identify an object in verdicts.
        rules_dirs: Extra directories of YAML rule files.
        include_builtin: Whether to register the shipped rule set.
        category / severity / tags: Default rule selection; ``None`` selects all.
    """

    max_workers: int = 1
    type_field: str = "ObjectType"
    id_fields: list[str] = field(default_factory=lambda: ["Identity", "Url", "Name", "Id"])
    rules_dirs: list[str] = field(default_factory=list)
    include_builtin: bool = True
    category: str | list[str] | None = None
    severity: str | list[str] | None = None
    tags: list[str] | None = None

    def validate(self) -> None:
        """Validate configuration values are within acceptable ranges."""
        if not isinstance(self.max_workers, int) or self.max_workers < 0:
            raise ConfigError("max_workers must be a non-negative integer.")
        if not self.type_field:
            raise ConfigError("type_field must not be empty.")
        for name in ("id_fields", "rules_dirs"):
            value = getattr(self, name)
            if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
                raise ConfigError(f"{name} must be a list of strings.")
        if not self.id_fields:
            raise ConfigError("id_fields must list at least one field.")
        severities = self.severity if isinstance(self.severity, list) else [self.severity]
        for sev in severities:
            if sev is None:
                continue
            try:
                Severity.parse(sev)
            except ValueError:
                raise ConfigError(f"Unknown severity in config: {sev!r}") from None

    def selection(self) -> dict[str, Any]:
        """Rule selection criteria for :func:`~tenantguard.rules.registry.metadata_filter`."""
        return {"category": self.category, "severity": self.severity, "tags": self.tags}


def load_config(path: str | Path | None = None, **overrides: Any) -> EngineConfig:
    """Build an :class:`EngineConfig` from an optional YAML file plus overrides.

    Overrides whose value is ``None`` are ignored so CLI options that were
    not given do not clobber file values.
    """
    data: dict[str, Any] = {}
    if path:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: configuration must be a mapping")

    data.update({k: v for k, v in overrides.items() if v is not None})
    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(str(k) for k in set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

    config = EngineConfig(**data)
    config.validate()
    return config


DEFAULT_CONFIG = EngineConfig()
