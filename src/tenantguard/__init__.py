"""TenantGuard: compliance rule evaluation for tenant configuration objects."""

__version__ = "1.0.0"
