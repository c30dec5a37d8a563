"""Target object ingestion."""

from tenantguard.ingest.loader import TargetLoader

__all__ = ["TargetLoader"]
