"""Verdict aggregation and report export."""

from tenantguard.report.aggregator import ResultAggregator, aggregate, merge_reports
from tenantguard.report.generator import ReportGenerator

__all__ = ["ReportGenerator", "ResultAggregator", "aggregate", "merge_reports"]
