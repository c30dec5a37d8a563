"""Report export: JSON and plain-text summaries of an evaluation report."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from tenantguard.models import EvaluationReport, Severity, VerdictStatus

logger = logging.getLogger(__name__)


class ReportGenerator:
    """Serialize an :class:`EvaluationReport` for downstream consumers."""

    def generate_json(self, report: EvaluationReport,
                      output_path: str | Path | None = None,
                      include_passed: bool = True) -> str:
        """Generate a JSON report. Identical reports give identical output."""
        data = report.to_dict()
        if not include_passed:
            data["verdicts"] = [
                v for v in data["verdicts"]
                if v["status"] not in (VerdictStatus.PASS.value, VerdictStatus.SKIPPED.value)
            ]

        json_str = json.dumps(data, indent=2, default=str)
        if output_path:
            Path(output_path).write_text(json_str)
            logger.info("JSON report generated: %s", output_path)
        return json_str

    def generate_text(self, report: EvaluationReport,
                      output_path: str | Path | None = None) -> str:
        """Generate a plain text summary listing failed and errored verdicts."""
        lines = [
            "=" * 70,
            "TENANTGUARD EVALUATION REPORT",
            "=" * 70,
            f"Status:            {report.run_status.value.upper()}",
            f"Objects evaluated: {report.objects_evaluated}",
            f"Verdicts:          {report.total}",
        ]
        for status in VerdictStatus:
            lines.append(f"  {status.value.capitalize():8s} {report.count(status)}")

        failures = report.failures_by_severity()
        if any(failures.values()):
            lines.append("")
            lines.append("Failures by severity:")
            for sev in sorted(Severity, key=lambda s: s.score, reverse=True):
                if failures.get(sev.value):
                    lines.append(f"  {sev.value.capitalize():14s} {failures[sev.value]}")

        problems = sorted(report.failures + report.errors,
                          key=lambda v: v.severity.score, reverse=True)
        if problems:
            lines.append("")
            lines.append("-" * 70)
            lines.append("FINDINGS")
            lines.append("-" * 70)
            for i, v in enumerate(problems, 1):
                lines.append(f"\n{i}. [{v.status.value.upper()}] [{v.severity.value.upper()}] "
                             f"{v.rule_id} on {v.target_id}")
                if v.error:
                    lines.append(f"   Error: {v.error}")
                for outcome in v.failed_outcomes:
                    lines.append(f"   - {outcome.message}")

        if not report.complete:
            lines.append("")
            lines.append("Run was cancelled; results are partial.")

        lines.append("")
        lines.append("=" * 70)
        text = "\n".join(lines)
        if output_path:
            Path(output_path).write_text(text)
            logger.info("Text report generated: %s", output_path)
        return text
