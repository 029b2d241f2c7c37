"""
Human-readable output for audit runs.

AuditReporter renders:
- The per-certificate constraint summary printed by the CLI
- A Markdown run report (summary, rule distribution, certificates, failures)

Tables use tabulate in GitHub-flavored format.
"""
from datetime import datetime, timezone
from typing import List
from pathlib import Path
from tabulate import tabulate

from ingestion.certificate_source import CertificateRecord
from storage.result_store import AuditResult
from .metrics import AuditMetrics


class AuditReporter:
    """Generates console summaries and Markdown reports for audit runs."""

    def format_certificate(self, record: CertificateRecord) -> str:
        """Raw name constraint fields for one certificate."""
        facts = record.facts
        critical = record.name_constraints_critical
        lines = [
            "",
            f"Certificate: {record.path}",
            f"Subject: {record.subject}",
            f"X509v3 Name Constraints (critical): {'true' if critical else 'false'}",
            f"X509v3 PermittedDNSDomains: {_format_list(facts.permitted_dns_domains)}",
            f"X509v3 PermittedIPAddresses: {_format_list(facts.permitted_ip_subtrees)}",
            f"X509v3 ExcludedDNSDomains: {_format_list(facts.excluded_dns_domains)}",
            f"X509v3 ExcludedIPAddresses: {_format_list(facts.excluded_ip_subtrees)}",
        ]
        return "\n".join(lines)

    def generate_report(self, metrics: AuditMetrics, results: List[AuditResult]) -> str:
        """
        Generate full run report in Markdown format.

        Args:
            metrics: AuditMetrics from a completed run
            results: Per-certificate results in evaluation order

        Returns:
            Markdown-formatted report as string
        """
        lines = []

        lines.append("# Technical Constraint Audit Report")
        lines.append(f"**Run ID:** {metrics.run_id}")
        lines.append(f"**Started:** {metrics.started_at.isoformat()}")
        if metrics.completed_at:
            duration = (metrics.completed_at - metrics.started_at).total_seconds()
            lines.append(f"**Duration:** {duration:.1f} seconds")
        lines.append("")

        lines.append("## Summary")
        summary_data = [
            ["Certificates", metrics.certificates_total],
            ["Technically Constrained", metrics.constrained],
            ["Not Constrained", metrics.unconstrained],
            ["Errors", metrics.errors],
        ]
        lines.append(tabulate(summary_data, headers=["Metric", "Value"], tablefmt="github"))
        lines.append("")

        if metrics.rules_fired:
            lines.append("## Rules Fired")
            rules_data = [[k, v] for k, v in sorted(metrics.rules_fired.items())]
            lines.append(tabulate(rules_data, headers=["Rule", "Count"], tablefmt="github"))
            lines.append("")

        if results:
            lines.append("## Certificates")
            cert_data = []
            for result in results:
                status = "✓" if result.decision.is_constrained else "✗"
                cert_data.append([
                    status,
                    result.record.subject,
                    result.record.fingerprint[:16],
                    result.decision.rationale,
                ])
            lines.append(tabulate(
                cert_data,
                headers=["Constrained", "Subject", "Fingerprint", "Rationale"],
                tablefmt="github"
            ))
            lines.append("")

        if metrics.failures:
            lines.append("## Failures")
            failure_data = [
                [f.get("context", {}).get("path", ""), f["message"]]
                for f in metrics.failures
            ]
            lines.append(tabulate(failure_data, headers=["Path", "Error"], tablefmt="github"))
            lines.append("")

        return "\n".join(lines)

    def save_report(self, report: str, output_dir: Path) -> Path:
        """Save report to a timestamped file and return its path."""
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        filepath = output_dir / f"audit-report-{timestamp}.md"
        filepath.write_text(report, encoding="utf-8")
        return filepath


def _format_list(values) -> str:
    return "[" + " ".join(str(v) for v in values) + "]"
