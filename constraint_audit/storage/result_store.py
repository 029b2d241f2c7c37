"""
Audit result persistence.

Stores one row per certificate per audit run so auditors can compare a
certificate's classification across runs.

Design decisions:
- DELETE + INSERT per run_id for idempotent re-runs
- Evidence stored as JSON so every contributing boolean is queryable
- Timestamps stored as naive UTC
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from decisioning.rules import Decision
from ingestion.certificate_source import CertificateRecord
from .database import Database


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditResult:
    """Decision for one certificate."""
    record: CertificateRecord
    decision: Decision

    def to_dict(self) -> Dict[str, Any]:
        facts = self.record.facts
        return {
            "path": self.record.path,
            "fingerprint": self.record.fingerprint,
            "subject": self.record.subject,
            "serial_number": self.record.serial_number,
            "not_before": facts.not_before.isoformat(),
            "is_constrained": self.decision.is_constrained,
            "rationale": self.decision.rationale,
            "reason_code": self.decision.reason_code,
            "applied_rule": self.decision.applied_rule,
            "evidence": dict(self.decision.evidence),
            "name_constraints": {
                "critical": self.record.name_constraints_critical,
                "permitted_dns_domains": list(facts.permitted_dns_domains),
                "excluded_dns_domains": list(facts.excluded_dns_domains),
                "permitted_ip_addresses": [str(s) for s in facts.permitted_ip_subtrees],
                "excluded_ip_addresses": [str(s) for s in facts.excluded_ip_subtrees],
            },
            "extended_key_usages": sorted(u.value for u in facts.extended_key_usages),
        }


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ResultStore:
    """Loads audit results and run metadata into DuckDB."""

    def __init__(self, database: Database):
        self.db = database

    def save_results(self, results: List[AuditResult], run_id: str) -> int:
        """
        Store decisions for a run, replacing any previous rows for it.

        Returns:
            Number of records stored
        """
        conn = self.db.connect()
        conn.execute("DELETE FROM audit_results WHERE run_id = ?", [run_id])

        evaluated_at = _naive_utc(datetime.now(timezone.utc))
        stored = 0
        seen = set()
        for result in results:
            record = result.record
            if record.fingerprint in seen:
                logger.info(f"Skipping duplicate certificate {record.path} ({record.fingerprint[:16]})")
                continue
            seen.add(record.fingerprint)

            conn.execute("""
                INSERT INTO audit_results
                (run_id, fingerprint, path, subject, serial_number, not_before,
                 is_constrained, reason_code, rationale, applied_rule, evidence, evaluated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                run_id,
                record.fingerprint,
                record.path,
                record.subject,
                record.serial_number,
                _naive_utc(record.facts.not_before),
                result.decision.is_constrained,
                result.decision.reason_code,
                result.decision.rationale,
                result.decision.applied_rule,
                json.dumps(dict(result.decision.evidence)),
                evaluated_at
            ])
            stored += 1

        return stored

    def record_run(self, metrics) -> None:
        """Store run metadata from an AuditMetrics instance."""
        conn = self.db.connect()
        conn.execute("DELETE FROM audit_runs WHERE run_id = ?", [metrics.run_id])
        conn.execute("""
            INSERT INTO audit_runs
            (run_id, started_at, completed_at, certificates_total,
             constrained, unconstrained, errors, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            metrics.run_id,
            _naive_utc(metrics.started_at),
            _naive_utc(metrics.completed_at),
            metrics.certificates_total,
            metrics.constrained,
            metrics.unconstrained,
            metrics.errors,
            json.dumps(metrics.to_dict())
        ])

    def get_results(self, run_id: str) -> List[Dict[str, Any]]:
        """Fetch stored results for a run, ordered by path."""
        conn = self.db.connect()
        rows = conn.execute("""
            SELECT fingerprint, path, subject, is_constrained, reason_code,
                   rationale, applied_rule, evidence
            FROM audit_results
            WHERE run_id = ?
            ORDER BY path
        """, [run_id]).fetchall()
        return [self._row_to_dict(row) for row in rows]

    def get_latest_result(self, fingerprint: str) -> Optional[Dict[str, Any]]:
        """Most recent stored result for a certificate, or None."""
        conn = self.db.connect()
        row = conn.execute("""
            SELECT fingerprint, path, subject, is_constrained, reason_code,
                   rationale, applied_rule, evidence
            FROM audit_results
            WHERE fingerprint = ?
            ORDER BY evaluated_at DESC, run_id DESC
            LIMIT 1
        """, [fingerprint]).fetchone()
        return self._row_to_dict(row) if row else None

    def _row_to_dict(self, row) -> Dict[str, Any]:
        evidence = row[7]
        if isinstance(evidence, str):
            evidence = json.loads(evidence)
        return {
            "fingerprint": row[0],
            "path": row[1],
            "subject": row[2],
            "is_constrained": row[3],
            "reason_code": row[4],
            "rationale": row[5],
            "applied_rule": row[6],
            "evidence": evidence,
        }
