"""
Metrics collection for audit runs.

AuditMetrics tracks everything observable about a single audit execution:
- Counts of certificates evaluated, constrained and unconstrained
- Which rules decided and how often
- Files that could not be decoded
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Any, Optional
from collections import defaultdict


@dataclass
class AuditMetrics:
    """
    Metrics for a single audit run.

    Serializable via to_dict() for the audit_runs table and JSON export.
    """
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None

    certificates_total: int = 0
    constrained: int = 0
    unconstrained: int = 0
    errors: int = 0

    # Key: "R2:NOT_SERVER_AUTH", Value: count
    rules_fired: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    failures: List[Dict[str, Any]] = field(default_factory=list)

    def record_decision(self, decision) -> None:
        """Count one Decision."""
        self.certificates_total += 1
        if decision.is_constrained:
            self.constrained += 1
        else:
            self.unconstrained += 1
        self.rules_fired[f"{decision.applied_rule}:{decision.reason_code}"] += 1

    def record_error(self, error: str, context: Dict = None):
        """
        Record an error encountered during the run.

        Args:
            error: Error message
            context: Optional dict with additional context (e.g., path)
        """
        self.errors += 1
        self.failures.append({
            "message": error,
            "context": context or {}
        })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "certificates_total": self.certificates_total,
            "constrained": self.constrained,
            "unconstrained": self.unconstrained,
            "errors": self.errors,
            "rules_fired": dict(self.rules_fired),
            "failures": self.failures
        }
