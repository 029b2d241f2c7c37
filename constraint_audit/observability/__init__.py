"""
Observability layer for the certificate constraint audit.

Main exports:
- AuditMetrics: Tracks metrics for an audit run
- AuditReporter: Console summaries and Markdown reports
"""
from .metrics import AuditMetrics
from .reporter import AuditReporter

__all__ = [
    "AuditMetrics",
    "AuditReporter",
]
