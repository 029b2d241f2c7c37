"""
Storage layer for the certificate constraint audit.

Persists audit decisions in DuckDB so classifications can be compared
across runs.

Usage:
    from storage import Database, ResultStore

    db = Database("constraint_audit.duckdb")
    db.initialize_schema()

    store = ResultStore(db)
    store.save_results(results, run_id)
"""

from .database import Database
from .result_store import AuditResult, ResultStore

__all__ = [
    "Database",
    "ResultStore",
    "AuditResult",
]
