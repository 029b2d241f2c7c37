"""
Database connection and schema management for the constraint audit.

This module provides:
- DuckDB connection lifecycle management
- Audit result table keyed by run and certificate fingerprint
- Audit run metadata tracking
"""
import duckdb
from datetime import datetime, timezone
from typing import Optional


class Database:
    """
    Manages DuckDB connection and schema initialization.

    This class is responsible for:
    - Creating and maintaining a single database connection
    - Setting up the audit_results and audit_runs tables
    - Providing run ID generation for audit execution tracking
    """

    def __init__(self, db_path: str = "constraint_audit.duckdb"):
        """
        Initialize database manager.

        Args:
            db_path: Path to DuckDB database file (created if doesn't exist)
        """
        self.db_path = db_path
        self.conn: Optional[duckdb.DuckDBPyConnection] = None

    def connect(self) -> duckdb.DuckDBPyConnection:
        """Get or create database connection."""
        if self.conn is None:
            self.conn = duckdb.connect(self.db_path)
        return self.conn

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def initialize_schema(self):
        """
        Create all required tables if they don't exist.

        Tables created:
        - audit_results: One decision per certificate per run
        - audit_runs: Audit execution metadata
        """
        conn = self.connect()

        conn.execute("""
            CREATE TABLE IF NOT EXISTS audit_results (
                run_id VARCHAR NOT NULL,
                fingerprint VARCHAR NOT NULL,
                path VARCHAR,
                subject VARCHAR,
                serial_number VARCHAR,
                not_before TIMESTAMP,
                is_constrained BOOLEAN NOT NULL,
                reason_code VARCHAR,
                rationale VARCHAR,
                applied_rule VARCHAR,
                evidence JSON,
                evaluated_at TIMESTAMP,
                PRIMARY KEY (run_id, fingerprint)
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS audit_runs (
                run_id VARCHAR PRIMARY KEY,
                started_at TIMESTAMP,
                completed_at TIMESTAMP,
                certificates_total INTEGER,
                constrained INTEGER,
                unconstrained INTEGER,
                errors INTEGER,
                metadata JSON
            )
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_ar_fingerprint
            ON audit_results(fingerprint)
        """)

    @staticmethod
    def get_current_run_id() -> str:
        """
        Generate a unique run ID for this audit execution.

        Returns:
            Run ID in format: run_YYYYMMDD_HHMMSS
        """
        return f"run_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}"

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
