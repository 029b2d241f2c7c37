#!/usr/bin/env python3
"""
Technical constraint audit for CA certificates.

This module coordinates a complete audit:
1. Loading: Decode certificates from the given files and directories
2. Decisioning: Classify each certificate with the rule chain
3. Persistence: Store decisions in DuckDB (when a database is configured)
4. Reporting: Print per-certificate constraints, export JSON, write a Markdown report

Decode failures (missing file, non-certificate PEM, unparsable bytes) abort
the audit before any certificate is evaluated, unless skip_invalid is set.

Usage:
    python run_audit.py path/to/ca.pem [more paths...] [--config config.yaml]
"""
import sys
import copy
import json
import yaml
import duckdb
import logging
import argparse
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from decisioning import DecisionExplainer, RuleEngine
from ingestion import CertificateDecodeError, CertificateFileSource
from observability import AuditMetrics, AuditReporter
from storage import AuditResult, Database, ResultStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "sources": {
        "certificates": {
            "extensions": [".pem", ".crt", ".cer", ".der"],
            "recursive": False,
            "skip_invalid": False,
        },
    },
    "database": {"path": None},
    "output": {
        "directory": "output",
        "export_json": False,
        "report": False,
    },
    "explanations": {},
    "logging": {"level": "INFO"},
}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load YAML configuration layered over DEFAULT_CONFIG.

    Raises:
        FileNotFoundError: If config_path is given but missing
        ValueError: If the file is not a mapping or has unknown sections
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    if config_path is None:
        return config

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        loaded = yaml.safe_load(f) or {}

    if not isinstance(loaded, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    unknown = set(loaded) - set(DEFAULT_CONFIG)
    if unknown:
        raise ValueError(f"Unknown config sections: {', '.join(sorted(unknown))}")

    for section, values in loaded.items():
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Config section '{section}' must be a mapping")

        if section == "sources":
            for source_name, source_config in values.items():
                config["sources"].setdefault(source_name, {}).update(source_config or {})
        else:
            config[section].update(values)

    return config


class CertificateAudit:
    """
    Audit orchestrator that coordinates all stages.

    A single run_id tracks the execution. Decisions are computed purely
    from decoded facts; everything with side effects (storage, exports)
    happens after evaluation.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize audit with configuration.

        Args:
            config: Configuration as returned by load_config()
        """
        self.config = config
        self.source = CertificateFileSource(config["sources"]["certificates"])
        self.engine = RuleEngine(explainer=DecisionExplainer(config.get("explanations")))
        self.reporter = AuditReporter()
        self.output_dir = Path(config["output"]["directory"])

        db_path = config["database"].get("path")
        self.db = Database(db_path) if db_path else None

    def run(self, paths: Iterable[str]) -> Tuple[AuditMetrics, List[AuditResult]]:
        """
        Execute complete audit run.

        Returns:
            Metrics and per-certificate results

        Raises:
            RuntimeError: If loading or persistence fails
        """
        run_id = Database.get_current_run_id()
        metrics = AuditMetrics(run_id=run_id, started_at=datetime.now(timezone.utc))

        logger.info(f"=== Starting Audit Run: {run_id} ===")

        try:
            logger.info("Stage 1: Loading certificates")
            records = self.source.fetch(paths)
        except (OSError, CertificateDecodeError) as e:
            metrics.record_error(str(e))
            logger.error(f"Could not process certificates: {e}")
            raise RuntimeError(f"Audit failed: {e}") from e

        for failure in self.source.failures:
            metrics.record_error(failure["error"], {"path": failure["path"]})

        logger.info(f"Stage 2: Evaluating {len(records)} certificates")
        results = []
        for record in records:
            decision = self.engine.decide(record.facts)
            metrics.record_decision(decision)
            results.append(AuditResult(record=record, decision=decision))
            logger.info(
                f"{record.path} result: {decision.is_constrained} details: {decision.rationale}"
            )

        metrics.completed_at = datetime.now(timezone.utc)

        if self.db:
            logger.info("Stage 3: Storing results")
            self._store_results(results, metrics)

        logger.info("Stage 4: Writing outputs")
        if self.config["output"].get("export_json"):
            self.export_json(results, metrics)
        if self.config["output"].get("report"):
            report = self.reporter.generate_report(metrics, results)
            report_path = self.reporter.save_report(report, self.output_dir)
            logger.info(f"  Report: {report_path}")

        logger.info("=== Audit Complete ===")
        return metrics, results

    def _store_results(self, results: List[AuditResult], metrics: AuditMetrics):
        try:
            with self.db:
                self.db.initialize_schema()
                store = ResultStore(self.db)
                stored = store.save_results(results, metrics.run_id)
                store.record_run(metrics)
        except duckdb.Error as e:
            metrics.record_error(f"Storage failed: {e}")
            logger.error(f"Failed to store results in {self.db.db_path}: {e}")
            raise RuntimeError(f"Audit failed: {e}") from e

        logger.info(f"  Stored {stored} results in {self.db.db_path}")

    def export_json(self, results: List[AuditResult], metrics: AuditMetrics) -> Path:
        """
        Export results to output/audit_results.json.

        Output format:
        {
          "generated_at": "2024-01-11T12:00:00+00:00",
          "run_id": "run_20240111_120000",
          "certificate_count": 2,
          "results": [...]
        }
        """
        output = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "run_id": metrics.run_id,
            "certificate_count": len(results),
            "results": [result.to_dict() for result in results]
        }

        output_path = self.output_dir / "audit_results.json"
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w") as f:
            json.dump(output, f, indent=2)

        logger.info(f"  Exported {len(results)} results to {output_path}")
        return output_path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Determine whether CA certificates are technically constrained"
    )
    parser.add_argument(
        "paths",
        nargs="+",
        help="Certificate files (PEM or DER) or directories containing them"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML configuration file"
    )
    parser.add_argument("--db", help="DuckDB file to store results in")
    parser.add_argument("--json", action="store_true", help="Export results to JSON")
    parser.add_argument("--report", action="store_true", help="Write a Markdown report")
    parser.add_argument("--output-dir", help="Directory for JSON and report output")
    parser.add_argument("--recursive", action="store_true", help="Descend into subdirectories")
    parser.add_argument(
        "--skip-invalid",
        action="store_true",
        help="Skip certificates that fail to decode instead of aborting"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Apply command line flags on top of the loaded configuration."""
    certificates = config["sources"]["certificates"]
    if args.recursive:
        certificates["recursive"] = True
    if args.skip_invalid:
        certificates["skip_invalid"] = True
    if args.db:
        config["database"]["path"] = args.db
    if args.json:
        config["output"]["export_json"] = True
    if args.report:
        config["output"]["report"] = True
    if args.output_dir:
        config["output"]["directory"] = args.output_dir
    if args.verbose:
        config["logging"]["level"] = "DEBUG"
    return config


def main(argv: Optional[List[str]] = None):
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config), args)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logging.getLogger().setLevel(str(config["logging"].get("level", "INFO")).upper())

    try:
        audit = CertificateAudit(config)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    try:
        metrics, results = audit.run(args.paths)
    except RuntimeError as e:
        logger.error(f"Audit failed: {e}")
        sys.exit(1)

    for result in results:
        print(audit.reporter.format_certificate(result.record))
        print(f"Technically constrained: {result.decision.is_constrained}")
        print(f"Details: {result.decision.rationale}")

    print("\n" + "=" * 60)
    print("Audit Summary")
    print("=" * 60)
    print(f"Run ID: {metrics.run_id}")
    print(f"Certificates: {metrics.certificates_total}")
    print(f"Constrained: {metrics.constrained}")
    print(f"Not constrained: {metrics.unconstrained}")
    print(f"Errors: {metrics.errors}")
    print("=" * 60)

    sys.exit(0)


if __name__ == "__main__":
    main()
