"""
File-system source of CA certificates.

Resolves file and directory arguments to certificate files, decodes each
one and normalizes it into a CertificateRecord carrying the facts the
rule engine needs plus identifying metadata for reports and storage.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from decisioning.facts import CertificateConstraintFacts
from .decoder import CertificateDecodeError, decode_certificate, extract_facts, get_extension


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertificateRecord:
    """
    One decoded certificate.

    name_constraints_critical is None when the certificate has no
    nameConstraints extension.
    """
    path: str
    fingerprint: str              # SHA-256 of the DER encoding, hex
    subject: str                  # RFC 4514 string
    serial_number: str            # hex
    name_constraints_critical: Optional[bool]
    facts: CertificateConstraintFacts


@dataclass
class SourceHealth:
    """Health status of a certificate source."""
    source_id: str
    is_healthy: bool
    last_fetch: Optional[datetime]
    records_fetched: int
    failures: int = 0
    error_message: Optional[str] = None


class CertificateFileSource:
    """
    Loads certificates from files and directories.

    Config keys:
    - extensions: file suffixes picked up when scanning a directory
    - recursive: descend into subdirectories
    - skip_invalid: log and record undecodable files instead of aborting
    """

    DEFAULT_EXTENSIONS = (".pem", ".crt", ".cer", ".der")

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.config = config
        self.source_id = "certificates"
        self.extensions = tuple(
            ext.lower() for ext in config.get("extensions", self.DEFAULT_EXTENSIONS)
        )
        self.recursive = bool(config.get("recursive", False))
        self.skip_invalid = bool(config.get("skip_invalid", False))
        self.failures: List[Dict[str, str]] = []
        self._last_fetch: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._records_fetched: int = 0

    def resolve_paths(self, paths: Iterable[str]) -> List[Path]:
        """
        Expand path arguments into certificate files.

        Raises:
            FileNotFoundError: If any argument does not exist
        """
        resolved = []
        for raw in paths:
            path = Path(raw)
            if not path.exists():
                raise FileNotFoundError(f"Could not open file {raw}")

            if path.is_dir():
                pattern = "**/*" if self.recursive else "*"
                found = sorted(
                    p for p in path.glob(pattern)
                    if p.is_file() and p.suffix.lower() in self.extensions
                )
                if not found:
                    logger.warning(f"No certificate files found in {path}")
                resolved.extend(found)
            else:
                resolved.append(path)

        return resolved

    def fetch(self, paths: Iterable[str]) -> List[CertificateRecord]:
        """
        Decode every certificate under the given paths.

        Raises:
            FileNotFoundError: If a path does not exist
            CertificateDecodeError: If a file fails to decode and skip_invalid is off
        """
        self._last_fetch = datetime.now(timezone.utc)
        self.failures = []
        records = []

        try:
            for path in self.resolve_paths(paths):
                try:
                    records.append(self.load(path))
                except CertificateDecodeError as e:
                    if not self.skip_invalid:
                        raise
                    logger.warning(f"Skipping {path}: {e}")
                    self.failures.append({"path": str(path), "error": str(e)})
        except (OSError, CertificateDecodeError) as e:
            self._last_error = str(e)
            self._records_fetched = 0
            raise

        self._records_fetched = len(records)
        self._last_error = None
        return records

    def load(self, path: Path) -> CertificateRecord:
        """Read and decode a single certificate file."""
        data = Path(path).read_bytes()
        cert = decode_certificate(data)
        return self.normalize(cert, path=str(path))

    def normalize(self, cert: x509.Certificate, path: str) -> CertificateRecord:
        """Transform a parsed certificate into a CertificateRecord."""
        name_constraints = get_extension(cert, x509.NameConstraints)

        return CertificateRecord(
            path=path,
            fingerprint=cert.fingerprint(hashes.SHA256()).hex(),
            subject=cert.subject.rfc4514_string(),
            serial_number=format(cert.serial_number, "x"),
            name_constraints_critical=name_constraints.critical if name_constraints else None,
            facts=extract_facts(cert)
        )

    def get_health(self) -> SourceHealth:
        """Return health status of this source."""
        return SourceHealth(
            source_id=self.source_id,
            is_healthy=self._last_error is None,
            last_fetch=self._last_fetch,
            records_fetched=self._records_fetched,
            failures=len(self.failures),
            error_message=self._last_error
        )
