"""
Ingestion layer for the certificate constraint audit.

Decodes PEM/DER certificates from disk into the facts consumed by the
decisioning layer.
"""
from .certificate_source import CertificateFileSource, CertificateRecord, SourceHealth
from .decoder import (
    CertificateDecodeError,
    CertificateParseError,
    UnknownPemTypeError,
    decode_certificate,
    extract_facts,
)

__all__ = [
    "CertificateFileSource",
    "CertificateRecord",
    "SourceHealth",
    "CertificateDecodeError",
    "CertificateParseError",
    "UnknownPemTypeError",
    "decode_certificate",
    "extract_facts",
]
