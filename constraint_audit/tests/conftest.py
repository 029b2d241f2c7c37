"""
Shared pytest fixtures for constraint audit tests.

Certificates are generated on the fly as self-signed CAs so every test
controls exactly which extensions are present.
"""
import ipaddress
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from decisioning import CertificateConstraintFacts, ExtKeyUsage
from storage import Database


AFTER_CUTOFF = datetime(2017, 12, 1, 23, 59, 59, tzinfo=timezone.utc)
EXAMPLE_DNS = (".example.com", "example.com")


@pytest.fixture(scope="session")
def ca_key():
    """Signing key shared by all generated certificates."""
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def make_certificate(ca_key):
    """
    Factory for self-signed certificates, CAs unless ca=False.

    Args (keyword):
        not_before: notBefore timestamp
        ext_key_usages: list of EKU OIDs; None omits the extension
        permitted: list of GeneralName permitted subtrees
        excluded: list of GeneralName excluded subtrees
        critical: criticality of the nameConstraints extension
        common_name: subject CN
        ca: BasicConstraints cA flag
    """
    def _make(
        not_before=AFTER_CUTOFF,
        ext_key_usages=None,
        permitted=None,
        excluded=None,
        critical=True,
        common_name="Σ Acme Co",
        ca=True
    ):
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(ca_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(datetime(2035, 12, 1, tzinfo=timezone.utc))
            .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        )

        if ext_key_usages is not None:
            builder = builder.add_extension(x509.ExtendedKeyUsage(ext_key_usages), critical=False)

        if permitted or excluded:
            builder = builder.add_extension(
                x509.NameConstraints(
                    permitted_subtrees=permitted or None,
                    excluded_subtrees=excluded or None
                ),
                critical=critical
            )

        return builder.sign(ca_key, hashes.SHA256())

    return _make


@pytest.fixture
def write_certificate(tmp_path):
    """Write a certificate to tmp_path as PEM (default) or DER and return the path."""
    def _write(cert, name="ca.pem", encoding=serialization.Encoding.PEM):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(cert.public_bytes(encoding))
        return path

    return _write


@pytest.fixture
def constrained_ca(make_certificate):
    """ServerAuth CA constrained by DNS names and full-range IP exclusions."""
    return make_certificate(
        ext_key_usages=[ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH],
        permitted=[x509.DNSName(d) for d in EXAMPLE_DNS],
        excluded=[
            x509.IPAddress(ipaddress.ip_network("0.0.0.0/0")),
            x509.IPAddress(ipaddress.ip_network("::/0")),
        ]
    )


@pytest.fixture
def unconstrained_ca(make_certificate):
    """ServerAuth CA with no name constraints."""
    return make_certificate(ext_key_usages=[ExtendedKeyUsageOID.SERVER_AUTH])


@pytest.fixture
def server_auth_facts():
    """Factory for facts of a serverAuth CA issued after the step-up cutoff."""
    def _make(**overrides):
        values = {
            'extended_key_usages': {ExtKeyUsage.CLIENT_AUTH, ExtKeyUsage.SERVER_AUTH},
            'not_before': AFTER_CUTOFF,
            'permitted_dns_domains': EXAMPLE_DNS,
        }
        values.update(overrides)
        return CertificateConstraintFacts(**values)

    return _make


@pytest.fixture
def temp_db():
    """
    Create a temporary database for testing.

    Yields:
        Database instance with schema initialized
    """
    with tempfile.NamedTemporaryFile(suffix=".duckdb", delete=True) as f:
        db_path = f.name

    db = Database(db_path)
    db.initialize_schema()
    yield db
    db.close()

    Path(db_path).unlink(missing_ok=True)
