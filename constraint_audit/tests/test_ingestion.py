"""
Tests for certificate decoding and the file source.

Certificates are generated per test, written to disk and read back so
the decoder sees real PEM and DER encodings.
"""
import ipaddress
from datetime import datetime, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtendedKeyUsageOID

from decisioning import ExtKeyUsage, IPSubtree, IPV4_FULL_RANGE, IPV6_FULL_RANGE, evaluate
from ingestion import (
    CertificateFileSource,
    CertificateParseError,
    UnknownPemTypeError,
    decode_certificate,
    extract_facts,
)


NETSCAPE_STEP_UP = x509.ObjectIdentifier("2.16.840.1.113730.4.1")
DEC_2014 = datetime(2014, 12, 1, 23, 59, 59, tzinfo=timezone.utc)
DEC_2017 = datetime(2017, 12, 1, 23, 59, 59, tzinfo=timezone.utc)
EXAMPLE_DNS = [x509.DNSName(".example.com"), x509.DNSName("example.com")]
FULL_EXCLUSIONS = [
    x509.IPAddress(ipaddress.ip_network("0.0.0.0/0")),
    x509.IPAddress(ipaddress.ip_network("::/0")),
]


def test_decode_pem_and_der(constrained_ca):
    pem = constrained_ca.public_bytes(serialization.Encoding.PEM)
    der = constrained_ca.public_bytes(serialization.Encoding.DER)

    assert decode_certificate(pem) == constrained_ca
    assert decode_certificate(der) == constrained_ca


def test_decode_rejects_other_pem_types(ca_key):
    key_pem = ca_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption()
    )

    with pytest.raises(UnknownPemTypeError, match="Unknown PEM type: PRIVATE KEY"):
        decode_certificate(key_pem)


def test_decode_rejects_garbage():
    with pytest.raises(CertificateParseError):
        decode_certificate(b"not a certificate")

    with pytest.raises(CertificateParseError):
        decode_certificate(b"-----BEGIN CERTIFICATE-----\nAAAA\n-----END CERTIFICATE-----\n")


def test_decode_errors_are_value_errors():
    with pytest.raises(ValueError):
        decode_certificate(b"\x30\x03\x02\x01\x01")


class TestExtractFacts:
    """Mapping of certificate extensions onto facts."""

    def test_no_extensions(self, make_certificate):
        facts = extract_facts(make_certificate(not_before=DEC_2014))

        assert facts.extended_key_usages == frozenset()
        assert facts.not_before == DEC_2014.replace(microsecond=0)
        assert facts.permitted_dns_domains == ()
        assert facts.excluded_ip_subtrees == ()

    def test_usage_mapping(self, make_certificate):
        cert = make_certificate(ext_key_usages=[
            ExtendedKeyUsageOID.SERVER_AUTH,
            ExtendedKeyUsageOID.CLIENT_AUTH,
            NETSCAPE_STEP_UP,
            x509.ObjectIdentifier("1.3.6.1.5.5.7.3.5"),
            x509.ObjectIdentifier("1.2.3.4.5"),
        ])

        facts = extract_facts(cert)

        assert facts.extended_key_usages == {
            ExtKeyUsage.SERVER_AUTH,
            ExtKeyUsage.CLIENT_AUTH,
            ExtKeyUsage.LEGACY_NETSCAPE_STEP_UP,
            ExtKeyUsage.OTHER,
        }

    def test_unrecognised_usages_dropped(self, make_certificate):
        cert = make_certificate(ext_key_usages=[x509.ObjectIdentifier("1.2.3.4.5")])
        assert extract_facts(cert).extended_key_usages == frozenset()

    def test_any_usage(self, make_certificate):
        cert = make_certificate(ext_key_usages=[ExtendedKeyUsageOID.ANY_EXTENDED_KEY_USAGE])
        assert extract_facts(cert).extended_key_usages == {ExtKeyUsage.ANY}

    def test_name_constraints_split(self, constrained_ca):
        facts = extract_facts(constrained_ca)

        assert facts.permitted_dns_domains == (".example.com", "example.com")
        assert facts.excluded_dns_domains == ()
        assert facts.permitted_ip_subtrees == ()
        assert facts.excluded_ip_subtrees == (IPV4_FULL_RANGE, IPV6_FULL_RANGE)

    def test_permitted_ip_subtrees(self, make_certificate):
        cert = make_certificate(
            ext_key_usages=[ExtendedKeyUsageOID.SERVER_AUTH],
            permitted=EXAMPLE_DNS + [x509.IPAddress(ipaddress.ip_network("128.0.0.0/24"))],
            excluded=[x509.DNSName("bad.example.com")]
        )

        facts = extract_facts(cert)

        assert facts.permitted_ip_subtrees == (IPSubtree.parse("128.0.0.0/24"),)
        assert facts.excluded_dns_domains == ("bad.example.com",)


class TestDecodedCertificates:
    """End-to-end decisions on generated certificates."""

    def test_no_constraints(self, make_certificate):
        cert = make_certificate(not_before=datetime(2009, 12, 1, tzinfo=timezone.utc))
        assert evaluate(extract_facts(cert)).is_constrained is False

    def test_only_unrecognised_usage(self, make_certificate):
        cert = make_certificate(
            ext_key_usages=[x509.ObjectIdentifier("1.2.3.4.5")],
            permitted=EXAMPLE_DNS,
            excluded=FULL_EXCLUSIONS
        )

        decision = evaluate(extract_facts(cert))

        assert decision.is_constrained is False
        assert decision.rationale == "ExtKeyUsage is required"

    def test_not_a_ca(self, make_certificate):
        cert = make_certificate(ca=False)

        decision = evaluate(extract_facts(cert))

        assert decision.is_constrained is False
        assert decision.rationale == "ExtKeyUsage is required"

    def test_any_usage_with_step_up(self, make_certificate):
        cert = make_certificate(
            not_before=DEC_2014,
            ext_key_usages=[ExtendedKeyUsageOID.ANY_EXTENDED_KEY_USAGE, NETSCAPE_STEP_UP],
            permitted=EXAMPLE_DNS,
            excluded=FULL_EXCLUSIONS
        )
        assert evaluate(extract_facts(cert)).is_constrained is False

    def test_2014_step_up_constrained(self, make_certificate):
        cert = make_certificate(
            not_before=DEC_2014,
            ext_key_usages=[NETSCAPE_STEP_UP],
            permitted=EXAMPLE_DNS,
            excluded=FULL_EXCLUSIONS
        )
        assert evaluate(extract_facts(cert)).is_constrained is True

    def test_2014_step_up_unconstrained(self, make_certificate):
        cert = make_certificate(not_before=DEC_2014, ext_key_usages=[NETSCAPE_STEP_UP])
        assert evaluate(extract_facts(cert)).is_constrained is False

    def test_2017_without_ipv6(self, make_certificate):
        cert = make_certificate(
            not_before=DEC_2017,
            ext_key_usages=[ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH],
            permitted=EXAMPLE_DNS,
            excluded=FULL_EXCLUSIONS[:1]
        )
        assert evaluate(extract_facts(cert)).is_constrained is False

    def test_2017_with_excluded_ips(self, constrained_ca):
        assert evaluate(extract_facts(constrained_ca)).is_constrained is True

    def test_2017_with_permitted_ips(self, make_certificate):
        cert = make_certificate(
            not_before=DEC_2017,
            ext_key_usages=[ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH],
            permitted=EXAMPLE_DNS + [
                x509.IPAddress(ipaddress.ip_network("128.0.0.1/24", strict=False)),
                x509.IPAddress(ipaddress.ip_network("::1/0", strict=False)),
            ]
        )
        assert evaluate(extract_facts(cert)).is_constrained is True


class TestCertificateFileSource:
    """Resolving paths and loading records."""

    def test_load_single_file(self, constrained_ca, write_certificate):
        path = write_certificate(constrained_ca)
        source = CertificateFileSource()

        records = source.fetch([str(path)])

        assert len(records) == 1
        record = records[0]
        assert record.path == str(path)
        assert record.subject == "CN=Σ Acme Co"
        assert record.name_constraints_critical is True
        assert len(record.fingerprint) == 64
        assert source.get_health().is_healthy
        assert source.get_health().records_fetched == 1

    def test_unconstrained_record_has_no_criticality(self, unconstrained_ca, write_certificate):
        path = write_certificate(unconstrained_ca, encoding=serialization.Encoding.DER, name="ca.der")

        record = CertificateFileSource().fetch([str(path)])[0]

        assert record.name_constraints_critical is None
        assert record.facts.extended_key_usages == {ExtKeyUsage.SERVER_AUTH}

    def test_directory_scan_filters_extensions(
        self, tmp_path, constrained_ca, unconstrained_ca, write_certificate
    ):
        write_certificate(constrained_ca, name="a.pem")
        write_certificate(unconstrained_ca, name="b.crt")
        write_certificate(unconstrained_ca, name="nested/c.pem")
        (tmp_path / "notes.txt").write_text("ignore me")

        flat = CertificateFileSource().fetch([str(tmp_path)])
        recursive = CertificateFileSource({"recursive": True}).fetch([str(tmp_path)])

        assert [r.path.rsplit("/", 1)[-1] for r in flat] == ["a.pem", "b.crt"]
        assert len(recursive) == 3

    def test_missing_path_raises(self, tmp_path):
        source = CertificateFileSource()

        with pytest.raises(FileNotFoundError):
            source.fetch([str(tmp_path / "missing.pem")])

        assert not source.get_health().is_healthy

    def test_invalid_file_aborts_by_default(self, tmp_path, constrained_ca, write_certificate):
        write_certificate(constrained_ca, name="good.pem")
        (tmp_path / "bad.pem").write_bytes(b"-----BEGIN PUBLIC KEY-----\nAAAA\n-----END PUBLIC KEY-----\n")

        with pytest.raises(UnknownPemTypeError):
            CertificateFileSource().fetch([str(tmp_path)])

    def test_skip_invalid_records_failures(self, tmp_path, constrained_ca, write_certificate):
        write_certificate(constrained_ca, name="good.pem")
        (tmp_path / "bad.pem").write_bytes(b"garbage")
        source = CertificateFileSource({"skip_invalid": True})

        records = source.fetch([str(tmp_path)])

        assert len(records) == 1
        assert len(source.failures) == 1
        assert source.failures[0]["path"].endswith("bad.pem")
        assert source.get_health().failures == 1
