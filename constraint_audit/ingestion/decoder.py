"""
Certificate decoding and fact extraction.

Turns PEM or DER bytes into a parsed certificate and then into the
CertificateConstraintFacts the decisioning layer consumes. All parse
failures surface here as CertificateDecodeError subclasses, before any
rule is evaluated.
"""
import re
from typing import Iterable, List, Optional, Tuple

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID

from decisioning.facts import CertificateConstraintFacts, ExtKeyUsage, IPSubtree


PEM_LABEL = re.compile(rb"-----BEGIN ([A-Z0-9 ]+)-----")

NETSCAPE_STEP_UP_OID = x509.ObjectIdentifier("2.16.840.1.113730.4.1")
MICROSOFT_SERVER_GATED_CRYPTO_OID = x509.ObjectIdentifier("1.3.6.1.4.1.311.10.3.3")

# Recognised purposes with no bearing on constraint status
OTHER_KNOWN_USAGE_OIDS = (
    x509.ObjectIdentifier("1.3.6.1.5.5.7.3.5"),  # IPSEC end system
    x509.ObjectIdentifier("1.3.6.1.5.5.7.3.6"),  # IPSEC tunnel
    x509.ObjectIdentifier("1.3.6.1.5.5.7.3.7"),  # IPSEC user
    x509.ObjectIdentifier("1.3.6.1.4.1.311.2.1.22"),  # Microsoft commercial code signing
    x509.ObjectIdentifier("1.3.6.1.4.1.311.61.1.1"),  # Microsoft kernel code signing
)

EXT_KEY_USAGE_BY_OID = {
    ExtendedKeyUsageOID.ANY_EXTENDED_KEY_USAGE: ExtKeyUsage.ANY,
    ExtendedKeyUsageOID.SERVER_AUTH: ExtKeyUsage.SERVER_AUTH,
    ExtendedKeyUsageOID.CLIENT_AUTH: ExtKeyUsage.CLIENT_AUTH,
    ExtendedKeyUsageOID.CODE_SIGNING: ExtKeyUsage.CODE_SIGNING,
    ExtendedKeyUsageOID.EMAIL_PROTECTION: ExtKeyUsage.EMAIL_PROTECTION,
    ExtendedKeyUsageOID.TIME_STAMPING: ExtKeyUsage.TIME_STAMPING,
    ExtendedKeyUsageOID.OCSP_SIGNING: ExtKeyUsage.OCSP_SIGNING,
    MICROSOFT_SERVER_GATED_CRYPTO_OID: ExtKeyUsage.MICROSOFT_SERVER_GATED_CRYPTO,
    NETSCAPE_STEP_UP_OID: ExtKeyUsage.LEGACY_NETSCAPE_STEP_UP,
    **{oid: ExtKeyUsage.OTHER for oid in OTHER_KNOWN_USAGE_OIDS},
}


class CertificateDecodeError(ValueError):
    """Raised when input bytes cannot be turned into certificate facts."""


class UnknownPemTypeError(CertificateDecodeError):
    """Raised when a PEM block is not a CERTIFICATE."""


class CertificateParseError(CertificateDecodeError):
    """Raised when certificate bytes fail to parse."""


def decode_certificate(data: bytes) -> x509.Certificate:
    """
    Parse PEM or DER certificate bytes.

    Input containing a PEM header is treated as PEM and its first block must
    be labelled CERTIFICATE; anything else is parsed as DER.

    Raises:
        UnknownPemTypeError: PEM block has another label (e.g. PRIVATE KEY)
        CertificateParseError: bytes are not a valid certificate
    """
    match = PEM_LABEL.search(data)
    if match:
        label = match.group(1).decode("ascii")
        if label != "CERTIFICATE":
            raise UnknownPemTypeError(f"Unknown PEM type: {label}")
        loader = x509.load_pem_x509_certificate
    else:
        loader = x509.load_der_x509_certificate

    try:
        return loader(data)
    except ValueError as e:
        raise CertificateParseError(f"Could not parse certificate: {e}") from e


def extract_facts(cert: x509.Certificate) -> CertificateConstraintFacts:
    """Extract the decision-relevant extension values from a certificate."""
    eku = get_extension(cert, x509.ExtendedKeyUsage)
    usages = []
    if eku:
        # Unrecognised OIDs are dropped, so an EKU listing only those reads as empty
        usages = [EXT_KEY_USAGE_BY_OID[oid] for oid in eku.value if oid in EXT_KEY_USAGE_BY_OID]

    permitted_dns, permitted_ips = (), ()
    excluded_dns, excluded_ips = (), ()

    name_constraints = get_extension(cert, x509.NameConstraints)
    if name_constraints:
        permitted_dns, permitted_ips = _split_subtrees(name_constraints.value.permitted_subtrees)
        excluded_dns, excluded_ips = _split_subtrees(name_constraints.value.excluded_subtrees)

    return CertificateConstraintFacts(
        extended_key_usages=frozenset(usages),
        not_before=cert.not_valid_before_utc,
        permitted_dns_domains=permitted_dns,
        excluded_dns_domains=excluded_dns,
        permitted_ip_subtrees=permitted_ips,
        excluded_ip_subtrees=excluded_ips
    )


def get_extension(cert: x509.Certificate, extension_class) -> Optional[x509.Extension]:
    """Return the extension of the given class, or None if absent."""
    try:
        return cert.extensions.get_extension_for_class(extension_class)
    except x509.ExtensionNotFound:
        return None
    except ValueError as e:
        # Duplicate or malformed extensions are rejected lazily by cryptography
        raise CertificateParseError(f"Could not parse certificate extensions: {e}") from e


def _split_subtrees(
    subtrees: Optional[Iterable[x509.GeneralName]]
) -> Tuple[Tuple[str, ...], Tuple[IPSubtree, ...]]:
    dns_names: List[str] = []
    ip_subtrees: List[IPSubtree] = []

    for name in subtrees or []:
        if isinstance(name, x509.DNSName):
            dns_names.append(name.value)
        elif isinstance(name, x509.IPAddress):
            ip_subtrees.append(IPSubtree.from_network(name.value))

    return tuple(dns_names), tuple(ip_subtrees)
