"""
Certificate facts consumed by the constraint decision rules.

The decoder in the ingestion layer produces one CertificateConstraintFacts
per certificate. Rules only ever read these values; nothing in the
decisioning layer touches encoded certificate bytes.

Policy constants live here so callers and tests can refer to them by name:
- STEP_UP_CUTOFF: certificates with notBefore at or after this instant get no step-up equivalence
- IPV4_FULL_RANGE / IPV6_FULL_RANGE: the zero network that spans a whole address family
"""
import ipaddress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, Iterable, Tuple, Union


STEP_UP_CUTOFF = datetime(2016, 8, 23, 0, 0, 0, tzinfo=timezone.utc)


class ExtKeyUsage(Enum):
    """Extended key usage tags the decoder can report."""
    ANY = "any"
    SERVER_AUTH = "server_auth"
    CLIENT_AUTH = "client_auth"
    CODE_SIGNING = "code_signing"
    EMAIL_PROTECTION = "email_protection"
    TIME_STAMPING = "time_stamping"
    OCSP_SIGNING = "ocsp_signing"
    MICROSOFT_SERVER_GATED_CRYPTO = "microsoft_server_gated_crypto"
    LEGACY_NETSCAPE_STEP_UP = "legacy_netscape_step_up"
    OTHER = "other"


class AddressFamily(Enum):
    """IP address family, valued by its address length in bytes."""
    IPV4 = 4
    IPV6 = 16

    @property
    def byte_length(self) -> int:
        return self.value


@dataclass(frozen=True)
class IPSubtree:
    """
    One iPAddress entry of a name constraints subtree.

    network and mask are raw bytes as carried in the certificate, so a
    truncated mask survives intact and can be judged by the rules.
    """
    family: AddressFamily
    network: bytes
    mask: bytes

    @classmethod
    def from_network(
        cls,
        network: Union[ipaddress.IPv4Network, ipaddress.IPv6Network]
    ) -> "IPSubtree":
        family = AddressFamily.IPV4 if network.version == 4 else AddressFamily.IPV6
        return cls(
            family=family,
            network=network.network_address.packed,
            mask=network.netmask.packed
        )

    @classmethod
    def parse(cls, cidr: str) -> "IPSubtree":
        """Build a subtree from CIDR text; host bits are masked off."""
        return cls.from_network(ipaddress.ip_network(cidr, strict=False))

    def __str__(self) -> str:
        try:
            address = ipaddress.ip_address(self.network)
        except ValueError:
            return f"{self.family.name}:{self.network.hex()}/{self.mask.hex()}"

        prefix = sum(bin(b).count("1") for b in self.mask)
        return f"{address}/{prefix}"


IPV4_FULL_RANGE = IPSubtree(AddressFamily.IPV4, bytes(4), bytes(4))
IPV6_FULL_RANGE = IPSubtree(AddressFamily.IPV6, bytes(16), bytes(16))


@dataclass(frozen=True)
class CertificateConstraintFacts:
    """
    Decision-relevant attributes of a single CA certificate.

    Collections are normalised to immutable types on construction, and a
    naive not_before is taken to be UTC.
    """
    extended_key_usages: FrozenSet[ExtKeyUsage]
    not_before: datetime
    permitted_dns_domains: Tuple[str, ...] = field(default_factory=tuple)
    excluded_dns_domains: Tuple[str, ...] = field(default_factory=tuple)
    permitted_ip_subtrees: Tuple[IPSubtree, ...] = field(default_factory=tuple)
    excluded_ip_subtrees: Tuple[IPSubtree, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'extended_key_usages', frozenset(self.extended_key_usages))
        object.__setattr__(self, 'permitted_dns_domains', _as_tuple(self.permitted_dns_domains))
        object.__setattr__(self, 'excluded_dns_domains', _as_tuple(self.excluded_dns_domains))
        object.__setattr__(self, 'permitted_ip_subtrees', _as_tuple(self.permitted_ip_subtrees))
        object.__setattr__(self, 'excluded_ip_subtrees', _as_tuple(self.excluded_ip_subtrees))

        if self.not_before.tzinfo is None:
            object.__setattr__(self, 'not_before', self.not_before.replace(tzinfo=timezone.utc))


def _as_tuple(values: Iterable) -> tuple:
    return tuple(values) if values else ()
