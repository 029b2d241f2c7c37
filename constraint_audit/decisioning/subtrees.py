"""
Name constraint subtree evaluation.

Decides whether the DNS and iPAddress name constraints of a certificate
together bound its issuance scope. For excluded iPAddress subtrees both
IPv4 and IPv6 must be present and each must span its entire range
(0.0.0.0/0 and ::/0); a single family leaves the other unconstrained.
"""
from dataclasses import dataclass
from typing import Iterable

from .facts import (
    AddressFamily,
    CertificateConstraintFacts,
    IPSubtree,
    IPV4_FULL_RANGE,
    IPV6_FULL_RANGE,
)


FULL_RANGES = {
    AddressFamily.IPV4: IPV4_FULL_RANGE,
    AddressFamily.IPV6: IPV6_FULL_RANGE,
}


@dataclass(frozen=True)
class NameConstraintCoverage:
    """Booleans that decide whether name constraints bound the certificate."""
    has_dns_name: bool
    has_ip_address_in_permitted_subtrees: bool
    excludes_ipv4: bool
    excludes_ipv6: bool

    @property
    def has_ip_addresses_in_excluded_subtrees(self) -> bool:
        return self.excludes_ipv4 and self.excludes_ipv6

    @property
    def ip_constraint_satisfied(self) -> bool:
        return (
            self.has_ip_address_in_permitted_subtrees or
            self.has_ip_addresses_in_excluded_subtrees
        )

    @property
    def is_constrained(self) -> bool:
        return self.has_dns_name and self.ip_constraint_satisfied


def covers_entire_range(subtree: IPSubtree, family: AddressFamily) -> bool:
    """
    True if subtree is the zero network of family with an all-zero mask.

    Only the first family.byte_length bytes of the mask are inspected. A
    mask shorter than that never covers the range.
    """
    if subtree.family is not family:
        return False

    length = family.byte_length
    if subtree.network != FULL_RANGES[family].network:
        return False
    if len(subtree.mask) < length:
        return False

    return not any(subtree.mask[:length])


def excludes_family(subtrees: Iterable[IPSubtree], family: AddressFamily) -> bool:
    return any(covers_entire_range(subtree, family) for subtree in subtrees)


def evaluate_name_constraints(facts: CertificateConstraintFacts) -> NameConstraintCoverage:
    excluded = facts.excluded_ip_subtrees
    return NameConstraintCoverage(
        has_dns_name=bool(facts.permitted_dns_domains) or bool(facts.excluded_dns_domains),
        has_ip_address_in_permitted_subtrees=len(facts.permitted_ip_subtrees) > 0,
        excludes_ipv4=excludes_family(excluded, AddressFamily.IPV4),
        excludes_ipv6=excludes_family(excluded, AddressFamily.IPV6)
    )
