"""
Extended key usage classification.

Determines whether a certificate may issue for TLS server authentication,
honouring the historical equivalence of Netscape step-up (nsSGC) with
id-kp-serverAuth for certificates issued before STEP_UP_CUTOFF.
"""
from dataclasses import dataclass

from .facts import CertificateConstraintFacts, ExtKeyUsage, STEP_UP_CUTOFF


@dataclass(frozen=True)
class UsageClassification:
    """Booleans that decide server-auth eligibility."""
    has_server_auth: bool
    has_step_up: bool
    step_up_equivalent: bool

    @property
    def eligible_for_server_auth(self) -> bool:
        return self.has_server_auth or (self.step_up_equivalent and self.has_step_up)


def classify_usage(facts: CertificateConstraintFacts) -> UsageClassification:
    usages = facts.extended_key_usages
    return UsageClassification(
        has_server_auth=ExtKeyUsage.SERVER_AUTH in usages,
        has_step_up=ExtKeyUsage.LEGACY_NETSCAPE_STEP_UP in usages,
        step_up_equivalent=facts.not_before < STEP_UP_CUTOFF
    )
