"""
Rule definitions for technical constraint determination.

Each rule evaluates the facts of one CA certificate and returns a decision
if the rule conditions are met, or None if the rule doesn't apply.

A certificate is technically constrained if it has the extendedKeyUsage
extension that does not contain anyExtendedKeyUsage and either does not
contain serverAuth or has the nameConstraints extension with both dNSName
and iPAddress entries. For certificates with a notBefore before
23 August 2016, id-Netscape-stepUp (nsSGC) is treated as equivalent to
id-kp-serverAuth.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Optional, Dict, Any, List, Mapping
from abc import ABC, abstractmethod

from .explainer import DecisionExplainer
from .facts import CertificateConstraintFacts, ExtKeyUsage
from .subtrees import evaluate_name_constraints
from .usage import classify_usage


@dataclass(frozen=True)
class Decision:
    """Result of applying a rule to a certificate. Evidence is read-only."""
    is_constrained: bool
    rationale: str
    reason_code: str
    evidence: Mapping[str, Any]
    applied_rule: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'evidence', MappingProxyType(dict(self.evidence)))


class Rule(ABC):
    """Base class for all decision rules."""

    def __init__(
        self,
        rule_id: str,
        priority: int,
        reason_code: str,
        explainer: Optional[DecisionExplainer] = None
    ):
        self.rule_id = rule_id
        self.priority = priority
        self.reason_code = reason_code
        self.explainer = explainer or DecisionExplainer()

    @abstractmethod
    def evaluate(self, facts: CertificateConstraintFacts) -> Optional[Decision]:
        """
        Evaluate the rule against certificate facts.

        Returns Decision if rule applies, None otherwise.
        """
        pass

    def _decide(
        self,
        is_constrained: bool,
        evidence: Dict[str, Any],
        reason_code: Optional[str] = None
    ) -> Decision:
        reason_code = reason_code or self.reason_code
        return Decision(
            is_constrained=is_constrained,
            rationale=self.explainer.explain(reason_code, evidence, is_constrained),
            reason_code=reason_code,
            evidence=evidence
        )


class ExtKeyUsageRequiredRule(Rule):
    """R0: Certificates asserting no extended key usage are never constrained."""

    def __init__(self, explainer: Optional[DecisionExplainer] = None):
        super().__init__("R0", 0, "EKU_REQUIRED", explainer)

    def evaluate(self, facts: CertificateConstraintFacts) -> Optional[Decision]:
        if facts.extended_key_usages:
            return None

        return self._decide(False, {'ext_key_usage_count': 0})


class AnyExtKeyUsageRule(Rule):
    """R1: anyExtendedKeyUsage decides the outcome on its own."""

    def __init__(self, explainer: Optional[DecisionExplainer] = None):
        super().__init__("R1", 1, "ANY_EKU", explainer)

    def evaluate(self, facts: CertificateConstraintFacts) -> Optional[Decision]:
        if ExtKeyUsage.ANY not in facts.extended_key_usages:
            return None

        return self._decide(False, {'has_any_ext_key_usage': True})


class NotServerAuthRule(Rule):
    """R2: Certificates that cannot issue for serverAuth are constrained."""

    def __init__(self, explainer: Optional[DecisionExplainer] = None):
        super().__init__("R2", 2, "NOT_SERVER_AUTH", explainer)

    def evaluate(self, facts: CertificateConstraintFacts) -> Optional[Decision]:
        usage = classify_usage(facts)

        if usage.eligible_for_server_auth:
            return None

        return self._decide(True, {
            'has_server_auth': usage.has_server_auth,
            'has_step_up': usage.has_step_up,
            'step_up_equivalent': usage.step_up_equivalent,
        })


class NameConstraintsRule(Rule):
    """R3: Default rule - DNS and IP name constraints must both bound scope."""

    def __init__(self, explainer: Optional[DecisionExplainer] = None):
        super().__init__("R3", 3, "NAME_CONSTRAINED", explainer)

    def evaluate(self, facts: CertificateConstraintFacts) -> Optional[Decision]:
        # Fallback rule - always applies
        coverage = evaluate_name_constraints(facts)

        evidence = {
            'has_dns_name': coverage.has_dns_name,
            'has_ip_address_in_permitted_subtrees': coverage.has_ip_address_in_permitted_subtrees,
            'has_ip_addresses_in_excluded_subtrees': coverage.has_ip_addresses_in_excluded_subtrees,
            'excludes_ipv4': coverage.excludes_ipv4,
            'excludes_ipv6': coverage.excludes_ipv6,
        }

        if coverage.is_constrained:
            return self._decide(True, evidence)
        return self._decide(False, evidence, reason_code="NOT_NAME_CONSTRAINED")


def get_default_rules(explainer: Optional[DecisionExplainer] = None) -> List[Rule]:
    """
    Get the default rule chain in priority order.

    Rules are evaluated in order (lowest priority number first).
    First rule that matches determines the outcome; R3 always matches.
    """
    return [
        ExtKeyUsageRequiredRule(explainer),  # R0: no EKU at all
        AnyExtKeyUsageRule(explainer),       # R1: anyExtendedKeyUsage
        NotServerAuthRule(explainer),        # R2: not for serverAuth
        NameConstraintsRule(explainer),      # R3: name constraints - always matches
    ]
