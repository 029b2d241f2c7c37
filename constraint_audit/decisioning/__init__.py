"""
Technical constraint decisioning layer.

Provides deterministic, explainable classification of CA certificates
as technically constrained or not, using a priority-ordered rule chain.
"""
from .facts import (
    AddressFamily,
    CertificateConstraintFacts,
    ExtKeyUsage,
    IPSubtree,
    IPV4_FULL_RANGE,
    IPV6_FULL_RANGE,
    STEP_UP_CUTOFF,
)
from .rules import Rule, Decision, get_default_rules
from .rule_engine import RuleEngine, evaluate
from .explainer import DecisionExplainer


__all__ = [
    'AddressFamily',
    'CertificateConstraintFacts',
    'ExtKeyUsage',
    'IPSubtree',
    'IPV4_FULL_RANGE',
    'IPV6_FULL_RANGE',
    'STEP_UP_CUTOFF',
    'Rule',
    'Decision',
    'RuleEngine',
    'DecisionExplainer',
    'evaluate',
    'get_default_rules',
]
