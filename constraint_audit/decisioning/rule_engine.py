"""
Rule engine that evaluates certificate facts against a rule chain.

The engine applies rules in priority order (lowest first) and returns
the first matching decision. Rules are pure, so one engine can serve any
number of concurrent callers.
"""
from dataclasses import replace
from typing import List, Dict, Any, Optional
import logging

from .explainer import DecisionExplainer
from .facts import CertificateConstraintFacts
from .rules import Rule, Decision, get_default_rules


logger = logging.getLogger(__name__)


class RuleEngine:
    """
    Deterministic rule engine for technical constraint decisions.

    Rules are evaluated in priority order (0 is highest priority).
    First rule that matches determines the outcome.
    """

    def __init__(
        self,
        rules: Optional[List[Rule]] = None,
        explainer: Optional[DecisionExplainer] = None
    ):
        """
        Initialize the rule engine.

        Args:
            rules: List of rules to evaluate. If None, uses default rules.
            explainer: Explainer handed to the default rules.
        """
        self.rules = sorted(rules or get_default_rules(explainer), key=lambda r: r.priority)

    def decide(self, facts: CertificateConstraintFacts) -> Decision:
        """
        Apply rule chain to certificate facts.

        Returns:
            Decision with outcome, rationale and evidence

        Raises:
            ValueError: If no rule matches (cannot happen with the default fallback rule)
        """
        for rule in self.rules:
            decision = rule.evaluate(facts)
            if decision:
                logger.debug(
                    f"Rule {rule.rule_id} matched -> constrained={decision.is_constrained}"
                )
                return replace(decision, applied_rule=rule.rule_id)

        raise ValueError("No rule matched certificate facts")

    def decide_batch(self, facts_list: List[CertificateConstraintFacts]) -> List[Decision]:
        """
        Apply rule chain to multiple certificates.

        Returns:
            List of decisions in same order as input
        """
        return [self.decide(facts) for facts in facts_list]

    def explain_decision(self, facts: CertificateConstraintFacts) -> Dict[str, Any]:
        """
        Get detailed explanation of decision process.

        Every rule is evaluated, including those after the first match, so
        auditors can see which other rules would have applied.

        Returns:
            Dictionary with decision, matching rule, and evaluation trace
        """
        trace = []
        matched_decision = None

        for rule in self.rules:
            decision = rule.evaluate(facts)
            trace.append({
                'rule_id': rule.rule_id,
                'priority': rule.priority,
                'matched': decision is not None,
                'result': decision.is_constrained if decision else None
            })

            if decision and matched_decision is None:
                matched_decision = replace(decision, applied_rule=rule.rule_id)

        return {
            'decision': matched_decision,
            'evaluation_trace': trace,
            'total_rules_evaluated': len(trace)
        }


_default_engine = RuleEngine()


def evaluate(facts: CertificateConstraintFacts) -> Decision:
    """Decide whether a CA certificate is technically constrained."""
    return _default_engine.decide(facts)
