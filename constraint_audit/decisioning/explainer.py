"""
Rationale generator for constraint decisions.

Produces the human-auditable rationale strings from a reason code and the
structured evidence a rule collected.
"""
from string import Formatter
from typing import Dict, Any, Optional
import logging


logger = logging.getLogger(__name__)


class DecisionExplainer:
    """
    Renders audit rationales for constraint decisions.

    Templates are keyed by reason code and filled from rule evidence.
    Boolean evidence is rendered as true/false so the rationale reads the
    same way in every audit trail.
    """

    DEFAULT_TEMPLATES = {
        'EKU_REQUIRED': (
            "ExtKeyUsage is required"
        ),
        'ANY_EKU': (
            "anyExtendedKeyUsage not permitted"
        ),
        'NOT_SERVER_AUTH': (
            "Is constrained: not for Server Auth "
            "(hasServerAuth={has_server_auth}, hasStepUp={has_step_up}, "
            "stepUpEquivalentToServerAuth={step_up_equivalent})"
        ),
        'NAME_CONSTRAINED': (
            "Is constrained: hasDNSName={has_dns_name} && "
            "(hasIPAddressInPermittedSubtrees={has_ip_address_in_permitted_subtrees} || "
            "hasIPAddressesInExcludedSubtrees={has_ip_addresses_in_excluded_subtrees})"
        ),
        'NOT_NAME_CONSTRAINED': (
            "Is not constrained: hasDNSName={has_dns_name} && "
            "(hasIPAddressInPermittedSubtrees={has_ip_address_in_permitted_subtrees} || "
            "hasIPAddressesInExcludedSubtrees={has_ip_addresses_in_excluded_subtrees})"
        ),
        'DEFAULT': (
            "Constraint status determined by rule chain."
        )
    }

    # Name-constraint rationales must carry the three booleans behind the outcome
    REQUIRED_FIELDS = {
        'NAME_CONSTRAINED': {
            'has_dns_name',
            'has_ip_address_in_permitted_subtrees',
            'has_ip_addresses_in_excluded_subtrees',
        },
        'NOT_NAME_CONSTRAINED': {
            'has_dns_name',
            'has_ip_address_in_permitted_subtrees',
            'has_ip_addresses_in_excluded_subtrees',
        },
    }

    def __init__(self, templates: Optional[Dict[str, str]] = None):
        """
        Initialize explainer with templates.

        Args:
            templates: Overrides by reason code, layered over the defaults.

        Raises:
            ValueError: An override drops a field its reason code requires
        """
        self.templates = dict(self.DEFAULT_TEMPLATES)
        if templates:
            for reason_code, template in templates.items():
                self._validate_template(reason_code, template)
            self.templates.update(templates)

    def explain(
        self,
        reason_code: str,
        evidence: Dict[str, Any],
        is_constrained: Optional[bool] = None
    ) -> str:
        """
        Generate rationale from reason code and evidence.

        Args:
            reason_code: Decision reason code (e.g., 'ANY_EKU')
            evidence: Evidence dictionary with substitution values
            is_constrained: Outcome, used only by the fallback text

        Returns:
            Rationale string
        """
        template = self.templates.get(reason_code, self.templates.get('DEFAULT', ''))
        values = self._prepare_values(evidence)

        try:
            return template.format(**values).strip()
        except KeyError as e:
            logger.warning(
                f"Missing template variable {e} for reason code {reason_code}"
            )
            return self._create_fallback_explanation(reason_code, is_constrained)

    def _validate_template(self, reason_code: str, template: str):
        required = self.REQUIRED_FIELDS.get(reason_code)
        if not required:
            return

        fields = {name for _, name, _, _ in Formatter().parse(template) if name}
        missing = required - fields
        if missing:
            raise ValueError(
                f"Template for {reason_code} is missing fields: {', '.join(sorted(missing))}"
            )

    def _prepare_values(self, evidence: Dict[str, Any]) -> Dict[str, str]:
        values = {}
        for key, value in evidence.items():
            if value is None:
                values[key] = 'unknown'
            elif isinstance(value, bool):
                values[key] = 'true' if value else 'false'
            else:
                values[key] = str(value)
        return values

    def _create_fallback_explanation(self, reason_code: str, is_constrained: Optional[bool]) -> str:
        """Create a basic rationale when a template cannot be filled."""
        if is_constrained is None:
            status = 'unknown'
        else:
            status = 'constrained' if is_constrained else 'not constrained'
        return f"Certificate classified as {status}. Reason: {reason_code}."
