"""
Condition Evaluator - Decides which option groups apply to a selection

Responsibilities:
- Evaluate DSL conditions from the ruleset against a selection
- Decide group applicability (rendering and required-ness)
- Walk conditions for the tokens and operators they reference

Design principles:
- Stateless: the selection is always passed in
- Deterministic: same input always produces same output
- Declarative: conditions are data, never closures

Supported DSL:
    {"contains": "首单"}
    {"contains_all": ["首单", "不需要打板"]}
    {"contains_any": ["要批色样", "不要批色样"]}
    {"all": [<dsl>, ...]}
    {"any": [<dsl>, ...]}
    {"not": <dsl>}
"""

import logging
from typing import Iterable, List, Optional, Set

from order_config.contracts import OptionGroupDefinition

logger = logging.getLogger(__name__)


class ConditionEvaluator:
    """
    Stateless evaluator for group conditions.

    Does not track any state internally - the selection comes from the
    caller on every call.
    """

    LOGICAL_OPERATORS = {"all", "any", "not"}
    TOKEN_OPERATORS = {"contains", "contains_all", "contains_any"}
    KNOWN_OPERATORS = LOGICAL_OPERATORS | TOKEN_OPERATORS

    # =========================================================================
    # Public API
    # =========================================================================

    def is_applicable(self, group: OptionGroupDefinition, selection: Iterable[str]) -> bool:
        """
        Determine whether a group currently applies.

        Rules:
        - No condition: always applicable
        - Condition present: not applicable only if it evaluates to
          exactly False

        Args:
            group: Group definition from the Rule Registry
            selection: Current selection

        Returns:
            True if the group should be shown, edited and enforced
        """
        if group.condition is None:
            return True

        return self.evaluate(group.condition, selection) is not False

    def applicable_groups(
        self,
        groups: Iterable[OptionGroupDefinition],
        selection: Iterable[str]
    ) -> List[OptionGroupDefinition]:
        """Applicable groups, registry order preserved."""
        selection = tuple(selection)
        return [group for group in groups if self.is_applicable(group, selection)]

    def evaluate(self, dsl: Optional[dict], selection: Iterable[str]) -> bool:
        """
        Evaluate DSL condition structure.

        Args:
            dsl: DSL condition dict (None or empty is vacuously true)
            selection: Current selection

        Returns:
            bool: Evaluation result
        """
        return self._evaluate_dsl(dsl, set(selection))

    # =========================================================================
    # Introspection (used by ruleset validation)
    # =========================================================================

    def referenced_tokens(self, dsl: Optional[dict]) -> Set[str]:
        """Every token a condition mentions."""
        tokens = set()
        if not dsl:
            return tokens

        for operator, operand in dsl.items():
            if operator == "contains":
                tokens.add(operand)
            elif operator in ("contains_all", "contains_any"):
                tokens.update(operand)
            elif operator in ("all", "any"):
                for sub in operand:
                    tokens |= self.referenced_tokens(sub)
            elif operator == "not":
                tokens |= self.referenced_tokens(operand)

        return tokens

    def unknown_operators(self, dsl: Optional[dict]) -> Set[str]:
        """Operators in a condition that evaluate() does not support."""
        unknown = set()
        if not dsl:
            return unknown

        if not isinstance(dsl, dict):
            return {repr(dsl)}

        for operator, operand in dsl.items():
            if operator not in self.KNOWN_OPERATORS:
                unknown.add(operator)
            elif operator in ("all", "any"):
                for sub in operand:
                    unknown |= self.unknown_operators(sub)
            elif operator == "not":
                unknown |= self.unknown_operators(operand)

        return unknown

    # =========================================================================
    # Evaluation
    # =========================================================================

    def _evaluate_dsl(self, dsl: Optional[dict], selected: Set[str]) -> bool:
        if not dsl:
            return True  # Empty condition is vacuously true

        # Logical operators
        if "all" in dsl:
            conditions = dsl["all"]
            if not conditions:
                return True  # Empty all = vacuous truth
            return all(self._evaluate_dsl(sub, selected) for sub in conditions)

        if "any" in dsl:
            conditions = dsl["any"]
            if not conditions:
                return False  # Empty any = no conditions met
            return any(self._evaluate_dsl(sub, selected) for sub in conditions)

        if "not" in dsl:
            return not self._evaluate_dsl(dsl["not"], selected)

        # Token operators
        if "contains" in dsl:
            return dsl["contains"] in selected

        if "contains_all" in dsl:
            return all(token in selected for token in dsl["contains_all"])

        if "contains_any" in dsl:
            return any(token in selected for token in dsl["contains_any"])

        # Unknown operator
        logger.warning(f"Unknown DSL operator: {list(dsl.keys())}")
        return False
