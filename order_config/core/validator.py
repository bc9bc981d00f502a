"""
Validator - Applicability-aware required-ness checks

Checks, in order:
1. Every required group that currently applies has a selected token
   (registry declaration order, first failure reported)
2. Composite rules (a required decision spanning several groups)

A composite rule may duplicate a per-group rule reachable through a
different branch. Composite rules are consulted only after every
per-group check has passed, and report the same message format for
the same group title, so one missing decision yields one message.
"""

import logging
from typing import Iterable

from order_config.contracts import ValidationOutcome

logger = logging.getLogger(__name__)

MISSING_GROUP_MESSAGE = "请至少选择一项【{title}】"

RULE_REQUIRED_GROUP = "required_group"


def missing_group_message(title: str) -> str:
    return MISSING_GROUP_MESSAGE.format(title=title)


class SelectionValidator:
    """Deterministic validator over a Rule Registry."""

    def __init__(self, registry, evaluator):
        """
        Args:
            registry: RuleRegistry instance
            evaluator: ConditionEvaluator instance
        """
        self.registry = registry
        self.evaluator = evaluator

    def validate(self, selection: Iterable[str]) -> ValidationOutcome:
        """
        Validate a selection before submission.

        Args:
            selection: Current selection

        Returns:
            ValidationOutcome - ok, or the first failing group
        """
        selection = tuple(selection)
        selected = set(selection)

        for group in self.registry.groups:
            if not group.required:
                continue

            if not self.evaluator.is_applicable(group, selection):
                continue

            if any(token in selected for token in group.options):
                continue

            logger.info(f"Validation failed: required group '{group.title}' (level {group.level}) unanswered")
            return ValidationOutcome(
                ok=False,
                missing_group=group,
                rule_id=RULE_REQUIRED_GROUP,
                message=missing_group_message(group.title)
            )

        for rule in self.registry.composite_rules:
            if not self.evaluator.evaluate(rule.when, selection):
                continue

            if any(token in selected for token in rule.require_any_of):
                continue

            logger.info(f"Validation failed: composite rule '{rule.id}'")
            return ValidationOutcome(
                ok=False,
                missing_group=self._group_for_rule(rule, selection),
                rule_id=rule.id,
                message=missing_group_message(rule.group_title)
            )

        return ValidationOutcome(ok=True)

    def _group_for_rule(self, rule, selection):
        """Applicable variant named by the rule, else the first variant."""
        variants = self.registry.groups_titled(rule.group_title)
        for group in variants:
            if self.evaluator.is_applicable(group, selection):
                return group
        return variants[0] if variants else None
