"""
Rule Registry - Static catalogue of option groups and their relationships

Responsibilities:
- Load the ruleset (option groups, composite rules, secondary prompt)
- Validate the ruleset once, on initialization
- Answer ownership questions: which group does a token belong to

Design principles:
- Pure static data: nothing is mutated after __init__
- Declaration order is meaningful (validation reports the first failing
  group in this order)
- Fail fast: every ruleset problem is collected and raised together

Token ownership:
- Tokens are unique across groups, EXCEPT for variant definitions that
  share a title and an identical option list (the same logical group
  reached via different branches)
- owner_of() returns the first definition in declaration order
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from order_config.contracts import CompositeRule, OptionGroupDefinition, SecondaryPrompt
from order_config.core.condition_evaluator import ConditionEvaluator

logger = logging.getLogger(__name__)

DEFAULT_RULESET_PATH = Path(__file__).resolve().parent.parent / "data" / "order_ruleset.json"


class RuleRegistry:
    """
    Ordered, immutable catalogue of option group definitions.
    """

    def __init__(self, ruleset_path: Optional[str] = None):
        """
        Initialize registry from a ruleset file.

        Args:
            ruleset_path: Path to ruleset JSON. Defaults to the packaged
                order_ruleset.json.

        Raises:
            FileNotFoundError: If ruleset doesn't exist
            ValueError: If ruleset is malformed or inconsistent
        """
        self.ruleset_path = Path(ruleset_path) if ruleset_path else DEFAULT_RULESET_PATH

        if not self.ruleset_path.exists():
            raise FileNotFoundError(f"Ruleset not found: {self.ruleset_path}")

        with open(self.ruleset_path, 'r', encoding='utf-8') as f:
            self.ruleset = json.load(f)

        self._evaluator = ConditionEvaluator()

        self.version = self.ruleset.get("version", "unknown")
        self.multi_choice_title = self.ruleset.get("multi_choice_group")

        self._validate_ruleset()

        self.groups: Tuple[OptionGroupDefinition, ...] = tuple(
            self._build_group(raw) for raw in self.ruleset["option_groups"]
        )
        self.composite_rules: Tuple[CompositeRule, ...] = tuple(
            CompositeRule(
                id=raw["id"],
                when=raw.get("when") or {},
                require_any_of=tuple(raw["require_any_of"]),
                group_title=raw["group_title"]
            )
            for raw in self.ruleset.get("composite_rules", [])
        )

        prompt = self.ruleset["secondary_prompt"]
        self.secondary_prompt = SecondaryPrompt(
            title=prompt["title"],
            options=tuple(prompt["options"]),
            skip_when=prompt.get("skip_when")
        )

        # First match wins for tokens shared by variant definitions
        self._owners: Dict[str, OptionGroupDefinition] = {}
        for group in self.groups:
            for token in group.options:
                self._owners.setdefault(token, group)

        logger.info(
            f"Rule Registry initialized with {len(self.groups)} option groups "
            f"(ruleset version {self.version})"
        )

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def all_tokens(self) -> frozenset:
        return frozenset(self._owners)

    def owner_of(self, token: str) -> Optional[OptionGroupDefinition]:
        """
        Group that owns a token.

        Args:
            token: Option token

        Returns:
            First definition (declaration order) listing the token,
            None for unknown tokens
        """
        return self._owners.get(token)

    def groups_titled(self, title: str) -> List[OptionGroupDefinition]:
        """Every variant definition with this title, declaration order."""
        return [group for group in self.groups if group.title == title]

    def is_multi_choice(self, group: OptionGroupDefinition) -> bool:
        """Only the configured multi-choice group accepts several tokens."""
        return group.title == self.multi_choice_title

    # =========================================================================
    # Construction
    # =========================================================================

    def _build_group(self, raw: dict) -> OptionGroupDefinition:
        return OptionGroupDefinition(
            title=raw["title"],
            options=tuple(raw["options"]),
            required=bool(raw.get("required", False)),
            level=int(raw.get("level", 1)),
            parent_option=raw.get("parent_option"),
            condition=raw.get("condition"),
            reset_on=frozenset(raw.get("reset_on", []))
        )

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate_ruleset(self):
        """
        Validate ruleset structure on initialization.

        Checks:
        - option_groups exists and is non-empty
        - Every group has a title and a non-empty, duplicate-free option list
        - Tokens shared between groups only within same-title variants
          with identical options
        - reset_on, parent_option and condition tokens are known
        - Conditions only use supported operators
        - multi_choice_group names an existing group
        - Composite rules reference known tokens and an existing group title
        - Secondary prompt has exactly two options not used by any group

        Raises:
            ValueError: If validation fails
        """
        errors = []

        raw_groups = self.ruleset.get("option_groups")
        if not raw_groups:
            errors.append("Missing 'option_groups' in ruleset")
            raw_groups = []

        # token -> (title, options) of the first group that listed it
        token_owner = {}
        titles = set()

        for i, raw in enumerate(raw_groups):
            title = raw.get("title")
            options = raw.get("options") or []

            if not title:
                errors.append(f"Option group at index {i} missing 'title'")
                continue
            titles.add(title)

            if not options:
                errors.append(f"Option group '{title}' has empty options")
                continue

            if len(set(options)) != len(options):
                errors.append(f"Option group '{title}' has duplicate options")

            for token in options:
                if token not in token_owner:
                    token_owner[token] = (title, tuple(options))
                    continue

                owner_title, owner_options = token_owner[token]
                if owner_title != title or owner_options != tuple(options):
                    errors.append(
                        f"Token '{token}' in group '{title}' already belongs to group "
                        f"'{owner_title}' (only same-title variants may share tokens)"
                    )

        known_tokens = set(token_owner)

        for raw in raw_groups:
            title = raw.get("title", "?")

            for token in raw.get("reset_on", []):
                if token not in known_tokens:
                    errors.append(f"Group '{title}' reset_on references unknown token '{token}'")

            parent = raw.get("parent_option")
            if parent is not None and parent not in known_tokens:
                errors.append(f"Group '{title}' parent_option references unknown token '{parent}'")

            errors.extend(self._check_condition(raw.get("condition"), f"Group '{title}'", known_tokens))

        if self.multi_choice_title and self.multi_choice_title not in titles:
            errors.append(f"multi_choice_group '{self.multi_choice_title}' is not a defined group")

        for i, raw in enumerate(self.ruleset.get("composite_rules", [])):
            rule_id = raw.get("id")
            if not rule_id:
                errors.append(f"Composite rule at index {i} missing 'id'")
                continue
            if raw.get("group_title") not in titles:
                errors.append(
                    f"Composite rule '{rule_id}' names undefined group '{raw.get('group_title')}'"
                )
            required_tokens = raw.get("require_any_of") or []
            if not required_tokens:
                errors.append(f"Composite rule '{rule_id}' has empty 'require_any_of'")
            for token in required_tokens:
                if token not in known_tokens:
                    errors.append(f"Composite rule '{rule_id}' requires unknown token '{token}'")
            errors.extend(self._check_condition(raw.get("when"), f"Composite rule '{rule_id}'", known_tokens))

        prompt = self.ruleset.get("secondary_prompt")
        if not prompt:
            errors.append("Missing 'secondary_prompt' in ruleset")
        else:
            prompt_options = prompt.get("options") or []
            if len(prompt_options) != 2 or len(set(prompt_options)) != 2:
                errors.append("Secondary prompt must define exactly two distinct options")
            for token in prompt_options:
                if token in known_tokens:
                    errors.append(f"Secondary prompt option '{token}' is also an option group token")
            if not prompt.get("title"):
                errors.append("Secondary prompt missing 'title'")
            errors.extend(self._check_condition(prompt.get("skip_when"), "Secondary prompt", known_tokens))

        if errors:
            error_msg = "Ruleset validation failed:\n  - " + "\n  - ".join(errors)
            raise ValueError(error_msg)

    def _check_condition(self, dsl, owner: str, known_tokens: set) -> List[str]:
        if not dsl:
            return []

        unknown_ops = self._evaluator.unknown_operators(dsl)
        if unknown_ops:
            return [f"{owner} condition uses unknown operator(s): {sorted(unknown_ops)}"]

        return [
            f"{owner} condition references unknown token '{token}'"
            for token in sorted(self._evaluator.referenced_tokens(dsl))
            if token not in known_tokens
        ]
