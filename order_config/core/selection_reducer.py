"""
Selection Reducer - Applies a user edit to the current selection

Responsibilities:
- Replace one group's tokens with the user's new values
- Enforce single-choice semantics (every group but the multi-choice one)
- Enforce branch exclusivity through reset_on triggers
- Clean stored token lists before they become a selection (same
  single-choice and applicability rules as the primary form)

Design principles:
- Pure: apply_edit() returns a new tuple, the input is never mutated
- Atomic: no intermediate selection is observable
- apply_edit() makes a single reset pass over the registry, never a
  fixed-point loop, so an edit can never cascade or recurse
"""

import logging
from typing import Iterable, Optional, Sequence, Tuple

from order_config.contracts import OptionGroupDefinition
from order_config.core.condition_evaluator import ConditionEvaluator
from order_config.utils.helpers import ordered_difference, ordered_union, ordered_unique

logger = logging.getLogger(__name__)


def coerce_single_choice(values: Sequence[str], previous: Iterable[str]) -> Tuple[str, ...]:
    """
    Keep at most one value: the most recently added one.

    The most recently added value is the last supplied value that was not
    already selected. If every supplied value was already selected, the
    last supplied value wins.

    Args:
        values: Values supplied for the group, in the order given
        previous: Selection before the edit

    Returns:
        Empty tuple or a one-token tuple

    Examples:
        >>> coerce_single_choice(['需要打板', '不需要打板'], ['首单', '需要打板'])
        ('不需要打板',)
        >>> coerce_single_choice(['不需要打板', '需要打板'], ['首单', '需要打板'])
        ('不需要打板',)
        >>> coerce_single_choice([], ['首单'])
        ()
    """
    if not values:
        return ()

    previous = set(previous)
    fresh = [value for value in values if value not in previous]
    return (fresh[-1],) if fresh else (values[-1],)


class SelectionReducer:
    """
    Applies edits to a selection using the Rule Registry.

    Stateless apart from the registry reference.
    """

    def __init__(self, registry, evaluator=None):
        """
        Args:
            registry: RuleRegistry instance (static, safe to cache)
            evaluator: ConditionEvaluator used to drop hidden groups
                when loading stored tokens (default: a new one)
        """
        self.registry = registry
        self.evaluator = evaluator or ConditionEvaluator()

    def apply_edit(
        self,
        selection: Sequence[str],
        group: OptionGroupDefinition,
        new_group_values: Sequence[str]
    ) -> Tuple[str, ...]:
        """
        Apply one group edit to a selection.

        Steps:
        1. Remove every token of the edited group (tokens the edit
           re-affirms keep their position)
        2. Coerce the new values (verbatim for the multi-choice group,
           otherwise at most one token)
        3. Union the coerced tokens back in
        4. added = tokens present now that were not present before
        5. For every registry group whose reset_on intersects added,
           remove that group's tokens (one pass, from this candidate)

        Args:
            selection: Current selection (ordered, unique tokens)
            group: Edited group definition
            new_group_values: Values chosen for the group by the user

        Returns:
            New selection tuple

        Raises:
            ValueError: If a value is not one of the group's options
        """
        selection = tuple(selection)
        new_group_values = list(new_group_values)

        foreign = [value for value in new_group_values if not group.owns(value)]
        if foreign:
            raise ValueError(f"Values {foreign} are not options of group '{group.title}'")

        if self.registry.is_multi_choice(group):
            coerced = ordered_unique(new_group_values)
        else:
            coerced = coerce_single_choice(new_group_values, selection)

        # Re-affirmed tokens keep their position
        remainder = tuple(
            token for token in selection
            if not group.owns(token) or token in coerced
        )
        candidate = ordered_union(remainder, coerced)

        before = set(selection)
        added = {token for token in candidate if token not in before}

        if not added:
            return candidate

        reset_tokens = set()
        for registry_group in self.registry.groups:
            if registry_group.reset_on & added:
                reset_tokens.update(registry_group.options)
                logger.debug(
                    f"Reset group '{registry_group.title}' (level {registry_group.level}) "
                    f"triggered by {sorted(registry_group.reset_on & added)}"
                )

        return ordered_difference(candidate, reset_tokens)

    def sanitize(self, tokens: Optional[Iterable[str]]) -> Tuple[str, ...]:
        """
        Turn a stored token list into a selection.

        Steps:
        1. Drop duplicates and tokens unknown to the registry (including
           secondary prompt answers from an earlier commit, which are
           asked again on every submit)
        2. Keep at most one token per single-choice group: the one stored
           last, matching "most recently added wins"
        3. Drop tokens whose groups are not applicable to what remains,
           repeating until nothing more is dropped

        Args:
            tokens: Stored token list, or None when the field is empty

        Returns:
            Selection tuple
        """
        if not tokens:
            return ()

        tokens = list(tokens)
        known = self.registry.all_tokens
        for token in tokens:
            if token not in known:
                logger.warning(f"Dropping unknown stored token: {token!r}")

        kept = ordered_unique(token for token in tokens if token in known)

        # Last stored token per single-choice title
        winners = {}
        for token in tokens:
            owner = self.registry.owner_of(token)
            if owner is not None and not self.registry.is_multi_choice(owner):
                winners[owner.title] = token

        selection = []
        for token in kept:
            owner = self.registry.owner_of(token)
            if self.registry.is_multi_choice(owner) or winners[owner.title] == token:
                selection.append(token)
            else:
                logger.warning(f"Dropping conflicting stored token {token!r} in group '{owner.title}'")

        selection = tuple(selection)
        while True:
            orphaned = {
                token for token in selection
                if not any(
                    self.evaluator.is_applicable(group, selection)
                    for group in self.registry.groups if group.owns(token)
                )
            }
            if not orphaned:
                return selection
            logger.warning(f"Dropping stored tokens of hidden groups: {sorted(orphaned)}")
            selection = ordered_difference(selection, orphaned)
