"""
Semantic contracts for the order configuration selector.

This module defines immutable data structures shared between the Rule
Registry, the Selection Reducer, the Validator and the Submission Flow.
These are NOT validators - they define shape and semantics without
enforcing rules.

Design principles:
- Frozen dataclasses (immutable after creation)
- No validation logic (the Rule Registry validates on load)
- No dependencies on other modules

Contents:
- OptionGroupDefinition: One group of selectable tokens from the ruleset
- CompositeRule: A required-decision rule spanning several groups
- SecondaryPrompt: The single-choice confirmation step before commit
- ValidationOutcome: Result of validating a selection
- Target: The host record currently being edited
- SubmissionDraft: Snapshot of the selection taken at submit time

Usage:
    from order_config.contracts import OptionGroupDefinition, ValidationOutcome
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Tuple


@dataclass(frozen=True)
class OptionGroupDefinition:
    """
    Immutable definition of one option group.

    Two definitions may share a title when they are variants of the same
    logical group reached through different branches (e.g. the colour
    sample decision asked both under "加色" and under "不需要打板").
    Variants share identical options.

    Attributes:
        title: Group identifier and display label.
        options: Ordered tokens belonging to this group.
        required: When applicable, at least one option must be selected.
        level: Nesting depth (1 = root). Presentation only.
        parent_option: Token that conceptually introduces this group.
            Informational, never evaluated.
        condition: DSL condition over the whole selection, or None for
            "always applicable".
        reset_on: Trigger tokens. When one is newly selected, every
            selected token of this group is removed.

    Examples:
        >>> group = OptionGroupDefinition(
        ...     title='是否要打板',
        ...     options=('需要打板', '不需要打板'),
        ...     required=False,
        ...     level=2,
        ...     parent_option='首单',
        ...     condition={'contains': '首单'},
        ...     reset_on=frozenset({'翻单'})
        ... )
        >>> group.options
        ('需要打板', '不需要打板')
    """
    title: str
    options: Tuple[str, ...]
    required: bool = False
    level: int = 1
    parent_option: Optional[str] = None
    condition: Optional[Dict[str, Any]] = field(default=None, hash=False, compare=False)
    reset_on: FrozenSet[str] = frozenset()

    def owns(self, token: str) -> bool:
        """True if token is one of this group's options."""
        return token in self.options

    def selected_in(self, selection) -> Tuple[str, ...]:
        """This group's tokens present in selection, in selection order."""
        return tuple(token for token in selection if token in self.options)


@dataclass(frozen=True)
class CompositeRule:
    """
    Required decision that cannot be expressed on a single group.

    When `when` holds for the selection, at least one token from
    `require_any_of` must be selected. `group_title` names the group the
    user is asked to fill in, so the rule reports the same message as the
    per-group required check for that group.
    """
    id: str
    when: Dict[str, Any] = field(hash=False, compare=False)
    require_any_of: Tuple[str, ...]
    group_title: str


@dataclass(frozen=True)
class SecondaryPrompt:
    """
    Single-choice confirmation step between validation and commit.

    Attributes:
        title: Prompt title shown to the user.
        options: The two selectable tokens. Not part of the Rule Registry.
        skip_when: DSL condition; when it holds the prompt is skipped.
    """
    title: str
    options: Tuple[str, ...]
    skip_when: Optional[Dict[str, Any]] = field(default=None, hash=False, compare=False)


@dataclass(frozen=True)
class ValidationOutcome:
    """
    Result of validating a selection.

    Either ok, or carries the first failing group in registry order.

    Attributes:
        ok: True when the selection may be submitted.
        missing_group: Definition of the failing group (None when ok, or
            when a composite rule names a title with no definition).
        rule_id: 'required_group' for per-group checks, the composite
            rule id otherwise. None when ok.
        message: User-facing message. None when ok.
    """
    ok: bool
    missing_group: Optional[OptionGroupDefinition] = None
    rule_id: Optional[str] = None
    message: Optional[str] = None

    @property
    def missing_title(self) -> Optional[str]:
        return self.missing_group.title if self.missing_group else None


@dataclass(frozen=True)
class Target:
    """Host record being edited. A change in either id is a new target."""
    table_id: str
    record_id: str

    def to_json(self) -> dict:
        return {'table_id': self.table_id, 'record_id': self.record_id}

    @staticmethod
    def from_json(data: Optional[dict]) -> Optional["Target"]:
        if not data:
            return None
        return Target(table_id=data['table_id'], record_id=data['record_id'])


@dataclass(frozen=True)
class SubmissionDraft:
    """
    Immutable snapshot of the selection taken when the user submits.

    Exists only while the secondary prompt is open; discarded on commit,
    on cancel, and on returning to editing.
    """
    tokens: Tuple[str, ...]
