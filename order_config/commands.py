"""
Command types for SubmissionFlow control flow.

Commands are the ONLY way to move the submission flow.
No direct method calls mutate state. Commands only.

The host notifies target changes; the UI issues edits and the four
entry points (submit, cancel, confirm secondary, cancel secondary).
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from order_config.contracts import SubmissionDraft, Target
from order_config.utils.flow_phases import DRAFT_PHASES, FlowPhase, VALID_PHASES


@dataclass(frozen=True)
class FlowState:
    """
    Single explicit state value of the submission flow.

    Rules:
    - Immutable; every transition produces a new FlowState
    - Only SubmissionFlow.handle() creates successor states
    - draft is set only while phase is PHASE_SECONDARY_PROMPT_OPEN or
      PHASE_COMMITTING (then it holds the final token list being written)
    - Every phase except PHASE_DONE has a target
    - PHASE_DONE implies no target and an empty selection

    Attributes:
        phase: Current FlowPhase
        target: Record being edited, None when no record is targeted
        selection: Ordered tokens currently chosen in the primary form
        draft: Snapshot taken at submit time for the secondary prompt,
            or the token list being written while committing
        secondary_selection: At most one secondary prompt token
        outcome: How the last edit session ended ('committed',
            'persistence_failed', 'cancelled', 'target_lost') or None
    """
    phase: FlowPhase = FlowPhase.PHASE_DONE
    target: Optional[Target] = None
    selection: Tuple[str, ...] = ()
    draft: Optional[SubmissionDraft] = None
    secondary_selection: Tuple[str, ...] = ()
    outcome: Optional[str] = None

    @staticmethod
    def initial() -> "FlowState":
        return FlowState()

    def evolve(self, **changes) -> "FlowState":
        """Copy with changes applied."""
        return replace(self, **changes)

    def to_json(self) -> dict:
        """
        Serialize to JSON-safe dict.

        Returns:
            dict: Plain lists and strings only
        """
        return {
            'phase': self.phase.value,
            'target': self.target.to_json() if self.target else None,
            'selection': list(self.selection),
            'draft': list(self.draft.tokens) if self.draft else None,
            'secondary_selection': list(self.secondary_selection),
            'outcome': self.outcome
        }

    @staticmethod
    def from_json(data: dict) -> "FlowState":
        """
        Deserialize from JSON dict.

        Args:
            data: Dict produced by to_json()

        Returns:
            FlowState

        Raises:
            ValueError: If phase is not a valid FlowPhase value, or the
                phase does not agree with target, selection and draft
        """
        phase = data.get('phase', FlowPhase.PHASE_DONE.value)
        if phase not in VALID_PHASES:
            raise ValueError(f"Invalid flow phase: {phase!r}")

        draft = data.get('draft')
        state = FlowState(
            phase=FlowPhase(phase),
            target=Target.from_json(data.get('target')),
            selection=tuple(data.get('selection', [])),
            draft=SubmissionDraft(tokens=tuple(draft)) if draft is not None else None,
            secondary_selection=tuple(data.get('secondary_selection', [])),
            outcome=data.get('outcome')
        )

        problem = state.inconsistency()
        if problem:
            raise ValueError(f"Inconsistent flow state: {problem}")

        return state

    def inconsistency(self) -> Optional[str]:
        """Describe the first broken phase rule, or None if consistent."""
        if self.phase == FlowPhase.PHASE_DONE:
            if self.target is not None or self.selection:
                return "done state must not carry a target or selection"
            return None

        if self.target is None:
            return f"phase {self.phase.value} requires a target"

        needs_draft = self.phase in DRAFT_PHASES
        if needs_draft and self.draft is None:
            return f"phase {self.phase.value} requires a draft"
        if not needs_draft and self.draft is not None:
            return f"phase {self.phase.value} must not carry a draft"

        return None


# Command types

@dataclass(frozen=True)
class TargetChanged:
    """
    Host notification: the user's focus moved.

    target is None when no record is focused. A different table or
    record aborts the edit in progress without confirmation.
    """
    target: Optional[Target] = None


@dataclass(frozen=True)
class EditGroup:
    """
    User changed the values of one group in the primary form.

    Only valid in PHASE_EDITING. group_title resolves to the first
    applicable definition with that title.
    """
    group_title: str
    values: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Submit:
    """Primary form OK. Validates, then commits or opens the prompt."""
    pass


@dataclass(frozen=True)
class Cancel:
    """Primary form cancel. Clears selection and target."""
    pass


@dataclass(frozen=True)
class EditSecondary:
    """User changed the secondary prompt choice. Single-choice coerced."""
    values: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ConfirmSecondary:
    """
    Secondary prompt OK.

    If token is given it becomes the secondary choice before confirming.
    """
    token: Optional[str] = None


@dataclass(frozen=True)
class CancelSecondary:
    """Secondary prompt cancel. Returns to the primary form."""
    pass


@dataclass(frozen=True)
class CommitFinished:
    """
    Field store write completed (only valid while committing).

    Issued by the host after SubmissionFlow.write_pending(); never by the UI.
    """
    ok: bool
    reason: Optional[str] = None


# Command union type for type hints
Command = (
    TargetChanged | EditGroup | Submit | Cancel
    | EditSecondary | ConfirmSecondary | CancelSecondary | CommitFinished
)
