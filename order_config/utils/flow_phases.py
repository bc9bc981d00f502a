"""
Flow phase enum for the two-phase submission flow.

Invariants:
- Exactly one phase is active at a time
- Phase changes happen only inside SubmissionFlow.handle()
- PHASE_COMMITTING accepts no commands
- PHASE_DONE holds no target and no selection

Design:
- FlowPhase is a string-based enum for JSON serialization
- FlowState.from_json validates phase strings against VALID_PHASES
- SubmissionFlow owns all phase transitions
"""

from enum import Enum


class FlowPhase(str, Enum):
    """
    Explicit phase tracking for the order configuration dialog.

    PHASE_EDITING:
        Primary form is open for a target record. Group edits go through
        the Selection Reducer.

        Entry: New target notification, failed validation,
               secondary prompt cancelled
        Exit: submit -> PHASE_VALIDATING
              cancel -> PHASE_DONE
              target changed -> PHASE_EDITING (fresh) or PHASE_DONE

    PHASE_VALIDATING:
        Transient. The Validator gates the selection.

        Exit: failure -> PHASE_EDITING
              ok, prompt skipped -> PHASE_COMMITTING
              ok, prompt needed -> PHASE_SECONDARY_PROMPT_OPEN

    PHASE_SECONDARY_PROMPT_OPEN:
        Single-choice confirmation over a frozen SubmissionDraft.

        Exit: confirm with a choice -> PHASE_COMMITTING
              confirm without a choice -> stays open
              cancel prompt -> PHASE_EDITING
              cancel form / target changed -> PHASE_DONE or fresh PHASE_EDITING

    PHASE_COMMITTING:
        Final token list (held in the draft) is being written by the host.
        Busy: every command except CommitFinished is rejected.

        Exit: CommitFinished -> PHASE_DONE (success or failure)

    PHASE_DONE:
        No target, empty selection. Waits for the next target notification.
    """
    PHASE_EDITING = "editing"
    PHASE_VALIDATING = "validating"
    PHASE_SECONDARY_PROMPT_OPEN = "secondary_prompt_open"
    PHASE_COMMITTING = "committing"
    PHASE_DONE = "done"


# Phases in which a target change aborts the edit in progress
ABORTABLE_PHASES = {
    FlowPhase.PHASE_EDITING,
    FlowPhase.PHASE_VALIDATING,
    FlowPhase.PHASE_SECONDARY_PROMPT_OPEN,
}

# Single source of truth for valid phase strings
VALID_PHASES = {phase.value for phase in FlowPhase}

# Phases that hold a SubmissionDraft
DRAFT_PHASES = {
    FlowPhase.PHASE_SECONDARY_PROMPT_OPEN,
    FlowPhase.PHASE_COMMITTING,
}
