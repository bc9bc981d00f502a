"""
Submission Flow - Two-phase submission state machine (Functional Core)

Responsibilities:
- Own every phase transition of the order configuration dialog
- Route group edits to the Selection Reducer
- Gate submission on the Validator
- Decide whether the secondary prompt is needed
- Hand the final token list to the field store collaborator

Design principles:
- Functional core: handle(command, state) -> result with a new state
- One explicit FlowState value; no partially updated state is observable
- Lifecycle violations are returned as IllegalCommand, never raised
- A target change aborts any in-progress edit without confirmation
- Commit is two steps: handle() enters PHASE_COMMITTING and the host
  performs the write (write_pending), then reports it with CommitFinished.
  Commit always ends in PHASE_DONE, even when the write fails (the
  selection is discarded in both cases)

Transitions:
    done/editing/prompt --TargetChanged(new)--> editing (fresh)
    done/editing/prompt --TargetChanged(None)--> done
    editing --Submit--> validating --fail--> editing
                                   --ok, skip prompt--> committing --> done
                                   --ok--> secondary_prompt_open
    secondary_prompt_open --ConfirmSecondary--> committing
    committing --CommitFinished--> done
    secondary_prompt_open --CancelSecondary--> editing
    editing/secondary_prompt_open --Cancel--> done
"""

import logging
from typing import List, Optional

from order_config.commands import (
    Cancel,
    CancelSecondary,
    CommitFinished,
    ConfirmSecondary,
    EditGroup,
    EditSecondary,
    FlowState,
    Submit,
    TargetChanged,
)
from order_config.contracts import SubmissionDraft
from order_config.core.condition_evaluator import ConditionEvaluator
from order_config.core.rule_registry import RuleRegistry
from order_config.core.selection_reducer import SelectionReducer, coerce_single_choice
from order_config.core.validator import SelectionValidator
from order_config.results import FlowResult, IllegalCommand
from order_config.utils.flow_phases import ABORTABLE_PHASES, FlowPhase
from order_config.utils.helpers import ordered_union

logger = logging.getLogger(__name__)

OUTCOME_COMMITTED = "committed"
OUTCOME_PERSISTENCE_FAILED = "persistence_failed"
OUTCOME_CANCELLED = "cancelled"
OUTCOME_TARGET_LOST = "target_lost"


class SubmissionFlow:
    """
    Coordinates the primary form, the secondary prompt and the commit.

    Holds no dialog state between calls - configs and collaborators are
    cached, the FlowState is passed in and returned.
    """

    MSG_SAVED = "已保存选项"
    MSG_SAVE_FAILED = "保存失败：{reason}"
    MSG_UNKNOWN_ERROR = "未知错误"
    MSG_TARGET_READ_FAILED = "获取选中记录失败"
    MSG_SECONDARY_INCOMPLETE = "请选择是否需要{title}"

    def __init__(self, registry, evaluator, reducer, validator, field_store):
        """
        Initialize with module instances.

        Args:
            registry: RuleRegistry instance (static)
            evaluator: ConditionEvaluator instance (stateless)
            reducer: SelectionReducer instance (stateless)
            validator: SelectionValidator instance (stateless)
            field_store: Collaborator with read_tokens(target) and
                write_tokens(target, tokens_or_none)

        Raises:
            TypeError: If any collaborator is missing a required method
        """
        self._validate_modules(evaluator, reducer, validator, field_store)

        self.registry = registry
        self.evaluator = evaluator
        self.reducer = reducer
        self.validator = validator
        self.field_store = field_store

        logger.info("Submission Flow initialized (functional core)")

    @classmethod
    def create(cls, field_store, ruleset_path: Optional[str] = None) -> "SubmissionFlow":
        """Build a flow with the default engine modules."""
        registry = RuleRegistry(ruleset_path)
        evaluator = ConditionEvaluator()
        return cls(
            registry=registry,
            evaluator=evaluator,
            reducer=SelectionReducer(registry, evaluator),
            validator=SelectionValidator(registry, evaluator),
            field_store=field_store
        )

    def _validate_modules(self, evaluator, reducer, validator, field_store):
        """Validate module interfaces"""
        if not callable(getattr(evaluator, 'is_applicable', None)):
            raise TypeError("evaluator must have callable is_applicable() method")

        if not callable(getattr(reducer, 'apply_edit', None)):
            raise TypeError("reducer must have callable apply_edit() method")

        if not callable(getattr(validator, 'validate', None)):
            raise TypeError("validator must have callable validate() method")

        if not callable(getattr(field_store, 'read_tokens', None)):
            raise TypeError("field_store must have callable read_tokens() method")

        if not callable(getattr(field_store, 'write_tokens', None)):
            raise TypeError("field_store must have callable write_tokens() method")

    # =========================================================================
    # Public API
    # =========================================================================

    def handle(self, command, state: Optional[FlowState] = None):
        """
        Process one command.

        Args:
            command: One of the command types in order_config.commands
            state: Current FlowState (None for a fresh flow)

        Returns:
            FlowResult, or IllegalCommand if the command is not valid in
            the current phase
        """
        if state is None:
            state = FlowState.initial()

        command_type = type(command).__name__

        if state.phase == FlowPhase.PHASE_COMMITTING and not isinstance(command, CommitFinished):
            return IllegalCommand(
                reason="Commit in progress; edits are disabled",
                command_type=command_type
            )

        if isinstance(command, TargetChanged):
            return self._handle_target_changed(command, state)
        if isinstance(command, EditGroup):
            return self._handle_edit_group(command, state)
        if isinstance(command, Submit):
            return self._handle_submit(state)
        if isinstance(command, Cancel):
            return self._handle_cancel(state)
        if isinstance(command, EditSecondary):
            return self._handle_edit_secondary(command, state)
        if isinstance(command, ConfirmSecondary):
            return self._handle_confirm_secondary(command, state)
        if isinstance(command, CancelSecondary):
            return self._handle_cancel_secondary(state)
        if isinstance(command, CommitFinished):
            return self._handle_commit_finished(command, state)

        return IllegalCommand(reason=f"Unknown command: {command_type}", command_type=command_type)

    def applicable_groups(self, state: FlowState) -> list:
        """Groups the primary form should render, registry order."""
        return self.evaluator.applicable_groups(self.registry.groups, state.selection)

    def need_secondary_prompt(self, selection) -> bool:
        """True unless the selection matches the prompt's skip condition."""
        skip_when = self.registry.secondary_prompt.skip_when
        if not skip_when:
            return True
        return not self.evaluator.evaluate(skip_when, selection)

    # =========================================================================
    # Target notifications
    # =========================================================================

    def _handle_target_changed(self, command: TargetChanged, state: FlowState):
        new_target = command.target

        if new_target is not None and new_target == state.target:
            return FlowResult(state=state, debug={'same_target': True})

        aborted_phase = state.phase if state.phase in ABORTABLE_PHASES else None
        if aborted_phase is not None:
            logger.info(f"Target changed during {aborted_phase.value}; discarding unsaved selection")

        debug = {'aborted_phase': aborted_phase.value if aborted_phase else None}

        if new_target is None:
            outcome = OUTCOME_TARGET_LOST if aborted_phase else state.outcome
            return FlowResult(
                state=FlowState(outcome=outcome),
                transitions=(FlowPhase.PHASE_DONE,),
                debug=debug
            )

        try:
            stored = self.field_store.read_tokens(new_target)
        except Exception as e:
            logger.error(f"Failed to read stored tokens for {new_target}: {e}")
            return FlowResult(
                state=FlowState(outcome=OUTCOME_TARGET_LOST if aborted_phase else None),
                message=self.MSG_TARGET_READ_FAILED,
                is_error=True,
                transitions=(FlowPhase.PHASE_DONE,),
                debug={**debug, 'error': str(e)}
            )

        selection = self.reducer.sanitize(stored)

        logger.info(
            f"Editing table={new_target.table_id} record={new_target.record_id} "
            f"({len(selection)} stored tokens)"
        )

        return FlowResult(
            state=FlowState(phase=FlowPhase.PHASE_EDITING, target=new_target, selection=selection),
            transitions=(FlowPhase.PHASE_EDITING,),
            debug={**debug, 'loaded_tokens': list(selection)}
        )

    # =========================================================================
    # Primary form
    # =========================================================================

    def _handle_edit_group(self, command: EditGroup, state: FlowState):
        if state.phase != FlowPhase.PHASE_EDITING:
            return self._illegal(command, state, "Group edits are only accepted while editing")

        variants = self.registry.groups_titled(command.group_title)
        if not variants:
            return self._illegal(command, state, f"Unknown group '{command.group_title}'")

        group = next(
            (variant for variant in variants if self.evaluator.is_applicable(variant, state.selection)),
            None
        )
        if group is None:
            return self._illegal(command, state, f"Group '{command.group_title}' is not applicable")

        try:
            selection = self.reducer.apply_edit(state.selection, group, command.values)
        except ValueError as e:
            return self._illegal(command, state, str(e))

        before, after = set(state.selection), set(selection)

        return FlowResult(
            state=state.evolve(selection=selection),
            debug={
                'group': group.title,
                'level': group.level,
                'added': [token for token in selection if token not in before],
                'removed': [token for token in state.selection if token not in after]
            }
        )

    def _handle_submit(self, state: FlowState):
        if state.phase != FlowPhase.PHASE_EDITING:
            return self._illegal(Submit(), state, "Submit is only accepted while editing")

        transitions = [FlowPhase.PHASE_VALIDATING]
        outcome = self.validator.validate(state.selection)

        if not outcome.ok:
            transitions.append(FlowPhase.PHASE_EDITING)
            return FlowResult(
                state=state,
                message=outcome.message,
                is_error=True,
                transitions=tuple(transitions),
                debug={
                    'validation_rule': outcome.rule_id,
                    'missing_group': outcome.missing_title,
                    'missing_group_level': outcome.missing_group.level if outcome.missing_group else None
                }
            )

        if not self.need_secondary_prompt(state.selection):
            return self._commit(state, state.selection, transitions)

        transitions.append(FlowPhase.PHASE_SECONDARY_PROMPT_OPEN)
        return FlowResult(
            state=state.evolve(
                phase=FlowPhase.PHASE_SECONDARY_PROMPT_OPEN,
                draft=SubmissionDraft(tokens=state.selection),
                secondary_selection=()
            ),
            transitions=tuple(transitions),
            debug={'secondary_prompt': self.registry.secondary_prompt.title}
        )

    def _handle_cancel(self, state: FlowState):
        if state.phase not in (FlowPhase.PHASE_EDITING, FlowPhase.PHASE_SECONDARY_PROMPT_OPEN):
            return self._illegal(Cancel(), state, "Nothing to cancel")

        logger.info("Order configuration cancelled; selection cleared")
        return FlowResult(
            state=FlowState(outcome=OUTCOME_CANCELLED),
            transitions=(FlowPhase.PHASE_DONE,)
        )

    # =========================================================================
    # Secondary prompt
    # =========================================================================

    def _handle_edit_secondary(self, command: EditSecondary, state: FlowState):
        if state.phase != FlowPhase.PHASE_SECONDARY_PROMPT_OPEN:
            return self._illegal(command, state, "Secondary prompt is not open")

        options = self.registry.secondary_prompt.options
        foreign = [value for value in command.values if value not in options]
        if foreign:
            return self._illegal(command, state, f"Values {foreign} are not secondary prompt options")

        secondary = coerce_single_choice(list(command.values), state.secondary_selection)
        return FlowResult(state=state.evolve(secondary_selection=secondary))

    def _handle_confirm_secondary(self, command: ConfirmSecondary, state: FlowState):
        if state.phase != FlowPhase.PHASE_SECONDARY_PROMPT_OPEN:
            return self._illegal(command, state, "Secondary prompt is not open")

        prompt = self.registry.secondary_prompt
        secondary = state.secondary_selection

        if command.token is not None:
            if command.token not in prompt.options:
                return self._illegal(command, state, f"'{command.token}' is not a secondary prompt option")
            secondary = (command.token,)

        if not secondary:
            return FlowResult(
                state=state,
                message=self.MSG_SECONDARY_INCOMPLETE.format(title=prompt.title),
                is_error=True
            )

        final_tokens = ordered_union(state.draft.tokens if state.draft else (), secondary)
        return self._commit(state.evolve(secondary_selection=secondary), final_tokens, [])

    def _handle_cancel_secondary(self, state: FlowState):
        if state.phase != FlowPhase.PHASE_SECONDARY_PROMPT_OPEN:
            return self._illegal(CancelSecondary(), state, "Secondary prompt is not open")

        return FlowResult(
            state=state.evolve(phase=FlowPhase.PHASE_EDITING, draft=None, secondary_selection=()),
            transitions=(FlowPhase.PHASE_EDITING,)
        )

    # =========================================================================
    # Commit
    # =========================================================================

    def write_pending(self, state: FlowState) -> CommitFinished:
        """
        Write the pending token list of a committing state.

        Runs the field store I/O outside handle(), so the host can publish
        the committing state first and reject other commands meanwhile.

        Args:
            state: FlowState in PHASE_COMMITTING

        Returns:
            CommitFinished to pass back into handle()

        Raises:
            ValueError: If state is not committing
        """
        if state.phase != FlowPhase.PHASE_COMMITTING or state.draft is None:
            raise ValueError(f"No commit pending in phase {state.phase.value}")

        tokens = state.draft.tokens
        try:
            self.field_store.write_tokens(state.target, list(tokens) if tokens else None)
        except Exception as e:
            logger.error(f"Save failed for {state.target}: {e}")
            return CommitFinished(ok=False, reason=str(e))

        return CommitFinished(ok=True)

    def complete_commit(self, state: FlowState) -> FlowResult:
        """Write and finish in one call (console harness, tests)."""
        return self.handle(self.write_pending(state), state)

    def _commit(self, state: FlowState, tokens, transitions: List[FlowPhase]) -> FlowResult:
        """Enter PHASE_COMMITTING with the final token list as the draft."""
        tokens = tuple(tokens)
        transitions = list(transitions) + [FlowPhase.PHASE_COMMITTING]

        logger.info(f"Committing {len(tokens)} tokens for {state.target}: {list(tokens)}")

        return FlowResult(
            state=state.evolve(phase=FlowPhase.PHASE_COMMITTING, draft=SubmissionDraft(tokens=tokens)),
            transitions=tuple(transitions),
            debug={'pending_tokens': list(tokens)}
        )

    def _handle_commit_finished(self, command: CommitFinished, state: FlowState):
        """
        Committing -> Done.

        The write outcome decides the message only. Both success and
        failure discard the selection and the target.
        """
        if state.phase != FlowPhase.PHASE_COMMITTING:
            return self._illegal(command, state, "No commit in progress")

        tokens = state.draft.tokens if state.draft else ()

        if command.ok:
            outcome = OUTCOME_COMMITTED
            message = self.MSG_SAVED
        else:
            outcome = OUTCOME_PERSISTENCE_FAILED
            message = self.MSG_SAVE_FAILED.format(reason=command.reason or self.MSG_UNKNOWN_ERROR)

        return FlowResult(
            state=FlowState(outcome=outcome),
            message=message,
            is_error=not command.ok,
            committed_tokens=tokens,
            transitions=(FlowPhase.PHASE_DONE,),
            debug={'commit_outcome': outcome}
        )

    def _illegal(self, command, state: FlowState, reason: str) -> IllegalCommand:
        logger.warning(f"Rejected {type(command).__name__} in phase {state.phase.value}: {reason}")
        return IllegalCommand(reason=reason, command_type=type(command).__name__)
