"""
Result types returned by SubmissionFlow.handle()

These are the ONLY return types from the command handler.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from order_config.commands import FlowState
from order_config.utils.flow_phases import FlowPhase


@dataclass(frozen=True)
class FlowResult:
    """
    Accepted command result.

    Attributes:
        state: New flow state (pass to the next handle() call)
        message: One human-readable status or error string, or None
        is_error: True when message reports a failure (validation,
            incomplete prompt, persistence, target read)
        committed_tokens: Final token list handed to the field store,
            None if this command did not commit
        transitions: Phases entered while handling the command, in order
        debug: Debug information (validation rule, reset groups, etc.)
    """
    state: FlowState
    message: Optional[str] = None
    is_error: bool = False
    committed_tokens: Optional[Tuple[str, ...]] = None
    transitions: Tuple[FlowPhase, ...] = ()
    debug: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IllegalCommand:
    """
    Command rejected by the flow (invalid lifecycle transition).

    Examples:
    - EditGroup when no record is targeted
    - Submit while the secondary prompt is open
    - Any command while committing

    Attributes:
        reason: Human-readable explanation
        command_type: Name of rejected command type
    """
    reason: str
    command_type: str
