"""
Console Test Harness for the Order Configuration Selector

Simple console loop driving SubmissionFlow.handle() without the Flask
layer. Tokens are persisted through JsonFieldStore.
"""

import logging
import sys

from order_config.commands import (
    Cancel,
    CancelSecondary,
    ConfirmSecondary,
    EditGroup,
    FlowState,
    Submit,
    TargetChanged,
)
from order_config.contracts import Target
from order_config.core.submission_flow import SubmissionFlow
from order_config.persistence import JsonFieldStore
from order_config.results import IllegalCommand
from order_config.utils.flow_phases import FlowPhase

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"quit", "exit", "stop"}


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def print_groups(flow, state):
    """Print applicable groups with numbered options"""
    groups = flow.applicable_groups(state)
    for i, group in enumerate(groups, start=1):
        indent = "  " * (group.level - 1)
        marker = "*" if group.required else " "
        print(f"{indent}[{i}] {group.title}{marker}")
        for j, option in enumerate(group.options, start=1):
            checked = "x" if option in state.selection else " "
            print(f"{indent}    {j}. [{checked}] {option}")
    return groups


def parse_edit(line, groups):
    """
    Parse '<group no> <option nos...>' into an EditGroup command

    Returns None when the line is not a valid edit.
    """
    parts = line.split()
    try:
        numbers = [int(part) for part in parts]
    except ValueError:
        return None

    if not numbers or not 1 <= numbers[0] <= len(groups):
        return None

    group = groups[numbers[0] - 1]
    values = []
    for n in numbers[1:]:
        if not 1 <= n <= len(group.options):
            return None
        values.append(group.options[n - 1])

    return EditGroup(group_title=group.title, values=tuple(values))


def report(result):
    """Print a command result, return the state to keep"""
    if isinstance(result, IllegalCommand):
        print(f"\n(rejected) {result.reason}\n")
        return None

    if result.message:
        print(f"\n{'ERROR: ' if result.is_error else ''}{result.message}\n")

    if result.committed_tokens is not None:
        print(f"Committed: {list(result.committed_tokens)}")

    return result.state


def finish_commit(flow, state):
    """Write the pending tokens if the last command started a commit"""
    if state.phase != FlowPhase.PHASE_COMMITTING:
        return state
    print("Saving...")
    return report(flow.complete_commit(state))


def run_secondary_prompt(flow, state):
    """Ask the secondary question until confirmed or cancelled"""
    prompt = flow.registry.secondary_prompt

    while state.phase == FlowPhase.PHASE_SECONDARY_PROMPT_OPEN:
        print_separator("-")
        print(prompt.title)
        for j, option in enumerate(prompt.options, start=1):
            print(f"  {j}. {option}")
        answer = input("choice (number, empty to confirm nothing, 'back' to return) > ").strip().lower()

        if answer == "back":
            command = CancelSecondary()
        elif answer.isdigit() and 1 <= int(answer) <= len(prompt.options):
            command = ConfirmSecondary(token=prompt.options[int(answer) - 1])
        else:
            command = ConfirmSecondary()

        new_state = report(flow.handle(command, state))
        if new_state is not None:
            state = new_state
            state = finish_commit(flow, state)

    return state


def main():
    """Run console harness"""
    print_separator()
    print("ORDER CONFIGURATION SELECTOR - CONSOLE")
    print_separator()

    try:
        flow = SubmissionFlow.create(field_store=JsonFieldStore())
    except (FileNotFoundError, ValueError) as e:
        print(f"\nFailed to initialize: {e}")
        return 1

    state = FlowState.initial()
    print("Type 'quit', 'exit', or 'stop' to end\n")

    while True:
        try:
            if state.phase == FlowPhase.PHASE_DONE:
                line = input("table_id record_id > ").strip()
                if line.lower() in EXIT_COMMANDS:
                    break
                parts = line.split()
                if len(parts) != 2:
                    print("Please enter a table id and a record id.\n")
                    continue
                command = TargetChanged(target=Target(table_id=parts[0], record_id=parts[1]))
                state = report(flow.handle(command, state)) or state
                continue

            print_separator("-")
            groups = print_groups(flow, state)
            line = input("edit '<group> <options...>', 'submit' or 'cancel' > ").strip()

            if line.lower() in EXIT_COMMANDS:
                break
            elif line.lower() == "submit":
                command = Submit()
            elif line.lower() == "cancel":
                command = Cancel()
            else:
                command = parse_edit(line, groups)
                if command is None:
                    print("Could not parse edit.\n")
                    continue

            state = report(flow.handle(command, state)) or state
            state = finish_commit(flow, state)

            if state.phase == FlowPhase.PHASE_SECONDARY_PROMPT_OPEN:
                state = run_secondary_prompt(flow, state)

        except KeyboardInterrupt:
            print("\n\nInterrupted by user (Ctrl+C)")
            break

    print_separator()
    print("Console session complete")
    print_separator()
    return 0


if __name__ == '__main__':
    sys.exit(main())
