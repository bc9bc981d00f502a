"""
Flask Web Application for the Order Configuration Selector

JSON API for the host page: target notifications, group edits and the
four submission entry points. Rendering is left to the host page.
"""

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
import logging
import threading

from order_config.commands import (
    Cancel,
    CancelSecondary,
    ConfirmSecondary,
    EditGroup,
    EditSecondary,
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

# Initialize Flask app
app = Flask(__name__)
app.config['RULESET_PATH'] = None  # None = packaged ruleset
app.config['FIELD_STORE_DIR'] = 'outputs/field_store'

# Global state for the current dialog (FlowState kept as its JSON envelope)
current_session = {
    'flow': None,
    'state': FlowState.initial().to_json(),
}

# Serializes state transitions; the field store write runs outside it
session_lock = threading.Lock()


def get_flow():
    """Create the submission flow on first use (ruleset is loaded once)"""
    if current_session['flow'] is None:
        field_store = JsonFieldStore(app.config['FIELD_STORE_DIR'])
        current_session['flow'] = SubmissionFlow.create(
            field_store=field_store,
            ruleset_path=app.config['RULESET_PATH']
        )
    return current_session['flow']


def reset_session():
    """Drop the cached flow and dialog state (config changes, tests)"""
    with session_lock:
        current_session['flow'] = None
        current_session['state'] = FlowState.initial().to_json()


def load_state():
    return FlowState.from_json(current_session['state'])


def describe_state(state):
    """JSON view of the dialog state"""
    flow = get_flow()
    prompt = flow.registry.secondary_prompt
    prompt_open = state.phase == FlowPhase.PHASE_SECONDARY_PROMPT_OPEN

    view = state.to_json()
    view['secondary_prompt'] = {
        'open': True,
        'title': prompt.title,
        'options': list(prompt.options),
        'selection': list(state.secondary_selection),
    } if prompt_open else None
    return view


def dispatch(command):
    """
    Run one command against the current state and build the response

    A command that starts a commit publishes the committing state first,
    then writes without holding the lock, then applies CommitFinished.
    Commands arriving during the write see PHASE_COMMITTING and get 409.
    """
    flow = get_flow()

    with session_lock:
        result = flow.handle(command, load_state())
        if isinstance(result, IllegalCommand):
            return jsonify({
                'success': False,
                'error': result.reason,
                'command': result.command_type
            }), 409
        current_session['state'] = result.state.to_json()

    transitions = list(result.transitions)

    if result.state.phase == FlowPhase.PHASE_COMMITTING:
        finished = flow.write_pending(result.state)
        with session_lock:
            result = flow.handle(finished, load_state())
            current_session['state'] = result.state.to_json()
        transitions.extend(result.transitions)

    return jsonify({
        'success': not result.is_error,
        'message': result.message,
        'committed': list(result.committed_tokens) if result.committed_tokens is not None else None,
        'transitions': [phase.value for phase in transitions],
        'state': describe_state(result.state)
    })


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def string_list(data, key):
    values = data.get(key, [])
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise ValueError(f"'{key}' must be a list of strings")
    return tuple(values)


@app.errorhandler(ValueError)
def bad_request(e):
    return jsonify({'success': False, 'error': str(e)}), 400


@app.errorhandler(Exception)
def server_error(e):
    if isinstance(e, HTTPException):
        return jsonify({'success': False, 'error': e.description}), e.code
    logger.error(f"Unhandled error: {e}")
    return jsonify({'success': False, 'error': str(e)}), 500


@app.route('/api/state', methods=['GET'])
def get_state():
    """Current phase, target and selection"""
    with session_lock:
        state = load_state()
    return jsonify({'success': True, 'state': describe_state(state)})


@app.route('/api/groups', methods=['GET'])
def get_groups():
    """Applicable option groups for the primary form"""
    flow = get_flow()
    with session_lock:
        state = load_state()

    groups = []
    for group in flow.applicable_groups(state):
        groups.append({
            'title': group.title,
            'options': list(group.options),
            'required': group.required,
            'level': group.level,
            'parent_option': group.parent_option,
            'multi_choice': flow.registry.is_multi_choice(group),
            'selected': list(group.selected_in(state.selection)),
        })

    return jsonify({'success': True, 'groups': groups})


@app.route('/api/target', methods=['POST'])
def change_target():
    """Host focus moved to another record (or to none)"""
    data = json_body()
    table_id = data.get('table_id')
    record_id = data.get('record_id')

    if table_id in (None, '') or record_id in (None, ''):
        target = None
    else:
        target = Target(table_id=str(table_id), record_id=str(record_id))
    return dispatch(TargetChanged(target=target))


@app.route('/api/edit', methods=['POST'])
def edit_group():
    """Change the values of one group"""
    data = json_body()
    group_title = data.get('group')
    if not isinstance(group_title, str) or not group_title:
        raise ValueError("'group' is required")

    return dispatch(EditGroup(group_title=group_title, values=string_list(data, 'values')))


@app.route('/api/submit', methods=['POST'])
def submit():
    return dispatch(Submit())


@app.route('/api/cancel', methods=['POST'])
def cancel():
    return dispatch(Cancel())


@app.route('/api/secondary/select', methods=['POST'])
def select_secondary():
    data = json_body()
    return dispatch(EditSecondary(values=string_list(data, 'values')))


@app.route('/api/secondary/confirm', methods=['POST'])
def confirm_secondary():
    data = json_body()
    token = data.get('token')
    if token is not None and not isinstance(token, str):
        raise ValueError("'token' must be a string")

    return dispatch(ConfirmSecondary(token=token))


@app.route('/api/secondary/cancel', methods=['POST'])
def cancel_secondary():
    return dispatch(CancelSecondary())


if __name__ == '__main__':
    print("\n" + "="*60)
    print("ORDER CONFIGURATION SELECTOR - API SERVER")
    print("="*60)
    print("\nServer starting on http://localhost:5000")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    app.run(debug=False, port=5000)
