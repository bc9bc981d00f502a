"""
Test Selection Reducer

Single/multi-choice coercion, reset_on exclusivity and stored token
sanitizing against the packaged ruleset.
"""

import itertools

import pytest

from order_config.core.rule_registry import RuleRegistry
from order_config.core.selection_reducer import SelectionReducer, coerce_single_choice


@pytest.fixture(scope="module")
def registry():
    return RuleRegistry()


@pytest.fixture(scope="module")
def reducer(registry):
    return SelectionReducer(registry)


def group(registry, title):
    return registry.groups_titled(title)[0]


# ========== Single-choice coercion ==========

def test_coerce_keeps_newly_added_value():
    assert coerce_single_choice(['需要打板', '不需要打板'], ['需要打板']) == ('不需要打板',)


def test_coerce_newly_added_value_regardless_of_position():
    assert coerce_single_choice(['不需要打板', '需要打板'], ['需要打板']) == ('不需要打板',)


def test_coerce_falls_back_to_last_value():
    assert coerce_single_choice(['需要打板'], ['需要打板']) == ('需要打板',)


def test_coerce_empty():
    assert coerce_single_choice([], ['需要打板']) == ()


# ========== Scenarios ==========

def test_first_order_no_plate(registry, reducer):
    """Scenario A: choosing 不需要打板 under 首单 keeps both tokens."""
    result = reducer.apply_edit(('首单',), group(registry, '是否要打板'), ['不需要打板'])

    assert result == ('首单', '不需要打板')


def test_switch_to_reorder_drops_first_order_branch(registry, reducer):
    """Scenario B: 翻单 resets 是否要打板 tokens."""
    result = reducer.apply_edit(('首单', '需要打板'), group(registry, '单据类型'), ['翻单'])

    assert result == ('翻单',)


def test_switch_to_reorder_drops_color_sample(registry, reducer):
    """Scenario B: 翻单 also resets the level-3 colour sample decision."""
    selection = ('首单', '不需要打板', '要批色样')

    result = reducer.apply_edit(selection, group(registry, '单据类型'), ['首单', '翻单'])

    assert result == ('翻单',)


def test_unrelated_groups_survive_reset(registry, reducer):
    selection = ('首单', '需要打板', '牛仔', '绣花')

    result = reducer.apply_edit(selection, group(registry, '单据类型'), ['翻单'])

    assert result == ('牛仔', '绣花', '翻单')


def test_no_change_reorder_drops_special_order_and_color_sample(registry, reducer):
    selection = ('翻单', '有变动需要修改', '加色', '要批色样')

    result = reducer.apply_edit(selection, group(registry, '翻单变动'), ['无变动不需要修改'])

    assert result == ('翻单', '无变动不需要修改')


def test_plate_choice_resets_level_4_color_sample_tokens(registry, reducer):
    """Shared tokens are removed when any variant's reset_on fires."""
    selection = ('首单', '不需要打板', '不要批色样')

    result = reducer.apply_edit(selection, group(registry, '是否要打板'), ['需要打板'])

    assert result == ('首单', '需要打板')


def test_single_choice_replaces_previous_token(registry, reducer):
    result = reducer.apply_edit(('简单款', '牛仔'), group(registry, '复杂度'), ['简单款', '复杂款'])

    assert result == ('牛仔', '复杂款')


def test_clearing_single_choice_group(registry, reducer):
    result = reducer.apply_edit(('首单', '需要打板'), group(registry, '是否要打板'), [])

    assert result == ('首单',)


def test_multi_choice_group_keeps_all_values(registry, reducer):
    result = reducer.apply_edit(('牛仔', '绣花'), group(registry, '二次工艺'), ['绣花', '印花'])

    assert result == ('牛仔', '绣花', '印花')


def test_multi_choice_group_can_be_emptied(registry, reducer):
    result = reducer.apply_edit(('牛仔', '绣花', '印花'), group(registry, '二次工艺'), [])

    assert result == ('牛仔',)


def test_foreign_value_rejected(registry, reducer):
    with pytest.raises(ValueError, match="not options of group"):
        reducer.apply_edit(('首单',), group(registry, '是否要打板'), ['翻单'])


def test_input_selection_not_mutated(registry, reducer):
    selection = ['首单', '需要打板']

    reducer.apply_edit(selection, group(registry, '单据类型'), ['翻单'])

    assert selection == ['首单', '需要打板']


# ========== Properties ==========

BASE_SELECTIONS = [
    (),
    ('首单',),
    ('首单', '需要打板', '牛仔', '基础款'),
    ('首单', '不需要打板', '要批色样', '时装', '有产能'),
    ('翻单', '无变动不需要修改', '复杂款', '绣花'),
    ('翻单', '有变动需要修改', '加色', '不要批色样', '印花', '绣花'),
]


def candidate_edits(g):
    yield []
    for option in g.options:
        yield [option]
    for pair in itertools.permutations(g.options, 2):
        yield list(pair)


def all_edits(registry):
    for selection in BASE_SELECTIONS:
        for g in registry.groups:
            for values in candidate_edits(g):
                yield selection, g, values


def test_single_choice_invariant(registry, reducer):
    """At most one token per single-choice group after any edit."""
    for selection, g, values in all_edits(registry):
        result = reducer.apply_edit(selection, g, values)

        for other in registry.groups:
            if registry.is_multi_choice(other):
                continue
            assert len(other.selected_in(result)) <= 1, (selection, g.title, values, result)


def test_reset_invariant(registry, reducer):
    """No token of a group whose reset_on fired survives the edit."""
    for selection, g, values in all_edits(registry):
        result = reducer.apply_edit(selection, g, values)
        added = set(result) - set(selection)

        for other in registry.groups:
            if other.reset_on & added:
                assert not other.selected_in(result), (selection, g.title, values, result)


def test_result_has_no_duplicates(registry, reducer):
    for selection, g, values in all_edits(registry):
        result = reducer.apply_edit(selection, g, values)
        assert len(result) == len(set(result))


def test_reapplying_same_values_is_idempotent(registry, reducer):
    """Re-affirming a group's current values adds nothing and resets nothing."""
    for selection in BASE_SELECTIONS:
        for g in registry.groups:
            current = list(g.selected_in(selection))
            result = reducer.apply_edit(selection, g, current)
            assert result == selection, (selection, g.title)


# ========== Sanitizing stored tokens ==========

def test_sanitize_drops_unknown_and_duplicate_tokens(reducer):
    stored = ['首单', '需要面料测试', '牛仔', '首单', '旧选项']

    assert reducer.sanitize(stored) == ('首单', '牛仔')


def test_sanitize_empty(reducer):
    assert reducer.sanitize(None) == ()
    assert reducer.sanitize([]) == ()


def test_sanitize_keeps_last_stored_single_choice_token(reducer):
    stored = ['首单', '翻单', '需要打板', '牛仔', '时装', '基础款', '有产能']

    result = reducer.sanitize(stored)

    # 翻单 wins over 首单, which hides 是否要打板 and drops 需要打板
    assert result == ('翻单', '时装', '基础款', '有产能')


def test_sanitize_keeps_multi_choice_values(reducer):
    assert reducer.sanitize(['印花', '牛仔', '绣花']) == ('印花', '牛仔', '绣花')


def test_sanitize_drops_hidden_groups_transitively(reducer):
    """Dropping 有变动需要修改 hides 特殊订单, which hides level-4 批色样."""
    stored = ['翻单', '有变动需要修改', '加色', '要批色样', '无变动不需要修改']

    assert reducer.sanitize(stored) == ('翻单', '无变动不需要修改')


def test_sanitized_selection_satisfies_invariants(registry, reducer):
    stored = ['首单', '不需要打板', '需要打板', '要批色样', '不要批色样', '复杂款', '简单款']

    result = reducer.sanitize(stored)

    assert result == ('首单', '需要打板', '简单款')
    for g in registry.groups:
        if not registry.is_multi_choice(g):
            assert len(g.selected_in(result)) <= 1, g.title
