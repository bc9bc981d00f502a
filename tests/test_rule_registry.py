"""
Test Suite for the Rule Registry

Ruleset loading, token ownership and fail-fast validation.
"""

import copy
import json
import os
import tempfile
import unittest

from order_config.core.rule_registry import DEFAULT_RULESET_PATH, RuleRegistry


def load_default_ruleset():
    with open(DEFAULT_RULESET_PATH, 'r', encoding='utf-8') as f:
        return json.load(f)


class RulesetFileTestCase(unittest.TestCase):
    """Writes rulesets to temp files and cleans them up."""

    def setUp(self):
        self.base_ruleset = load_default_ruleset()
        self.temp_paths = []

    def tearDown(self):
        for path in self.temp_paths:
            os.unlink(path)

    def write_ruleset(self, ruleset):
        temp_file = tempfile.NamedTemporaryFile(
            mode='w', suffix='.json', delete=False, encoding='utf-8'
        )
        json.dump(ruleset, temp_file, ensure_ascii=False)
        temp_file.close()
        self.temp_paths.append(temp_file.name)
        return temp_file.name

    def mutated(self):
        return copy.deepcopy(self.base_ruleset)


# =============================================================================
# PART 1: Packaged ruleset
# =============================================================================

class TestPackagedRuleset(unittest.TestCase):

    def setUp(self):
        self.registry = RuleRegistry()

    def test_declaration_order(self):
        titles = [group.title for group in self.registry.groups]

        self.assertEqual(titles, [
            '单据类型', '是否要打板', '翻单变动', '特殊订单', '批色样', '批色样',
            '品类', '复杂度', '产能', '二次工艺'
        ])

    def test_color_sample_variants(self):
        variants = self.registry.groups_titled('批色样')

        self.assertEqual([group.level for group in variants], [4, 3])
        self.assertEqual(variants[0].options, variants[1].options)
        self.assertTrue(all(group.required for group in variants))

    def test_owner_of_first_match_wins(self):
        """Shared tokens belong to the first variant in declaration order."""
        owner = self.registry.owner_of('要批色样')

        self.assertEqual(owner.title, '批色样')
        self.assertEqual(owner.level, 4)

    def test_owner_of_unique_token(self):
        self.assertEqual(self.registry.owner_of('翻单').title, '单据类型')

    def test_owner_of_unknown_token(self):
        self.assertIsNone(self.registry.owner_of('需要面料测试'))

    def test_multi_choice_group(self):
        multi = [group.title for group in self.registry.groups if self.registry.is_multi_choice(group)]

        self.assertEqual(multi, ['二次工艺'])

    def test_reset_on_parsed_as_frozenset(self):
        group = self.registry.groups_titled('是否要打板')[0]

        self.assertEqual(group.reset_on, frozenset({'翻单'}))
        self.assertEqual(group.parent_option, '首单')

    def test_secondary_prompt(self):
        prompt = self.registry.secondary_prompt

        self.assertEqual(prompt.title, '面料测试')
        self.assertEqual(prompt.options, ('需要面料测试', '不需要面料测试'))

    def test_composite_rules(self):
        rule_ids = [rule.id for rule in self.registry.composite_rules]

        self.assertEqual(rule_ids, ['first_order_without_plate_needs_color_sample'])
        self.assertEqual(self.registry.composite_rules[0].group_title, '批色样')

    def test_all_tokens_excludes_secondary_prompt(self):
        tokens = self.registry.all_tokens

        self.assertIn('绣花', tokens)
        self.assertNotIn('不需要面料测试', tokens)
        self.assertEqual(len(tokens), 22)


# =============================================================================
# PART 2: Validation failures
# =============================================================================

class TestRulesetValidation(RulesetFileTestCase):

    def assertInvalid(self, ruleset, fragment):
        with self.assertRaises(ValueError) as ctx:
            RuleRegistry(self.write_ruleset(ruleset))
        self.assertIn(fragment, str(ctx.exception))

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            RuleRegistry('/nonexistent/ruleset.json')

    def test_custom_ruleset_loads(self):
        registry = RuleRegistry(self.write_ruleset(self.base_ruleset))

        self.assertEqual(len(registry.groups), 10)

    def test_missing_option_groups(self):
        ruleset = self.mutated()
        ruleset['option_groups'] = []

        self.assertInvalid(ruleset, "Missing 'option_groups'")

    def test_token_shared_across_different_titles(self):
        ruleset = self.mutated()
        ruleset['option_groups'][6]['options'].append('首单')

        self.assertInvalid(ruleset, "Token '首单' in group '品类'")

    def test_variant_with_different_options_rejected(self):
        ruleset = self.mutated()
        ruleset['option_groups'][5]['options'] = ['要批色样']

        self.assertInvalid(ruleset, "only same-title variants may share tokens")

    def test_duplicate_options(self):
        ruleset = self.mutated()
        ruleset['option_groups'][6]['options'] = ['牛仔', '牛仔']

        self.assertInvalid(ruleset, "has duplicate options")

    def test_unknown_reset_on_token(self):
        ruleset = self.mutated()
        ruleset['option_groups'][1]['reset_on'] = ['返单']

        self.assertInvalid(ruleset, "reset_on references unknown token '返单'")

    def test_unknown_condition_operator(self):
        ruleset = self.mutated()
        ruleset['option_groups'][1]['condition'] = {'equals': '首单'}

        self.assertInvalid(ruleset, "unknown operator")

    def test_unknown_condition_token(self):
        ruleset = self.mutated()
        ruleset['option_groups'][1]['condition'] = {'contains': '首 单'}

        self.assertInvalid(ruleset, "condition references unknown token")

    def test_unknown_multi_choice_group(self):
        ruleset = self.mutated()
        ruleset['multi_choice_group'] = '三次工艺'

        self.assertInvalid(ruleset, "multi_choice_group '三次工艺'")

    def test_secondary_prompt_needs_two_options(self):
        ruleset = self.mutated()
        ruleset['secondary_prompt']['options'] = ['需要面料测试']

        self.assertInvalid(ruleset, "exactly two distinct options")

    def test_secondary_prompt_options_must_not_overlap(self):
        ruleset = self.mutated()
        ruleset['secondary_prompt']['options'] = ['需要面料测试', '牛仔']

        self.assertInvalid(ruleset, "also an option group token")

    def test_composite_rule_unknown_group(self):
        ruleset = self.mutated()
        ruleset['composite_rules'][0]['group_title'] = '色样'

        self.assertInvalid(ruleset, "names undefined group '色样'")

    def test_all_errors_reported_together(self):
        ruleset = self.mutated()
        ruleset['option_groups'][1]['reset_on'] = ['返单']
        ruleset['multi_choice_group'] = '三次工艺'

        with self.assertRaises(ValueError) as ctx:
            RuleRegistry(self.write_ruleset(ruleset))

        message = str(ctx.exception)
        self.assertIn("'返单'", message)
        self.assertIn("'三次工艺'", message)


if __name__ == '__main__':
    unittest.main()
