"""
Test suite for the email rules engine.

Test Coverage:

1. Condition evaluation:
   - String fields (from, to, subject, body) with contains, not_contains,
     starts_with, ends_with, equals, is, is_not and regex
   - Boolean fields (has_attachments, is_read, ...) with strict comparison
   - received_date age comparisons in days and months
   - Tagged outcomes for type mismatches, unknown fields and bad patterns

2. Condition groups:
   - AND / OR logic and the empty-group default

3. Actions:
   - Flag updates, folder moves, idempotent labels
   - Unsupported and unknown action types

4. Rule execution:
   - Priority ordering and cumulative state between rules
   - Statistics updates and per-rule isolation
"""

import os
import sys
import unittest
from datetime import timedelta

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pydantic import ValidationError

from src.database.models import utcnow
from src.rules.actions import ActionExecutor, ActionOutcome
from src.rules.conditions import ConditionOutcome, check_condition, evaluate_condition, evaluate_condition_group
from src.rules.engine import RulesEngine
from src.rules.schema import ConditionGroup, RuleAction, RuleCondition, StoredCondition

from support import DatabaseTestCase, make_email, make_rule


class TestConditionEvaluation(unittest.TestCase):

    def test_string_field_operators(self):
        """String fields compare case-insensitively"""
        email = make_email(
            from_address='Billing@Acme.com',
            to_addresses=['me@example.com', 'team@example.com'],
            subject='Invoice #123',
            body_text='Hello, please find attached',
        )

        test_cases = [
            ('from', 'contains', 'acme.com', True),
            ('from', 'contains', 'ACME', True),
            ('from', 'contains', 'yahoo.com', False),
            ('from', 'not_contains', 'spam', True),
            ('from', 'equals', 'billing@acme.com', True),
            ('from', 'is_not', 'billing@acme.com', False),
            ('from', 'starts_with', 'billing@', True),
            ('from', 'ends_with', '.com', True),
            ('from', 'ends_with', '.org', False),
            ('subject', 'contains', 'invoice', True),
            ('subject', 'contains', '', True),
            ('subject', 'is', 'invoice #123', True),
            ('subject', 'regex', r'invoice\s+#\d+', True),
            ('subject', 'regex', r'^receipt', False),
            ('body', 'contains', 'attached', True),
            ('body', 'starts_with', 'goodbye', False),
            ('to', 'contains', 'team@', True),
            ('to', 'equals', 'me@example.com', True),
            ('to', 'not_contains', 'example.com', False),
            ('to', 'is_not', 'boss@example.com', True),
        ]

        for field, operator, value, should_match in test_cases:
            with self.subTest(field=field, operator=operator, value=value):
                condition = RuleCondition(field=field, operator=operator, value=value)
                self.assertEqual(evaluate_condition(email, condition), should_match)

    def test_body_falls_back_to_html(self):
        email = make_email(body_text=None, body_html='<p>Your order has shipped</p>')
        condition = RuleCondition(field='body', operator='contains', value='shipped')
        self.assertTrue(evaluate_condition(email, condition))

    def test_boolean_fields(self):
        email = make_email(has_attachments=True, is_read=False)

        test_cases = [
            ('has_attachments', 'equals', True, True),
            ('has_attachments', 'equals', 'true', True),
            ('has_attachments', 'is', False, False),
            ('has_attachments', 'is_not', False, True),
            ('is_read', 'is', True, False),
            ('is_read', 'is', 'FALSE', True),
            ('is_read', 'is_not', True, True),
        ]

        for field, operator, value, should_match in test_cases:
            with self.subTest(field=field, operator=operator, value=value):
                condition = RuleCondition(field=field, operator=operator, value=value)
                self.assertEqual(evaluate_condition(email, condition), should_match)

    def test_boolean_field_with_string_operator_is_type_mismatch(self):
        email = make_email(has_attachments=True)
        condition = RuleCondition(field='has_attachments', operator='contains', value='tru')

        self.assertEqual(check_condition(email, condition), ConditionOutcome.TYPE_MISMATCH)
        self.assertFalse(evaluate_condition(email, condition))

    def test_received_date_age(self):
        now = utcnow()
        test_cases = [
            ('less_than', '2', 'days', now - timedelta(days=1), True),
            ('less_than', '2', 'days', now - timedelta(days=3), False),
            ('greater_than', '2', 'days', now - timedelta(days=3), True),
            ('greater_than', '2', 'days', now - timedelta(days=1), False),
            ('less_than', '1', 'months', now - timedelta(days=15), True),
            ('greater_than', '1', 'months', now - timedelta(days=45), True),
            ('less_than', '0', 'days', now, False),
            ('greater_than', '-1', 'days', now, False),
            ('less_than', 'soon', 'days', now, False),
        ]

        for operator, value, unit, received_at, should_match in test_cases:
            with self.subTest(operator=operator, value=value, unit=unit):
                email = make_email(received_at=received_at)
                condition = RuleCondition(field='received_date', operator=operator, value=value, unit=unit)
                self.assertEqual(evaluate_condition(email, condition), should_match)

    def test_invalid_regex_never_raises(self):
        email = make_email(subject='Invoice (draft')
        condition = RuleCondition(field='subject', operator='regex', value='(unclosed')

        self.assertEqual(check_condition(email, condition), ConditionOutcome.INVALID_PATTERN)
        self.assertFalse(evaluate_condition(email, condition))

    def test_unknown_field_is_field_missing(self):
        email = make_email()
        condition = StoredCondition(field='priority', operator='equals', value='high')

        self.assertEqual(check_condition(email, condition), ConditionOutcome.FIELD_MISSING)
        self.assertFalse(evaluate_condition(email, condition))

    def test_unknown_operator_never_matches(self):
        email = make_email()
        for operator in ('matches', 'not_equals'):
            with self.subTest(operator=operator):
                condition = StoredCondition(field='subject', operator=operator, value='Invoice #123')
                self.assertEqual(check_condition(email, condition), ConditionOutcome.NOT_MATCHED)

    def test_authored_conditions_reject_unknown_names(self):
        with self.assertRaises(ValidationError):
            RuleCondition(field='priority', operator='equals', value='high')
        with self.assertRaises(ValidationError):
            RuleCondition(field='subject', operator='matches', value='x')

    def test_evaluation_has_no_side_effects(self):
        email = make_email(label_ids=['work'])
        condition = RuleCondition(field='label', operator='equals', value='work')

        self.assertTrue(evaluate_condition(email, condition))
        self.assertTrue(evaluate_condition(email, condition))
        self.assertEqual(email.label_ids, ['work'])


class TestConditionGroups(unittest.TestCase):

    def setUp(self):
        self.email = make_email(from_address='test@gmail.com', subject='Important meeting')
        self.matching = {'field': 'from', 'operator': 'contains', 'value': 'gmail.com'}
        self.failing = {'field': 'subject', 'operator': 'contains', 'value': 'spam'}

    def test_empty_group_never_matches(self):
        for logic in ('AND', 'OR'):
            with self.subTest(logic=logic):
                self.assertFalse(evaluate_condition_group(self.email, ConditionGroup(logic=logic, rules=[])))

    def test_logic(self):
        test_cases = [
            ('AND', [self.matching, self.matching], True),
            ('AND', [self.matching, self.failing], False),
            ('AND', [self.failing, self.failing], False),
            ('OR', [self.failing, self.matching], True),
            ('OR', [self.matching, self.failing], True),
            ('OR', [self.failing, self.failing], False),
        ]

        for logic, rules, should_match in test_cases:
            with self.subTest(logic=logic, rules=rules):
                group = ConditionGroup.model_validate({'logic': logic, 'rules': rules})
                self.assertEqual(evaluate_condition_group(self.email, group), should_match)

    def test_lowercase_logic_is_accepted(self):
        group = ConditionGroup.model_validate({'logic': 'or', 'rules': [self.failing, self.matching]})
        self.assertTrue(evaluate_condition_group(self.email, group))


class TestActionExecutor(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.email = await self.save(make_email())
        self.executor = ActionExecutor(self.db)

    async def test_flag_actions(self):
        test_cases = [
            ('mark_as_read', 'is_read'),
            ('mark_as_starred', 'is_starred'),
            ('mark_as_important', 'is_important'),
            ('delete', 'is_trash'),
        ]

        for action_type, column in test_cases:
            with self.subTest(action=action_type):
                self.assertTrue(await self.executor.execute(self.email.id, RuleAction(type=action_type)))
                email = await self.reload(self.email)
                self.assertTrue(getattr(email, column))

    async def test_move_to_folder(self):
        test_cases = [
            ('archive', 'is_archived'),
            ('Trash', 'is_trash'),
            ('spam', 'is_spam'),
        ]

        for folder, column in test_cases:
            with self.subTest(folder=folder):
                action = RuleAction(type='move_to_folder', value=folder)
                self.assertTrue(await self.executor.execute(self.email.id, action))
                email = await self.reload(self.email)
                self.assertTrue(getattr(email, column))

        await self.executor.execute(self.email.id, RuleAction(type='move_to_folder', value='Clients'))
        email = await self.reload(self.email)
        self.assertEqual(email.folder_name, 'Clients')

    async def test_move_to_folder_accepts_destination_key(self):
        action = RuleAction.model_validate({'type': 'move_to_folder', 'destination': 'Work'})
        await self.executor.execute(self.email.id, action)

        email = await self.reload(self.email)
        self.assertEqual(email.folder_name, 'Work')

    async def test_apply_label_is_idempotent(self):
        action = RuleAction(type='apply_label', value='receipts')

        self.assertTrue(await self.executor.execute(self.email.id, action))
        self.assertTrue(await self.executor.execute(self.email.id, action))

        email = await self.reload(self.email)
        self.assertEqual(email.label_ids, ['receipts'])

    async def test_unsupported_actions_are_not_implemented(self):
        for action_type in ('forward', 'auto_reply', 'block_sender', 'run_ai_task'):
            with self.subTest(action=action_type):
                action = RuleAction(type=action_type, value='someone@example.com')
                self.assertEqual(await self.executor.run(self.email.id, action), ActionOutcome.NOT_IMPLEMENTED)
                self.assertFalse(await self.executor.execute(self.email.id, action))

    async def test_unknown_action_fails_without_raising(self):
        action = RuleAction(type='teleport')
        self.assertEqual(await self.executor.run(self.email.id, action), ActionOutcome.FAILED)

    async def test_execute_all_runs_every_action(self):
        actions = [
            RuleAction(type='forward', value='boss@example.com'),
            RuleAction(type='teleport'),
            RuleAction(type='mark_as_read'),
        ]

        summary = await self.executor.execute_all(self.email.id, actions)

        self.assertEqual(summary.total, 3)
        self.assertEqual(summary.successful, 1)
        self.assertEqual(summary.failed, 2)
        self.assertEqual(summary.not_implemented, 1)
        email = await self.reload(self.email)
        self.assertTrue(email.is_read)


class TestRulesEngine(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.engine = RulesEngine(self.db)

    async def test_invoice_scenario(self):
        email = await self.save(make_email(subject='Invoice #123', from_address='billing@acme.com'))
        rule = await self.save(make_rule(
            conditions={'logic': 'AND', 'rules': [{'field': 'subject', 'operator': 'contains', 'value': 'invoice'}]},
            actions=[{'type': 'apply_label', 'value': 'receipts'}],
        ))

        summary = await self.engine.execute_rules_for_email(email.id)

        self.assertEqual(summary.executed_rules, 1)
        self.assertEqual(summary.matched_rules, 1)
        self.assertEqual(summary.actions_executed, 1)
        email = await self.reload(email)
        self.assertEqual(email.label_ids, ['receipts'])
        rule = await self.reload(rule)
        self.assertEqual(rule.match_count, 1)
        self.assertIsNotNone(rule.last_triggered_at)

    async def test_missing_email_returns_zeros(self):
        summary = await self.engine.execute_rules_for_email('does-not-exist')
        self.assertEqual(summary.to_dict(), {'executed_rules': 0, 'matched_rules': 0, 'actions_executed': 0})

    async def test_counts_evaluated_and_matched_rules(self):
        email = await self.save(make_email())
        subject_is = lambda text: {'logic': 'AND', 'rules': [{'field': 'subject', 'operator': 'contains', 'value': text}]}
        await self.save(
            make_rule(subject_is('invoice'), [{'type': 'mark_as_read'}], priority=1),
            make_rule(subject_is('newsletter'), [{'type': 'delete'}], priority=2),
            make_rule(subject_is('#123'), [{'type': 'mark_as_starred'}, {'type': 'apply_label', 'value': 'x'}], priority=3),
            make_rule(subject_is('invoice'), [{'type': 'delete'}], priority=4, enabled=False),
            make_rule(subject_is('invoice'), [{'type': 'delete'}], priority=5, account_id='acct-2'),
        )

        summary = await self.engine.execute_rules_for_email(email.id)

        self.assertEqual(summary.executed_rules, 3)
        self.assertEqual(summary.matched_rules, 2)
        self.assertEqual(summary.actions_executed, 3)
        email = await self.reload(email)
        self.assertFalse(email.is_trash)

    async def test_later_rules_see_earlier_changes(self):
        email = await self.save(make_email(is_read=False))
        await self.save(
            make_rule({'logic': 'AND', 'rules': [{'field': 'from', 'operator': 'contains', 'value': 'acme'}]},
                      [{'type': 'mark_as_read'}], priority=1),
            make_rule({'logic': 'AND', 'rules': [{'field': 'is_read', 'operator': 'is', 'value': True}]},
                      [{'type': 'apply_label', 'value': 'seen'}], priority=2),
        )

        summary = await self.engine.execute_rules_for_email(email.id)

        self.assertEqual(summary.matched_rules, 2)
        email = await self.reload(email)
        self.assertEqual(email.label_ids, ['seen'])

    async def test_priority_order_matters(self):
        email = await self.save(make_email(is_read=False))
        await self.save(
            make_rule({'logic': 'AND', 'rules': [{'field': 'from', 'operator': 'contains', 'value': 'acme'}]},
                      [{'type': 'mark_as_read'}], priority=2),
            make_rule({'logic': 'AND', 'rules': [{'field': 'is_read', 'operator': 'is', 'value': True}]},
                      [{'type': 'apply_label', 'value': 'seen'}], priority=1),
        )

        summary = await self.engine.execute_rules_for_email(email.id)

        self.assertEqual(summary.matched_rules, 1)
        email = await self.reload(email)
        self.assertTrue(email.is_read)
        self.assertEqual(email.label_ids, [])

    async def test_failed_action_still_counts_match(self):
        email = await self.save(make_email())
        rule = await self.save(make_rule(
            {'logic': 'OR', 'rules': [{'field': 'subject', 'operator': 'contains', 'value': 'invoice'}]},
            [{'type': 'forward', 'value': 'accountant@example.com'}, {'type': 'mark_as_read'}],
        ))

        summary = await self.engine.execute_rules_for_email(email.id)

        self.assertEqual(summary.matched_rules, 1)
        self.assertEqual(summary.actions_executed, 1)
        rule = await self.reload(rule)
        self.assertEqual(rule.match_count, 1)

    async def test_broken_rule_does_not_stop_others(self):
        email = await self.save(make_email())
        await self.save(
            make_rule({'logic': 'AND', 'rules': 'subject contains invoice'},
                      [{'type': 'delete'}], priority=0),
            make_rule({'logic': 'AND', 'rules': [{'field': 'subject', 'operator': 'regex', 'value': '(['}]},
                      [{'type': 'delete'}], priority=1),
            make_rule({'logic': 'AND', 'rules': [{'field': 'subject', 'operator': 'starts_with', 'value': 'invoice'}]},
                      [{'type': 'mark_as_important'}], priority=2),
        )

        summary = await self.engine.execute_rules_for_email(email.id)

        self.assertEqual(summary.executed_rules, 3)
        self.assertEqual(summary.matched_rules, 1)
        email = await self.reload(email)
        self.assertTrue(email.is_important)
        self.assertFalse(email.is_trash)

    async def test_unknown_field_only_fails_its_own_condition(self):
        email = await self.save(make_email(subject='Invoice #123'))
        rule = await self.save(make_rule(
            {'logic': 'OR', 'rules': [
                {'field': 'priority', 'operator': 'equals', 'value': 'high'},
                {'field': 'subject', 'operator': 'contains', 'value': 'invoice'},
            ]},
            [{'type': 'apply_label', 'value': 'receipts'}],
        ))

        summary = await self.engine.execute_rules_for_email(email.id)

        self.assertEqual(summary.matched_rules, 1)
        self.assertEqual(summary.actions_executed, 1)
        email = await self.reload(email)
        self.assertEqual(email.label_ids, ['receipts'])
        rule = await self.reload(rule)
        self.assertEqual(rule.match_count, 1)

    async def test_unknown_field_or_operator_fails_and_group(self):
        email = await self.save(make_email(subject='Invoice #123'))
        unknown_field, _ = await self.save(
            make_rule({'logic': 'AND', 'rules': [
                {'field': 'subject', 'operator': 'contains', 'value': 'invoice'},
                {'field': 'priority', 'operator': 'equals', 'value': 'high'},
            ]}, [{'type': 'delete'}], priority=0),
            make_rule({'logic': 'AND', 'rules': [
                {'field': 'subject', 'operator': 'fuzzy', 'value': 'invoice'},
            ]}, [{'type': 'delete'}], priority=1),
        )

        summary = await self.engine.execute_rules_for_email(email.id)

        self.assertEqual(summary.executed_rules, 2)
        self.assertEqual(summary.matched_rules, 0)
        email = await self.reload(email)
        self.assertFalse(email.is_trash)

        result = await self.engine.test_rule(unknown_field.id, email.id)
        self.assertEqual(result.to_dict(), {'matched': False, 'error': None})

    async def test_match_count_accumulates(self):
        email = await self.save(make_email())
        rule = await self.save(make_rule(
            {'logic': 'AND', 'rules': [{'field': 'subject', 'operator': 'contains', 'value': 'invoice'}]},
            [{'type': 'apply_label', 'value': 'receipts'}],
        ))

        await self.engine.execute_rules_for_email(email.id)
        await self.engine.execute_rules_for_email(email.id)

        rule = await self.reload(rule)
        self.assertEqual(rule.match_count, 2)
        email = await self.reload(email)
        self.assertEqual(email.label_ids, ['receipts'])

    async def test_test_rule_does_not_run_actions(self):
        email = await self.save(make_email())
        rule = await self.save(make_rule(
            {'logic': 'AND', 'rules': [{'field': 'subject', 'operator': 'contains', 'value': 'invoice'}]},
            [{'type': 'delete'}],
        ))

        result = await self.engine.test_rule(rule.id, email.id)

        self.assertTrue(result.matched)
        self.assertIsNone(result.error)
        email = await self.reload(email)
        self.assertFalse(email.is_trash)
        rule = await self.reload(rule)
        self.assertEqual(rule.match_count, 0)

    async def test_test_rule_reports_missing_entities(self):
        email = await self.save(make_email())

        result = await self.engine.test_rule('missing-rule', email.id)
        self.assertEqual(result.to_dict(), {'matched': False, 'error': 'Rule not found'})

        result = await self.engine.test_rule('missing-rule', 'missing-email')
        self.assertEqual(result.error, 'Email not found')


if __name__ == '__main__':
    unittest.main()
