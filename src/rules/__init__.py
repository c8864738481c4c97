"""
Email rules package: condition evaluation, actions and rule execution
"""
from .actions import ActionExecutor, ActionOutcome, ActionSummary
from .conditions import ConditionOutcome, check_condition, evaluate_condition, evaluate_condition_group
from .engine import RuleRunSummary, RulesEngine, RuleTestResult
from .schema import (
    ConditionGroup,
    RuleAction,
    RuleCondition,
    RuleConfig,
    RulesConfig,
    StoredCondition,
    StoredConditionGroup,
)
from .service import RuleNotFoundError, RuleService, sync_rules_from_config

__all__ = [
    'ActionExecutor',
    'ActionOutcome',
    'ActionSummary',
    'ConditionOutcome',
    'check_condition',
    'evaluate_condition',
    'evaluate_condition_group',
    'RulesEngine',
    'RuleRunSummary',
    'RuleTestResult',
    'ConditionGroup',
    'RuleAction',
    'RuleCondition',
    'StoredCondition',
    'StoredConditionGroup',
    'RuleConfig',
    'RulesConfig',
    'RuleService',
    'RuleNotFoundError',
    'sync_rules_from_config',
]
