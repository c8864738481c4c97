"""
Condition evaluation for email rules
"""
import re
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List

import structlog
from dateutil.relativedelta import relativedelta

from src.database.models import Email, utcnow

from .schema import CONDITION_OPERATORS, RuleCondition, StoredCondition, StoredConditionGroup

logger = structlog.get_logger(__name__)


class ConditionOutcome(str, Enum):
    """Why a condition did or did not match"""
    MATCHED = 'matched'
    NOT_MATCHED = 'not_matched'
    TYPE_MISMATCH = 'type_mismatch'
    FIELD_MISSING = 'field_missing'
    INVALID_PATTERN = 'invalid_pattern'


FIELD_EXTRACTORS: Dict[str, Callable[[Email], Any]] = {
    'from': lambda email: email.from_address or '',
    'from_name': lambda email: email.from_name or '',
    'to': lambda email: list(email.to_addresses or []),
    'cc': lambda email: list(email.cc_addresses or []),
    'subject': lambda email: email.subject or '',
    'body': lambda email: email.body_text or email.body_html or '',
    'has_attachments': lambda email: bool(email.has_attachments),
    'is_important': lambda email: bool(email.is_important),
    'is_read': lambda email: bool(email.is_read),
    'is_starred': lambda email: bool(email.is_starred),
    'label': lambda email: list(email.label_ids or []),
    'received_date': lambda email: email.received_at,
}

BOOLEAN_OPERATORS = ('equals', 'is', 'is_not')
NEGATED_OPERATORS = ('not_contains', 'is_not')


def check_condition(email: Email, condition: StoredCondition) -> ConditionOutcome:
    """Evaluate a single condition, reporting why it did not match"""
    extractor = FIELD_EXTRACTORS.get(condition.field)
    if extractor is None:
        return ConditionOutcome.FIELD_MISSING
    if condition.operator not in CONDITION_OPERATORS:
        logger.debug("unknown_condition_operator", field=condition.field, operator=condition.operator)
        return ConditionOutcome.NOT_MATCHED

    value = extractor(email)
    operator = condition.operator

    if isinstance(value, datetime):
        return _check_date(condition, value)
    if isinstance(value, bool):
        return _check_boolean(condition, value)
    if operator == 'regex':
        try:
            pattern = re.compile(str(condition.value), re.IGNORECASE)
        except re.error:
            return ConditionOutcome.INVALID_PATTERN
        values = value if isinstance(value, list) else [value]
        return _outcome(any(pattern.search(str(item)) for item in values))
    if operator in ('less_than', 'greater_than'):
        return ConditionOutcome.TYPE_MISMATCH

    if isinstance(value, list):
        return _check_list(operator, value, _normalize(condition.value))
    return _outcome(_compare(operator, _normalize(value), _normalize(condition.value)))


def evaluate_condition(email: Email, condition: StoredCondition) -> bool:
    """Evaluate a single condition against an email"""
    outcome = check_condition(email, condition)
    if outcome not in (ConditionOutcome.MATCHED, ConditionOutcome.NOT_MATCHED):
        logger.debug("condition_not_evaluable", field=condition.field,
                     operator=condition.operator, outcome=outcome.value)
    return outcome is ConditionOutcome.MATCHED


def evaluate_condition_group(email: Email, group: StoredConditionGroup) -> bool:
    """Evaluate if an email matches a group of conditions"""
    if not group.rules:
        logger.debug("No conditions to evaluate")
        return False

    if group.logic == 'AND':
        return all(evaluate_condition(email, condition) for condition in group.rules)
    return any(evaluate_condition(email, condition) for condition in group.rules)


def _normalize(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value).lower()


def _outcome(matched: bool) -> ConditionOutcome:
    return ConditionOutcome.MATCHED if matched else ConditionOutcome.NOT_MATCHED


def _compare(operator: str, actual: str, expected: str) -> bool:
    if operator == 'contains':
        return expected in actual
    if operator == 'not_contains':
        return expected not in actual
    if operator == 'starts_with':
        return actual.startswith(expected)
    if operator == 'ends_with':
        return actual.endswith(expected)
    if operator in ('equals', 'is'):
        return actual == expected
    if operator == 'is_not':
        return actual != expected
    return False


def _check_list(operator: str, values: List[Any], expected: str) -> ConditionOutcome:
    # Negated operators hold only when no element matches
    if operator in NEGATED_OPERATORS:
        positive = 'contains' if operator == 'not_contains' else 'equals'
        return _outcome(not any(_compare(positive, _normalize(item), expected) for item in values))
    return _outcome(any(_compare(operator, _normalize(item), expected) for item in values))


def _check_boolean(condition: RuleCondition, value: bool) -> ConditionOutcome:
    if condition.operator not in BOOLEAN_OPERATORS:
        return ConditionOutcome.TYPE_MISMATCH
    if isinstance(condition.value, bool):
        matched = value is condition.value
        if condition.operator == 'is_not':
            matched = not matched
        return _outcome(matched)
    return _outcome(_compare(condition.operator, _normalize(value), _normalize(condition.value)))


def _check_date(condition: RuleCondition, received: datetime) -> ConditionOutcome:
    """Age comparison: 'less_than 2 days' means received within the last two days"""
    if condition.operator not in ('less_than', 'greater_than'):
        return ConditionOutcome.TYPE_MISMATCH
    try:
        amount = int(condition.value)
    except (ValueError, TypeError):
        return ConditionOutcome.TYPE_MISMATCH
    if amount <= 0:
        return ConditionOutcome.NOT_MATCHED

    now = utcnow()
    if condition.unit == 'months':
        threshold = now - relativedelta(months=amount)
    else:
        threshold = now - relativedelta(days=amount)

    if condition.operator == 'less_than':
        return _outcome(received > threshold)
    return _outcome(received < threshold)
