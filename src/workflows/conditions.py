"""
Trigger condition evaluation for call workflows
"""
from operator import attrgetter
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import structlog
from pydantic import BaseModel, field_validator

from src.database.models import CallRecord

logger = structlog.get_logger(__name__)

# Field names as stored in workflow definitions -> call record accessor
CALL_FIELDS: Dict[str, Callable[[CallRecord], Any]] = {
    'id': attrgetter('id'),
    'projectId': attrgetter('project_id'),
    'callerPhone': attrgetter('caller_phone'),
    'callerName': attrgetter('caller_name'),
    'callDurationSeconds': attrgetter('call_duration_seconds'),
    'callTimestamp': attrgetter('call_timestamp'),
    'transcript': attrgetter('transcript'),
    'aiAnalysisStatus': attrgetter('ai_analysis_status'),
    'callTopic': attrgetter('call_topic'),
    'callSummary': attrgetter('call_summary'),
    'callSentiment': attrgetter('call_sentiment'),
    'callQualityRating': attrgetter('call_quality_rating'),
    'followUpNeeded': attrgetter('follow_up_needed'),
    'followUpReason': attrgetter('follow_up_reason'),
    'followUpUrgency': attrgetter('follow_up_urgency'),
}

# snake_case spellings accepted in definitions
FIELD_ALIASES = {
    'project_id': 'projectId',
    'caller_phone': 'callerPhone',
    'caller_name': 'callerName',
    'call_duration_seconds': 'callDurationSeconds',
    'call_timestamp': 'callTimestamp',
    'ai_analysis_status': 'aiAnalysisStatus',
    'call_topic': 'callTopic',
    'call_summary': 'callSummary',
    'call_sentiment': 'callSentiment',
    'call_quality_rating': 'callQualityRating',
    'follow_up_needed': 'followUpNeeded',
    'follow_up_reason': 'followUpReason',
    'follow_up_urgency': 'followUpUrgency',
}

CallData = Mapping[str, Any]

NUMERIC_OPERATORS = {
    'greater_than': lambda left, right: left > right,
    'less_than': lambda left, right: left < right,
    'greater_than_or_equal': lambda left, right: left >= right,
    'less_than_or_equal': lambda left, right: left <= right,
}


class TriggerCondition(BaseModel):
    field: str
    operator: str
    value: Any = None

    @field_validator('field')
    @classmethod
    def _known_field(cls, value: str) -> str:
        value = FIELD_ALIASES.get(value, value)
        if value not in CALL_FIELDS:
            raise ValueError(f"Unknown call record field: {value}")
        return value


class TriggerGroup(BaseModel):
    all: Optional[List[TriggerCondition]] = None
    any: Optional[List[TriggerCondition]] = None


Trigger = Union[TriggerGroup, TriggerCondition]


def snapshot_call_record(call_record: CallRecord) -> Dict[str, Any]:
    """Read every known field once into a plain mapping"""
    return {name: accessor(call_record) for name, accessor in CALL_FIELDS.items()}


def parse_trigger(raw: Any) -> Optional[Trigger]:
    """Parse stored trigger conditions; unknown fields raise ValidationError"""
    if not raw:
        return None
    if isinstance(raw, dict) and (isinstance(raw.get('all'), list) or isinstance(raw.get('any'), list)):
        return TriggerGroup.model_validate(raw)
    return TriggerCondition.model_validate(raw)


def evaluate_trigger(conditions: Optional[Trigger], call: CallData) -> bool:
    """Evaluate trigger conditions: 'all' (AND) wins over 'any' (OR), else a single condition"""
    if conditions is None:
        return False
    if isinstance(conditions, TriggerGroup):
        if conditions.all is not None:
            return all(evaluate_single_condition(condition, call) for condition in conditions.all)
        if conditions.any is not None:
            return any(evaluate_single_condition(condition, call) for condition in conditions.any)
        return False
    return evaluate_single_condition(conditions, call)


def evaluate_single_condition(condition: TriggerCondition, call: CallData) -> bool:
    field_value = call.get(condition.field)
    operator = condition.operator
    value = condition.value

    if operator == 'equals':
        return _strict_equals(field_value, value)
    elif operator == 'not_equals':
        return not _strict_equals(field_value, value)
    elif operator in NUMERIC_OPERATORS:
        target = _as_number(value)
        if not _is_number(field_value) or target is None:
            return False
        return NUMERIC_OPERATORS[operator](field_value, target)
    elif operator == 'contains':
        return isinstance(field_value, str) and str(value) in field_value
    elif operator == 'not_contains':
        return isinstance(field_value, str) and str(value) not in field_value
    elif operator == 'is_true':
        return field_value is True
    elif operator == 'is_false':
        return field_value is False

    logger.warning("unknown_trigger_operator", operator=operator, field=condition.field)
    return False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_number(value: Any) -> Optional[float]:
    if _is_number(value):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _strict_equals(left: Any, right: Any) -> bool:
    # True == 1 in Python; workflow definitions treat them as different values
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    return left == right
