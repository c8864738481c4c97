"""
JSON schema for email rules
"""
from typing import Any, List, Literal, Optional, Union, get_args

from pydantic import BaseModel, Field, field_validator, model_validator

ConditionField = Literal[
    'from', 'from_name', 'to', 'cc', 'subject', 'body',
    'has_attachments', 'is_important', 'is_read', 'is_starred',
    'label', 'received_date',
]

ConditionOperator = Literal[
    'contains', 'not_contains', 'starts_with', 'ends_with',
    'equals', 'is', 'is_not', 'regex',
    'less_than', 'greater_than',  # received_date only
]

CONDITION_OPERATORS = frozenset(get_args(ConditionOperator))

ACTION_TYPES = frozenset([
    'mark_as_read', 'mark_as_starred', 'mark_as_important', 'move_to_folder',
    'delete', 'apply_label', 'forward', 'auto_reply', 'block_sender', 'run_ai_task',
])


class StoredCondition(BaseModel):
    """A condition as read back from the database.

    Field and operator names are not checked here: an unknown name makes
    only that condition fail to match when the rule is evaluated.
    """
    field: str
    operator: str
    value: Union[bool, int, float, str, None] = ''
    unit: Optional[str] = None


class RuleCondition(StoredCondition):
    """Schema for a rule condition"""
    field: ConditionField
    operator: ConditionOperator
    value: Union[bool, int, float, str] = ''
    unit: Optional[Literal['days', 'months']] = None  # Only for received_date


class StoredConditionGroup(BaseModel):
    """Conditions combined with AND/OR logic"""
    logic: Literal['AND', 'OR'] = 'AND'
    rules: List[StoredCondition] = Field(default_factory=list)

    @field_validator('logic', mode='before')
    @classmethod
    def _upper_logic(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class ConditionGroup(StoredConditionGroup):
    rules: List[RuleCondition] = Field(default_factory=list)


class RuleAction(BaseModel):
    """Schema for a rule action; unknown types are tolerated until execution"""
    type: str
    value: Optional[Any] = None

    @model_validator(mode='before')
    @classmethod
    def _destination_key(cls, data: Any) -> Any:
        # Rules files in the move_message format name the target folder 'destination'
        if isinstance(data, dict) and data.get('value') is None and data.get('destination') is not None:
            return {**data, 'value': data['destination']}
        return data


class RuleConfig(BaseModel):
    """Schema for a single rule as created by a user or a rules file"""
    name: str
    description: Optional[str] = None
    enabled: bool = True
    priority: int = 0
    conditions: ConditionGroup
    actions: List[RuleAction]

    @field_validator('actions')
    @classmethod
    def _known_action_types(cls, actions: List[RuleAction]) -> List[RuleAction]:
        unknown = [action.type for action in actions if action.type not in ACTION_TYPES]
        if unknown:
            raise ValueError(f"Unknown action type(s): {', '.join(unknown)}")
        return actions


class RulesConfig(BaseModel):
    """Schema for a rules file"""
    rules: List[RuleConfig]
