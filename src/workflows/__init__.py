"""
Call workflow package: trigger evaluation and workflow dispatch
"""
from .conditions import CALL_FIELDS, evaluate_single_condition, evaluate_trigger, parse_trigger, snapshot_call_record
from .engine import (
    DispatchSummary,
    WorkflowActionError,
    WorkflowEngine,
    WorkflowRunReport,
    list_call_execution_logs,
    list_execution_logs,
)
from .templates import interpolate

__all__ = [
    'CALL_FIELDS',
    'evaluate_single_condition',
    'evaluate_trigger',
    'parse_trigger',
    'snapshot_call_record',
    'DispatchSummary',
    'WorkflowActionError',
    'WorkflowEngine',
    'WorkflowRunReport',
    'list_call_execution_logs',
    'list_execution_logs',
    'interpolate',
]
