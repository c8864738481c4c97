"""
Database package for the CRM rules engine
"""
from .connection import get_db_session, init_db
from .models import (
    Base,
    CallRecord,
    CallWorkflow,
    Email,
    EmailRule,
    OrganizationCredentials,
    Project,
    ProjectTask,
    WorkflowEmailTemplate,
    WorkflowExecutionLog,
    WorkflowSmsTemplate,
)

__all__ = [
    'Base',
    'Email',
    'EmailRule',
    'Project',
    'CallRecord',
    'CallWorkflow',
    'WorkflowEmailTemplate',
    'WorkflowSmsTemplate',
    'WorkflowExecutionLog',
    'ProjectTask',
    'OrganizationCredentials',
    'init_db',
    'get_db_session',
]
