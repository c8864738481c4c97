"""
Workflow engine: runs call workflows whose trigger conditions match an analysed call
"""
import asyncio
import json
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Literal, Mapping, Optional, Union

import structlog
from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.database.models import (
    CallRecord,
    CallWorkflow,
    ProjectTask,
    WorkflowEmailTemplate,
    WorkflowExecutionLog,
    WorkflowSmsTemplate,
    utcnow,
)
from src.messaging.credentials import (
    MessagingCredentials,
    get_messaging_credentials,
    get_organization_id_for_project,
)

from .conditions import CallData, evaluate_trigger, parse_trigger, snapshot_call_record
from .templates import interpolate

logger = structlog.get_logger(__name__)

CredentialsResolver = Callable[[AsyncSession, str], Awaitable[MessagingCredentials]]


class WorkflowActionError(Exception):
    """Raised when a workflow action cannot be carried out"""


class WorkflowNotFoundError(LookupError):
    pass


class SendEmailAction(BaseModel):
    type: Literal['send_email']
    template_id: str
    to: str = ''
    delay_minutes: Optional[int] = None


class SendSmsAction(BaseModel):
    type: Literal['send_sms']
    template_id: str
    to: str = ''


class CreateTaskAction(BaseModel):
    type: Literal['create_task']
    title: str = ''
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    due_days: Optional[float] = None


@dataclass
class WorkflowRunReport:
    """Outcome of one workflow execution, mirrored by its execution log row"""
    workflow_id: str
    call_record_id: str
    status: str = 'success'
    actions_executed: List[Dict[str, Any]] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> List[Dict[str, Any]]:
        return [result for result in self.actions_executed if result.get('success')]

    @property
    def failed(self) -> List[Dict[str, Any]]:
        return [result for result in self.actions_executed if not result.get('success')]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DispatchSummary:
    call_record_id: str
    evaluated_workflows: int = 0
    triggered_workflow_ids: List[str] = field(default_factory=list)
    reports: List[WorkflowRunReport] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class WorkflowEngine:
    """Dispatches call records to the active workflows of their project"""

    def __init__(self, db: AsyncSession, credentials_resolver: Optional[CredentialsResolver] = None,
                 action_timeout: Optional[float] = None):
        self.db = db
        self.credentials_resolver = credentials_resolver or get_messaging_credentials
        self.action_timeout = action_timeout or get_settings().action_timeout_seconds
        self._handlers = {
            'send_email': self._send_email,
            'send_sms': self._send_sms,
            'create_task': self._create_task,
        }

    async def check_and_execute_workflows(self, call_record_id: str) -> DispatchSummary:
        """Evaluate every active workflow of the call's project; never raises"""
        summary = DispatchSummary(call_record_id=call_record_id)
        try:
            call_record = await self.db.get(CallRecord, call_record_id)
            if call_record is None:
                logger.error("call_record_not_found", call_record_id=call_record_id)
                return summary

            call = snapshot_call_record(call_record)
            result = await self.db.execute(
                select(CallWorkflow.id, CallWorkflow.name, CallWorkflow.trigger_conditions)
                .where(CallWorkflow.project_id == call['projectId'], CallWorkflow.is_active.is_(True))
                .order_by(CallWorkflow.created_at.asc())
            )
            workflows = result.all()

            for workflow in workflows:
                summary.evaluated_workflows += 1
                try:
                    if not evaluate_trigger(parse_trigger(workflow.trigger_conditions), call):
                        continue
                    logger.info("workflow_triggered", workflow_id=workflow.id, workflow=workflow.name,
                                call_record_id=call_record_id)
                    summary.reports.append(await self.execute_workflow(workflow.id, call))
                    summary.triggered_workflow_ids.append(workflow.id)
                except Exception as e:
                    logger.error("workflow_evaluation_failed", workflow_id=workflow.id, error=str(e))

            if summary.triggered_workflow_ids:
                await self.db.execute(
                    update(CallRecord)
                    .where(CallRecord.id == call_record_id)
                    .values(workflow_triggers=list(summary.triggered_workflow_ids))
                )
                await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("workflow_dispatch_failed", call_record_id=call_record_id, error=str(e))
        return summary

    async def execute_workflow(self, workflow_id: str,
                               call_record: Union[CallRecord, CallData]) -> WorkflowRunReport:
        """Run a workflow's actions in order and write exactly one execution log row"""
        call = call_record if isinstance(call_record, Mapping) else snapshot_call_record(call_record)
        report = WorkflowRunReport(workflow_id=workflow_id, call_record_id=call['id'])

        try:
            workflow = await self.db.get(CallWorkflow, workflow_id)
            if workflow is None:
                raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
            project_id = workflow.project_id
            actions = list(workflow.actions or [])

            for action in actions:
                report.actions_executed.append(await self._run_action(action, call, project_id))
            if report.failed:
                report.status = 'partial'

            await self.db.execute(
                update(CallWorkflow)
                .where(CallWorkflow.id == workflow_id)
                .values(
                    total_executions=func.coalesce(CallWorkflow.total_executions, 0) + 1,
                    last_executed_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            report.status = 'failed'
            report.error_message = str(e)
            logger.error("workflow_execution_failed", workflow_id=workflow_id, error=str(e))

        await self._write_log(report)
        return report

    async def _run_action(self, action: Any, call: CallData, project_id: str) -> Dict[str, Any]:
        """One action; failures become a failed result instead of propagating"""
        try:
            return await self.execute_action(action, call, project_id)
        except Exception as e:
            if isinstance(e, SQLAlchemyError):
                await self.db.rollback()
            logger.error("workflow_action_failed", action=_action_type(action), error=str(e))
            details = dict(action) if isinstance(action, Mapping) else {'action': action}
            return {**details, 'success': False, 'error': str(e) or type(e).__name__}

    async def execute_action(self, action: Mapping[str, Any], call: CallData, project_id: str) -> Dict[str, Any]:
        """Execute a single workflow action; raises on any failure"""
        action_type = _action_type(action)
        handler = self._handlers.get(action_type)
        if handler is None:
            raise WorkflowActionError(f"Unknown action type: {action_type}")

        organization_id = await get_organization_id_for_project(self.db, project_id)
        if not organization_id:
            raise WorkflowActionError("Organization not found for project")
        credentials = await self.credentials_resolver(self.db, organization_id)

        return await handler(action, call, project_id, credentials)

    async def _send_email(self, raw: Mapping[str, Any], call: CallData, project_id: str,
                          credentials: MessagingCredentials) -> Dict[str, Any]:
        action = SendEmailAction.model_validate(raw)
        if credentials.resend is None:
            raise WorkflowActionError(
                "Email service not configured. Please configure Resend credentials in organization settings."
            )

        template = await self.db.get(WorkflowEmailTemplate, action.template_id)
        if template is None:
            raise WorkflowActionError(f"Email template {action.template_id} not found")

        to = interpolate(action.to, call)
        subject = interpolate(template.subject, call)
        body = interpolate(template.body, call)

        if action.delay_minutes and action.delay_minutes > 0:
            # TODO: defer through a scheduled-send queue once one exists; sent immediately for now
            logger.warning("email_delay_not_supported", delay_minutes=action.delay_minutes, to=to)

        await self._with_timeout(
            credentials.resend.client.send(credentials.resend.from_email, to, subject, body), 'send_email'
        )
        platform = credentials.using_platform_credentials.get('resend', True)
        logger.info("workflow_email_sent", to=to, credentials='platform' if platform else 'organization')
        return {'type': 'send_email', 'success': True, 'to': to}

    async def _send_sms(self, raw: Mapping[str, Any], call: CallData, project_id: str,
                        credentials: MessagingCredentials) -> Dict[str, Any]:
        action = SendSmsAction.model_validate(raw)
        if credentials.twilio is None:
            raise WorkflowActionError(
                "SMS service not configured. Please configure Twilio credentials in organization settings."
            )

        template = await self.db.get(WorkflowSmsTemplate, action.template_id)
        if template is None:
            raise WorkflowActionError(f"SMS template {action.template_id} not found")

        message = interpolate(template.message, call)
        to = interpolate(action.to, call)
        if not to:
            raise WorkflowActionError("SMS recipient phone number is empty")

        await self._with_timeout(
            credentials.twilio.client.send(to, message, credentials.twilio.phone_number), 'send_sms'
        )
        platform = credentials.using_platform_credentials.get('twilio', True)
        logger.info("workflow_sms_sent", to=to, credentials='platform' if platform else 'organization')
        return {'type': 'send_sms', 'success': True, 'to': to}

    async def _create_task(self, raw: Mapping[str, Any], call: CallData, project_id: str,
                           credentials: MessagingCredentials) -> Dict[str, Any]:
        action = CreateTaskAction.model_validate(raw)
        if action.description:
            description = interpolate(action.description, call)
        else:
            description = (
                "Auto-created from call workflow.\n\n"
                f"Call ID: {call['id']}\n"
                f"Caller: {call.get('callerName') or 'Unknown'}\n"
                f"Topic: {call.get('callTopic') or 'N/A'}"
            )

        task = ProjectTask(
            project_id=project_id,
            title=interpolate(action.title, call),
            description=description,
            status='todo',
            assigned_to=action.assigned_to,
            due_date=utcnow() + timedelta(days=action.due_days) if action.due_days else None,
            ai_generated=True,
            source_type='ai_generated',
            source_id=call['id'],
            source_metadata=json.dumps({
                'callId': call['id'],
                'callerName': call.get('callerName'),
                'callTopic': call.get('callTopic'),
                'workflowTriggered': True,
            }),
        )
        self.db.add(task)
        await self.db.commit()
        return {'type': 'create_task', 'success': True, 'task_id': task.id}

    async def _with_timeout(self, awaitable: Awaitable[Any], what: str) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.action_timeout)
        except asyncio.TimeoutError:
            raise WorkflowActionError(f"{what} timed out after {self.action_timeout:g}s")

    async def _write_log(self, report: WorkflowRunReport) -> None:
        try:
            self.db.add(WorkflowExecutionLog(
                workflow_id=report.workflow_id,
                call_record_id=report.call_record_id,
                status=report.status,
                actions_executed=report.actions_executed,
                error_message=report.error_message,
            ))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("execution_log_write_failed", workflow_id=report.workflow_id, error=str(e))


async def list_execution_logs(db: AsyncSession, workflow_id: str, limit: int = 50) -> List[WorkflowExecutionLog]:
    """Most recent executions of a workflow"""
    result = await db.execute(
        select(WorkflowExecutionLog)
        .where(WorkflowExecutionLog.workflow_id == workflow_id)
        .order_by(WorkflowExecutionLog.executed_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_call_execution_logs(db: AsyncSession, call_record_id: str) -> List[WorkflowExecutionLog]:
    result = await db.execute(
        select(WorkflowExecutionLog)
        .where(WorkflowExecutionLog.call_record_id == call_record_id)
        .order_by(WorkflowExecutionLog.executed_at.desc())
    )
    return list(result.scalars().all())


def _action_type(action: Any) -> Optional[str]:
    return action.get('type') if isinstance(action, Mapping) else None
