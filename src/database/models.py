"""
Database models for the CRM rules engine
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Email(Base):
    """Email model for messages received by a connected account"""
    __tablename__ = 'emails'

    id = Column(String(36), primary_key=True, default=new_id)
    account_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(255), nullable=False)
    from_address = Column(String(255), nullable=False)
    from_name = Column(String(255))
    to_addresses = Column(JSON, default=list)
    cc_addresses = Column(JSON, default=list)
    subject = Column(String(998), default='')
    body_text = Column(Text)
    body_html = Column(Text)
    received_at = Column(DateTime, nullable=False, default=utcnow)
    is_read = Column(Boolean, default=False, nullable=False)
    is_starred = Column(Boolean, default=False, nullable=False)
    is_important = Column(Boolean, default=False, nullable=False)
    has_attachments = Column(Boolean, default=False, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)
    is_trash = Column(Boolean, default=False, nullable=False)
    is_spam = Column(Boolean, default=False, nullable=False)
    label_ids = Column(JSON, default=list)
    folder_name = Column(String(100))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class EmailRule(Base):
    """Rule model for per-account email rules"""
    __tablename__ = 'email_rules'

    id = Column(String(36), primary_key=True, default=new_id)
    account_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    enabled = Column(Boolean, default=True)
    priority = Column(Integer, default=0, index=True)  # execution order, lowest first
    conditions = Column(JSON, nullable=False)  # {"logic": "AND", "rules": [...]}
    actions = Column(JSON, nullable=False)  # [{"type": "mark_as_read"}, ...]
    match_count = Column(Integer, default=0)
    last_triggered_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class Project(Base):
    """Client project; links call data to the owning organization"""
    __tablename__ = 'projects'

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(36), index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow)


class CallRecord(Base):
    """Call received by a voice agent, plus its AI analysis"""
    __tablename__ = 'call_records'

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey('projects.id'), nullable=False, index=True)
    call_external_id = Column(String(255))
    caller_phone = Column(String(50))
    caller_name = Column(String(255))
    call_duration_seconds = Column(Integer)
    call_timestamp = Column(DateTime)
    transcript = Column(Text, default='')
    ai_analysis_status = Column(String(20), default='pending')  # pending, processing, completed, failed
    call_topic = Column(String(255))
    call_summary = Column(Text)
    call_sentiment = Column(String(20))  # positive, neutral, negative
    call_quality_rating = Column(Integer)  # 1-10
    follow_up_needed = Column(Boolean, default=False)
    follow_up_reason = Column(Text)
    follow_up_urgency = Column(String(20))  # low, medium, high, urgent
    workflow_triggers = Column(JSON, default=list)
    received_at = Column(DateTime, default=utcnow)


class CallWorkflow(Base):
    """Automation triggered by analysed calls"""
    __tablename__ = 'call_workflows'

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey('projects.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, default=True, index=True)
    trigger_conditions = Column(JSON, nullable=False)
    actions = Column(JSON, nullable=False)
    total_executions = Column(Integer, default=0)
    last_executed_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)


class WorkflowEmailTemplate(Base):
    __tablename__ = 'workflow_email_templates'

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey('projects.id'), nullable=False)
    name = Column(String(255), nullable=False)
    subject = Column(String(998), nullable=False)
    body = Column(Text, nullable=False)  # supports {{caller_name}} etc.


class WorkflowSmsTemplate(Base):
    __tablename__ = 'workflow_sms_templates'

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey('projects.id'), nullable=False)
    name = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)


class WorkflowExecutionLog(Base):
    """One row per workflow execution; never updated"""
    __tablename__ = 'workflow_execution_logs'

    id = Column(String(36), primary_key=True, default=new_id)
    workflow_id = Column(String(36), nullable=False, index=True)
    call_record_id = Column(String(36), nullable=False, index=True)
    status = Column(String(20), nullable=False)  # success, partial, failed
    actions_executed = Column(JSON, default=list)
    error_message = Column(Text)
    executed_at = Column(DateTime, default=utcnow)


class ProjectTask(Base):
    __tablename__ = 'project_tasks'

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey('projects.id'), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text)
    status = Column(String(20), default='todo')
    assigned_to = Column(String(255))
    due_date = Column(DateTime)
    ai_generated = Column(Boolean, default=False)
    source_type = Column(String(50))
    source_id = Column(String(36))
    source_metadata = Column(Text)  # JSON string
    created_at = Column(DateTime, default=utcnow)


class OrganizationCredentials(Base):
    """Organization-owned messaging credentials"""
    __tablename__ = 'organization_credentials'

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(36), nullable=False, unique=True)
    twilio_enabled = Column(Boolean, default=False)
    twilio_verified = Column(Boolean, default=False)
    twilio_account_sid = Column(String(255))
    twilio_auth_token = Column(String(255))
    twilio_phone_number = Column(String(50))
    resend_enabled = Column(Boolean, default=False)
    resend_verified = Column(Boolean, default=False)
    resend_api_key = Column(String(255))
    resend_from_email = Column(String(255))
