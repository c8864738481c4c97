"""
Shared helpers for tests that need a real (in-memory) database
"""
import os
import sys
import unittest
from datetime import datetime

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.database.models import Base, CallRecord, CallWorkflow, Email, EmailRule, Project, utcnow

TEST_DATABASE_URL = 'sqlite+aiosqlite:///:memory:'


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """Gives each test a fresh schema and an AsyncSession as self.db"""

    async def asyncSetUp(self):
        self.db_engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
        async with self.db_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.db = async_sessionmaker(self.db_engine, expire_on_commit=False)()

    async def asyncTearDown(self):
        await self.db.close()
        await self.db_engine.dispose()

    async def save(self, *objects):
        self.db.add_all(objects)
        await self.db.commit()
        return objects[0] if len(objects) == 1 else objects

    async def reload(self, obj):
        await self.db.refresh(obj)
        return obj


def make_email(**overrides) -> Email:
    fields = {
        'account_id': 'acct-1',
        'user_id': 'user-1',
        'from_address': 'billing@acme.com',
        'from_name': 'Acme Billing',
        'to_addresses': ['me@example.com'],
        'cc_addresses': [],
        'subject': 'Invoice #123',
        'body_text': 'Please find your invoice attached.',
        'received_at': utcnow(),
        'is_read': False,
        'is_starred': False,
        'is_important': False,
        'has_attachments': False,
        'label_ids': [],
    }
    fields.update(overrides)
    return Email(**fields)


def make_rule(conditions, actions, priority=0, **overrides) -> EmailRule:
    fields = {
        'account_id': 'acct-1',
        'user_id': 'user-1',
        'name': f'Rule {priority}',
        'enabled': True,
        'priority': priority,
        'conditions': conditions,
        'actions': actions,
        'match_count': 0,
    }
    fields.update(overrides)
    return EmailRule(**fields)


def make_call(project_id: str, **overrides) -> CallRecord:
    fields = {
        'project_id': project_id,
        'caller_name': 'Jane Doe',
        'caller_phone': '+15551234567',
        'call_duration_seconds': 150,
        'call_timestamp': datetime(2026, 10, 1, 9, 30),
        'transcript': 'Hello, I would like a quote.',
        'ai_analysis_status': 'completed',
        'call_topic': 'Pricing',
        'call_summary': 'Caller asked for a quote on the premium plan.',
        'call_sentiment': 'positive',
        'call_quality_rating': 2,
        'follow_up_needed': True,
        'follow_up_reason': 'Send pricing sheet',
        'follow_up_urgency': 'high',
        'workflow_triggers': [],
    }
    fields.update(overrides)
    return CallRecord(**fields)


def make_workflow(project_id: str, trigger_conditions, actions, **overrides) -> CallWorkflow:
    fields = {
        'project_id': project_id,
        'name': 'Low quality follow-up',
        'is_active': True,
        'trigger_conditions': trigger_conditions,
        'actions': actions,
        'total_executions': 0,
    }
    fields.update(overrides)
    return CallWorkflow(**fields)


def make_project(organization_id='org-1', **overrides) -> Project:
    fields = {'organization_id': organization_id, 'name': 'Acme Voice Agent'}
    fields.update(overrides)
    return Project(**fields)
