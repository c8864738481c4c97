"""
Action execution for matched email rules
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.models import Email, utcnow

from .schema import RuleAction

logger = structlog.get_logger(__name__)

FOLDER_FLAGS = {
    'archive': 'is_archived',
    'trash': 'is_trash',
    'spam': 'is_spam',
}

# Actions the mail provider integration cannot perform yet
UNSUPPORTED_ACTIONS = frozenset(['forward', 'auto_reply', 'block_sender', 'run_ai_task'])


class ActionOutcome(str, Enum):
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    NOT_IMPLEMENTED = 'not_implemented'


@dataclass
class ActionSummary:
    """Aggregate of independently executed actions"""
    results: List[Tuple[RuleAction, ActionOutcome]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for _, outcome in self.results if outcome is ActionOutcome.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    @property
    def not_implemented(self) -> int:
        return sum(1 for _, outcome in self.results if outcome is ActionOutcome.NOT_IMPLEMENTED)


class ActionExecutor:
    """Applies rule actions to stored emails"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def execute(self, email_id: str, action: RuleAction) -> bool:
        """Execute a single action, returning whether it succeeded"""
        return await self.run(email_id, action) is ActionOutcome.SUCCEEDED

    async def execute_all(self, email_id: str, actions: Sequence[RuleAction]) -> ActionSummary:
        """Execute every action; a failed action never blocks the rest"""
        summary = ActionSummary()
        for action in actions:
            summary.results.append((action, await self.run(email_id, action)))
        return summary

    async def run(self, email_id: str, action: RuleAction) -> ActionOutcome:
        if action.type in UNSUPPORTED_ACTIONS:
            logger.info("action_not_implemented", action=action.type, email_id=email_id, value=action.value)
            return ActionOutcome.NOT_IMPLEMENTED

        try:
            changes = await self._changes_for(email_id, action)
            if changes is None:
                return ActionOutcome.FAILED
            if changes:
                changes['updated_at'] = utcnow()
                await self.db.execute(update(Email).where(Email.id == email_id).values(**changes))
                await self.db.commit()
            logger.debug("action_succeeded", action=action.type, email_id=email_id)
            return ActionOutcome.SUCCEEDED
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("action_failed", action=action.type, email_id=email_id, error=str(e))
            return ActionOutcome.FAILED

    async def _changes_for(self, email_id: str, action: RuleAction) -> Optional[Dict[str, Any]]:
        """Column updates for an action; None means the action cannot be applied"""
        value = action.value

        if action.type == 'mark_as_read':
            return {'is_read': True}
        elif action.type == 'mark_as_starred':
            return {'is_starred': True}
        elif action.type == 'mark_as_important':
            return {'is_important': True}
        elif action.type == 'delete':
            return {'is_trash': True}

        elif action.type == 'move_to_folder':
            if not isinstance(value, str) or not value:
                logger.warning("move_to_folder_without_folder", email_id=email_id)
                return {}
            flag = FOLDER_FLAGS.get(value.lower())
            return {flag: True} if flag else {'folder_name': value}

        elif action.type == 'apply_label':
            if not isinstance(value, str) or not value:
                logger.warning("apply_label_without_label", email_id=email_id)
                return {}
            result = await self.db.execute(select(Email.label_ids).where(Email.id == email_id))
            current = result.scalar_one_or_none()
            labels = list(current) if isinstance(current, list) else []
            if value in labels:
                return {}
            return {'label_ids': labels + [value]}

        logger.warning("unknown_action_type", action=action.type, email_id=email_id)
        return None
