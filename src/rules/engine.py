"""
Rules engine for processing emails based on per-account rules
"""
from dataclasses import asdict, dataclass
from typing import Any, Optional

import structlog
from pydantic import TypeAdapter
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.models import Email, EmailRule, utcnow

from .actions import ActionExecutor
from .conditions import evaluate_condition_group
from .schema import RuleAction, StoredConditionGroup

logger = structlog.get_logger(__name__)

_actions_adapter = TypeAdapter(list[RuleAction])


@dataclass
class RuleRunSummary:
    executed_rules: int = 0
    matched_rules: int = 0
    actions_executed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RuleTestResult:
    matched: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class RulesEngine:
    """Engine for processing emails based on rules"""

    def __init__(self, db: AsyncSession, action_executor: Optional[ActionExecutor] = None):
        self.db = db
        self.action_executor = action_executor or ActionExecutor(db)

    async def execute_rules_for_email(self, email_id: str) -> RuleRunSummary:
        """Run all enabled rules of the email's account, lowest priority value first"""
        summary = RuleRunSummary()
        try:
            email = await self.db.get(Email, email_id)
            if email is None:
                logger.error("email_not_found", email_id=email_id)
                return summary

            logger.info("processing_email", email_id=email_id, subject=email.subject)
            # Plain rows, so a rollback inside one rule cannot expire the others
            result = await self.db.execute(
                select(EmailRule.id, EmailRule.name, EmailRule.conditions, EmailRule.actions)
                .where(EmailRule.account_id == email.account_id, EmailRule.enabled.is_(True))
                .order_by(EmailRule.priority.asc())
            )
            rules = result.all()
        except Exception as e:
            logger.error("rule_loading_failed", email_id=email_id, error=str(e))
            return summary

        for rule in rules:
            summary.executed_rules += 1
            matched, actions_executed = await self._execute_rule(email, email_id, rule)
            if matched:
                summary.matched_rules += 1
                summary.actions_executed += actions_executed

        logger.info("email_processed", email_id=email_id, **summary.to_dict())
        return summary

    async def _execute_rule(self, email: Email, email_id: str, rule: Any) -> tuple[bool, int]:
        """Evaluate one rule and run its actions; errors stay inside this rule"""
        try:
            # Later rules must see what earlier rules changed
            await self.db.refresh(email)
            conditions = StoredConditionGroup.model_validate(rule.conditions)
            if not evaluate_condition_group(email, conditions):
                logger.debug("rule_not_matched", rule_id=rule.id, email_id=email_id)
                return False, 0

            logger.info("rule_matched", rule_id=rule.id, rule=rule.name, email_id=email_id)
            actions = _actions_adapter.validate_python(rule.actions or [])
            outcome = await self.action_executor.execute_all(email_id, actions)
            if outcome.failed:
                logger.warning("rule_actions_failed", rule_id=rule.id, failed=outcome.failed,
                               not_implemented=outcome.not_implemented)

            now = utcnow()
            await self.db.execute(
                update(EmailRule)
                .where(EmailRule.id == rule.id)
                .values(
                    match_count=func.coalesce(EmailRule.match_count, 0) + 1,
                    last_triggered_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return True, outcome.successful
        except Exception as e:
            await self.db.rollback()
            logger.error("rule_execution_failed", rule_id=rule.id, email_id=email_id, error=str(e))
            return False, 0

    async def test_rule(self, rule_id: str, email_id: str) -> RuleTestResult:
        """Check whether a rule would match an email without running its actions"""
        try:
            email = await self.db.get(Email, email_id)
            if email is None:
                return RuleTestResult(matched=False, error='Email not found')
            rule = await self.db.get(EmailRule, rule_id)
            if rule is None:
                return RuleTestResult(matched=False, error='Rule not found')

            conditions = StoredConditionGroup.model_validate(rule.conditions)
            return RuleTestResult(matched=evaluate_condition_group(email, conditions))
        except Exception as e:
            logger.error("rule_test_failed", rule_id=rule_id, email_id=email_id, error=str(e))
            return RuleTestResult(matched=False, error=str(e))
