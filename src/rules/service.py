"""
Rule management: create, edit, reorder and sync email rules
"""
from typing import Any, List, Sequence

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.models import EmailRule, utcnow

from .schema import RuleConfig, RulesConfig

logger = structlog.get_logger(__name__)

EDITABLE_FIELDS = frozenset(['name', 'description', 'enabled', 'priority', 'conditions', 'actions'])


class RuleNotFoundError(LookupError):
    """Raised when a rule does not exist or belongs to another user"""


class RuleService:
    """CRUD for email rules, scoped to the owning user"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_rules(self, account_id: str, user_id: str) -> List[EmailRule]:
        result = await self.db.execute(
            select(EmailRule)
            .where(EmailRule.account_id == account_id, EmailRule.user_id == user_id)
            .order_by(EmailRule.priority.asc())
        )
        return list(result.scalars().all())

    async def get_rule(self, rule_id: str, user_id: str) -> EmailRule:
        result = await self.db.execute(
            select(EmailRule).where(EmailRule.id == rule_id, EmailRule.user_id == user_id)
        )
        rule = result.scalar_one_or_none()
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    async def create_rule(self, account_id: str, user_id: str, config: RuleConfig) -> EmailRule:
        rule = EmailRule(account_id=account_id, user_id=user_id, **_to_columns(config))
        self.db.add(rule)
        await self.db.commit()
        logger.info("rule_created", rule_id=rule.id, account_id=account_id)
        return rule

    async def update_rule(self, rule_id: str, user_id: str, **changes: Any) -> EmailRule:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update rule field(s): {', '.join(sorted(unknown))}")

        rule = await self.get_rule(rule_id, user_id)
        merged = RuleConfig(
            name=changes.get('name', rule.name),
            description=changes.get('description', rule.description),
            enabled=changes.get('enabled', rule.enabled),
            priority=changes.get('priority', rule.priority),
            conditions=changes.get('conditions', rule.conditions),
            actions=changes.get('actions', rule.actions),
        )
        for key, value in _to_columns(merged).items():
            setattr(rule, key, value)
        rule.updated_at = utcnow()
        await self.db.commit()
        return rule

    async def delete_rule(self, rule_id: str, user_id: str) -> None:
        rule = await self.get_rule(rule_id, user_id)
        await self.db.delete(rule)
        await self.db.commit()
        logger.info("rule_deleted", rule_id=rule_id)

    async def toggle_rule(self, rule_id: str, user_id: str, enabled: bool) -> EmailRule:
        rule = await self.get_rule(rule_id, user_id)
        rule.enabled = enabled
        rule.updated_at = utcnow()
        await self.db.commit()
        return rule

    async def reorder_rules(self, user_id: str, rule_ids: Sequence[str]) -> None:
        """Priority follows list position; ids the user does not own are skipped"""
        for priority, rule_id in enumerate(rule_ids):
            try:
                rule = await self.get_rule(rule_id, user_id)
            except RuleNotFoundError:
                logger.warning("reorder_skipped_rule", rule_id=rule_id)
                continue
            rule.priority = priority
            rule.updated_at = utcnow()
        await self.db.commit()


async def sync_rules_from_config(db: AsyncSession, account_id: str, user_id: str,
                                 config: RulesConfig) -> List[EmailRule]:
    """Replace an account's rules with those of a rules file"""
    await db.execute(delete(EmailRule).where(EmailRule.account_id == account_id))

    rules = []
    for position, rule_config in enumerate(config.rules):
        columns = _to_columns(rule_config)
        # Rules files without explicit priorities run in file order
        if 'priority' not in rule_config.model_fields_set:
            columns['priority'] = position
        rule = EmailRule(account_id=account_id, user_id=user_id, **columns)
        db.add(rule)
        rules.append(rule)

    await db.commit()
    logger.info("Rules synced to database", account_id=account_id, count=len(rules))
    return rules


def _to_columns(config: RuleConfig) -> dict:
    return {
        'name': config.name,
        'description': config.description,
        'enabled': config.enabled,
        'priority': config.priority,
        'conditions': config.conditions.model_dump(),
        'actions': [action.model_dump(exclude_none=True) for action in config.actions],
    }


