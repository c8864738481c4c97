"""
Messaging credential resolution: organization credentials first, platform fallback
"""
from dataclasses import dataclass, field
from typing import Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, get_settings
from src.database.models import OrganizationCredentials, Project

from .client import ResendClient, TwilioClient

logger = structlog.get_logger(__name__)


@dataclass
class ResendCredentials:
    client: ResendClient
    from_email: str


@dataclass
class TwilioCredentials:
    client: TwilioClient
    phone_number: str


@dataclass
class MessagingCredentials:
    resend: Optional[ResendCredentials] = None
    twilio: Optional[TwilioCredentials] = None
    using_platform_credentials: Dict[str, bool] = field(
        default_factory=lambda: {'resend': True, 'twilio': True}
    )


async def get_organization_id_for_project(db: AsyncSession, project_id: str) -> Optional[str]:
    result = await db.execute(select(Project.organization_id).where(Project.id == project_id))
    return result.scalar_one_or_none()


async def get_messaging_credentials(db: AsyncSession, organization_id: str,
                                    settings: Optional[Settings] = None) -> MessagingCredentials:
    """Get messaging credentials for an organization.

    Organization credentials are used when enabled, verified and complete;
    otherwise the platform credentials from settings apply. Either provider
    may be None when neither source is configured.
    """
    settings = settings or get_settings()
    timeout = settings.action_timeout_seconds
    credentials = MessagingCredentials()

    org = None
    try:
        result = await db.execute(
            select(OrganizationCredentials).where(OrganizationCredentials.organization_id == organization_id)
        )
        org = result.scalar_one_or_none()
    except Exception as e:
        logger.error("credential_lookup_failed", organization_id=organization_id, error=str(e))

    if (org is not None and org.twilio_enabled and org.twilio_verified
            and org.twilio_account_sid and org.twilio_auth_token and org.twilio_phone_number):
        credentials.twilio = TwilioCredentials(
            client=TwilioClient(org.twilio_account_sid, org.twilio_auth_token, timeout=timeout),
            phone_number=org.twilio_phone_number,
        )
        credentials.using_platform_credentials['twilio'] = False
        logger.debug("using_organization_twilio", organization_id=organization_id)
    elif settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_phone_number:
        credentials.twilio = TwilioCredentials(
            client=TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token, timeout=timeout),
            phone_number=settings.twilio_phone_number,
        )
        logger.debug("using_platform_twilio", organization_id=organization_id)

    if (org is not None and org.resend_enabled and org.resend_verified
            and org.resend_api_key and org.resend_from_email):
        credentials.resend = ResendCredentials(
            client=ResendClient(org.resend_api_key, timeout=timeout),
            from_email=org.resend_from_email,
        )
        credentials.using_platform_credentials['resend'] = False
        logger.debug("using_organization_resend", organization_id=organization_id)
    elif settings.resend_api_key and settings.resend_from_email:
        credentials.resend = ResendCredentials(
            client=ResendClient(settings.resend_api_key, timeout=timeout),
            from_email=settings.resend_from_email,
        )
        logger.debug("using_platform_resend", organization_id=organization_id)

    return credentials
