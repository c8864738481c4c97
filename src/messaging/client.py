"""
HTTP clients for outbound email (Resend) and SMS (Twilio)
"""
from typing import Any, Dict, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)


class MessagingError(Exception):
    """Raised when a messaging provider rejects or fails a request"""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ResendClient:
    """Resend API client for transactional email"""

    BASE_URL = 'https://api.resend.com'

    def __init__(self, api_key: str, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def send(self, from_email: str, to: str, subject: str, html: str) -> Dict[str, Any]:
        """Send an HTML email, returning the provider response"""
        payload = {'from': from_email, 'to': [to], 'subject': subject, 'html': html}
        async with httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={'Authorization': f'Bearer {self.api_key}'},
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post('/emails', json=payload)
            except httpx.HTTPError as e:
                raise MessagingError('resend', str(e)) from e

        if response.status_code >= 400:
            logger.error("resend_send_failed", status=response.status_code, to=to)
            raise MessagingError('resend', response.text, response.status_code)
        return response.json()


class TwilioClient:
    """Twilio Messages API client for SMS"""

    BASE_URL = 'https://api.twilio.com/2010-04-01'

    def __init__(self, account_sid: str, auth_token: str, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.timeout = timeout
        self._transport = transport

    async def send(self, to: str, body: str, from_: str) -> Dict[str, Any]:
        """Send an SMS, returning the created message resource"""
        async with httpx.AsyncClient(
            base_url=self.BASE_URL,
            auth=(self.account_sid, self.auth_token),
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(
                    f'/Accounts/{self.account_sid}/Messages.json',
                    data={'To': to, 'From': from_, 'Body': body},
                )
            except httpx.HTTPError as e:
                raise MessagingError('twilio', str(e)) from e

        if response.status_code >= 400:
            logger.error("twilio_send_failed", status=response.status_code, to=to)
            raise MessagingError('twilio', response.text, response.status_code)
        return response.json()
