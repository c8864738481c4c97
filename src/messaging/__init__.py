"""
Outbound messaging package: provider clients and credential resolution
"""
from .client import MessagingError, ResendClient, TwilioClient
from .credentials import (
    MessagingCredentials,
    ResendCredentials,
    TwilioCredentials,
    get_messaging_credentials,
    get_organization_id_for_project,
)

__all__ = [
    'MessagingError',
    'ResendClient',
    'TwilioClient',
    'MessagingCredentials',
    'ResendCredentials',
    'TwilioCredentials',
    'get_messaging_credentials',
    'get_organization_id_for_project',
]
