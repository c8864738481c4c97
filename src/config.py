"""
Runtime configuration for the CRM rules engine
"""
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel


class Settings(BaseModel):
    """Settings loaded from the environment (and .env, if present)"""
    database_url: str = 'sqlite+aiosqlite:///crm_rules.db'
    rules_file: str = 'config/rules.json'
    log_level: str = 'INFO'
    action_timeout_seconds: float = 30.0

    # Platform-level messaging credentials, used when an organization has none
    resend_api_key: Optional[str] = None
    resend_from_email: Optional[str] = None
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'Settings':
        values = {
            'database_url': os.getenv('DATABASE_URL'),
            'rules_file': os.getenv('RULES_FILE'),
            'log_level': os.getenv('LOG_LEVEL'),
            'action_timeout_seconds': os.getenv('ACTION_TIMEOUT_SECONDS'),
            'resend_api_key': os.getenv('RESEND_API_KEY'),
            'resend_from_email': os.getenv('RESEND_FROM_EMAIL'),
            'twilio_account_sid': os.getenv('TWILIO_ACCOUNT_SID'),
            'twilio_auth_token': os.getenv('TWILIO_AUTH_TOKEN'),
            'twilio_phone_number': os.getenv('TWILIO_PHONE_NUMBER'),
        }
        return cls(**{key: value for key, value in values.items() if value})


@lru_cache()
def get_settings() -> Settings:
    """Load settings once per process"""
    load_dotenv()
    return Settings.from_env()
