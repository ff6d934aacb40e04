"""
Gestionale CRM Configuration
Loads settings from environment variables with sensible defaults.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Load .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


class Config:
    """Application configuration."""

    # Database — must be set in .env; never hardcode credentials here
    DATABASE_URL = os.getenv('DATABASE_URL')
    if not DATABASE_URL:
        _logger.critical("DATABASE_URL is not set — cannot start. Copy .env.example to .env and configure it.")
        raise ValueError("DATABASE_URL environment variable is not set. Copy .env.example to .env and configure it.")

    # Timezone
    TIMEZONE = os.getenv('TIMEZONE', 'Europe/Rome')

    # Contracts expiring within this many days count as "expiring soon"
    EXPIRING_SOON_DAYS = int(os.getenv('EXPIRING_SOON_DAYS', '60'))

    # Reports
    REVENUE_TREND_MONTHS = int(os.getenv('REVENUE_TREND_MONTHS', '6'))
    EXPORT_DIR = os.getenv('EXPORT_DIR', 'exports')

    # Pending-notification refresh interval for `notifications watch`
    NOTIFICATION_REFRESH_MINUTES = float(os.getenv('NOTIFICATION_REFRESH_MINUTES', '5'))

    # Session bypass user (login flow is not wired up yet)
    AUTH_USER_ID = os.getenv('AUTH_USER_ID', 'mock-user-id')
    AUTH_USER_EMAIL = os.getenv('AUTH_USER_EMAIL', 'admin@gestionale.com')


# Singleton instance
config = Config()
