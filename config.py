"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, secret key,
logging and the business-rule knobs of the order/bill workflows. It uses environment variables for sensitive
information and defaults for development. In production, make sure to set the appropriate environment variables
and secure the secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'bizops.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Signup rules
    PASSWORD_MIN_LENGTH = int(os.environ.get("PASSWORD_MIN_LENGTH", "6"))

    # Generated identifiers (account codes, order/bill numbers)
    ACCOUNT_CODE_ATTEMPTS = int(os.environ.get("ACCOUNT_CODE_ATTEMPTS", "20"))
    IDENTIFIER_ATTEMPTS = int(os.environ.get("IDENTIFIER_ATTEMPTS", "5"))

    # Feedback may be left on unpaid bills unless this is switched on
    FEEDBACK_REQUIRES_PAYMENT = _env_bool("FEEDBACK_REQUIRES_PAYMENT", False)

    # App name (used in the health endpoint)
    APP_NAME = "Business Operations Backend"


class TestConfig(Config):
    """Configuration used by the pytest suite."""

    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOG_LEVEL = "DEBUG"
