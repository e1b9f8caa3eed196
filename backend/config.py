"""
Runtime configuration for the Todo backend.

All settings are read from environment variables once at import time.
Invalid values fall back to safe defaults and are logged with a warning.
"""

import logging
import os
import secrets
from typing import List

logger = logging.getLogger(__name__)


def is_production_like() -> bool:
    """
    Check if the current environment is production-like (production or staging).

    Returns:
        True if ENVIRONMENT is "production" or "staging", False otherwise
    """
    env = os.environ.get("ENVIRONMENT", "development").lower()
    return env in ("production", "staging")


def _int_from_env(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"⚠️  Invalid {name} value in environment. Using default of {default}.")
        return default
    if value < minimum or value > maximum:
        logger.warning(
            f"⚠️  {name}={value} is outside safe range ({minimum}-{maximum}). "
            f"Using default of {default}."
        )
        return default
    return value


ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
PORT = _int_from_env("PORT", 6001, 1, 65535)

# Database
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./todos.db")
# Create missing tables on startup; production schemas are managed outside the app
AUTO_CREATE_SCHEMA = os.environ.get("AUTO_CREATE_SCHEMA", "false" if is_production_like() else "true").lower() == "true"

# JWT configuration
JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY")
if not JWT_SECRET_KEY:
    if is_production_like():
        raise ValueError(
            "JWT_SECRET_KEY environment variable is required in production. "
            "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
        )
    JWT_SECRET_KEY = "dev-insecure-key-" + secrets.token_urlsafe(32)
    logger.warning(
        "⚠️  JWT_SECRET_KEY not set! Using temporary development key. "
        "This is INSECURE for production. Set JWT_SECRET_KEY environment variable."
    )

SUPPORTED_ALGORITHMS = ["HS256", "HS384", "HS512"]
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
if JWT_ALGORITHM not in SUPPORTED_ALGORITHMS:
    logger.warning(
        f"⚠️  Unsupported JWT_ALGORITHM={JWT_ALGORITHM}. Using HS256. "
        f"Supported: {', '.join(SUPPORTED_ALGORITHMS)}"
    )
    JWT_ALGORITHM = "HS256"

ACCESS_TOKEN_EXPIRE_MINUTES = _int_from_env("ACCESS_TOKEN_EXPIRE_MINUTES", 15, 1, 1440)

# Scheduler / reminders
CRON_SECRET = os.environ.get("CRON_SECRET")
APP_URL = os.environ.get("APP_URL", "http://localhost:3000")

CORS_ORIGINS: List[str] = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

# Engine limits
MAX_TODO_TITLE_LENGTH = 255
MAX_SUBTASKS = 20
MAX_SUBTASK_TITLE_LENGTH = 200
MAX_LABEL_NAME_LENGTH = 30
MAX_TEMPLATE_NAME_LENGTH = 100
MAX_TEMPLATE_DESCRIPTION_LENGTH = 2000
MAX_TEMPLATES_PER_TENANT = 50
MAX_TEMPLATE_SUBTASKS = 20
