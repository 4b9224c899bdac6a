"""
Configuration for the billing credit ledger
"""
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables
load_dotenv()


class BillingConfig(BaseSettings):
    """Runtime configuration for the ledger, read from the environment"""

    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    # Application Settings
    TITLE: str = "Credit Ledger - Revocation Service"
    VERSION: str = "1.0.0"

    # Database Configuration - Supporting both old and new formats
    DATABASE_URL: str = "sqlite:///./billing.db"
    DATABASE_CONNECTION_STRING: Optional[str] = None  # Legacy support
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE_SECONDS: int = 3600
    SQL_ECHO: bool = False

    # SQLite has no row locks; writers queue on the database lock instead
    SQLITE_BUSY_TIMEOUT: float = 30.0

    # Stripe Configuration
    STRIPE_API_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s] %(message)s"

    # Development & Debug
    DEVELOPMENT_MODE: bool = True  # Set to False in production

    @property
    def effective_database_url(self) -> str:
        """Database URL, with the legacy connection string taking precedence"""
        return self.DATABASE_CONNECTION_STRING or self.DATABASE_URL


# Create global configuration instance
config = BillingConfig()

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for scripts and workers that host the handlers"""
    logging.basicConfig(
        level=getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO),
        format=config.LOG_FORMAT,
    )


def validate_billing_config(settings: Optional[BillingConfig] = None) -> None:
    """Validate configuration on startup, collecting every problem before raising"""
    settings = settings or config
    errors = []

    effective_db_url = settings.effective_database_url
    if not effective_db_url:
        errors.append("Database configuration required (DATABASE_URL or DATABASE_CONNECTION_STRING)")
    elif not effective_db_url.startswith(("postgresql", "sqlite")):
        errors.append("DATABASE_URL must be a PostgreSQL or SQLite connection string")
    elif effective_db_url.startswith("sqlite") and not settings.DEVELOPMENT_MODE:
        errors.append("SQLite is only supported in DEVELOPMENT_MODE")

    if not settings.DEVELOPMENT_MODE:  # Only enforce in production
        if not settings.STRIPE_API_KEY:
            errors.append("STRIPE_API_KEY is required outside development mode")
        if not settings.STRIPE_WEBHOOK_SECRET:
            errors.append("STRIPE_WEBHOOK_SECRET is required outside development mode")

    if errors:
        raise ValueError(f"Billing configuration validation failed: {'; '.join(errors)}")

    logger.info("✅ Billing configuration validated successfully")
    if settings.DEVELOPMENT_MODE:
        logger.info("🛠️ Running in DEVELOPMENT MODE")
    if settings.DATABASE_CONNECTION_STRING:
        logger.info("📋 Legacy DATABASE_CONNECTION_STRING mapped to DATABASE_URL")


def get_environment_info() -> dict:
    """Get current environment information (without secrets)"""
    return {
        "environment": os.getenv("ENVIRONMENT", "development"),
        "development_mode": config.DEVELOPMENT_MODE,
        "version": config.VERSION,
        "database_driver": config.effective_database_url.split(":", 1)[0],
        "stripe_configured": bool(config.STRIPE_API_KEY),
        "webhook_secret_configured": bool(config.STRIPE_WEBHOOK_SECRET),
    }


# Export commonly used configurations
__all__ = [
    "config",
    "BillingConfig",
    "configure_logging",
    "validate_billing_config",
    "get_environment_info",
]
