# shared/config.py
"""
Environment-driven settings shared by the recipe-ai services.

Values are read from the process environment (populated from `.env` by
`load_dotenv()` in each service's main module).
"""

import logging
import os

logger = logging.getLogger(__name__)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))
MAX_GENERATIONS_PER_HOUR = int(os.getenv("MAX_GENERATIONS_PER_HOUR", "10"))

# Variables every service needs before it can accept traffic
COMMON_REQUIRED_ENV = ["DATABASE_URL", "JWT_SECRET_KEY"]


class ConfigurationError(RuntimeError):
    """Raised at startup when required configuration is missing"""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required environment variables: {', '.join(missing)}")


def validate_environment(required: list[str]) -> None:
    """Fail fast when any of the required environment variables is unset or empty"""
    missing = [name for name in required if not os.getenv(name)]
    if missing:
        logger.error(f"❌ CONFIG: Missing environment variables: {', '.join(missing)}")
        raise ConfigurationError(missing)

    logger.info(f"✅ CONFIG: Environment validated ({ENVIRONMENT})")


def get_allowed_origins() -> list[str]:
    return [origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",") if origin]
