"""Service configuration.

Values come from the environment, with a local .env file loaded first.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    # how often the auto-completion sweep runs
    SWEEP_INTERVAL_SECONDS: float = float(
        os.getenv("SWEEP_INTERVAL_SECONDS", "60")
    )
    SWEEPER_ENABLED: bool = _bool(os.getenv("SWEEPER_ENABLED", "true"))

    # exam dates and times are wall-clock values in this zone
    LAB_TIMEZONE: str = os.getenv("LAB_TIMEZONE", "UTC")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))

    # seeded on startup so a fresh store has someone able to approve access
    BOOTSTRAP_ADMIN_ID: str = os.getenv("BOOTSTRAP_ADMIN_ID", "")
    BOOTSTRAP_ADMIN_NAME: str = os.getenv(
        "BOOTSTRAP_ADMIN_NAME", "Lab Administrator"
    )
    BOOTSTRAP_ADMIN_EMAIL: str = os.getenv(
        "BOOTSTRAP_ADMIN_EMAIL", "admin@example.com"
    )


settings = Settings()
