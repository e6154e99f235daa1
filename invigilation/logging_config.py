import logging

from invigilation.config import settings


def setup_logging(level: str | None = None) -> None:
    """Configure root logging once for the service process."""
    logging.basicConfig(
        level=getattr(logging, level or settings.LOG_LEVEL, logging.INFO),
        format=settings.LOG_FORMAT,
    )
