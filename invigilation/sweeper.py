import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, tzinfo
from zoneinfo import ZoneInfo

from invigilation.config import settings
from invigilation.database import InMemoryDocumentStore
from invigilation.exceptions import LabError
from invigilation.scheduling import complete_due_requests

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]
SleepFn = Callable[[float], Awaitable[None]]


def lab_timezone(name: str | None = None) -> tzinfo:
    name = name or settings.LAB_TIMEZONE
    return UTC if name.upper() == "UTC" else ZoneInfo(name)


def lab_now() -> datetime:
    """Current wall-clock time in the lab's timezone."""
    return datetime.now(lab_timezone())


async def run_auto_completion(
    store: InMemoryDocumentStore,
    *,
    now_fn: NowFn,
    sleep_fn: SleepFn,
    interval: float,
) -> None:
    """
    Sweep once immediately, then every `interval` seconds, until cancelled.
    A failed sweep is logged and retried on the next tick.
    """
    logger.info("Auto-completion sweeper started, every %ss", interval)
    try:
        while True:
            try:
                completed = complete_due_requests(store, now_fn())
            except LabError:
                logger.exception("Auto-completion sweep failed")
            else:
                if completed:
                    logger.info("Sweep completed %d request(s)", len(completed))
            await sleep_fn(interval)
    except asyncio.CancelledError:
        logger.info("Auto-completion sweeper stopped")
        return
