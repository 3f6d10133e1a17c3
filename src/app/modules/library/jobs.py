"""
Library Background Jobs

Scheduled overdue sweep for library loans.

Schedule:
- Runs once a day (OVERDUE_SWEEP_HOUR:OVERDUE_SWEEP_MINUTE in LIBRARY_TIMEZONE)
- Can also be triggered manually via /debug/jobs or by an external scheduler
  through POST /api/v1/library/check-overdue-books

Error Handling:
- Individual loan failures don't stop the job (handled by the sweep service)
- A failed candidate fetch fails the job; the scheduler listener logs it
"""

import logging
from typing import Any

from apscheduler.triggers.cron import CronTrigger

from app.core.config import settings
from app.core.database import async_session_maker
from app.core.scheduler import register_job
from app.modules.library.service import build_sweep_service
from app.modules.library.windows import current_time

logger = logging.getLogger(__name__)

# Job ID for registration and manual triggering
JOB_ID_CHECK_OVERDUE_BOOKS = "library_check_overdue_books"


async def run_overdue_sweep() -> dict[str, Any]:
    """
    Run one overdue sweep against the database.

    Returns:
        The run summary as a camelCase dict:
        checkedAt, newlyOverdue, dueToday, dueSoon
    """
    service = build_sweep_service(async_session_maker)
    summary = await service.run_sweep(current_time())

    logger.info(f"Scheduled overdue sweep finished: {summary.model_dump(mode='json')}")

    return summary.model_dump(mode="json", by_alias=True)


def register_library_jobs() -> None:
    """
    Register the library background jobs with the scheduler.

    Call during application startup, before the scheduler is started.
    Does nothing when SCHEDULER_ENABLED is false (an external scheduler
    calls the trigger endpoint instead).
    """
    if not settings.scheduler_enabled:
        logger.info("Library jobs not registered: SCHEDULER_ENABLED is false")
        return

    trigger = CronTrigger(
        hour=settings.overdue_sweep_hour,
        minute=settings.overdue_sweep_minute,
        timezone=settings.library_timezone,
    )

    register_job(
        job_id=JOB_ID_CHECK_OVERDUE_BOOKS,
        func=run_overdue_sweep,
        trigger=trigger,
    )
    logger.info(
        f"Registered job: {JOB_ID_CHECK_OVERDUE_BOOKS} "
        f"(daily at {settings.overdue_sweep_hour:02d}:{settings.overdue_sweep_minute:02d} "
        f"{settings.library_timezone})"
    )
