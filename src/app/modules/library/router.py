"""
Library Router

Trigger surface for the overdue sweep, called by an external scheduler
(cron service, platform automation) once per day.

Endpoints:
- POST /library/check-overdue-books - Run one overdue sweep
- OPTIONS /library/check-overdue-books - Unauthenticated preflight/probe

Security:
- Service token required for POST (see app.core.auth)
- Rate limited per client via Redis (memory fallback)
- Preflight responses have no side effects
"""

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from app.core.auth import TriggerCaller, get_trigger_caller
from app.core.config import settings
from app.core.database import async_session_maker
from app.core.rate_limit import rate_limit
from app.modules.library.schemas import RunSummary, SweepErrorResponse
from app.modules.library.service import (
    LibraryServiceError,
    OverdueSweepService,
    build_sweep_service,
)
from app.modules.library.windows import current_time

logger = logging.getLogger(__name__)

router = APIRouter()

CHECK_OVERDUE_BOOKS_PATH = "/check-overdue-books"

# Allow-all CORS headers, sent on preflight and on every trigger response
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def get_sweep_service() -> OverdueSweepService:
    """FastAPI dependency providing a database-backed sweep service."""
    return build_sweep_service(async_session_maker)


@router.options(CHECK_OVERDUE_BOOKS_PATH, include_in_schema=False)
async def check_overdue_books_preflight() -> Response:
    """Answer preflight and probe requests without touching any state."""
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


@router.post(
    CHECK_OVERDUE_BOOKS_PATH,
    response_class=JSONResponse,
    summary="Run Overdue Sweep",
    description="""
Run one overdue sweep over all open loans.

**Windows (relative to midnight today in the library timezone):**
- Newly overdue: due before today and not yet flagged. The loan is flagged
  and a "Book Overdue" warning is recorded once per loan
- Due today: an info reminder is recorded on every call made today
- Due in 3 days: an info reminder with the due date is recorded on every call

No request body. Individual loan failures are logged and skipped; the counts
only include loans that were processed successfully.
""",
    responses={
        200: {
            "description": "Sweep completed",
            "model": RunSummary,
            "content": {
                "application/json": {
                    "example": {
                        "checkedAt": "2024-03-10T06:00:00Z",
                        "newlyOverdue": 2,
                        "dueToday": 5,
                        "dueSoon": 3,
                    }
                }
            },
        },
        401: {"description": "Missing or invalid service token"},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Loans could not be fetched", "model": SweepErrorResponse},
    },
)
@rate_limit(
    limit=lambda: settings.sweep_trigger_rate_limit,
    window_seconds=lambda: settings.sweep_trigger_rate_window_seconds,
)
async def check_overdue_books(
    request: Request,
    caller: TriggerCaller = Depends(get_trigger_caller),
    service: OverdueSweepService = Depends(get_sweep_service),
) -> JSONResponse:
    """
    Run the overdue sweep and return its summary.

    Returns:
        200 with {checkedAt, newlyOverdue, dueToday, dueSoon}
        500 with {error} if the sweep could not run
    """
    logger.info(f"Overdue sweep triggered by {caller}")

    try:
        summary = await service.run_sweep(current_time())
    except LibraryServiceError as e:
        logger.error(f"Overdue sweep failed: {e.message}")
        return JSONResponse(
            status_code=e.status_code,
            content=SweepErrorResponse(error=e.message).model_dump(),
            headers=CORS_HEADERS,
        )
    except Exception as e:
        logger.exception(f"Unexpected error running overdue sweep: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=SweepErrorResponse(
                error="An unexpected error occurred while checking overdue books."
            ).model_dump(),
            headers=CORS_HEADERS,
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=summary.model_dump(mode="json", by_alias=True),
        headers=CORS_HEADERS,
    )
