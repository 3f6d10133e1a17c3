"""
Library Overdue Sweep Service

One sweep inspects open loans against "today" and, in a fixed order:
1. Newly overdue: due before today and not yet flagged -> set is_overdue,
   record a "Book Overdue" warning
2. Due today: record a "Book Due Today" reminder
3. Due soon (in 3 days): record a "Book Due Soon" reminder with the due date

Design Principles:
- Windows are recomputed from the reference instant on every run; the only
  persisted state the sweep relies on is is_overdue, which never goes back to false
- The is_overdue = false query predicate is the only de-duplication guard.
  Overlapping runs may both notify the same newly overdue loan; the flag write
  itself is idempotent
- Due-today and due-soon reminders have no guard and are re-recorded on every
  run inside their window
- Every loan is an independent unit of work: a failed update or notification
  is logged with the loan ID and processing continues with the next loan
- Failing to fetch a phase's candidate loans aborts the run (SweepFailedError);
  writes from earlier phases are kept

Error Handling:
- Record-level failures become RecordOutcome(succeeded=False) and are retried
  naturally by the next scheduled sweep
- Missing item titles fall back to "Unknown Book"
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, tzinfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import NotificationSeverity
from .notifications import DatabaseNotificationSink, NotificationSink
from .repository import LoanRepository, SqlAlchemyLoanRepository
from .schemas import LoanRecord, NotificationEvent, RecordOutcome, RunSummary, SweepPhase
from .windows import DUE_SOON_DAYS, compute_windows

logger = logging.getLogger(__name__)

# Notification titles
TITLE_OVERDUE = "Book Overdue"
TITLE_DUE_TODAY = "Book Due Today"
TITLE_DUE_SOON = "Book Due Soon"


class LibraryServiceError(Exception):
    """Base exception for library service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class SweepFailedError(LibraryServiceError):
    """Raised when the candidate loans for a phase cannot be fetched."""

    def __init__(self, phase: SweepPhase, cause: Exception):
        self.phase = phase
        self.cause = cause
        super().__init__(
            message=f"Failed to fetch {phase.value} loans: {cause}",
            error_code="SWEEP_FAILED",
            status_code=500,
        )


# ============================================
# Notification Builders
# ============================================


def format_due_date(due_date: datetime, zone: tzinfo | None = None) -> str:
    """
    Format a due date for a borrower-facing message, e.g. "March 13, 2024".

    Aware dates are shown in ``zone`` when one is given.
    """
    if zone is not None and due_date.tzinfo is not None:
        due_date = due_date.astimezone(zone)
    return f"{due_date:%B} {due_date.day}, {due_date.year}"


def build_overdue_notification(loan: LoanRecord) -> NotificationEvent:
    return NotificationEvent(
        borrower_id=loan.borrower_id,
        title=TITLE_OVERDUE,
        message=(
            f'"{loan.display_title}" is now overdue. '
            "Please return it as soon as possible to avoid additional fines."
        ),
        severity=NotificationSeverity.WARNING,
        reference_id=loan.id,
    )


def build_due_today_notification(loan: LoanRecord) -> NotificationEvent:
    return NotificationEvent(
        borrower_id=loan.borrower_id,
        title=TITLE_DUE_TODAY,
        message=(
            f'Reminder: "{loan.display_title}" is due today. '
            "Please return it to avoid late fees."
        ),
        severity=NotificationSeverity.INFO,
        reference_id=loan.id,
    )


def build_due_soon_notification(
    loan: LoanRecord, zone: tzinfo | None = None
) -> NotificationEvent:
    return NotificationEvent(
        borrower_id=loan.borrower_id,
        title=TITLE_DUE_SOON,
        message=(
            f'"{loan.display_title}" is due in {DUE_SOON_DAYS} days on '
            f"{format_due_date(loan.due_date, zone)}. Please return it on time."
        ),
        severity=NotificationSeverity.INFO,
        reference_id=loan.id,
    )


# ============================================
# Sweep Service
# ============================================


class OverdueSweepService:
    """Runs overdue sweeps against a loan repository and a notification sink."""

    def __init__(self, repository: LoanRepository, sink: NotificationSink):
        self._repository = repository
        self._sink = sink

    async def run_sweep(self, now: datetime) -> RunSummary:
        """
        Execute one complete sweep.

        Args:
            now: Reference instant; "today" is its midnight

        Returns:
            RunSummary with the number of loans successfully processed per window

        Raises:
            SweepFailedError: If the loans for any phase cannot be fetched
        """
        windows = compute_windows(now)

        logger.info(f"Starting overdue sweep as of {windows.today.isoformat()}")

        outcomes: list[RecordOutcome] = []

        # Phase A: newly overdue
        overdue_loans = await self._fetch(
            SweepPhase.NEWLY_OVERDUE,
            lambda: self._repository.find_open_loans_overdue_before(windows.newly_overdue.end),
        )
        outcomes += await self._process_phase(
            SweepPhase.NEWLY_OVERDUE, overdue_loans, self._mark_and_notify_overdue
        )

        # Phase B: due today
        due_today_loans = await self._fetch(
            SweepPhase.DUE_TODAY,
            lambda: self._repository.find_open_loans_due_in_range(
                windows.due_today.start, windows.due_today.end
            ),
        )
        outcomes += await self._process_phase(
            SweepPhase.DUE_TODAY, due_today_loans, self._notify_due_today
        )

        # Phase C: due soon
        due_soon_loans = await self._fetch(
            SweepPhase.DUE_SOON,
            lambda: self._repository.find_open_loans_due_in_range(
                windows.due_soon.start, windows.due_soon.end
            ),
        )
        outcomes += await self._process_phase(
            SweepPhase.DUE_SOON,
            due_soon_loans,
            lambda loan: self._notify_due_soon(loan, windows.today.tzinfo),
        )

        summary = summarize(now, outcomes)
        failures = sum(1 for outcome in outcomes if not outcome.succeeded)

        logger.info(
            f"Overdue sweep completed. Newly overdue: {summary.newly_overdue}, "
            f"due today: {summary.due_today}, due soon: {summary.due_soon}, errors: {failures}"
        )

        return summary

    async def _fetch(
        self,
        phase: SweepPhase,
        query: Callable[[], Awaitable[list[LoanRecord]]],
    ) -> list[LoanRecord]:
        try:
            loans = await query()
        except Exception as e:
            logger.error(f"Error fetching loans for {phase.value} phase: {e}", exc_info=True)
            raise SweepFailedError(phase, e) from e

        open_loans = [loan for loan in loans if loan.is_open]
        if len(open_loans) != len(loans):
            logger.warning(
                f"Ignoring {len(loans) - len(open_loans)} returned loans in {phase.value} phase"
            )

        logger.info(f"Found {len(open_loans)} loans for {phase.value} phase")
        return open_loans

    async def _process_phase(
        self,
        phase: SweepPhase,
        loans: list[LoanRecord],
        handler: Callable[[LoanRecord], Awaitable[None]],
    ) -> list[RecordOutcome]:
        outcomes = []

        for loan in loans:
            try:
                await handler(loan)
                outcomes.append(RecordOutcome(loan_id=loan.id, phase=phase, succeeded=True))
            except Exception as e:
                logger.error(
                    f"Error processing loan {loan.id} in {phase.value} phase: {e}",
                    exc_info=True,
                )
                outcomes.append(
                    RecordOutcome(loan_id=loan.id, phase=phase, succeeded=False, error=str(e))
                )

        return outcomes

    async def _mark_and_notify_overdue(self, loan: LoanRecord) -> None:
        await self._repository.mark_overdue(loan.id)
        await self._sink.notify(build_overdue_notification(loan))
        logger.info(f"Marked loan {loan.id} as overdue and notified borrower")

    async def _notify_due_today(self, loan: LoanRecord) -> None:
        await self._sink.notify(build_due_today_notification(loan))
        logger.info(f"Sent due today reminder for loan {loan.id}")

    async def _notify_due_soon(self, loan: LoanRecord, zone: tzinfo | None) -> None:
        await self._sink.notify(build_due_soon_notification(loan, zone))
        logger.info(f"Sent due soon reminder for loan {loan.id}")


def summarize(checked_at: datetime, outcomes: list[RecordOutcome]) -> RunSummary:
    """Build a RunSummary counting the successful outcomes of each phase."""
    counts = {phase: 0 for phase in SweepPhase}
    for outcome in outcomes:
        if outcome.succeeded:
            counts[outcome.phase] += 1

    return RunSummary(
        checked_at=checked_at,
        newly_overdue=counts[SweepPhase.NEWLY_OVERDUE],
        due_today=counts[SweepPhase.DUE_TODAY],
        due_soon=counts[SweepPhase.DUE_SOON],
    )


def build_sweep_service(session_maker: async_sessionmaker[AsyncSession]) -> OverdueSweepService:
    """Wire the sweep service to the database-backed repository and sink."""
    return OverdueSweepService(
        repository=SqlAlchemyLoanRepository(session_maker),
        sink=DatabaseNotificationSink(session_maker),
    )
