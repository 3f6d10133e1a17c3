"""
Unit tests for the overdue sweep service.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from app.modules.library.models import NotificationSeverity
from app.modules.library.schemas import RecordOutcome, RunSummary, SweepPhase
from app.modules.library.service import (
    TITLE_DUE_SOON,
    TITLE_DUE_TODAY,
    TITLE_OVERDUE,
    OverdueSweepService,
    SweepFailedError,
    build_due_soon_notification,
    build_overdue_notification,
    format_due_date,
    summarize,
)


def at(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


@pytest.fixture
def service(loan_repository, notification_sink):
    return OverdueSweepService(repository=loan_repository, sink=notification_sink)


class TestRunSweep:
    """Tests for OverdueSweepService.run_sweep."""

    @pytest.mark.asyncio
    async def test_one_loan_per_window(
        self, service, loan_repository, notification_sink, make_loan, now
    ):
        """Each window picks up its loan and records the matching notification."""
        overdue = loan_repository.add(make_loan(at(2024, 3, 9, 10, 0)))
        due_today = loan_repository.add(make_loan(at(2024, 3, 10, 12, 0)))
        due_soon = loan_repository.add(make_loan(at(2024, 3, 13, 9, 0)))

        summary = await service.run_sweep(now)

        assert summary.newly_overdue == 1
        assert summary.due_today == 1
        assert summary.due_soon == 1
        assert summary.checked_at == now

        assert loan_repository.loans[overdue.id].is_overdue is True
        assert loan_repository.loans[due_today.id].is_overdue is False

        [overdue_event] = notification_sink.for_loan(overdue.id)
        assert overdue_event.title == TITLE_OVERDUE
        assert overdue_event.severity == NotificationSeverity.WARNING
        assert overdue_event.borrower_id == overdue.borrower_id

        [today_event] = notification_sink.for_loan(due_today.id)
        assert today_event.title == TITLE_DUE_TODAY
        assert today_event.severity == NotificationSeverity.INFO

        [soon_event] = notification_sink.for_loan(due_soon.id)
        assert soon_event.title == TITLE_DUE_SOON
        assert soon_event.severity == NotificationSeverity.INFO
        assert "March 13, 2024" in soon_event.message

    @pytest.mark.asyncio
    async def test_phases_run_in_order(
        self, service, loan_repository, notification_sink, make_loan, now
    ):
        loan_repository.add(make_loan(at(2024, 3, 13, 9, 0)))
        loan_repository.add(make_loan(at(2024, 3, 10, 9, 0)))
        loan_repository.add(make_loan(at(2024, 3, 1, 9, 0)))

        await service.run_sweep(now)

        titles = [event.title for event in notification_sink.events]
        assert titles == [TITLE_OVERDUE, TITLE_DUE_TODAY, TITLE_DUE_SOON]

    @pytest.mark.asyncio
    async def test_no_matches_returns_zero_counts(
        self, service, loan_repository, notification_sink, make_loan, now
    ):
        loan_repository.add(make_loan(at(2024, 3, 11, 9, 0)))
        loan_repository.add(make_loan(at(2024, 4, 1, 9, 0)))

        summary = await service.run_sweep(now)

        assert (summary.newly_overdue, summary.due_today, summary.due_soon) == (0, 0, 0)
        assert notification_sink.events == []
        assert loan_repository.mark_calls == []

    @pytest.mark.asyncio
    async def test_overdue_is_idempotent(
        self, service, loan_repository, notification_sink, make_loan, now
    ):
        """A second run on the same data finds nothing newly overdue."""
        first = loan_repository.add(make_loan(at(2024, 3, 5)))
        second = loan_repository.add(make_loan(at(2024, 2, 20)))

        first_summary = await service.run_sweep(now)
        second_summary = await service.run_sweep(now)

        assert first_summary.newly_overdue == 2
        assert second_summary.newly_overdue == 0
        assert len(notification_sink.for_loan(first.id)) == 1
        assert len(notification_sink.for_loan(second.id)) == 1

    @pytest.mark.asyncio
    async def test_already_flagged_loan_is_skipped(
        self, service, loan_repository, notification_sink, make_loan, now
    ):
        loan_repository.add(make_loan(at(2024, 3, 1), is_overdue=True))

        summary = await service.run_sweep(now)

        assert summary.newly_overdue == 0
        assert notification_sink.events == []

    @pytest.mark.asyncio
    async def test_due_reminders_repeat_on_every_run(
        self, service, loan_repository, notification_sink, make_loan, now
    ):
        """Due-today and due-soon reminders have no de-duplication."""
        due_today = loan_repository.add(make_loan(at(2024, 3, 10, 17, 0)))
        due_soon = loan_repository.add(make_loan(at(2024, 3, 13, 17, 0)))

        await service.run_sweep(now)
        summary = await service.run_sweep(now)

        assert summary.due_today == 1
        assert summary.due_soon == 1
        assert len(notification_sink.for_loan(due_today.id)) == 2
        assert len(notification_sink.for_loan(due_soon.id)) == 2

    @pytest.mark.asyncio
    async def test_returned_loans_are_never_touched(
        self, service, loan_repository, notification_sink, make_loan, now
    ):
        returned_at = at(2024, 3, 8)
        past = loan_repository.add(make_loan(at(2024, 3, 1), return_date=returned_at))
        loan_repository.add(make_loan(at(2024, 3, 10, 9, 0), return_date=returned_at))
        loan_repository.add(make_loan(at(2024, 3, 13, 9, 0), return_date=returned_at))

        summary = await service.run_sweep(now)

        assert (summary.newly_overdue, summary.due_today, summary.due_soon) == (0, 0, 0)
        assert notification_sink.events == []
        assert loan_repository.loans[past.id].is_overdue is False

    @pytest.mark.asyncio
    async def test_returned_loans_from_repository_are_filtered(
        self, notification_sink, make_loan, now
    ):
        """Closed loans are ignored even if a repository returns them."""
        closed = make_loan(at(2024, 3, 1), return_date=at(2024, 3, 2))
        repository = MagicMock()
        repository.find_open_loans_overdue_before = AsyncMock(return_value=[closed])
        repository.find_open_loans_due_in_range = AsyncMock(return_value=[])
        repository.mark_overdue = AsyncMock()

        service = OverdueSweepService(repository=repository, sink=notification_sink)
        summary = await service.run_sweep(now)

        assert summary.newly_overdue == 0
        repository.mark_overdue.assert_not_called()
        assert notification_sink.events == []

    @pytest.mark.asyncio
    async def test_failed_notification_does_not_stop_other_loans(
        self, service, loan_repository, notification_sink, make_loan, now
    ):
        failing = loan_repository.add(make_loan(at(2024, 3, 1)))
        others = [loan_repository.add(make_loan(at(2024, 3, day))) for day in (2, 3)]
        notification_sink.fail_for.add(failing.id)

        summary = await service.run_sweep(now)

        assert summary.newly_overdue == 2
        for loan in others:
            assert loan_repository.loans[loan.id].is_overdue is True
            assert len(notification_sink.for_loan(loan.id)) == 1
        assert notification_sink.for_loan(failing.id) == []

    @pytest.mark.asyncio
    async def test_failed_flag_write_skips_notification(
        self, service, loan_repository, notification_sink, make_loan, now
    ):
        """A loan whose flag write fails is not notified and is retried next run."""
        loan = loan_repository.add(make_loan(at(2024, 3, 1)))
        loan_repository.fail_mark_for.add(loan.id)

        summary = await service.run_sweep(now)

        assert summary.newly_overdue == 0
        assert notification_sink.events == []
        assert loan_repository.loans[loan.id].is_overdue is False

        loan_repository.fail_mark_for.clear()
        retry = await service.run_sweep(now)

        assert retry.newly_overdue == 1
        assert len(notification_sink.for_loan(loan.id)) == 1

    @pytest.mark.asyncio
    async def test_failure_in_one_phase_does_not_stop_later_phases(
        self, service, loan_repository, notification_sink, make_loan, now
    ):
        overdue = loan_repository.add(make_loan(at(2024, 3, 1)))
        due_today = loan_repository.add(make_loan(at(2024, 3, 10, 9, 0)))
        notification_sink.fail_for.add(overdue.id)

        summary = await service.run_sweep(now)

        assert summary.newly_overdue == 0
        assert summary.due_today == 1
        assert len(notification_sink.for_loan(due_today.id)) == 1

    @pytest.mark.asyncio
    async def test_due_soon_date_uses_library_timezone(
        self, service, loan_repository, notification_sink, make_loan
    ):
        """Due dates stored in UTC are shown on the library's calendar day."""
        lagos = ZoneInfo("Africa/Lagos")
        now = datetime(2024, 3, 10, 6, 0, tzinfo=lagos)
        # 2024-03-13 00:30 in Lagos
        loan = loan_repository.add(make_loan(at(2024, 3, 12, 23, 30)))

        summary = await service.run_sweep(now)

        assert summary.due_soon == 1
        [event] = notification_sink.for_loan(loan.id)
        assert "on March 13, 2024." in event.message

    @pytest.mark.asyncio
    async def test_missing_title_uses_unknown_book(
        self, service, loan_repository, notification_sink, make_loan, now
    ):
        loan = loan_repository.add(make_loan(at(2024, 3, 13, 9, 0), item_title=None))

        await service.run_sweep(now)

        [event] = notification_sink.for_loan(loan.id)
        assert '"Unknown Book"' in event.message

    @pytest.mark.asyncio
    async def test_fetch_failure_raises_sweep_failed(
        self, service, loan_repository, notification_sink, make_loan, now
    ):
        """A failed fetch aborts the run but earlier phase writes are kept."""
        overdue = loan_repository.add(make_loan(at(2024, 3, 1)))
        loan_repository.fail_fetch_due_in_range = True

        with pytest.raises(SweepFailedError) as exc_info:
            await service.run_sweep(now)

        assert exc_info.value.phase == SweepPhase.DUE_TODAY
        assert exc_info.value.status_code == 500
        assert exc_info.value.error_code == "SWEEP_FAILED"
        assert "database unreachable" in exc_info.value.message
        assert loan_repository.loans[overdue.id].is_overdue is True
        assert len(notification_sink.for_loan(overdue.id)) == 1

    @pytest.mark.asyncio
    async def test_overdue_fetch_failure_records_nothing(self, notification_sink, now):
        repository = MagicMock()
        repository.find_open_loans_overdue_before = AsyncMock(side_effect=TimeoutError("slow"))
        repository.find_open_loans_due_in_range = AsyncMock(return_value=[])

        service = OverdueSweepService(repository=repository, sink=notification_sink)

        with pytest.raises(SweepFailedError) as exc_info:
            await service.run_sweep(now)

        assert exc_info.value.phase == SweepPhase.NEWLY_OVERDUE
        repository.find_open_loans_due_in_range.assert_not_called()
        assert notification_sink.events == []

    @pytest.mark.asyncio
    async def test_queries_use_computed_windows(self, notification_sink, now):
        repository = MagicMock()
        repository.find_open_loans_overdue_before = AsyncMock(return_value=[])
        repository.find_open_loans_due_in_range = AsyncMock(return_value=[])

        service = OverdueSweepService(repository=repository, sink=notification_sink)
        await service.run_sweep(now)

        repository.find_open_loans_overdue_before.assert_awaited_once_with(at(2024, 3, 10))
        assert repository.find_open_loans_due_in_range.await_args_list[0].args == (
            at(2024, 3, 10),
            at(2024, 3, 11),
        )
        assert repository.find_open_loans_due_in_range.await_args_list[1].args == (
            at(2024, 3, 13),
            at(2024, 3, 14),
        )


class TestNotificationBuilders:
    """Tests for the notification message builders."""

    def test_format_due_date(self):
        assert format_due_date(at(2024, 3, 13, 9, 0)) == "March 13, 2024"
        assert format_due_date(at(2024, 12, 1)) == "December 1, 2024"

    def test_format_due_date_converts_to_zone(self):
        lagos = ZoneInfo("Africa/Lagos")
        assert format_due_date(at(2024, 3, 12, 23, 30), lagos) == "March 13, 2024"
        assert format_due_date(at(2024, 3, 12, 23, 30)) == "March 12, 2024"

    def test_overdue_message(self, make_loan):
        loan = make_loan(at(2024, 3, 1), item_title="Half of a Yellow Sun")

        event = build_overdue_notification(loan)

        assert event.title == "Book Overdue"
        assert event.message.startswith('"Half of a Yellow Sun" is now overdue.')
        assert event.reference_id == loan.id

    def test_due_soon_message(self, make_loan):
        loan = make_loan(at(2024, 3, 13, 9, 0), item_title="Arrow of God")

        event = build_due_soon_notification(loan)

        assert event.message == (
            '"Arrow of God" is due in 3 days on March 13, 2024. Please return it on time.'
        )


class TestSummarize:
    """Tests for summarize and RunSummary."""

    def test_counts_only_successful_outcomes(self, now):
        outcomes = [
            RecordOutcome(loan_id=uuid4(), phase=SweepPhase.NEWLY_OVERDUE, succeeded=True),
            RecordOutcome(
                loan_id=uuid4(), phase=SweepPhase.NEWLY_OVERDUE, succeeded=False, error="boom"
            ),
            RecordOutcome(loan_id=uuid4(), phase=SweepPhase.DUE_SOON, succeeded=True),
        ]

        summary = summarize(now, outcomes)

        assert summary.newly_overdue == 1
        assert summary.due_today == 0
        assert summary.due_soon == 1

    def test_summary_serializes_camel_case(self, now):
        summary = RunSummary(checked_at=now, newly_overdue=2, due_today=5, due_soon=3)

        assert summary.model_dump(mode="json", by_alias=True) == {
            "checkedAt": "2024-03-10T15:00:00Z",
            "newlyOverdue": 2,
            "dueToday": 5,
            "dueSoon": 3,
        }

    def test_summary_is_immutable(self, now):
        summary = RunSummary(checked_at=now)

        with pytest.raises(ValidationError):
            summary.newly_overdue = 4
