"""
Fixtures for library tests.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest

from app.modules.library.schemas import LoanRecord, NotificationEvent
from app.modules.library.windows import DateWindow

# Reference instant used across the sweep tests
NOW = datetime(2024, 3, 10, 15, 0, 0, tzinfo=UTC)


class FakeLoanRepository:
    """In-memory LoanRepository honouring the same predicates as the SQL queries."""

    def __init__(self):
        self.loans: dict[UUID, LoanRecord] = {}
        self.mark_calls: list[UUID] = []
        self.fail_mark_for: set[UUID] = set()
        self.fail_fetch_due_in_range = False

    def add(self, loan: LoanRecord) -> LoanRecord:
        self.loans[loan.id] = loan
        return loan

    async def find_open_loans_overdue_before(self, cutoff: datetime) -> list[LoanRecord]:
        window = DateWindow(start=None, end=cutoff)
        return [
            loan
            for loan in self.loans.values()
            if loan.is_open and window.contains(loan.due_date) and not loan.is_overdue
        ]

    async def find_open_loans_due_in_range(
        self, start: datetime, end: datetime
    ) -> list[LoanRecord]:
        if self.fail_fetch_due_in_range:
            raise ConnectionError("database unreachable")
        window = DateWindow(start=start, end=end)
        return [
            loan
            for loan in self.loans.values()
            if loan.is_open and window.contains(loan.due_date)
        ]

    async def mark_overdue(self, loan_id: UUID) -> None:
        self.mark_calls.append(loan_id)
        if loan_id in self.fail_mark_for:
            raise RuntimeError(f"write failed for {loan_id}")
        self.loans[loan_id] = self.loans[loan_id].model_copy(update={"is_overdue": True})


class RecordingNotificationSink:
    """NotificationSink that keeps events in memory and can fail per loan."""

    def __init__(self):
        self.events: list[NotificationEvent] = []
        self.fail_for: set[UUID] = set()

    async def notify(self, event: NotificationEvent) -> None:
        if event.reference_id in self.fail_for:
            raise RuntimeError(f"notification insert failed for {event.reference_id}")
        self.events.append(event)

    def for_loan(self, loan_id: UUID) -> list[NotificationEvent]:
        return [event for event in self.events if event.reference_id == loan_id]


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def loan_repository():
    return FakeLoanRepository()


@pytest.fixture
def notification_sink():
    return RecordingNotificationSink()


@pytest.fixture
def make_loan():
    """Factory for LoanRecord instances with sensible defaults."""

    def _make_loan(due_date: datetime, **overrides) -> LoanRecord:
        values = {
            "id": uuid4(),
            "borrower_id": uuid4(),
            "item_title": "Things Fall Apart",
            "due_date": due_date,
            "return_date": None,
            "is_overdue": False,
        }
        values.update(overrides)
        return LoanRecord(**values)

    return _make_loan


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def mock_session_maker(mock_db):
    """Session factory whose context manager yields mock_db."""
    session_maker = MagicMock()
    session_maker.return_value.__aenter__.return_value = mock_db
    session_maker.return_value.__aexit__.return_value = False
    return session_maker
