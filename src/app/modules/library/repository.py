"""
Library Loan Repository

Data access for open loans used by the overdue sweep.

Design Principles:
- All queries are parameterized (no SQL injection)
- Async operations for non-blocking I/O
- Only database operations, no business logic
- Each call opens its own session, so one failed write never poisons another
- Only borrow transactions with no return_date are ever selected
"""

import logging
from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import Select, Update, and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import LibraryItem, LibraryTransaction, TransactionType
from .schemas import LoanRecord

logger = logging.getLogger(__name__)


class LoanRepository(Protocol):
    """Loan record store used by the overdue sweep."""

    async def find_open_loans_overdue_before(self, cutoff: datetime) -> list[LoanRecord]:
        """Open loans with due_date < cutoff that are not yet marked overdue."""
        ...

    async def find_open_loans_due_in_range(
        self, start: datetime, end: datetime
    ) -> list[LoanRecord]:
        """Open loans with start <= due_date < end."""
        ...

    async def mark_overdue(self, loan_id: UUID) -> None:
        """Set is_overdue = true. Setting an already-true flag is a no-op."""
        ...


# ============================================
# Statement Builders
# ============================================


def open_loans_query() -> Select:
    """Borrow transactions with no return date, joined to their item title."""
    return (
        select(LibraryTransaction, LibraryItem.title)
        .outerjoin(LibraryItem, LibraryTransaction.library_item_id == LibraryItem.id)
        .where(
            and_(
                LibraryTransaction.transaction_type == TransactionType.BORROW,
                LibraryTransaction.return_date.is_(None),
            )
        )
    )


def overdue_before_query(cutoff: datetime) -> Select:
    """
    Open loans due before the cutoff that are not yet flagged.

    The is_overdue = false predicate is the de-duplication guard: once a
    loan is marked it is never selected again.
    """
    return open_loans_query().where(
        and_(
            LibraryTransaction.due_date < cutoff,
            LibraryTransaction.is_overdue.is_(False),
        )
    )


def due_in_range_query(start: datetime, end: datetime) -> Select:
    """Open loans with a due date in the half-open range [start, end)."""
    return open_loans_query().where(
        and_(
            LibraryTransaction.due_date >= start,
            LibraryTransaction.due_date < end,
        )
    )


def mark_overdue_statement(loan_id: UUID) -> Update:
    """Set-style update, safe to apply more than once."""
    return (
        update(LibraryTransaction)
        .where(LibraryTransaction.id == loan_id)
        .values(is_overdue=True)
    )


def _to_loan_record(transaction: LibraryTransaction, item_title: str | None) -> LoanRecord:
    return LoanRecord(
        id=transaction.id,
        borrower_id=transaction.borrower_id,
        item_title=item_title,
        due_date=transaction.due_date,
        return_date=transaction.return_date,
        is_overdue=transaction.is_overdue,
    )


# ============================================
# SQLAlchemy Adapter
# ============================================


class SqlAlchemyLoanRepository:
    """LoanRepository backed by the library_transactions table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def _fetch(self, query: Select) -> list[LoanRecord]:
        async with self._session_maker() as db:
            result = await db.execute(query)
            return [_to_loan_record(transaction, title) for transaction, title in result.all()]

    async def find_open_loans_overdue_before(self, cutoff: datetime) -> list[LoanRecord]:
        """
        Get open loans that crossed their due date and are not yet marked.

        Args:
            cutoff: Exclusive upper bound on due_date (midnight of today)

        Returns:
            Matching loans with their item titles
        """
        return await self._fetch(overdue_before_query(cutoff))

    async def find_open_loans_due_in_range(
        self, start: datetime, end: datetime
    ) -> list[LoanRecord]:
        """
        Get open loans due inside [start, end).

        Args:
            start: Inclusive lower bound on due_date
            end: Exclusive upper bound on due_date

        Returns:
            Matching loans with their item titles
        """
        return await self._fetch(due_in_range_query(start, end))

    async def mark_overdue(self, loan_id: UUID) -> None:
        """
        Mark a loan as overdue.

        Args:
            loan_id: UUID of the loan (library_transactions.id)
        """
        async with self._session_maker() as db:
            result = await db.execute(mark_overdue_statement(loan_id))
            await db.commit()

        if result.rowcount == 0:
            logger.warning(f"mark_overdue matched no loan with id {loan_id}")
