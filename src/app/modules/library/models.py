"""
Library Models

Database models for library items, lending transactions and borrower notifications.
Borrowers are profiles owned by the user-management side of the platform;
this service only stores their IDs.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class TransactionType(str, enum.Enum):
    """Kinds of lending transactions."""

    BORROW = "borrow"
    RETURN = "return"


class NotificationSeverity(str, enum.Enum):
    """Severity of a borrower notification."""

    INFO = "info"
    WARNING = "warning"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    # Persist the lowercase values ("borrow"), not the member names
    return [member.value for member in enum_cls]


class LibraryItem(Base):
    """A catalogued item that can be lent out."""

    __tablename__ = "library_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    author: Mapped[str | None] = mapped_column(String(200), nullable=True)
    isbn: Mapped[str | None] = mapped_column(String(20), nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="general")

    total_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    available_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    transactions: Mapped[list["LibraryTransaction"]] = relationship(
        "LibraryTransaction", back_populates="library_item"
    )


class LibraryTransaction(Base):
    """
    A lending transaction.

    Borrow transactions with no return_date are open loans. The overdue sweep
    only ever flips is_overdue from false to true; return_date is set by the
    return flow outside this service.
    """

    __tablename__ = "library_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Item may be deleted from the catalogue after the loan is recorded
    library_item_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("library_items.id", ondelete="SET NULL"),
        nullable=True,
    )
    borrower_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, name="library_transaction_type", values_callable=_enum_values),
        nullable=False,
        default=TransactionType.BORROW,
    )

    # Loan lifecycle
    issue_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    return_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_overdue: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    fine_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    library_item: Mapped["LibraryItem | None"] = relationship(
        "LibraryItem", back_populates="transactions"
    )

    __table_args__ = (
        Index("ix_library_transactions_open_due", "return_date", "due_date"),
        Index("ix_library_transactions_is_overdue", "is_overdue"),
        Index("ix_library_transactions_borrower_id", "borrower_id"),
    )


class LibraryNotification(Base):
    """
    A notification recorded for a borrower.

    Rows are append-only from this service; a separate delivery mechanism
    reads them and marks them as read.
    """

    __tablename__ = "library_notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    borrower_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    notification_type: Mapped[NotificationSeverity] = mapped_column(
        Enum(
            NotificationSeverity,
            name="library_notification_type",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=NotificationSeverity.INFO,
    )
    # Loan (library_transactions.id) the notification is about
    reference_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_library_notifications_borrower_id", "borrower_id"),
        Index("ix_library_notifications_reference_id", "reference_id"),
    )
