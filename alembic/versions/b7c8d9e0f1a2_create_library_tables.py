"""create library tables

Revision ID: b7c8d9e0f1a2
Revises:
Create Date: 2026-02-02 09:00:00.000000

Creates the tables used by the library overdue sweep:
- library_items: catalogue entries (title is shown in notifications)
- library_transactions: borrow/return records; open loans have return_date NULL
- library_notifications: append-only borrower notifications

Indexes support the sweep queries:
- (return_date, due_date) for the open-loan window scans
- is_overdue for the newly-overdue guard
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "b7c8d9e0f1a2"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

transaction_type = sa.Enum("borrow", "return", name="library_transaction_type")
notification_type = sa.Enum("info", "warning", name="library_notification_type")


def upgrade() -> None:
    """Create library_items, library_transactions and library_notifications."""
    op.create_table(
        "library_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("author", sa.String(200), nullable=True),
        sa.Column("isbn", sa.String(20), nullable=True),
        sa.Column("category", sa.String(100), nullable=False, server_default="general"),
        sa.Column("total_copies", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("available_copies", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )

    op.create_table(
        "library_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "library_item_id",
            sa.Uuid(),
            sa.ForeignKey("library_items.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("borrower_id", sa.Uuid(), nullable=False),
        sa.Column("transaction_type", transaction_type, nullable=False, server_default="borrow"),
        sa.Column("issue_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("return_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_overdue", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("fine_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("processed_by", sa.Uuid(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index(
        "ix_library_transactions_open_due",
        "library_transactions",
        ["return_date", "due_date"],
    )
    op.create_index("ix_library_transactions_is_overdue", "library_transactions", ["is_overdue"])
    op.create_index("ix_library_transactions_borrower_id", "library_transactions", ["borrower_id"])

    op.create_table(
        "library_notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("borrower_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", notification_type, nullable=False, server_default="info"),
        sa.Column("reference_id", sa.Uuid(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index(
        "ix_library_notifications_borrower_id", "library_notifications", ["borrower_id"]
    )
    op.create_index(
        "ix_library_notifications_reference_id", "library_notifications", ["reference_id"]
    )


def downgrade() -> None:
    """Drop the library tables and their enum types."""
    op.drop_index("ix_library_notifications_reference_id", table_name="library_notifications")
    op.drop_index("ix_library_notifications_borrower_id", table_name="library_notifications")
    op.drop_table("library_notifications")

    op.drop_index("ix_library_transactions_borrower_id", table_name="library_transactions")
    op.drop_index("ix_library_transactions_is_overdue", table_name="library_transactions")
    op.drop_index("ix_library_transactions_open_due", table_name="library_transactions")
    op.drop_table("library_transactions")

    op.drop_table("library_items")

    notification_type.drop(op.get_bind(), checkfirst=True)
    transaction_type.drop(op.get_bind(), checkfirst=True)
