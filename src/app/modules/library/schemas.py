"""
Library Schemas

Pydantic value types exchanged between the sweep service, its collaborators
and the trigger endpoint.
"""

import enum
from datetime import UTC, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.modules.library.models import NotificationSeverity

# Label used when a loan's item title is missing (item deleted or never joined)
UNKNOWN_ITEM_TITLE = "Unknown Book"


class SweepPhase(str, enum.Enum):
    """Windows evaluated by one overdue sweep, in execution order."""

    NEWLY_OVERDUE = "newly_overdue"
    DUE_TODAY = "due_today"
    DUE_SOON = "due_soon"


class LoanRecord(BaseModel):
    """An open or historical loan as seen by the overdue sweep."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    borrower_id: UUID
    item_title: str | None = None
    due_date: datetime
    return_date: datetime | None = None
    is_overdue: bool = False

    @property
    def is_open(self) -> bool:
        """A loan is open until a return date is recorded."""
        return self.return_date is None

    @property
    def display_title(self) -> str:
        return self.item_title or UNKNOWN_ITEM_TITLE


class NotificationEvent(BaseModel):
    """A reminder or alert produced for a borrower."""

    model_config = ConfigDict(frozen=True)

    borrower_id: UUID
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    severity: NotificationSeverity
    reference_id: UUID
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RecordOutcome(BaseModel):
    """Result of processing a single loan within a sweep phase."""

    model_config = ConfigDict(frozen=True)

    loan_id: UUID
    phase: SweepPhase
    succeeded: bool
    error: str | None = None


class RunSummary(BaseModel):
    """
    Summary of one sweep run.

    Serialised with camelCase keys:
    {"checkedAt": ..., "newlyOverdue": 1, "dueToday": 0, "dueSoon": 2}
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    checked_at: datetime
    newly_overdue: int = Field(0, ge=0)
    due_today: int = Field(0, ge=0)
    due_soon: int = Field(0, ge=0)


class SweepErrorResponse(BaseModel):
    """Body returned when a sweep fails."""

    error: str
