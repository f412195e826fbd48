"""
Loan models for the library inventory backend.

- LoanRecord: one borrow transaction, open or closed
- LoanView: a ledger row joined with item and patron summaries
- ReturnReceipt: what the desk gets back from a return
- LoanHistoryFilter: filter for history queries and reports

``days_on_loan`` is never stored. It is the whole number of days between
``issued_at`` and ``returned_at`` (or the time of the request for open
loans), truncated.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .catalog import ItemSummary
from .patron import PatronSummary


class LoanStatus(str, Enum):
    """Status of a loan record. ``closed`` is terminal."""

    OPEN = "open"
    CLOSED = "closed"


def whole_days(start: datetime, end: datetime) -> int:
    """Whole days elapsed between two instants, truncated, never negative."""
    return max(0, (end - start).days)


class LoanRecord(BaseModel):
    """
    Represents one loan transaction in the ledger.

    The record is created open by an issue and closed exactly once by a
    return. References and issue stamps never change after creation.
    """

    id: int = Field(..., description="Monotonic surrogate id", ge=1)
    item_id: int = Field(..., description="The item on loan")
    patron_id: int = Field(..., description="The patron holding the item")
    issued_at: datetime = Field(..., description="When the item was issued")
    returned_at: datetime | None = Field(None, description="When the item came back")
    issued_by: int = Field(..., description="Staff id that issued the item")
    returned_by: int | None = Field(None, description="Staff id that received the item")
    status: LoanStatus = Field(default=LoanStatus.OPEN)

    @model_validator(mode="after")
    def validate_lifecycle(self) -> "LoanRecord":
        if self.status == LoanStatus.OPEN:
            if self.returned_at is not None or self.returned_by is not None:
                raise ValueError("Open loans cannot carry return stamps")
        else:
            if self.returned_at is None or self.returned_by is None:
                raise ValueError("Closed loans must carry return stamps")
            if self.returned_at < self.issued_at:
                raise ValueError("Return date cannot be before issue date")
        return self

    def days_on_loan(self, now: datetime | None = None) -> int:
        """Days on loan up to the return, or up to ``now`` for open loans."""
        end = self.returned_at or now or datetime.now()
        return whole_days(self.issued_at, end)

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        json_schema_extra={
            "example": {
                "id": 17,
                "item_id": 3,
                "patron_id": 8,
                "issued_at": "2024-09-02T10:15:00",
                "returned_at": None,
                "issued_by": 1,
                "returned_by": None,
                "status": "open",
            }
        },
    )


class LoanView(BaseModel):
    """A ledger row joined with its item and patron, as listed by the API."""

    id: int
    item: ItemSummary
    patron: PatronSummary
    issued_at: datetime
    returned_at: datetime | None = None
    issued_by: int
    returned_by: int | None = None
    status: LoanStatus
    days_on_loan: int = Field(
        ..., ge=0, description="Whole days on loan at the time of the response"
    )

    model_config = ConfigDict(use_enum_values=True)

    @classmethod
    def from_orm_row(cls, db_loan, now: datetime) -> "LoanView":
        """Build a view from a ``LoanRecord`` row with item and patron loaded."""
        record = LoanRecord.model_validate(db_loan, from_attributes=True)
        return cls(
            id=record.id,
            item=ItemSummary.model_validate(db_loan.item, from_attributes=True),
            patron=PatronSummary.model_validate(db_loan.patron, from_attributes=True),
            issued_at=record.issued_at,
            returned_at=record.returned_at,
            issued_by=record.issued_by,
            returned_by=record.returned_by,
            status=record.status,
            days_on_loan=record.days_on_loan(now),
        )


class ReturnReceipt(BaseModel):
    """Result of a successful return."""

    loan_id: int
    item: ItemSummary
    patron: PatronSummary
    issued_at: datetime
    returned_at: datetime
    days_on_loan: int = Field(..., ge=0)


class LoanHistoryFilter(BaseModel):
    """
    Filter for ledger history.

    Date bounds are inclusive and compare against the calendar date of
    ``issued_at`` (or ``returned_at`` for the return operation of the
    history report).
    """

    item_id: int | None = None
    patron_id: int | None = None
    date_from: date | None = None
    date_to: date | None = None

    @model_validator(mode="after")
    def validate_range(self) -> "LoanHistoryFilter":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self
