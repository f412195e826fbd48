"""
Reporting models.

All counts are derived from the catalog, the patron registry and the loan
ledger at the time of the request; nothing here is stored.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from .loan import LoanHistoryFilter


class DashboardStats(BaseModel):
    """Headline numbers for the staff dashboard."""

    total_items: int = Field(..., ge=0)
    available_items: int = Field(..., ge=0)
    total_patrons: int = Field(..., ge=0)
    active_loans: int = Field(..., ge=0)
    today_issued: int = Field(..., ge=0)
    today_returned: int = Field(..., ge=0)
    overdue_loans: int = Field(..., ge=0)
    generated_at: datetime

    @model_validator(mode="after")
    def validate_totals(self) -> "DashboardStats":
        if self.available_items + self.active_loans != self.total_items:
            raise ValueError("available_items + active_loans must equal total_items")
        return self


class HistoryOperation(str, Enum):
    """Which ledger events a history report lists."""

    ISSUE = "issue"
    RETURN = "return"
    ALL = "all"


class LoanHistoryReportFilter(LoanHistoryFilter):
    """
    Filter for the loan history report.

    For ``issue`` the date bounds apply to ``issued_at``; for ``return`` they
    apply to ``returned_at`` and open loans are excluded; ``all`` lists
    records issued or returned in the range.
    """

    operation: HistoryOperation = HistoryOperation.ALL
