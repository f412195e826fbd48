"""
Read-only projections over the catalog, the patron registry and the ledger.

Nothing here writes. Every number is derived at request time, so counts
always agree with the ledger: ``available_items + active_loans`` equals
``total_items`` because an item has at most one open loan.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from ..database.catalog_repository import ItemRepository
from ..database.loan_ledger import LoanLedger
from ..database.patron_repository import PatronRepository
from ..database.repository import PaginatedResponse, PaginationParams
from ..models.catalog import Item, ItemKind
from ..models.loan import LoanHistoryFilter, LoanView
from ..models.stats import DashboardStats, HistoryOperation, LoanHistoryReportFilter

logger = logging.getLogger(__name__)

# An open loan is overdue once it has been out longer than this
OVERDUE_AFTER_DAYS = 30


class ReportingProjection:
    def __init__(self, session: Session, now: Callable[[], datetime] = datetime.now):
        self.session = session
        self.now = now
        self.items = ItemRepository(session)
        self.patrons = PatronRepository(session)
        self.ledger = LoanLedger(session, now=now)

    def search_catalog(
        self,
        query: str | None = None,
        kind: ItemKind | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[Item]:
        return self.items.search(query=query, kind=kind, pagination=pagination)

    def active_loans(self, search: str | None = None) -> list[LoanView]:
        return self.ledger.active_loans(search)

    def history(self, filter: LoanHistoryFilter | None = None) -> list[LoanView]:
        return self.ledger.history(filter)

    def overdue_loans(self, now: datetime | None = None) -> list[LoanView]:
        """Open loans out for more than ``OVERDUE_AFTER_DAYS``, oldest first."""
        now = now or self.now()
        return self.ledger.open_issued_before(now - timedelta(days=OVERDUE_AFTER_DAYS), now=now)

    def loan_history_report(self, filter: LoanHistoryReportFilter) -> list[LoanView]:
        """
        Loan history for the report screen.

        ``issue`` lists loans issued in the date range, ``return`` lists
        loans returned in it, ``all`` lists both, newest issue first.
        """
        if filter.operation == HistoryOperation.ISSUE:
            return self.ledger.history(filter)
        if filter.operation == HistoryOperation.RETURN:
            return self.ledger.returns(filter)

        merged = {loan.id: loan for loan in self.ledger.history(filter)}
        for loan in self.ledger.returns(filter):
            merged.setdefault(loan.id, loan)
        return sorted(merged.values(), key=lambda loan: (loan.issued_at, loan.id), reverse=True)

    def dashboard_stats(self, now: datetime | None = None) -> DashboardStats:
        """
        Headline counters for the staff dashboard.

        "Today" is the local calendar date of ``now``. Item totals and loans
        on hand are read together; the daily counters are separate reads and
        may already include a loan committed after them.
        """
        now = now or self.now()
        today = now.date()
        total_items, on_loan = self.items.count_on_loan()
        stats = DashboardStats(
            total_items=total_items,
            available_items=total_items - on_loan,
            total_patrons=self.patrons.count(),
            active_loans=on_loan,
            today_issued=self.ledger.count_issued_on(today),
            today_returned=self.ledger.count_returned_on(today),
            overdue_loans=self.ledger.count_open_issued_before(
                now - timedelta(days=OVERDUE_AFTER_DAYS)
            ),
            generated_at=now,
        )
        logger.debug("Dashboard stats: %s", stats.model_dump())
        return stats
