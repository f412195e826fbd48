"""
Tests for the availability engine.

Covers the desk scenarios (issue, refusal, return, unknown item, dashboard
after a same-day round trip) and the ledger invariants they rely on.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from library_inventory.database.repository import (
    AlreadyLoanedError,
    NoActiveLoanError,
    NotFoundError,
)
from library_inventory.database.schema import LoanRecord as LoanDB
from library_inventory.database.schema import LoanStatusEnum
from library_inventory.models.loan import LoanHistoryFilter, LoanStatus


def open_count(session, item_id: int) -> int:
    return session.execute(
        select(func.count())
        .select_from(LoanDB)
        .where(LoanDB.item_id == item_id, LoanDB.status == LoanStatusEnum.OPEN)
    ).scalar()


class TestDeskScenarios:
    def test_issue_available_item(self, engine, catalog, staff):
        loan = engine.issue("B1", "P1", staff.id)

        assert loan.status == LoanStatus.OPEN
        assert loan.item.barcode == "B1"
        assert loan.patron.barcode == "P1"
        assert not engine.is_available(catalog["B1"].id)
        assert not engine.items.get_by_barcode("B1").available

    def test_issue_held_item_reports_holder(self, engine, catalog, staff, clock):
        first = engine.issue("B1", "P1", staff.id)
        clock.advance(minutes=5)

        with pytest.raises(AlreadyLoanedError) as exc_info:
            engine.issue("B1", "P2", staff.id)

        error = exc_info.value
        assert error.holder == "Ivanova Maria"
        assert error.holder_barcode == "P1"
        assert error.issued_at == first.issued_at
        assert error.to_dict()["details"]["holder"] == "Ivanova Maria"
        assert error.to_dict()["kind"] == "already_loaned"

    def test_same_day_return(self, engine, catalog, staff, clock):
        engine.issue("B1", "P1", staff.id)
        clock.advance(hours=3)

        receipt = engine.return_item("B1", staff.id)

        assert receipt.days_on_loan == 0
        assert receipt.item.barcode == "B1"
        assert receipt.patron.display_name == "Ivanova Maria"
        assert receipt.returned_at == clock()
        assert engine.is_available(catalog["B1"].id)

    def test_return_never_issued_item(self, engine, catalog, staff):
        with pytest.raises(NoActiveLoanError):
            engine.return_item("B2", staff.id)

    def test_dashboard_after_round_trip(self, engine, reporting, catalog, staff, clock):
        before = reporting.dashboard_stats()

        engine.issue("B1", "P1", staff.id)
        clock.advance(hours=1)
        engine.return_item("B1", staff.id)

        after = reporting.dashboard_stats()
        assert after.active_loans == 0
        assert after.today_issued == before.today_issued + 1
        assert after.today_returned == before.today_returned + 1
        assert after.available_items == after.total_items


class TestResolution:
    def test_unknown_item_barcode(self, engine, catalog, staff):
        with pytest.raises(NotFoundError, match="Item"):
            engine.issue("NOPE", "P1", staff.id)

    def test_unknown_patron_barcode(self, engine, catalog, staff):
        with pytest.raises(NotFoundError, match="Patron"):
            engine.issue("B1", "NOPE", staff.id)

    def test_unknown_patron_checked_before_availability(self, engine, catalog, staff):
        engine.issue("B1", "P1", staff.id)

        with pytest.raises(NotFoundError):
            engine.issue("B1", "NOPE", staff.id)

    def test_barcodes_are_case_sensitive(self, engine, catalog, staff):
        with pytest.raises(NotFoundError):
            engine.issue("b1", "P1", staff.id)

    def test_return_unknown_item(self, engine, catalog, staff):
        with pytest.raises(NotFoundError):
            engine.return_item("NOPE", staff.id)


class TestInvariants:
    def test_at_most_one_open_loan_per_item(self, engine, session, catalog, staff, clock):
        for patron in ("P1", "P2", "P3"):
            try:
                engine.issue("B1", patron, staff.id)
            except AlreadyLoanedError:
                pass
            assert open_count(session, catalog["B1"].id) == 1
            clock.advance(days=1)

        engine.return_item("B1", staff.id)
        assert open_count(session, catalog["B1"].id) == 0

    def test_double_return(self, engine, catalog, staff, clock):
        engine.issue("B1", "P1", staff.id)
        clock.advance(days=1)
        engine.return_item("B1", staff.id)

        with pytest.raises(NoActiveLoanError):
            engine.return_item("B1", staff.id)

    @pytest.mark.parametrize(
        ("elapsed", "expected_days"),
        [
            (timedelta(hours=23, minutes=59), 0),
            (timedelta(days=1), 1),
            (timedelta(days=6, hours=23), 6),
            (timedelta(days=45, minutes=1), 45),
        ],
    )
    def test_round_trip_history(self, engine, catalog, staff, clock, elapsed, expected_days):
        issued = engine.issue("B1", "P1", staff.id)
        clock.advance(seconds=elapsed.total_seconds())
        receipt = engine.return_item("B1", staff.id)

        history = engine.ledger.history(LoanHistoryFilter(item_id=catalog["B1"].id))

        assert len(history) == 1
        record = history[0]
        assert record.id == issued.id == receipt.loan_id
        assert record.status == LoanStatus.CLOSED
        assert record.returned_at > record.issued_at
        assert record.days_on_loan == expected_days
        assert receipt.days_on_loan == expected_days

    def test_patron_active_loan_count(self, engine, catalog, staff):
        engine.issue("B1", "P1", staff.id)
        engine.issue("D1", "P1", staff.id)

        patron = engine.patrons.get_by_barcode("P1")
        assert patron.active_loan_count == 2

        engine.return_item("D1", staff.id)
        assert engine.patrons.get_by_barcode("P1").active_loan_count == 1
