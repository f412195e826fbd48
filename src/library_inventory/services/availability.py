"""
Availability engine for the library inventory backend.

Issue and return are keyed by the barcodes scanned at the desk. The engine
resolves them to catalog and registry records, checks the ledger and lets
the ledger record the change. It never writes loan state itself.

Every item has at most one open loan. The item row is read ``FOR UPDATE``
(a row lock on backends that support it) and the ledger's partial unique
index settles any race that gets past the availability check; the losing
request sees ``ConflictError`` and is not retried.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from ..database.catalog_repository import ItemRepository
from ..database.loan_ledger import LoanLedger
from ..database.patron_repository import PatronRepository
from ..database.repository import AlreadyLoanedError, NoActiveLoanError, NotFoundError
from ..models.loan import LoanView, ReturnReceipt

logger = logging.getLogger(__name__)


class AvailabilityEngine:
    """
    Issue and return items.

    Args:
        session: Database session shared with the repositories
        now: Clock for issue and return stamps
    """

    def __init__(self, session: Session, now: Callable[[], datetime] = datetime.now):
        self.session = session
        self.now = now
        self.items = ItemRepository(session)
        self.patrons = PatronRepository(session)
        self.ledger = LoanLedger(session, now=now)

    def is_available(self, item_id: int) -> bool:
        """True iff the item has no open loan."""
        return self.ledger.find_open_by_item(item_id) is None

    def issue(self, item_barcode: str, patron_barcode: str, actor_id: int) -> LoanView:
        """
        Issue an item to a patron.

        Args:
            item_barcode: Scanned item barcode, matched exactly
            patron_barcode: Scanned reader card barcode, matched exactly
            actor_id: Staff id performing the issue

        Returns:
            The new open loan

        Raises:
            NotFoundError: If either barcode is unknown
            AlreadyLoanedError: If someone already holds the item
            ConflictError: If a concurrent issue for the item won the race
        """
        item = self.items.get_db_by_barcode(item_barcode, for_update=True)
        if item is None:
            raise NotFoundError(f"Item with barcode {item_barcode} not found")

        patron = self.patrons.get_db_by_barcode(patron_barcode)
        if patron is None:
            raise NotFoundError(f"Patron with barcode {patron_barcode} not found")

        held = self.ledger.find_open_by_item(item.id)
        if held is not None:
            logger.info(
                "Refused issue of %s to %s: held by %s since %s",
                item_barcode,
                patron_barcode,
                held.patron.barcode,
                held.issued_at,
            )
            raise AlreadyLoanedError(
                holder=held.patron.display_name,
                holder_barcode=held.patron.barcode,
                issued_at=held.issued_at,
            )

        loan = self.ledger.open(item.id, patron.id, actor_id, self.now())
        logger.info("Issued %s to %s", item_barcode, patron_barcode)
        return loan

    def return_item(self, item_barcode: str, actor_id: int) -> ReturnReceipt:
        """
        Receive an item back.

        Raises:
            NotFoundError: If the barcode is unknown
            NoActiveLoanError: If the item is not on loan, including when a
                concurrent return closed the loan first
        """
        item = self.items.get_db_by_barcode(item_barcode, for_update=True)
        if item is None:
            raise NotFoundError(f"Item with barcode {item_barcode} not found")

        if self.ledger.find_open_by_item(item.id) is None:
            raise NoActiveLoanError(f"Item {item_barcode} is not on loan")

        try:
            loan = self.ledger.close(item.id, actor_id, self.now())
        except NotFoundError as e:
            raise NoActiveLoanError(f"Item {item_barcode} is not on loan") from e

        logger.info("Returned %s after %s day(s)", item_barcode, loan.days_on_loan)
        return ReturnReceipt(
            loan_id=loan.id,
            item=loan.item,
            patron=loan.patron,
            issued_at=loan.issued_at,
            returned_at=loan.returned_at,
            days_on_loan=loan.days_on_loan,
        )
