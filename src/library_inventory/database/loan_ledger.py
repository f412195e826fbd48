"""
Loan ledger for the library inventory backend.

The ledger is the system of record for "who holds what, since when" and the
only code that writes ``loan_records``:

1. **Open**: an issue creates exactly one open record per item
2. **Close**: a return stamps ``returned_at``/``returned_by`` exactly once
3. **Projections**: open loans, history and overdue lists as ``LoanView``

At most one open record per item is guaranteed by the partial unique index
``uq_loan_open_item``. The pre-insert check gives a readable refusal in the
common case; the index decides when two writers race, and the loser gets
``ConflictError``. Closing is a conditional update on ``status = 'open'`` so
two concurrent returns cannot both succeed.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, time, timedelta

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..models.loan import LoanHistoryFilter, LoanView
from .repository import ConflictError, NotFoundError, ValidationError
from .schema import Item as ItemDB
from .schema import LoanRecord as LoanDB
from .schema import LoanStatusEnum
from .schema import Patron as PatronDB
from .schema import Staff as StaffDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


def day_start(day: date) -> datetime:
    return datetime.combine(day, time.min)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` interval covering one calendar day."""
    start = day_start(day)
    return start, start + timedelta(days=1)


def _date_range(column, date_from: date | None, date_to: date | None) -> list:
    conditions = []
    if date_from is not None:
        conditions.append(column >= day_start(date_from))
    if date_to is not None:
        conditions.append(column < day_start(date_to) + timedelta(days=1))
    return conditions


class LoanLedger:
    """
    Repository for loan records.

    Args:
        session: Database session; ``open`` and ``close`` commit it
        now: Clock used for ``days_on_loan`` in list projections
    """

    def __init__(self, session: Session, now: Callable[[], datetime] = datetime.now):
        self.session = session
        self.now = now

    def _loan_query(self):
        return select(LoanDB).options(joinedload(LoanDB.item), joinedload(LoanDB.patron))

    def _to_views(self, loans: Iterable[LoanDB], now: datetime | None = None) -> list[LoanView]:
        now = now or self.now()
        views = []
        for loan in loans:
            try:
                views.append(LoanView.from_orm_row(loan, now))
            except PydanticValidationError as e:
                logger.warning("Skipping malformed loan record %s: %s", loan.id, e)
        return views

    def _list(self, *conditions, order_by, now: datetime | None = None) -> list[LoanView]:
        query = self._loan_query().where(*conditions).order_by(*order_by)
        loans = safe_query(
            self.session,
            lambda s: s.execute(query).unique().scalars().all(),
            "Failed to list loan records",
        )
        return self._to_views(loans, now)

    def _get_open_db(self, item_id: int) -> LoanDB | None:
        return safe_query(
            self.session,
            lambda s: s.execute(
                self._loan_query().where(
                    and_(LoanDB.item_id == item_id, LoanDB.status == LoanStatusEnum.OPEN)
                )
            )
            .unique()
            .scalar_one_or_none(),
            f"Failed to get open loan for item {item_id}",
        )

    def find_open_by_item(self, item_id: int) -> LoanView | None:
        """Return the open loan for an item, or None if the item is on the shelf."""
        loan = self._get_open_db(item_id)
        if loan is None:
            return None
        return LoanView.from_orm_row(loan, self.now())

    def open(self, item_id: int, patron_id: int, actor_id: int, at: datetime) -> LoanView:
        """
        Record that an item was issued to a patron.

        Args:
            item_id: Item being issued
            patron_id: Patron receiving the item
            actor_id: Staff id performing the issue
            at: Issue timestamp

        Returns:
            The new open loan

        Raises:
            NotFoundError: If the item, patron or staff member does not exist
            ConflictError: If the item already has an open loan, including
                one committed by a concurrent writer after our check
        """
        for model, key in ((ItemDB, item_id), (PatronDB, patron_id), (StaffDB, actor_id)):
            if self.session.get(model, key) is None:
                raise NotFoundError(f"{model.__name__} {key} not found")

        if self._get_open_db(item_id) is not None:
            raise ConflictError(f"Item {item_id} already has an open loan")

        loan = LoanDB(
            item_id=item_id,
            patron_id=patron_id,
            issued_at=at,
            issued_by=actor_id,
            status=LoanStatusEnum.OPEN,
        )
        self.session.add(loan)
        try:
            safe_commit(self.session, "open loan")
        except IntegrityError as e:
            logger.info("Lost issue race for item %s", item_id)
            raise ConflictError(f"Item {item_id} was issued by a concurrent request") from e

        self.session.refresh(loan)
        logger.info(
            "Opened loan %s: item %s to patron %s by staff %s",
            loan.id,
            item_id,
            patron_id,
            actor_id,
        )
        return LoanView.from_orm_row(loan, at)

    def close(self, item_id: int, actor_id: int, at: datetime) -> LoanView:
        """
        Close the open loan for an item.

        Raises:
            NotFoundError: If the item has no open loan, including when a
                concurrent return closed it first
            ValidationError: If ``at`` precedes the issue timestamp
        """
        loan = self._get_open_db(item_id)
        if loan is None:
            raise NotFoundError(f"No open loan for item {item_id}")
        if at < loan.issued_at:
            raise ValidationError("Return date cannot be before issue date")

        stmt = (
            update(LoanDB)
            .where(and_(LoanDB.id == loan.id, LoanDB.status == LoanStatusEnum.OPEN))
            .values(status=LoanStatusEnum.CLOSED, returned_at=at, returned_by=actor_id)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to close loan")
        if result.rowcount != 1:
            self.session.rollback()
            raise NotFoundError(f"No open loan for item {item_id}")
        try:
            safe_commit(self.session, "close loan")
        except IntegrityError as e:
            raise ConflictError(f"Loan {loan.id} could not be closed") from e

        self.session.refresh(loan)
        logger.info("Closed loan %s: item %s by staff %s", loan.id, item_id, actor_id)
        return LoanView.from_orm_row(loan, at)

    def history(self, filter: LoanHistoryFilter | None = None) -> list[LoanView]:
        """
        Loan records matching the filter, newest issue first.

        Date bounds are inclusive calendar dates of ``issued_at``.
        """
        filter = filter or LoanHistoryFilter()
        conditions = _date_range(LoanDB.issued_at, filter.date_from, filter.date_to)
        if filter.item_id is not None:
            conditions.append(LoanDB.item_id == filter.item_id)
        if filter.patron_id is not None:
            conditions.append(LoanDB.patron_id == filter.patron_id)
        return self._list(*conditions, order_by=(LoanDB.issued_at.desc(), LoanDB.id.desc()))

    def returns(self, filter: LoanHistoryFilter | None = None) -> list[LoanView]:
        """Closed records whose return falls in the filter's date range, newest return first."""
        filter = filter or LoanHistoryFilter()
        conditions = [LoanDB.status == LoanStatusEnum.CLOSED]
        conditions += _date_range(LoanDB.returned_at, filter.date_from, filter.date_to)
        if filter.item_id is not None:
            conditions.append(LoanDB.item_id == filter.item_id)
        if filter.patron_id is not None:
            conditions.append(LoanDB.patron_id == filter.patron_id)
        return self._list(*conditions, order_by=(LoanDB.returned_at.desc(), LoanDB.id.desc()))

    def active_loans(self, search: str | None = None) -> list[LoanView]:
        """
        Open loans, newest issue first.

        ``search`` matches substrings of item title and barcode and of patron
        last name, first name and barcode, case-insensitively.
        """
        conditions = [LoanDB.status == LoanStatusEnum.OPEN]
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                or_(
                    LoanDB.item.has(
                        or_(
                            func.lower(ItemDB.title).like(pattern),
                            func.lower(ItemDB.barcode).like(pattern),
                        )
                    ),
                    LoanDB.patron.has(
                        or_(
                            func.lower(PatronDB.last_name).like(pattern),
                            func.lower(PatronDB.first_name).like(pattern),
                            func.lower(PatronDB.barcode).like(pattern),
                        )
                    ),
                )
            )
        return self._list(*conditions, order_by=(LoanDB.issued_at.desc(), LoanDB.id.desc()))

    def open_issued_before(self, cutoff: datetime, now: datetime | None = None) -> list[LoanView]:
        """Open loans issued strictly before ``cutoff``, oldest first."""
        return self._list(
            LoanDB.status == LoanStatusEnum.OPEN,
            LoanDB.issued_at < cutoff,
            order_by=(LoanDB.issued_at.asc(), LoanDB.id.asc()),
            now=now,
        )

    def _count(self, *conditions) -> int:
        query = select(func.count()).select_from(LoanDB).where(*conditions)
        return safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to count loan records"
        ) or 0

    def count_open_issued_before(self, cutoff: datetime) -> int:
        return self._count(LoanDB.status == LoanStatusEnum.OPEN, LoanDB.issued_at < cutoff)

    def count_issued_on(self, day: date) -> int:
        start, end = day_bounds(day)
        return self._count(LoanDB.issued_at >= start, LoanDB.issued_at < end)

    def count_returned_on(self, day: date) -> int:
        start, end = day_bounds(day)
        return self._count(LoanDB.returned_at >= start, LoanDB.returned_at < end)
