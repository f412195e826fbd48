"""
Patron repository implementation for the library inventory backend.

Patrons are registered readers, resolved at the desk by exact barcode. The
number of items a patron holds is never stored; it is counted from open
ledger records whenever a patron is read.
"""

import logging

from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import Integer, and_, cast, func, select

from ..models.patron import Patron as PatronModel
from .repository import BaseRepository, NotFoundError
from .schema import LoanRecord as LoanDB
from .schema import LoanStatusEnum
from .schema import Patron as PatronDB
from .session import safe_query

logger = logging.getLogger(__name__)

PATRON_CODE_WIDTH = 6


class PatronCreateSchema(BaseModel):
    """Schema for registering a patron. The code is generated."""

    barcode: str = Field(..., min_length=1, max_length=64)
    last_name: str = Field(..., min_length=1, max_length=100)
    first_name: str = Field(..., min_length=1, max_length=100)
    middle_name: str | None = None
    user_type: str = "student"
    grade: int | None = Field(None, ge=1, le=11)
    class_name: str | None = None
    phone: str | None = Field(None, pattern=r"^\+?[\d\s\-\(\)]+$")
    email: EmailStr | None = None
    comments: str | None = None


class PatronRepository(BaseRepository[PatronDB, PatronCreateSchema, PatronModel]):
    """Repository for patron data access."""

    @property
    def model_class(self) -> type[PatronDB]:
        return PatronDB

    @property
    def response_schema(self) -> type[PatronModel]:
        return PatronModel

    def _to_response_model(self, db_obj: PatronDB) -> PatronModel:
        patron = PatronModel.model_validate(db_obj, from_attributes=True)
        patron.active_loan_count = self.count_active_loans(db_obj.id)
        return patron

    def count_active_loans(self, patron_id: int) -> int:
        query = (
            select(func.count())
            .select_from(LoanDB)
            .where(and_(LoanDB.patron_id == patron_id, LoanDB.status == LoanStatusEnum.OPEN))
        )
        return safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to count patron loans"
        ) or 0

    def get_db_by_barcode(self, barcode: str) -> PatronDB | None:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(PatronDB).where(PatronDB.barcode == barcode)
            ).scalar_one_or_none(),
            f"Failed to get patron by barcode {barcode}",
        )

    def get_by_barcode(self, barcode: str) -> PatronModel | None:
        patron = self.get_db_by_barcode(barcode)
        if patron is None:
            return None
        return self._to_response_model(patron)

    def require_by_barcode(self, barcode: str) -> PatronModel:
        patron = self.get_by_barcode(barcode)
        if patron is None:
            raise NotFoundError(f"Patron with barcode {barcode} not found")
        return patron

    def create(self, data: PatronCreateSchema, actor_id: int | None = None) -> PatronModel:
        """
        Register a patron with the next reader code.

        Raises:
            DuplicateError: If the barcode is already registered
        """
        current = safe_query(
            self.session,
            lambda s: s.execute(select(func.max(cast(PatronDB.code, Integer)))).scalar(),
            "Failed to read max patron code",
        )
        patron = PatronDB(
            code=str((current or 0) + 1).zfill(PATRON_CODE_WIDTH),
            created_by=actor_id,
            **data.model_dump(),
        )
        patron = self._insert(patron)
        logger.info("Registered patron %s (%s)", patron.code, patron.barcode)
        return self._to_response_model(patron)
