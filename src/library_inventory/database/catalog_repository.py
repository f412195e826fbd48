"""
Catalog repository implementation for the library inventory backend.

This module manages the item catalog and its references:

1. **Items**: books and disks, looked up by exact barcode at the desk
2. **Authors / Publishers**: optional references carried by items
3. **Code generation**: sequential human-readable codes, max numeric code + 1
4. **Availability**: every item read is joined with the loan ledger, since
   availability is never stored on the item row
"""

import logging

from pydantic import BaseModel, Field
from sqlalchemy import Integer, and_, cast, distinct, exists, func, or_, select
from sqlalchemy.orm import contains_eager

from ..models.catalog import Author as AuthorModel
from ..models.catalog import Item as ItemModel
from ..models.catalog import ItemKind
from ..models.catalog import Publisher as PublisherModel
from .repository import (
    BaseRepository,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
)
from .schema import Author as AuthorDB
from .schema import Item as ItemDB
from .schema import ItemKindEnum, LoanStatusEnum
from .schema import LoanRecord as LoanDB
from .schema import Publisher as PublisherDB
from .session import safe_query

logger = logging.getLogger(__name__)

# Zero-padded code widths per kind of record
CODE_WIDTHS = {
    ItemKindEnum.BOOK: 6,
    ItemKindEnum.DISK: 5,
    "author": 5,
    "publisher": 5,
}


class AuthorCreateSchema(BaseModel):
    """Schema for creating an author."""

    last_name: str = Field(..., min_length=1, max_length=100)
    first_name: str | None = None
    middle_name: str | None = None
    short_name: str | None = None


class PublisherCreateSchema(BaseModel):
    """Schema for creating a publisher."""

    name: str = Field(..., min_length=1, max_length=300)


class ItemCreateSchema(BaseModel):
    """Schema for creating a book or a disk. The code is generated."""

    kind: ItemKind = ItemKind.BOOK
    barcode: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=500)
    short_title: str | None = None
    isbn: str | None = None
    author_id: int | None = None
    publisher_id: int | None = None
    publication_year: int | None = Field(None, ge=1450, le=2100)
    location: str | None = None
    subject: str | None = None
    resource_type: str | None = None
    comments: str | None = None


def _next_code(session, column, width: int, *criteria) -> str:
    """Max numeric code + 1, zero-padded to ``width``."""
    query = select(func.max(cast(column, Integer)))
    if criteria:
        query = query.where(*criteria)
    current = safe_query(session, lambda s: s.execute(query).scalar(), "Failed to read max code")
    return str((current or 0) + 1).zfill(width)


def _short_name(data: AuthorCreateSchema) -> str:
    initials = " ".join(f"{part[0]}." for part in (data.first_name, data.middle_name) if part)
    return f"{data.last_name} {initials}".strip()


def _open_loan_exists():
    return exists().where(and_(LoanDB.item_id == ItemDB.id, LoanDB.status == LoanStatusEnum.OPEN))


class AuthorRepository(BaseRepository[AuthorDB, AuthorCreateSchema, AuthorModel]):
    """Repository for authors."""

    @property
    def model_class(self) -> type[AuthorDB]:
        return AuthorDB

    @property
    def response_schema(self) -> type[AuthorModel]:
        return AuthorModel

    def create(self, data: AuthorCreateSchema) -> AuthorModel:
        author = AuthorDB(
            code=_next_code(self.session, AuthorDB.code, CODE_WIDTHS["author"]),
            last_name=data.last_name,
            first_name=data.first_name,
            middle_name=data.middle_name,
            short_name=data.short_name or _short_name(data),
        )
        return self._to_response_model(self._insert(author))


class PublisherRepository(BaseRepository[PublisherDB, PublisherCreateSchema, PublisherModel]):
    """Repository for publishers."""

    @property
    def model_class(self) -> type[PublisherDB]:
        return PublisherDB

    @property
    def response_schema(self) -> type[PublisherModel]:
        return PublisherModel

    def create(self, data: PublisherCreateSchema) -> PublisherModel:
        publisher = PublisherDB(
            code=_next_code(self.session, PublisherDB.code, CODE_WIDTHS["publisher"]),
            name=data.name,
        )
        return self._to_response_model(self._insert(publisher))


class ItemRepository(BaseRepository[ItemDB, ItemCreateSchema, ItemModel]):
    """
    Repository for loanable items.

    Items are resolved by exact, case-sensitive barcode. Every model returned
    from here carries ``available`` computed from the ledger in the same
    query that loaded the row.
    """

    @property
    def model_class(self) -> type[ItemDB]:
        return ItemDB

    @property
    def response_schema(self) -> type[ItemModel]:
        return ItemModel

    def _to_response_model(self, db_obj: ItemDB, on_loan: bool | None = None) -> ItemModel:
        if on_loan is None:
            on_loan = self._is_on_loan(db_obj.id)
        item = ItemModel.model_validate(db_obj, from_attributes=True)
        item.available = not on_loan
        return item

    def _is_on_loan(self, item_id: int) -> bool:
        query = select(
            exists().where(
                and_(LoanDB.item_id == item_id, LoanDB.status == LoanStatusEnum.OPEN)
            )
        )
        return bool(
            safe_query(self.session, lambda s: s.execute(query).scalar(), "Failed to check loan")
        )

    def get_db_by_barcode(self, barcode: str, for_update: bool = False) -> ItemDB | None:
        """
        Load the item row for a barcode.

        With ``for_update`` the row is locked until the surrounding
        transaction ends on backends that support row locks.
        """
        query = select(ItemDB).where(ItemDB.barcode == barcode)
        if for_update:
            query = query.with_for_update()
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            f"Failed to get item by barcode {barcode}",
        )

    def get_by_barcode(self, barcode: str) -> ItemModel | None:
        item = self.get_db_by_barcode(barcode)
        if item is None:
            return None
        return self._to_response_model(item)

    def require_by_barcode(self, barcode: str) -> ItemModel:
        item = self.get_by_barcode(barcode)
        if item is None:
            raise NotFoundError(f"Item with barcode {barcode} not found")
        return item

    def create(self, data: ItemCreateSchema, actor_id: int | None = None) -> ItemModel:
        """
        Create a book or a disk with the next code for its kind.

        Raises:
            NotFoundError: If the author or publisher reference does not exist
            DuplicateError: If the barcode is already in the catalog
        """
        if data.author_id is not None and self.session.get(AuthorDB, data.author_id) is None:
            raise NotFoundError(f"Author {data.author_id} not found")
        if (
            data.publisher_id is not None
            and self.session.get(PublisherDB, data.publisher_id) is None
        ):
            raise NotFoundError(f"Publisher {data.publisher_id} not found")

        kind = ItemKindEnum(ItemKind(data.kind).value)
        item = ItemDB(
            kind=kind,
            code=_next_code(self.session, ItemDB.code, CODE_WIDTHS[kind], ItemDB.kind == kind),
            created_by=actor_id,
            **data.model_dump(exclude={"kind"}),
        )
        item = self._insert(item)
        logger.info("Catalogued %s %s (%s)", kind.value, item.code, item.barcode)
        return self._to_response_model(item, on_loan=False)

    def search(
        self,
        query: str | None = None,
        kind: ItemKind | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[ItemModel]:
        """
        Search the catalog.

        ``query`` matches substrings of title, barcode, ISBN, author last
        name and publisher name, case-insensitively. Results are ordered by
        item code.
        """
        if pagination is None:
            pagination = PaginationParams()
        pagination.validate_params()

        conditions = []
        if kind is not None:
            conditions.append(ItemDB.kind == ItemKindEnum(ItemKind(kind).value))
        if query:
            pattern = f"%{query.lower()}%"
            conditions.append(
                or_(
                    func.lower(ItemDB.title).like(pattern),
                    func.lower(ItemDB.barcode).like(pattern),
                    func.lower(ItemDB.isbn).like(pattern),
                    func.lower(AuthorDB.last_name).like(pattern),
                    func.lower(PublisherDB.name).like(pattern),
                )
            )

        matching = (
            select(ItemDB.id)
            .outerjoin(AuthorDB, ItemDB.author_id == AuthorDB.id)
            .outerjoin(PublisherDB, ItemDB.publisher_id == PublisherDB.id)
            .where(*conditions)
        )
        total = self._count_query(matching)

        on_loan = _open_loan_exists().label("on_loan")
        stmt = (
            select(ItemDB, on_loan)
            .outerjoin(AuthorDB, ItemDB.author_id == AuthorDB.id)
            .outerjoin(PublisherDB, ItemDB.publisher_id == PublisherDB.id)
            .options(contains_eager(ItemDB.author), contains_eager(ItemDB.publisher))
            .where(*conditions)
            .order_by(ItemDB.code)
            .offset(pagination.offset)
            .limit(pagination.page_size)
        )
        rows = safe_query(
            self.session, lambda s: s.execute(stmt).all(), "Failed to search catalog"
        )
        items = [self._to_response_model(item, on_loan=bool(held)) for item, held in rows]
        return PaginatedResponse[ItemModel].build(items, total, pagination)

    def count_on_loan(self) -> tuple[int, int]:
        """
        Total items and items currently on loan.

        Both counts come from a single statement, so they describe the same
        snapshot even while issues and returns commit around them.
        """
        total = select(func.count()).select_from(ItemDB).scalar_subquery()
        on_loan = (
            select(func.count(distinct(LoanDB.item_id)))
            .where(LoanDB.status == LoanStatusEnum.OPEN)
            .scalar_subquery()
        )
        row = safe_query(
            self.session,
            lambda s: s.execute(select(total, on_loan)).one(),
            "Failed to count items on loan",
        )
        return row[0] or 0, row[1] or 0
