"""
Catalog models for the library inventory backend.

Items are the loanable physical units (books and disks). An item never
stores loan state: ``available`` is filled in from the loan ledger each time
an item is read.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ItemKind(str, Enum):
    """Kinds of loanable items."""

    BOOK = "book"
    DISK = "disk"


class Author(BaseModel):
    """An author referenced by books."""

    id: int
    code: str
    last_name: str = Field(..., min_length=1, max_length=100)
    first_name: str | None = None
    middle_name: str | None = None
    short_name: str = Field(..., description="Display form, e.g. 'Tolstoy L. N.'")

    model_config = ConfigDict(from_attributes=True)


class Publisher(BaseModel):
    """A publisher referenced by books and disks."""

    id: int
    code: str
    name: str = Field(..., min_length=1, max_length=300)

    model_config = ConfigDict(from_attributes=True)


class ItemSummary(BaseModel):
    """The slice of an item embedded in loan views and receipts."""

    id: int
    kind: ItemKind
    code: str
    barcode: str
    title: str

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class Item(BaseModel):
    """
    A loanable item with its derived availability.

    ``author`` and ``publisher`` are explicit optional references: an item
    either points at a record or has None, there is no zero id.
    """

    id: int
    kind: ItemKind = Field(..., description="book or disk")
    code: str = Field(
        ...,
        description="Sequential human-readable code, unique across the catalog",
        examples=["000042", "00007"],
    )
    barcode: str = Field(
        ...,
        description="Scanned barcode, unique across the catalog",
        min_length=1,
        max_length=64,
        examples=["4600000000017"],
    )
    title: str = Field(..., min_length=1, max_length=500)
    short_title: str | None = None
    isbn: str | None = None
    author_id: int | None = None
    publisher_id: int | None = None
    author: Author | None = None
    publisher: Publisher | None = None
    publication_year: int | None = Field(None, ge=1450, le=2100)
    location: str | None = None
    subject: str | None = None
    resource_type: str | None = None
    comments: str | None = None
    created_at: datetime | None = None
    available: bool = Field(
        default=True,
        description="True iff the ledger holds no open loan for this item",
    )

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        json_schema_extra={
            "example": {
                "id": 1,
                "kind": "book",
                "code": "000001",
                "barcode": "4600000000017",
                "title": "War and Peace",
                "isbn": "9785170906307",
                "available": True,
            }
        },
    )
