"""
SQLAlchemy database schema for the library inventory backend.

Tables:
- staff: library employees; their ids are the actors stamped on loans
- authors, publishers: catalog references (optional on items)
- items: loanable physical units, books and disks in one table
- patrons: registered readers
- loan_records: the ledger, system of record for "who holds what, since when"

Availability is never stored on ``items``. It is derived from
``loan_records``, where the partial unique index ``uq_loan_open_item``
guarantees at most one open record per item.
"""

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.sql import func

Base = declarative_base()


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class ItemKindEnum(str, enum.Enum):
    """Database enum for loanable item kinds."""

    BOOK = "book"
    DISK = "disk"


class LoanStatusEnum(str, enum.Enum):
    """Database enum for loan status. ``closed`` is terminal."""

    OPEN = "open"
    CLOSED = "closed"


class Staff(Base):
    """Staff accounts. Only staff can issue or receive items."""

    __tablename__ = "staff"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True)
    full_name = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default="librarian")
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=func.now())

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'librarian')", name="check_staff_role"),
    )


class Author(Base):
    """Authors referenced by books."""

    __tablename__ = "authors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), nullable=False, unique=True)
    last_name = Column(String(100), nullable=False, index=True)
    first_name = Column(String(100), nullable=True)
    middle_name = Column(String(100), nullable=True)
    short_name = Column(String(200), nullable=False)
    created_at = Column(DateTime, nullable=False, default=func.now())

    items = relationship("Item", back_populates="author")


class Publisher(Base):
    """Publishers referenced by books and disks."""

    __tablename__ = "publishers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), nullable=False, unique=True)
    name = Column(String(300), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=func.now())

    items = relationship("Item", back_populates="publisher")


class Item(Base):
    """
    Loanable items (books and disks).

    ``barcode`` and ``code`` are globally unique across both kinds.
    Book-only fields (isbn, author, publication_year) stay NULL for disks,
    disk-only fields (subject, resource_type) stay NULL for books.
    """

    __tablename__ = "items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(
        Enum(ItemKindEnum, values_callable=_enum_values, native_enum=False, length=10),
        nullable=False,
        default=ItemKindEnum.BOOK,
    )
    code = Column(String(20), nullable=False, unique=True)
    barcode = Column(String(64), nullable=False, unique=True)
    title = Column(String(500), nullable=False, index=True)
    short_title = Column(String(200), nullable=True)
    isbn = Column(String(20), nullable=True)
    author_id = Column(Integer, ForeignKey("authors.id"), nullable=True)
    publisher_id = Column(Integer, ForeignKey("publishers.id"), nullable=True)
    publication_year = Column(Integer, nullable=True)
    location = Column(String(200), nullable=True)
    subject = Column(String(200), nullable=True)
    resource_type = Column(String(100), nullable=True)
    comments = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=func.now())
    created_by = Column(Integer, ForeignKey("staff.id"), nullable=True)

    author = relationship("Author", back_populates="items")
    publisher = relationship("Publisher", back_populates="items")
    loans = relationship("LoanRecord", back_populates="item")

    __table_args__ = (
        Index("idx_item_kind", "kind"),
        Index("idx_item_author", "author_id"),
        Index("idx_item_publisher", "publisher_id"),
        CheckConstraint("length(barcode) > 0", name="check_item_barcode_not_empty"),
    )


class Patron(Base):
    """Readers eligible to borrow items."""

    __tablename__ = "patrons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), nullable=False, unique=True)
    barcode = Column(String(64), nullable=False, unique=True)
    last_name = Column(String(100), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    middle_name = Column(String(100), nullable=True)
    user_type = Column(String(20), nullable=False, default="student")
    grade = Column(Integer, nullable=True)
    class_name = Column(String(20), nullable=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    comments = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=func.now())
    created_by = Column(Integer, ForeignKey("staff.id"), nullable=True)

    loans = relationship("LoanRecord", back_populates="patron")

    __table_args__ = (
        CheckConstraint("length(barcode) > 0", name="check_patron_barcode_not_empty"),
        CheckConstraint("grade IS NULL OR (grade >= 1 AND grade <= 11)", name="check_grade"),
    )

    @property
    def display_name(self) -> str:
        return f"{self.last_name} {self.first_name}".strip()


class LoanRecord(Base):
    """
    Loan ledger rows.

    Created open by an issue, closed exactly once by a return, never deleted
    and never reassigned. ``sqlite_autoincrement`` keeps ids monotonic even
    across deleted tail rows.
    """

    __tablename__ = "loan_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    patron_id = Column(Integer, ForeignKey("patrons.id"), nullable=False)
    issued_at = Column(DateTime, nullable=False)
    returned_at = Column(DateTime, nullable=True)
    issued_by = Column(Integer, ForeignKey("staff.id"), nullable=False)
    returned_by = Column(Integer, ForeignKey("staff.id"), nullable=True)
    status = Column(
        Enum(LoanStatusEnum, values_callable=_enum_values, native_enum=False, length=10),
        nullable=False,
        default=LoanStatusEnum.OPEN,
    )

    item = relationship("Item", back_populates="loans")
    patron = relationship("Patron", back_populates="loans")

    __table_args__ = (
        # At most one open loan per item
        Index(
            "uq_loan_open_item",
            "item_id",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
        Index("idx_loan_item", "item_id"),
        Index("idx_loan_patron", "patron_id"),
        Index("idx_loan_status", "status"),
        Index("idx_loan_issued_at", "issued_at"),
        CheckConstraint(
            "(status = 'open' AND returned_at IS NULL AND returned_by IS NULL)"
            " OR (status = 'closed' AND returned_at IS NOT NULL AND returned_by IS NOT NULL)",
            name="check_loan_close_stamps",
        ),
        CheckConstraint(
            "returned_at IS NULL OR returned_at >= issued_at",
            name="check_returned_after_issued",
        ),
        {"sqlite_autoincrement": True},
    )

    @validates("item_id", "patron_id", "issued_at", "issued_by")
    def validate_immutable(self, key, value):
        """References and issue stamps are set once at creation."""
        current = getattr(self, key)
        if current is not None and current != value:
            raise ValueError(f"LoanRecord.{key} is immutable")
        return value
