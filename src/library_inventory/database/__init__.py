"""
Database package for the library inventory backend.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management and connection handling (session.py)
- Repositories for the catalog, patrons and staff
- The loan ledger, sole writer of loan state (loan_ledger.py)
"""

from .catalog_repository import AuthorRepository, ItemRepository, PublisherRepository
from .loan_ledger import LoanLedger
from .patron_repository import PatronRepository
from .repository import (
    AlreadyLoanedError,
    BaseRepository,
    ConflictError,
    DuplicateError,
    NoActiveLoanError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    RepositoryException,
    ValidationError,
)
from .schema import Base, ItemKindEnum, LoanStatusEnum
from .session import DatabaseManager, safe_commit, safe_query
from .staff_repository import StaffRepository

__all__ = [
    "AlreadyLoanedError",
    "AuthorRepository",
    "Base",
    "BaseRepository",
    "ConflictError",
    "DatabaseManager",
    "DuplicateError",
    "ItemKindEnum",
    "ItemRepository",
    "LoanLedger",
    "LoanStatusEnum",
    "NoActiveLoanError",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "PatronRepository",
    "PublisherRepository",
    "RepositoryException",
    "StaffRepository",
    "ValidationError",
    "safe_commit",
    "safe_query",
]
