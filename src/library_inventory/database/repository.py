"""
Repository pattern implementation for the library inventory backend.

Repositories keep SQLAlchemy out of the services and the HTTP layer:

1. **Separation**: the availability engine and the reporting projection speak
   in domain terms (barcodes, ids) and never build queries themselves
2. **Testability**: every repository takes an explicit ``Session``
3. **Serialization**: methods return pydantic models that render directly as
   JSON responses

The base repository provides the common keyed-record operations; the
catalog, patron and staff repositories add their own lookups, and the loan
ledger is a standalone repository because it never updates or deletes
through the generic path.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from ..exceptions import (
    AlreadyLoanedError,
    ConflictError,
    DuplicateError,
    NoActiveLoanError,
    NotFoundError,
    RepositoryException,
    ValidationError,
)
from .schema import Base
from .session import safe_commit, safe_query

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)

__all__ = [
    "AlreadyLoanedError",
    "BaseRepository",
    "ConflictError",
    "DuplicateError",
    "NoActiveLoanError",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "RepositoryException",
    "ValidationError",
]


class PaginationParams(BaseModel):
    """Standard pagination parameters for list operations."""

    page: int = 1
    page_size: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def validate_params(self) -> None:
        if self.page < 1:
            raise ValidationError("Page must be >= 1")
        if self.page_size < 1 or self.page_size > 100:
            raise ValidationError("Page size must be between 1 and 100")


class PaginatedResponse(BaseModel, Generic[ResponseSchemaType]):
    """Standard paginated response for list endpoints."""

    items: list[ResponseSchemaType]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(
        cls, items: list, total: int, pagination: PaginationParams
    ) -> "PaginatedResponse":
        return cls(
            items=items,
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=(total + pagination.page_size - 1) // pagination.page_size,
            has_next=pagination.page * pagination.page_size < total,
            has_previous=pagination.page > 1,
        )


class BaseRepository(ABC, Generic[ModelType, CreateSchemaType, ResponseSchemaType]):
    """
    Abstract base repository for keyed records.

    All queries go through ``safe_query`` and all writes through
    ``safe_commit`` so callers only ever see domain errors.
    """

    def __init__(self, session: Session):
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the pydantic response schema."""

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def _get_db_by_id(self, id: int) -> ModelType | None:
        return safe_query(
            self.session,
            lambda s: s.get(self.model_class, id),
            f"Failed to get {self.model_class.__name__} by ID",
        )

    def get_by_id(self, id: int) -> ResponseSchemaType | None:
        """Get an entity by surrogate id, or None."""
        db_obj = self._get_db_by_id(id)
        if db_obj is None:
            return None
        return self._to_response_model(db_obj)

    def require_by_id(self, id: int) -> ResponseSchemaType:
        """Get an entity by surrogate id or raise ``NotFoundError``."""
        entity = self.get_by_id(id)
        if entity is None:
            raise NotFoundError(f"{self.model_class.__name__} {id} not found")
        return entity

    def exists(self, id: int) -> bool:
        query = (
            select(func.count()).select_from(self.model_class).where(self.model_class.id == id)
        )
        count = safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to check existence"
        )
        return bool(count)

    def count(self) -> int:
        query = select(func.count()).select_from(self.model_class)
        return (
            safe_query(
                self.session,
                lambda s: s.execute(query).scalar(),
                f"Failed to count {self.model_class.__name__}",
            )
            or 0
        )

    def _insert(self, db_obj: ModelType) -> ModelType:
        """
        Add and commit a new row.

        Raises:
            DuplicateError: If a unique column collides
        """
        self.session.add(db_obj)
        try:
            safe_commit(self.session, f"create {self.model_class.__name__}")
        except IntegrityError as e:
            raise DuplicateError(
                f"{self.model_class.__name__} already exists or references a missing record"
            ) from e
        self.session.refresh(db_obj)
        return db_obj

    def _count_query(self, query: Select) -> int:
        count_query = select(func.count()).select_from(query.order_by(None).subquery())
        return (
            safe_query(
                self.session,
                lambda s: s.execute(count_query).scalar(),
                "Failed to count total for pagination",
            )
            or 0
        )
