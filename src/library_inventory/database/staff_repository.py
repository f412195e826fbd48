"""
Staff repository for the library inventory backend.

Staff accounts authenticate API requests; their ids are the actors stamped
on every loan. Password hashing lives in ``library_inventory.api.auth``;
this repository only stores and loads the hash.
"""

from pydantic import BaseModel, Field
from sqlalchemy import select

from ..models.staff import Staff as StaffModel
from .repository import BaseRepository
from .schema import Staff as StaffDB
from .session import safe_query


class StaffCreateSchema(BaseModel):
    """Schema for creating a staff account from an already hashed password."""

    username: str = Field(..., min_length=1, max_length=100)
    full_name: str
    role: str = Field(default="librarian", pattern="^(admin|librarian)$")
    password_hash: str


class StaffRepository(BaseRepository[StaffDB, StaffCreateSchema, StaffModel]):
    """Repository for staff accounts."""

    @property
    def model_class(self) -> type[StaffDB]:
        return StaffDB

    @property
    def response_schema(self) -> type[StaffModel]:
        return StaffModel

    def get_db_by_username(self, username: str) -> StaffDB | None:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(StaffDB).where(StaffDB.username == username)
            ).scalar_one_or_none(),
            "Failed to get staff by username",
        )

    def create(self, data: StaffCreateSchema) -> StaffModel:
        return self._to_response_model(self._insert(StaffDB(**data.model_dump())))
