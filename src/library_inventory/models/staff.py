"""Staff models. Staff ids are the actors stamped on every ledger change."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Staff(BaseModel):
    id: int
    username: str = Field(..., min_length=1, max_length=100)
    full_name: str
    role: str = Field(default="librarian", pattern="^(admin|librarian)$")
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class Actor(BaseModel):
    """The authenticated staff identity attached to a request."""

    staff_id: int
    username: str
    role: str
