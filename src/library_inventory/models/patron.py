"""
Patron model for the library inventory backend.

A patron is a registered reader. Readers are identified at the desk by
barcode; ``active_loan_count`` is derived from the loan ledger on read.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field


class PatronSummary(BaseModel):
    """The slice of a patron embedded in loan views and receipts."""

    id: int
    barcode: str
    last_name: str
    first_name: str

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def display_name(self) -> str:
        return f"{self.last_name} {self.first_name}".strip()


class Patron(BaseModel):
    """
    Represents a library patron who can borrow items.

    Patrons carry no loan state of their own; how many items a patron holds
    is counted from open ledger records whenever the patron is read.
    """

    id: int
    code: str = Field(..., description="Sequential reader code", examples=["000015"])
    barcode: str = Field(
        ...,
        description="Reader card barcode, globally unique",
        min_length=1,
        max_length=64,
        examples=["2000000000015"],
    )
    last_name: str = Field(..., min_length=1, max_length=100, examples=["Ivanova"])
    first_name: str = Field(..., min_length=1, max_length=100, examples=["Maria"])
    middle_name: str | None = None
    user_type: str = Field(default="student", examples=["student", "teacher"])
    grade: int | None = Field(None, ge=1, le=11)
    class_name: str | None = Field(None, description="Class label, e.g. '7B'")
    phone: str | None = Field(None, pattern=r"^\+?[\d\s\-\(\)]+$")
    email: EmailStr | None = None
    comments: str | None = None
    created_at: datetime | None = None
    active_loan_count: int = Field(default=0, ge=0)

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def display_name(self) -> str:
        return f"{self.last_name} {self.first_name}".strip()
