from datetime import datetime

from pydantic import Field, computed_field, field_validator

from app.models.books import NOT_SPECIFIED, BookingStatus
from app.schemas.common import CamelModel
from app.schemas.events import EventSummary


def _or_not_specified(value: str | None) -> str:
    if value is None or not value.strip():
        return NOT_SPECIFIED
    return value.strip()


def _normalize_email(value: str) -> str:
    if "@" not in value:
        raise ValueError("email must contain '@'")
    return value.lower()


class BookRequest(CamelModel):
    event_id: int = Field(ge=1)
    participant_name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=320)
    phone: str = Field(min_length=1, max_length=32)
    college: str | None = Field(default=None, validate_default=True)
    department: str | None = Field(default=None, validate_default=True)
    year: str | None = Field(default=None, validate_default=True)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("college", "department", "year")
    @classmethod
    def default_optional(cls, v: str | None) -> str:
        return _or_not_specified(v)


class BookingUpdate(CamelModel):
    """Contact details only; event, status and timestamps are not editable here."""

    participant_name: str | None = Field(default=None, min_length=1, max_length=200)
    email: str | None = Field(default=None, min_length=3, max_length=320)
    phone: str | None = Field(default=None, min_length=1, max_length=32)
    college: str | None = None
    department: str | None = None
    year: str | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        return v if v is None else _normalize_email(v)

    @field_validator("college", "department", "year")
    @classmethod
    def blank_to_not_specified(cls, v: str | None) -> str | None:
        return v if v is None else _or_not_specified(v)


class BookingOut(CamelModel):
    id: int
    event_id: int
    participant_name: str
    email: str
    phone: str
    college: str
    department: str
    year: str
    status: BookingStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @computed_field(alias="registrationDate")  # type: ignore[prop-decorator]
    @property
    def registration_date(self) -> datetime | None:
        return self.created_at


class BookingDetailOut(BookingOut):
    event: EventSummary | None = None
