from datetime import datetime

from pydantic import Field, computed_field

from app.models.events import EventCategory, EventStatus
from app.schemas.common import CamelModel


# ---------- Event ----------
class EventCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    date: str = Field(min_length=1, max_length=64)
    time: str = Field(min_length=1, max_length=64)
    venue: str = Field(min_length=1, max_length=200)
    max_participants: int = Field(ge=1)
    category: EventCategory


class EventUpdate(CamelModel):
    """Partial update; fields left out keep their stored value."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1)
    date: str | None = Field(default=None, min_length=1, max_length=64)
    time: str | None = Field(default=None, min_length=1, max_length=64)
    venue: str | None = Field(default=None, min_length=1, max_length=200)
    max_participants: int | None = Field(default=None, ge=1)
    category: EventCategory | None = None
    status: EventStatus | None = None


class EventOut(CamelModel):
    id: int
    name: str
    description: str
    date: str
    time: str
    venue: str
    max_participants: int
    current_participants: int
    category: EventCategory
    status: EventStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @computed_field(alias="isFull")  # type: ignore[prop-decorator]
    @property
    def is_full(self) -> bool:
        return self.current_participants >= self.max_participants

    @computed_field(alias="spotsLeft")  # type: ignore[prop-decorator]
    @property
    def spots_left(self) -> int:
        return max(self.max_participants - self.current_participants, 0)

    @property
    def accepts_bookings(self) -> bool:
        return self.status == EventStatus.ACTIVE and not self.is_full


class EventSummary(CamelModel):
    """Read-only projection of an event shown next to its bookings."""

    name: str
    date: str
    time: str
    venue: str


class EventStatsOut(CamelModel):
    event_id: int
    status: EventStatus
    max_participants: int
    current_participants: int
    confirmed_count: int
    spots_left: int
    is_full: bool
