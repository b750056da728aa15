import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database.db import Base

if TYPE_CHECKING:
    from app.models.events import Event

NOT_SPECIFIED = "Not specified"


class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    # reserved for a future waiting list, nothing creates it yet
    WAITING = "waiting"


# One live registration per (event, email); cancelled rows drop out of the index
_ACTIVE_ONLY = text("status != 'cancelled'")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index(
            "uq_bookings_event_email_active",
            "event_id",
            "email",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id"), nullable=False, index=True)
    participant_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    college: Mapped[str] = mapped_column(String(200), nullable=False, default=NOT_SPECIFIED)
    department: Mapped[str] = mapped_column(String(200), nullable=False, default=NOT_SPECIFIED)
    year: Mapped[str] = mapped_column(String(32), nullable=False, default=NOT_SPECIFIED)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=BookingStatus.CONFIRMED.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    event: Mapped["Event"] = relationship(back_populates="bookings")
