import enum
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.books import Booking, BookingStatus
from app.models.events import Event, EventStatus
from app.schemas.books import BookingOut
from app.schemas.events import EventOut
from app.services.errors import DUPLICATE_REGISTRATION, DuplicateError, PersistenceError
from app.stores.base import LedgerStore

logger = logging.getLogger(__name__)

# Primary keys are Integer columns: 32-bit on PostgreSQL, 64-bit on SQLite
MAX_ROW_ID = 2**31 - 1


def _storable_id(row_id: int) -> bool:
    return 0 < row_id <= MAX_ROW_ID


def _plain(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v.value if isinstance(v, enum.Enum) else v for k, v in values.items()}


def _is_duplicate_registration(err: IntegrityError) -> bool:
    # sqlite: "UNIQUE constraint failed: bookings.event_id, bookings.email"
    # postgres: 'duplicate key value violates unique constraint "uq_bookings_event_email_active"'
    text = str(err.orig)
    return "uq_bookings_event_email_active" in text or "bookings.email" in text


def _event_out(row: Event | None) -> EventOut | None:
    return EventOut.model_validate(row) if row is not None else None


class SqlAlchemyStore(LedgerStore):
    """Durable store on top of a SQLAlchemy session (one session per request)."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Database error, transaction rolled back: %s", e)
            raise PersistenceError("Database error") from e
        except Exception:
            self.db.rollback()
            raise

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Commit failed: %s", e)
            raise PersistenceError("Database error") from e

    # ---------- Event ----------
    def add_event(self, values: dict[str, Any]) -> EventOut:
        event = Event(
            **_plain(values),
            current_participants=0,
            status=EventStatus.ACTIVE.value,
        )
        self.db.add(event)
        self.db.flush()  # gets event.id
        self.db.refresh(event)
        return EventOut.model_validate(event)

    def get_event(self, event_id: int) -> EventOut | None:
        if not _storable_id(event_id):
            return None
        return _event_out(self.db.get(Event, event_id, populate_existing=True))

    def list_events(self, status: EventStatus | None = None) -> list[EventOut]:
        stmt = select(Event).order_by(Event.id)
        if status is not None:
            stmt = stmt.where(Event.status == status.value)
        return [EventOut.model_validate(e) for e in self.db.scalars(stmt)]

    def update_event(self, event_id: int, values: dict[str, Any]) -> EventOut | None:
        if values:
            res = self.db.execute(update(Event).where(Event.id == event_id).values(**_plain(values)))
            if res.rowcount != 1:  # type: ignore
                return None
        return self.get_event(event_id)

    def delete_event(self, event_id: int) -> int:
        removed = self.db.execute(delete(Booking).where(Booking.event_id == event_id))
        self.db.execute(delete(Event).where(Event.id == event_id))
        return int(removed.rowcount or 0)  # type: ignore

    def reserve_seat(self, event_id: int) -> bool:
        # Check status and capacity and increment current_participants atomically
        stmt = (
            update(Event)
            .where(Event.id == event_id)
            .where(Event.status == EventStatus.ACTIVE.value)
            .where(Event.current_participants < Event.max_participants)
            .values(current_participants=Event.current_participants + 1)
        )
        res = self.db.execute(stmt)
        return res.rowcount == 1  # type: ignore

    def release_seat(self, event_id: int) -> bool:
        stmt = (
            update(Event)
            .where(Event.id == event_id)
            .where(Event.current_participants > 0)
            .values(current_participants=Event.current_participants - 1)
        )
        res = self.db.execute(stmt)
        return res.rowcount == 1  # type: ignore

    # ---------- Booking ----------
    def add_booking(self, values: dict[str, Any]) -> BookingOut:
        booking = Booking(**_plain(values), status=BookingStatus.CONFIRMED.value)
        self.db.add(booking)
        try:
            self.db.flush()  # gets booking.id, enforces the unique index
        except IntegrityError as e:
            if _is_duplicate_registration(e):
                raise DuplicateError(DUPLICATE_REGISTRATION) from e
            raise
        self.db.refresh(booking)
        return BookingOut.model_validate(booking)

    def get_booking(self, booking_id: int) -> BookingOut | None:
        if not _storable_id(booking_id):
            return None
        booking = self.db.get(Booking, booking_id, populate_existing=True)
        return BookingOut.model_validate(booking) if booking is not None else None

    def get_booking_with_event(self, booking_id: int) -> tuple[BookingOut, EventOut | None] | None:
        if not _storable_id(booking_id):
            return None
        stmt = (
            select(Booking, Event)
            .outerjoin(Event, Booking.event_id == Event.id)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        row = self.db.execute(stmt).first()
        if row is None:
            return None
        return BookingOut.model_validate(row[0]), _event_out(row[1])

    def find_active_booking(self, event_id: int, email: str) -> BookingOut | None:
        stmt = (
            select(Booking)
            .where(Booking.event_id == event_id)
            .where(Booking.email == email)
            .where(Booking.status != BookingStatus.CANCELLED.value)
            .limit(1)
        )
        booking = self.db.scalar(stmt)
        return BookingOut.model_validate(booking) if booking is not None else None

    def list_bookings_with_events(
        self, status: BookingStatus | None = None
    ) -> list[tuple[BookingOut, EventOut | None]]:
        stmt = select(Booking, Event).outerjoin(Event, Booking.event_id == Event.id).order_by(Booking.id)
        if status is not None:
            stmt = stmt.where(Booking.status == status.value)
        return [(BookingOut.model_validate(b), _event_out(e)) for b, e in self.db.execute(stmt).all()]

    def count_bookings(self, event_id: int, status: BookingStatus | None = None) -> int:
        stmt = select(func.count(Booking.id)).where(Booking.event_id == event_id)
        if status is not None:
            stmt = stmt.where(Booking.status == status.value)
        return int(self.db.scalar(stmt) or 0)

    def update_booking(
        self,
        booking_id: int,
        values: dict[str, Any],
        *,
        unless_status: BookingStatus | None = None,
    ) -> BookingOut | None:
        if not values:
            return self.get_booking(booking_id)

        stmt = update(Booking).where(Booking.id == booking_id)
        if unless_status is not None:
            stmt = stmt.where(Booking.status != unless_status.value)
        try:
            res = self.db.execute(stmt.values(**_plain(values)))
        except IntegrityError as e:
            if _is_duplicate_registration(e):
                raise DuplicateError(DUPLICATE_REGISTRATION) from e
            raise
        if res.rowcount != 1:  # type: ignore
            return None
        return self.get_booking(booking_id)
