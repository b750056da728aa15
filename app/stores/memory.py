import itertools
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from app.models.books import BookingStatus
from app.models.events import EventStatus
from app.schemas.books import BookingOut
from app.schemas.events import EventOut
from app.services.errors import DUPLICATE_REGISTRATION, DuplicateError
from app.stores.base import LedgerStore


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryStore(LedgerStore):
    """
    Process-memory store: an arena of events and bookings keyed by id.

    Each instance owns its own state, so tests and apps create and drop stores
    freely. Records are immutable snapshots; every write replaces the record.
    The (event_id, email) index of live bookings plays the role of the SQL
    unique index.
    """

    def __init__(self) -> None:
        self._mutex = threading.RLock()
        self._events: dict[int, EventOut] = {}
        self._bookings: dict[int, BookingOut] = {}
        self._active_emails: dict[tuple[int, str], int] = {}
        self._event_ids = itertools.count(1)
        self._booking_ids = itertools.count(1)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._mutex:
            snapshot = (dict(self._events), dict(self._bookings), dict(self._active_emails))
            try:
                yield
            except Exception:
                self._events, self._bookings, self._active_emails = snapshot
                raise

    # ---------- Event ----------
    def add_event(self, values: dict[str, Any]) -> EventOut:
        with self._mutex:
            now = _now()
            event = EventOut(
                id=next(self._event_ids),
                **values,
                current_participants=0,
                status=EventStatus.ACTIVE,
                created_at=now,
                updated_at=now,
            )
            self._events[event.id] = event
            return event

    def get_event(self, event_id: int) -> EventOut | None:
        return self._events.get(event_id)

    def list_events(self, status: EventStatus | None = None) -> list[EventOut]:
        with self._mutex:
            events = sorted(self._events.values(), key=lambda e: e.id)
        return [e for e in events if status is None or e.status == status]

    def update_event(self, event_id: int, values: dict[str, Any]) -> EventOut | None:
        with self._mutex:
            event = self._events.get(event_id)
            if event is None:
                return None
            if values:
                event = event.model_copy(update={**values, "updated_at": _now()})
                self._events[event_id] = event
            return event

    def delete_event(self, event_id: int) -> int:
        with self._mutex:
            self._events.pop(event_id, None)
            doomed = [b for b in self._bookings.values() if b.event_id == event_id]
            for booking in doomed:
                self._forget(booking)
                del self._bookings[booking.id]
            return len(doomed)

    def reserve_seat(self, event_id: int) -> bool:
        with self._mutex:
            event = self._events.get(event_id)
            if event is None or not event.accepts_bookings:
                return False
            self._events[event_id] = event.model_copy(
                update={"current_participants": event.current_participants + 1, "updated_at": _now()}
            )
            return True

    def release_seat(self, event_id: int) -> bool:
        with self._mutex:
            event = self._events.get(event_id)
            if event is None or event.current_participants <= 0:
                return False
            self._events[event_id] = event.model_copy(
                update={"current_participants": event.current_participants - 1, "updated_at": _now()}
            )
            return True

    # ---------- Booking ----------
    def _forget(self, booking: BookingOut) -> None:
        key = (booking.event_id, booking.email)
        if self._active_emails.get(key) == booking.id:
            del self._active_emails[key]

    def _remember(self, booking: BookingOut) -> None:
        if booking.status == BookingStatus.CANCELLED:
            return
        key = (booking.event_id, booking.email)
        holder = self._active_emails.get(key)
        if holder is not None and holder != booking.id:
            raise DuplicateError(DUPLICATE_REGISTRATION)
        self._active_emails[key] = booking.id

    def add_booking(self, values: dict[str, Any]) -> BookingOut:
        with self._mutex:
            now = _now()
            booking = BookingOut(
                id=next(self._booking_ids),
                **values,
                status=BookingStatus.CONFIRMED,
                created_at=now,
                updated_at=now,
            )
            self._remember(booking)
            self._bookings[booking.id] = booking
            return booking

    def get_booking(self, booking_id: int) -> BookingOut | None:
        return self._bookings.get(booking_id)

    def get_booking_with_event(self, booking_id: int) -> tuple[BookingOut, EventOut | None] | None:
        with self._mutex:
            booking = self._bookings.get(booking_id)
            if booking is None:
                return None
            return booking, self._events.get(booking.event_id)

    def find_active_booking(self, event_id: int, email: str) -> BookingOut | None:
        with self._mutex:
            booking_id = self._active_emails.get((event_id, email))
            return self._bookings.get(booking_id) if booking_id is not None else None

    def list_bookings_with_events(
        self, status: BookingStatus | None = None
    ) -> list[tuple[BookingOut, EventOut | None]]:
        with self._mutex:
            return [
                (b, self._events.get(b.event_id))
                for b in sorted(self._bookings.values(), key=lambda b: b.id)
                if status is None or b.status == status
            ]

    def count_bookings(self, event_id: int, status: BookingStatus | None = None) -> int:
        with self._mutex:
            return sum(
                1
                for b in self._bookings.values()
                if b.event_id == event_id and (status is None or b.status == status)
            )

    def update_booking(
        self,
        booking_id: int,
        values: dict[str, Any],
        *,
        unless_status: BookingStatus | None = None,
    ) -> BookingOut | None:
        with self._mutex:
            booking = self._bookings.get(booking_id)
            if booking is None:
                return None
            if not values:
                return booking
            if unless_status is not None and booking.status == unless_status:
                return None

            updated = booking.model_copy(update={**values, "updated_at": _now()})
            self._forget(booking)
            try:
                self._remember(updated)
            except DuplicateError:
                self._remember(booking)
                raise
            self._bookings[booking_id] = updated
            return updated
