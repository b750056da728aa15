import logging
from typing import Any, TypeVar

import pydantic

from app.core.locks import EventLocks
from app.models.books import BookingStatus
from app.models.events import EventStatus
from app.schemas.books import BookingDetailOut, BookingOut, BookingUpdate, BookRequest
from app.schemas.events import EventCreate, EventOut, EventStatsOut, EventSummary, EventUpdate
from app.services.errors import (
    DUPLICATE_REGISTRATION,
    CapacityError,
    ConflictError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)
from app.stores.base import LedgerStore

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=pydantic.BaseModel)

DELETE_MODES = ("cancel", "cascade")

# Allowed event status changes; nothing leaves cancelled or completed
EVENT_TRANSITIONS = {
    (EventStatus.ACTIVE, EventStatus.CANCELLED),
    (EventStatus.ACTIVE, EventStatus.COMPLETED),
}


def _parse(schema: type[SchemaT], fields: Any, message: str) -> SchemaT:
    if isinstance(fields, schema):
        return fields
    try:
        return schema.model_validate(fields)
    except pydantic.ValidationError as e:
        raise ValidationError(message, details=e.errors(include_url=False, include_context=False)) from e


def _supplied(data: pydantic.BaseModel) -> dict[str, Any]:
    """Fields the caller actually sent, minus explicit nulls."""
    return {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}


def _detail(booking: BookingOut, event: EventOut | None) -> BookingDetailOut:
    summary = EventSummary.model_validate(event) if event is not None else None
    return BookingDetailOut(**booking.model_dump(), event=summary)


class RegistrationLedger:
    """
    Owns events and bookings and enforces the capacity invariant
    ``0 <= current_participants <= max_participants``.

    Every mutation that touches an event runs under that event's lock and
    inside one store transaction, so check-then-write sequences cannot
    interleave between concurrent requests.
    """

    def __init__(self, store: LedgerStore, locks: EventLocks, *, delete_mode: str = "cancel"):
        if delete_mode not in DELETE_MODES:
            raise ValueError(f"delete_mode must be one of {DELETE_MODES}, got {delete_mode!r}")
        self.store = store
        self.locks = locks
        self.delete_mode = delete_mode

    # ---------- Event ----------
    def create_event(self, fields: EventCreate | dict[str, Any]) -> EventOut:
        data = _parse(EventCreate, fields, "All fields are required")
        with self.store.transaction():
            event = self.store.add_event(data.model_dump())
        logger.info("Event %s created: %r (max %d)", event.id, event.name, event.max_participants)
        return event

    def get_event(self, event_id: int) -> EventOut:
        event = self.store.get_event(event_id)
        if event is None:
            raise NotFoundError("Event not found")
        return event

    def list_active_events(self) -> list[EventOut]:
        return self.store.list_events(status=EventStatus.ACTIVE)

    def update_event(self, event_id: int, patch: EventUpdate | dict[str, Any]) -> EventOut:
        data = _parse(EventUpdate, patch, "Invalid event data")
        values = _supplied(data)

        with self.locks.hold(event_id), self.store.transaction():
            event = self.get_event(event_id)

            new_status = values.get("status")
            if new_status is not None and new_status != event.status:
                if (event.status, new_status) not in EVENT_TRANSITIONS:
                    raise ConflictError(
                        f"Cannot change event status from {event.status.value} to {new_status.value}"
                    )

            new_max = values.get("max_participants")
            if new_max is not None and new_max < event.current_participants:
                raise ValidationError(
                    f"maxParticipants cannot be lower than current participants ({event.current_participants})"
                )

            updated = self.store.update_event(event_id, values)
            if updated is None:
                raise NotFoundError("Event not found")

        logger.info("Event %s updated: %s", event_id, sorted(values))
        return updated

    def cancel_event(self, event_id: int) -> EventOut:
        """
        Cancel an event. Its bookings stay as they are; new bookings are refused.

        In ``cascade`` mode the event and its bookings are removed instead and
        the removed event is returned.
        """
        with self.locks.hold(event_id), self.store.transaction():
            event = self.get_event(event_id)

            if self.delete_mode == "cascade":
                removed = self.store.delete_event(event_id)
                logger.info("Event %s deleted along with %d bookings", event_id, removed)
                return event

            if event.status == EventStatus.CANCELLED:
                return event
            if event.status != EventStatus.ACTIVE:
                raise ConflictError(f"Event is already {event.status.value}")

            cancelled = self.store.update_event(event_id, {"status": EventStatus.CANCELLED})
            if cancelled is None:
                raise NotFoundError("Event not found")

        logger.info("Event %s cancelled", event_id)
        return cancelled

    def event_stats(self, event_id: int) -> EventStatsOut:
        event = self.get_event(event_id)
        confirmed = self.store.count_bookings(event_id, status=BookingStatus.CONFIRMED)
        return EventStatsOut(
            event_id=event.id,
            status=event.status,
            max_participants=event.max_participants,
            current_participants=event.current_participants,
            confirmed_count=confirmed,
            spots_left=event.spots_left,
            is_full=event.is_full,
        )

    # ---------- Booking ----------
    def create_booking(self, fields: BookRequest | dict[str, Any]) -> BookingOut:
        """
        Register a participant for an event.

        Checks run in a fixed order and the first failure wins: input, event
        exists, event active, spare capacity, no live booking for the same email.
        The booking insert and the counter increment commit together.
        """
        data = _parse(BookRequest, fields, "Event ID, participant name, email, and phone are required")

        try:
            with self.locks.hold(data.event_id), self.store.transaction():
                event = self.get_event(data.event_id)
                if event.status != EventStatus.ACTIVE:
                    raise ConflictError("Event is not active for bookings")
                if event.is_full:
                    raise CapacityError("Event is fully booked")
                if self.store.find_active_booking(event.id, data.email) is not None:
                    raise DuplicateError(DUPLICATE_REGISTRATION)

                # conditional increment; guards the counter even if the lock was lost
                if not self.store.reserve_seat(event.id):
                    raise CapacityError("Event is fully booked")
                booking = self.store.add_booking(data.model_dump())
        except (ConflictError, CapacityError, DuplicateError) as e:
            logger.info("Booking rejected for event %s (%s): %s", data.event_id, data.email, e.message)
            raise

        logger.info("Booking %s confirmed for event %s", booking.id, booking.event_id)
        return booking

    def get_booking(self, booking_id: int) -> BookingDetailOut:
        found = self.store.get_booking_with_event(booking_id)
        if found is None:
            raise NotFoundError("Booking not found")
        return _detail(*found)

    def list_confirmed_bookings(self) -> list[BookingDetailOut]:
        return [_detail(b, e) for b, e in self.store.list_bookings_with_events(status=BookingStatus.CONFIRMED)]

    def update_booking(self, booking_id: int, patch: BookingUpdate | dict[str, Any]) -> BookingDetailOut:
        """Change contact details. A new email must not collide with another live booking."""
        data = _parse(BookingUpdate, patch, "Invalid booking data")
        values = _supplied(data)

        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")

        with self.locks.hold(booking.event_id), self.store.transaction():
            current = self.store.get_booking(booking_id)
            if current is None:
                raise NotFoundError("Booking not found")

            new_email = values.get("email")
            if new_email is not None and new_email != current.email and current.status != BookingStatus.CANCELLED:
                if self.store.find_active_booking(current.event_id, new_email) is not None:
                    raise DuplicateError(DUPLICATE_REGISTRATION)

            if self.store.update_booking(booking_id, values) is None:
                raise NotFoundError("Booking not found")

        logger.info("Booking %s updated: %s", booking_id, sorted(values))
        return self.get_booking(booking_id)

    def cancel_booking(self, booking_id: int) -> BookingDetailOut:
        """
        Cancel a booking and give its seat back to the event.

        Cancelling an already cancelled booking changes nothing and returns it as is.
        """
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")

        with self.locks.hold(booking.event_id), self.store.transaction():
            current = self.store.get_booking(booking_id)
            if current is None:
                raise NotFoundError("Booking not found")
            if current.status == BookingStatus.CANCELLED:
                logger.info("Booking %s already cancelled, nothing to do", booking_id)
                return self.get_booking(booking_id)

            cancelled = self.store.update_booking(
                booking_id,
                {"status": BookingStatus.CANCELLED},
                unless_status=BookingStatus.CANCELLED,
            )
            if cancelled is None:
                raise NotFoundError("Booking not found")

            # only confirmed bookings hold a seat
            if current.status == BookingStatus.CONFIRMED and not self.store.release_seat(current.event_id):
                logger.warning(
                    "Event %s already had no participants when booking %s was cancelled",
                    current.event_id,
                    booking_id,
                )

        logger.info("Booking %s cancelled, seat released on event %s", booking_id, current.event_id)
        return self.get_booking(booking_id)

