"""Store interface (repository pattern).

The ledger only talks to a LedgerStore, so the durable and in-memory adapters
are interchangeable. Stores return pydantic read models, never ORM rows.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any

from app.models.books import BookingStatus
from app.models.events import EventStatus
from app.schemas.books import BookingOut
from app.schemas.events import EventOut


class LedgerStore(ABC):
    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Unit of work: everything inside commits together or not at all."""

    # ---------- Event ----------
    @abstractmethod
    def add_event(self, values: dict[str, Any]) -> EventOut:
        """Insert an event with zero participants and status active."""

    @abstractmethod
    def get_event(self, event_id: int) -> EventOut | None: ...

    @abstractmethod
    def list_events(self, status: EventStatus | None = None) -> list[EventOut]: ...

    @abstractmethod
    def update_event(self, event_id: int, values: dict[str, Any]) -> EventOut | None:
        """Overwrite the given columns. Returns None if the event does not exist."""

    @abstractmethod
    def delete_event(self, event_id: int) -> int:
        """Remove the event and its bookings. Returns how many bookings went with it."""

    @abstractmethod
    def reserve_seat(self, event_id: int) -> bool:
        """
        Atomically add one participant if the event is active and below capacity.
        Returns False when the condition does not hold.
        """

    @abstractmethod
    def release_seat(self, event_id: int) -> bool:
        """Atomically remove one participant unless the count is already zero."""

    # ---------- Booking ----------
    @abstractmethod
    def add_booking(self, values: dict[str, Any]) -> BookingOut:
        """
        Insert a confirmed booking.

        Raises:
            DuplicateError: another non-cancelled booking holds the same (event_id, email).
        """

    @abstractmethod
    def get_booking(self, booking_id: int) -> BookingOut | None: ...

    @abstractmethod
    def get_booking_with_event(self, booking_id: int) -> tuple[BookingOut, EventOut | None] | None: ...

    @abstractmethod
    def find_active_booking(self, event_id: int, email: str) -> BookingOut | None:
        """Return the non-cancelled booking for this email on this event, if any."""

    @abstractmethod
    def list_bookings_with_events(
        self, status: BookingStatus | None = None
    ) -> list[tuple[BookingOut, EventOut | None]]: ...

    @abstractmethod
    def count_bookings(self, event_id: int, status: BookingStatus | None = None) -> int: ...

    @abstractmethod
    def update_booking(
        self,
        booking_id: int,
        values: dict[str, Any],
        *,
        unless_status: BookingStatus | None = None,
    ) -> BookingOut | None:
        """
        Overwrite the given columns. With ``unless_status`` the write only happens
        when the booking is not already in that status. Returns None when nothing
        was written.

        Raises:
            DuplicateError: an email change collides with another live booking.
        """
