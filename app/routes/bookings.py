from fastapi import APIRouter, Depends, status

from app.routes.deps import get_ledger
from app.schemas.books import BookingDetailOut, BookingOut, BookingUpdate, BookRequest
from app.schemas.common import Envelope
from app.services.ledger import RegistrationLedger

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


@router.get("", response_model=Envelope[list[BookingDetailOut]], response_model_exclude_none=True)
def list_bookings(ledger: RegistrationLedger = Depends(get_ledger)):
    bookings = ledger.list_confirmed_bookings()
    return {"success": True, "count": len(bookings), "data": bookings}


@router.post(
    "",
    response_model=Envelope[BookingOut],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def book_ticket(payload: BookRequest, ledger: RegistrationLedger = Depends(get_ledger)):
    booking = ledger.create_booking(payload)
    return {"success": True, "message": "Booking created successfully", "data": booking}


@router.get("/{booking_id}", response_model=Envelope[BookingDetailOut], response_model_exclude_none=True)
def get_booking(booking_id: int, ledger: RegistrationLedger = Depends(get_ledger)):
    return {"success": True, "data": ledger.get_booking(booking_id)}


@router.put("/{booking_id}", response_model=Envelope[BookingDetailOut], response_model_exclude_none=True)
def update_booking(booking_id: int, payload: BookingUpdate, ledger: RegistrationLedger = Depends(get_ledger)):
    booking = ledger.update_booking(booking_id, payload)
    return {"success": True, "message": "Booking updated successfully", "data": booking}


@router.delete("/{booking_id}", response_model=Envelope[BookingDetailOut], response_model_exclude_none=True)
def cancel_booking(booking_id: int, ledger: RegistrationLedger = Depends(get_ledger)):
    booking = ledger.cancel_booking(booking_id)
    return {"success": True, "message": "Booking cancelled successfully", "data": booking}
