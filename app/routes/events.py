from fastapi import APIRouter, Depends, status

from app.routes.deps import get_ledger
from app.schemas.common import Envelope
from app.schemas.events import EventCreate, EventOut, EventStatsOut, EventUpdate
from app.services.ledger import RegistrationLedger

router = APIRouter(tags=["events"])


@router.get("/events", response_model=Envelope[list[EventOut]], response_model_exclude_none=True)
def list_events(ledger: RegistrationLedger = Depends(get_ledger)):
    events = ledger.list_active_events()
    return {"success": True, "count": len(events), "data": events}


@router.post(
    "/events/add",
    response_model=Envelope[EventOut],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def create_event(payload: EventCreate, ledger: RegistrationLedger = Depends(get_ledger)):
    event = ledger.create_event(payload)
    return {"success": True, "message": "Event created successfully", "data": event}


@router.get("/event/{event_id}", response_model=Envelope[EventOut], response_model_exclude_none=True)
def get_event(event_id: int, ledger: RegistrationLedger = Depends(get_ledger)):
    return {"success": True, "data": ledger.get_event(event_id)}


@router.put("/event/{event_id}", response_model=Envelope[EventOut], response_model_exclude_none=True)
def update_event(event_id: int, payload: EventUpdate, ledger: RegistrationLedger = Depends(get_ledger)):
    event = ledger.update_event(event_id, payload)
    return {"success": True, "message": "Event updated successfully", "data": event}


@router.delete("/event/{event_id}", response_model=Envelope[EventOut], response_model_exclude_none=True)
def cancel_event(event_id: int, ledger: RegistrationLedger = Depends(get_ledger)):
    event = ledger.cancel_event(event_id)
    message = "Event deleted successfully" if ledger.delete_mode == "cascade" else "Event cancelled successfully"
    return {"success": True, "message": message, "data": event}


@router.get("/event/{event_id}/stats", response_model=Envelope[EventStatsOut], response_model_exclude_none=True)
def event_stats(event_id: int, ledger: RegistrationLedger = Depends(get_ledger)):
    return {"success": True, "data": ledger.event_stats(event_id)}
