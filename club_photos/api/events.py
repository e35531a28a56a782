from fastapi import APIRouter, Depends

from club_photos.deps import get_event_service
from club_photos.schemas import AdvanceDueOut, EventCreate, EventOut, JoinRequest
from club_photos.services.events import EventService

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=EventOut, status_code=201)
def create_event(payload: EventCreate, events: EventService = Depends(get_event_service)):
    event = events.create(payload.title, payload.dates, payload.join_limit)
    return EventOut.from_event(event)


@router.post("/advance-due", response_model=AdvanceDueOut)
def advance_due_events(events: EventService = Depends(get_event_service)):
    return {"advanced": events.advance_due_events()}


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: str, events: EventService = Depends(get_event_service)):
    return EventOut.from_event(events.get(event_id))


@router.post("/{event_id}/join", response_model=EventOut)
def join_event(event_id: str, payload: JoinRequest,
               events: EventService = Depends(get_event_service)):
    return EventOut.from_event(events.join(event_id, payload.user_id))


@router.post("/{event_id}/leave", response_model=EventOut)
def leave_event(event_id: str, payload: JoinRequest,
                events: EventService = Depends(get_event_service)):
    return EventOut.from_event(events.leave(event_id, payload.user_id))


@router.post("/{event_id}/advance-status", response_model=EventOut)
def advance_event_status(event_id: str, events: EventService = Depends(get_event_service)):
    return EventOut.from_event(events.advance_if_due(event_id))
