from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from club_photos.config import logger
from club_photos.errors import BadRequest, NotFound
from club_photos.models import Event, EventDate, EventStatus, Join, utcnow
from club_photos.services.event_status import (
    status_after_date_check,
    status_after_join,
    transition,
)


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


class EventService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, event_id: str) -> Event:
        event = self.db.get(Event, event_id)
        if not event:
            raise NotFound("Event not found")
        return event

    def create(self, title: str, dates: Iterable[datetime], join_limit: int = 0) -> Event:
        if join_limit < 0:
            raise BadRequest("joinLimit must be >= 0")
        event = Event(title=title, join_limit=join_limit, status=EventStatus.UPCOMING)
        event.dates = [EventDate(date=d) for d in sorted({_naive_utc(d) for d in dates})]
        self.db.add(event)
        self.db.flush()
        logger.info("Created event id=%s title=%s", event.id, title)
        return event

    def _has_joined(self, event_id: str, user_id: str) -> bool:
        return (
            self.db.query(Join.id)
                   .filter(Join.event_id == event_id, Join.user_id == user_id)
                   .first()
        ) is not None

    def join(self, event_id: str, user_id: str) -> Event:
        event = self.get(event_id)
        if self._has_joined(event_id, user_id):
            raise BadRequest("User already joined this event")

        # Capacity check and increment in one statement so two joins at the
        # boundary cannot both succeed.
        claimed = (
            self.db.query(Event)
                   .filter(Event.id == event_id,
                           or_(Event.join_limit == 0,
                               Event.participant_count < Event.join_limit))
                   .update({Event.participant_count: Event.participant_count + 1},
                           synchronize_session=False)
        )
        if not claimed:
            raise BadRequest("Event is full")

        try:
            # A duplicate only rolls back this savepoint; the counter is put back below
            with self.db.begin_nested():
                self.db.add(Join(event_id=event_id, user_id=user_id))
                self.db.flush()
        except IntegrityError:
            self.db.query(Event) \
                   .filter(Event.id == event_id) \
                   .update({Event.participant_count: Event.participant_count - 1},
                           synchronize_session=False)
            raise BadRequest("User already joined this event")

        self.db.expire(event)
        logger.info("User %s joined event %s (%d/%s)", user_id, event_id,
                    event.participant_count, event.join_limit or "∞")
        transition(
            self.db, event_id,
            lambda status: status_after_join(status, event.join_limit, event.participant_count),
            reason="participants reached",
        )
        return event

    def leave(self, event_id: str, user_id: str) -> Event:
        event = self.get(event_id)
        join = (
            self.db.query(Join)
                   .filter(Join.event_id == event_id, Join.user_id == user_id)
                   .first()
        )
        if not join:
            raise NotFound("User has not joined this event")
        self.db.delete(join)
        self.db.query(Event) \
               .filter(Event.id == event_id, Event.participant_count > 0) \
               .update({Event.participant_count: Event.participant_count - 1},
                       synchronize_session=False)
        self.db.flush()
        self.db.expire(event)
        logger.info("User %s left event %s", user_id, event_id)
        return event

    def advance_if_due(self, event_id: str, now: Optional[datetime] = None) -> Event:
        """Flip a single UPCOMING event to PENDING_RAW once its first date has arrived."""
        event = self.get(event_id)
        now = _naive_utc(now) if now else utcnow()
        transition(
            self.db, event_id,
            lambda status: status_after_date_check(status, event.earliest_date, now),
            reason="event date reached",
        )
        return event

    def advance_due_events(self, now: Optional[datetime] = None) -> int:
        now = _naive_utc(now) if now else utcnow()
        due_ids = [
            row[0]
            for row in (
                self.db.query(Event.id)
                       .join(EventDate, EventDate.event_id == Event.id)
                       .filter(Event.status == EventStatus.UPCOMING, EventDate.date <= now)
                       .distinct()
                       .all()
            )
        ]
        advanced = 0
        for event_id in due_ids:
            # Already filtered on a due date; only the status can have moved since
            if transition(self.db, event_id,
                          lambda status: status_after_date_check(status, now, now),
                          reason="event date reached"):
                advanced += 1
        return advanced
