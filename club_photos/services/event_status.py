"""Event lifecycle.

    UPCOMING ──join fills / first date due──▶ PENDING_RAW
    PENDING_RAW ──RAW uploaded──▶ PENDING_EDIT
    any ──EDITED uploaded──▶ COMPLETED
    COMPLETED ──last EDITED deleted──▶ PENDING_EDIT
    PENDING_EDIT ──last RAW deleted──▶ PENDING_RAW

The ``status_after_*`` functions decide; ``apply_transition`` writes one
decision as a compare-and-set, and ``transition`` re-reads the row and
decides again whenever another trigger got there first.
"""

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from club_photos.config import logger
from club_photos.models import Event, EventStatus, PhotoType

ALLOWED_EDGES = {
    (EventStatus.UPCOMING, EventStatus.PENDING_RAW),
    (EventStatus.PENDING_RAW, EventStatus.PENDING_EDIT),
    (EventStatus.UPCOMING, EventStatus.COMPLETED),
    (EventStatus.PENDING_RAW, EventStatus.COMPLETED),
    (EventStatus.PENDING_EDIT, EventStatus.COMPLETED),
    (EventStatus.COMPLETED, EventStatus.PENDING_EDIT),
    (EventStatus.PENDING_EDIT, EventStatus.PENDING_RAW),
}


def status_after_join(status: EventStatus, join_limit: int, participants: int) -> Optional[EventStatus]:
    if status != EventStatus.UPCOMING:
        return None
    if join_limit > 0 and participants >= join_limit:
        return EventStatus.PENDING_RAW
    if join_limit == 0 and participants >= 1:
        return EventStatus.PENDING_RAW
    return None


def status_after_date_check(status: EventStatus, earliest: Optional[datetime],
                            now: datetime) -> Optional[EventStatus]:
    if status == EventStatus.UPCOMING and earliest is not None and earliest <= now:
        return EventStatus.PENDING_RAW
    return None


def status_after_upload(status: EventStatus, photo_type: PhotoType) -> Optional[EventStatus]:
    if photo_type == PhotoType.EDITED:
        return EventStatus.COMPLETED if status != EventStatus.COMPLETED else None
    if status == EventStatus.PENDING_RAW:
        return EventStatus.PENDING_EDIT
    return None


def status_after_delete(status: EventStatus, photo_type: PhotoType, remaining: int) -> Optional[EventStatus]:
    """*remaining* counts photos of *photo_type* left on the event after the delete."""
    if remaining > 0:
        return None
    if photo_type == PhotoType.EDITED and status == EventStatus.COMPLETED:
        return EventStatus.PENDING_EDIT
    if photo_type == PhotoType.RAW and status == EventStatus.PENDING_EDIT:
        return EventStatus.PENDING_RAW
    return None


def apply_transition(db: Session, event_id: str, expected: EventStatus,
                     target: Optional[EventStatus], reason: str) -> bool:
    """Move *event_id* from *expected* to *target* if it is still in *expected*.

    Returns True when this call performed the change.
    """
    if target is None or target == expected:
        return False
    if (expected, target) not in ALLOWED_EDGES:
        raise ValueError(f"illegal event transition {expected.value} → {target.value}")

    updated = (
        db.query(Event)
          .filter(Event.id == event_id, Event.status == expected)
          .update({Event.status: target}, synchronize_session=False)
    )
    if updated:
        logger.info("Event %s: %s → %s (%s)", event_id, expected.value, target.value, reason)
        # Keep any already-loaded instance in step with the row
        cached = db.get(Event, event_id)
        if cached is not None:
            db.refresh(cached, attribute_names=["status"])
    else:
        logger.debug("Event %s: skipped %s → %s (%s), status moved concurrently",
                    event_id, expected.value, target.value, reason)
    return bool(updated)


def transition(db: Session, event_id: str, decide: Callable[[EventStatus], Optional[EventStatus]],
               reason: str, attempts: int = 5) -> bool:
    """Apply ``decide(current status)`` to *event_id*, re-deciding whenever the row moved.

    The status is read from the row itself, never from an instance already
    held by the session, so a trigger always acts on what is committed.
    Returns True when a transition was written.
    """
    for _ in range(attempts):
        current = db.query(Event.status).filter(Event.id == event_id).scalar()
        if current is None:
            return False
        target = decide(current)
        if target is None or target == current:
            return False
        if apply_transition(db, event_id, current, target, reason):
            return True
    logger.warning("Event %s: gave up on transition (%s) after %d attempts",
                   event_id, reason, attempts)
    return False
