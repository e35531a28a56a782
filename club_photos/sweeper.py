#!/usr/bin/env python3
"""
Periodic housekeeping for the event/photo pipeline.

  • Moves UPCOMING events whose first date has arrived to PENDING_RAW.
  • Re-queues photos that were stored but never got a thumbnail (the
    enqueue after commit failed or the job was lost).

The log level is controlled with the `LOG_LEVEL` environment variable.
"""

import time
from datetime import datetime, timedelta

from club_photos.config import REQUEUE_GRACE_SECONDS, SWEEP_INTERVAL, logger
from club_photos.database import SessionLocal
from club_photos.services.events import EventService
from club_photos.services.queue import get_job_queue
from club_photos.services.uploads import UploadCoordinator
from club_photos.utils.storage import S3Storage


def sweep_once(session_factory=SessionLocal, storage=None, queue=None,
               now: datetime | None = None) -> tuple[int, int]:
    """Run one pass; returns (events advanced, photos re-queued)."""
    with session_factory() as db:
        advanced = EventService(db).advance_due_events(now)
        db.commit()

    with session_factory() as db:
        uploads = UploadCoordinator(db, storage or S3Storage(), queue or get_job_queue())
        requeued = uploads.requeue_unprocessed(timedelta(seconds=REQUEUE_GRACE_SECONDS))

    if advanced or requeued:
        logger.info("Sweep: advanced %d event(s), re-queued %d photo(s)", advanced, requeued)
    return advanced, requeued


# ── Entrypoint ─────────────────────────────────────────────────────────────
def main() -> None:
    logger.info("Event sweeper started ‒ polling every %d s", SWEEP_INTERVAL)
    queue = get_job_queue()
    while True:
        try:
            sweep_once(queue=queue)
        except Exception as exc:                               # noqa: BLE001
            logger.exception("Unexpected error during sweep: %s", exc)
        time.sleep(SWEEP_INTERVAL)


if __name__ == "__main__":
    main()
