from functools import lru_cache
from typing import Iterator

from fastapi import Depends
from sqlalchemy.orm import Session

from club_photos.database import SessionLocal
from club_photos.services.events import EventService
from club_photos.services.queue import get_job_queue
from club_photos.services.uploads import UploadCoordinator
from club_photos.utils.storage import S3Storage


def get_db() -> Iterator[Session]:
    db: Session = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@lru_cache
def get_storage() -> S3Storage:
    return S3Storage()


@lru_cache
def get_queue():
    return get_job_queue()


def get_upload_coordinator(
    db: Session = Depends(get_db),
    storage: S3Storage = Depends(get_storage),
    queue=Depends(get_queue),
) -> UploadCoordinator:
    return UploadCoordinator(db, storage, queue)


def get_event_service(db: Session = Depends(get_db)) -> EventService:
    return EventService(db)
