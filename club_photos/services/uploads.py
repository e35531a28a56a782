from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from club_photos.config import logger
from club_photos.errors import Forbidden, NotFound, PhotoServiceError
from club_photos.models import Event, Join, Photo, PhotoType, Role, utcnow
from club_photos.services.event_status import (
    status_after_delete,
    status_after_upload,
    transition,
)
from club_photos.services.queue import ProcessingJob
from club_photos.utils.keys import file_key_from_url, original_key, thumbnail_key
from club_photos.utils.storage import S3Storage


@dataclass
class BatchDeleteResult:
    success: int = 0
    failed:  int = 0
    errors:  List[Dict[str, str]] = field(default_factory=list)


class UploadCoordinator:
    def __init__(self, db: Session, storage: S3Storage, queue):
        self.db      = db
        self.storage = storage
        self.queue   = queue

    # ── presign ────────────────────────────────────────────────────────────
    def generate_presigned_url(self, filename: str, event_id: str, user_id: str) -> Dict[str, str]:
        path = original_key(event_id, user_id, filename)
        url  = self.storage.presigned_upload_url(path)
        return {"url": url, "path": path, "publicUrl": self.storage.public_url(path)}

    # ── reads ──────────────────────────────────────────────────────────────
    def get_photo(self, photo_id: str) -> Photo:
        photo = self.db.get(Photo, photo_id)
        if not photo:
            raise NotFound("Photo not found")
        return photo

    def list_photos(self, event_id: Optional[str] = None,
                    photo_type: Optional[PhotoType] = None) -> List[Photo]:
        q = self.db.query(Photo)
        if event_id:
            q = q.filter(Photo.event_id == event_id)
        if photo_type:
            q = q.filter(Photo.type == photo_type)
        return q.order_by(Photo.created_at.desc()).all()

    # ── create ─────────────────────────────────────────────────────────────
    def create(self, event_id: str, user_id: str, filename: str, url: str,
               path: Optional[str] = None, photo_type: PhotoType = PhotoType.RAW) -> Photo:
        event = self.db.get(Event, event_id)
        if not event:
            raise NotFound("Event not found")

        file_key = path or file_key_from_url(url) or original_key(event_id, user_id, filename)
        photo = Photo(
            event_id  = event_id,
            user_id   = user_id,
            type      = photo_type,
            filename  = filename,
            url       = url,
            path      = file_key,
            size      = 0,
            mime_type = "image/jpeg",
        )
        self.db.add(photo)
        self.db.flush()

        transition(
            self.db, event_id,
            lambda status: status_after_upload(status, photo_type),
            reason=f"{photo_type.value} uploaded",
        )
        # Row and status land together; the job is only queued once both are durable
        self.db.commit()
        logger.info("Stored photo id=%s type=%s key=%s", photo.id, photo_type.value, file_key)

        self._enqueue(photo)
        return photo

    def _enqueue(self, photo: Photo) -> None:
        try:
            self.queue.enqueue(ProcessingJob(photo_id=photo.id, file_key=photo.path))
        except Exception:
            # The photo stays unprocessed until requeue_unprocessed() picks it up
            logger.exception("Failed to queue processing for photo %s", photo.id)

    # ── delete ─────────────────────────────────────────────────────────────
    def _can_delete(self, photo: Photo, user_id: str, role: str) -> bool:
        if role == Role.ADMIN.value:
            return True
        if photo.user_id == user_id:
            return True
        joined = (
            self.db.query(Join.id)
                   .filter(Join.event_id == photo.event_id, Join.user_id == user_id)
                   .first()
        )
        return joined is not None

    def _delete_objects(self, photo: Photo) -> None:
        keys = [photo.path]
        if photo.thumbnail_url:
            try:
                keys.append(thumbnail_key(photo.path))
            except ValueError:
                logger.warning("Photo %s has a non-standard key %s; thumbnail left in place",
                               photo.id, photo.path)
        for key in keys:
            try:
                self.storage.delete_file(key)
            except Exception as e:
                logger.warning("Failed deleting %s for photo %s: %s", key, photo.id, e)

    def delete(self, photo_id: str, user_id: str, role: str) -> Dict[str, str]:
        photo = self.get_photo(photo_id)
        if not self._can_delete(photo, user_id, role):
            raise Forbidden("You do not have permission to delete this photo")

        event_id, photo_type = photo.event_id, photo.type
        self._delete_objects(photo)
        self.db.delete(photo)
        self.db.flush()

        remaining = (
            self.db.query(func.count(Photo.id))
                   .filter(Photo.event_id == event_id, Photo.type == photo_type)
                   .scalar()
        )
        transition(
            self.db, event_id,
            lambda status: status_after_delete(status, photo_type, remaining),
            reason=f"last {photo_type.value} deleted",
        )
        self.db.commit()
        logger.info("Removed photo id=%s by user=%s", photo_id, user_id)
        return {"message": "Photo deleted successfully"}

    def batch_delete(self, photo_ids: List[str], user_id: str, role: str) -> BatchDeleteResult:
        result = BatchDeleteResult()
        for photo_id in photo_ids:
            try:
                self.delete(photo_id, user_id, role)
                result.success += 1
            except (PhotoServiceError, SQLAlchemyError) as e:
                self.db.rollback()
                result.failed += 1
                detail = e.detail if isinstance(e, PhotoServiceError) else str(e)
                result.errors.append({"photoId": photo_id, "error": detail})
        return result

    # ── reconciliation ─────────────────────────────────────────────────────
    def requeue_unprocessed(self, older_than: timedelta) -> int:
        """Re-queue photos that never got a thumbnail or an error marker."""
        cutoff = utcnow() - older_than
        stale = (
            self.db.query(Photo)
                   .filter(Photo.thumbnail_url.is_(None),
                           Photo.meta.is_(None),
                           Photo.created_at <= cutoff)
                   .all()
        )
        for photo in stale:
            logger.info("Re-queueing unprocessed photo %s", photo.id)
            self._enqueue(photo)
        return len(stale)
