from typing import Optional

from fastapi import APIRouter, Depends, Query

from club_photos.deps import get_upload_coordinator
from club_photos.models import PhotoType
from club_photos.schemas import (
    BatchDeleteOut,
    BatchDeleteRequest,
    MessageOut,
    PhotoCreate,
    PhotoDelete,
    PhotoOut,
    UploadUrlOut,
    UploadUrlRequest,
)
from club_photos.services.uploads import UploadCoordinator

router = APIRouter(prefix="/photos", tags=["photos"])


@router.post("/upload-url", response_model=UploadUrlOut)
def get_upload_url(payload: UploadUrlRequest,
                   uploads: UploadCoordinator = Depends(get_upload_coordinator)):
    return uploads.generate_presigned_url(payload.filename, payload.event_id, payload.user_id)


@router.post("", response_model=PhotoOut, status_code=201)
def create_photo(payload: PhotoCreate,
                 uploads: UploadCoordinator = Depends(get_upload_coordinator)):
    return uploads.create(
        event_id   = payload.event_id,
        user_id    = payload.user_id,
        filename   = payload.filename,
        url        = payload.url,
        path       = payload.path,
        photo_type = payload.type,
    )


@router.get("", response_model=list[PhotoOut])
def list_photos(event_id: Optional[str] = Query(None, alias="eventId"),
                photo_type: Optional[PhotoType] = Query(None, alias="type"),
                uploads: UploadCoordinator = Depends(get_upload_coordinator)):
    return uploads.list_photos(event_id=event_id, photo_type=photo_type)


@router.get("/{photo_id}", response_model=PhotoOut)
def get_photo(photo_id: str, uploads: UploadCoordinator = Depends(get_upload_coordinator)):
    return uploads.get_photo(photo_id)


@router.delete("/{photo_id}", response_model=MessageOut,
               responses={403: {"description": "Forbidden"}, 404: {"description": "Not found"}})
def delete_photo(photo_id: str, payload: PhotoDelete,
                 uploads: UploadCoordinator = Depends(get_upload_coordinator)):
    return uploads.delete(photo_id, payload.user_id, payload.role.value)


@router.post("/batch-delete", response_model=BatchDeleteOut)
def batch_delete_photos(payload: BatchDeleteRequest,
                        uploads: UploadCoordinator = Depends(get_upload_coordinator)):
    return uploads.batch_delete(payload.photo_ids, payload.user_id, payload.role.value)
