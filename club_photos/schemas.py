from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from club_photos.models import Event, EventStatus, PhotoType, Role


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True,
                              from_attributes=True)


# ── photos ─────────────────────────────────────────────────────────────────
class UploadUrlRequest(ApiModel):
    filename: str = Field(min_length=1)
    event_id: str
    user_id:  str


class UploadUrlOut(ApiModel):
    url:        str
    path:       str
    public_url: str


class PhotoCreate(ApiModel):
    event_id: str
    user_id:  str
    filename: str = Field(min_length=1)
    url:      str
    path:     Optional[str] = None
    type:     PhotoType     = PhotoType.RAW


class PhotoOut(ApiModel):
    id:            str
    event_id:      str
    user_id:       str
    type:          PhotoType
    filename:      str
    url:           str
    path:          str
    thumbnail_url: Optional[str] = None
    size:          int
    mime_type:     str
    width:         Optional[int] = None
    height:        Optional[int] = None
    metadata:      Optional[dict] = Field(default=None, validation_alias="meta")
    created_at:    datetime


class PhotoDelete(ApiModel):
    user_id: str
    role:    Role = Role.USER


class BatchDeleteRequest(PhotoDelete):
    photo_ids: List[str]


class BatchDeleteError(ApiModel):
    photo_id: str
    error:    str


class BatchDeleteOut(ApiModel):
    success: int
    failed:  int
    errors:  List[BatchDeleteError]


class MessageOut(ApiModel):
    message: str


# ── events ─────────────────────────────────────────────────────────────────
class EventCreate(ApiModel):
    title:      str = Field(min_length=1)
    dates:      List[datetime] = Field(default_factory=list)
    join_limit: int = Field(default=0, ge=0)


class JoinRequest(ApiModel):
    user_id: str


class EventOut(ApiModel):
    id:                str
    title:             str
    status:            EventStatus
    join_limit:        int
    participant_count: int
    dates:             List[datetime]
    participants:      List[str]
    created_at:        datetime

    @classmethod
    def from_event(cls, event: Event) -> "EventOut":
        return cls(
            id=event.id,
            title=event.title,
            status=event.status,
            join_limit=event.join_limit,
            participant_count=event.participant_count,
            dates=[d.date for d in event.dates],
            participants=[j.user_id for j in event.joins],
            created_at=event.created_at,
        )


class AdvanceDueOut(ApiModel):
    advanced: int
