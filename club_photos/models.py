import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from club_photos.database import Base, engine


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column here stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class EventStatus(str, enum.Enum):
    UPCOMING     = "UPCOMING"
    PENDING_RAW  = "PENDING_RAW"
    PENDING_EDIT = "PENDING_EDIT"
    COMPLETED    = "COMPLETED"


class PhotoType(str, enum.Enum):
    RAW    = "RAW"
    EDITED = "EDITED"


class Role(str, enum.Enum):
    USER  = "USER"
    ADMIN = "ADMIN"


class Event(Base):
    __tablename__ = "events"
    id                = Column(String(36), primary_key=True, default=_uuid)
    title             = Column(String, nullable=False)
    status            = Column(Enum(EventStatus, native_enum=False, length=16),
                               default=EventStatus.UPCOMING, nullable=False)
    join_limit        = Column(Integer, default=0, nullable=False)
    # Mirrors len(joins); only ever changed by conditional UPDATEs
    participant_count = Column(Integer, default=0, nullable=False)
    created_at        = Column(DateTime, default=utcnow, nullable=False)

    dates  = relationship("EventDate", order_by="EventDate.date",
                          cascade="all, delete-orphan", lazy="selectin")
    joins  = relationship("Join", cascade="all, delete-orphan", lazy="selectin")
    photos = relationship("Photo", back_populates="event")

    @property
    def earliest_date(self):
        return self.dates[0].date if self.dates else None


class EventDate(Base):
    __tablename__ = "event_dates"
    id       = Column(Integer, primary_key=True)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    date     = Column(DateTime, nullable=False)


class Join(Base):
    __tablename__ = "event_joins"
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_event_join"),)
    id        = Column(Integer, primary_key=True)
    event_id  = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    user_id   = Column(String, nullable=False)
    joined_at = Column(DateTime, default=utcnow, nullable=False)


class Photo(Base):
    __tablename__ = "photos"
    id            = Column(String(36), primary_key=True, default=_uuid)
    event_id      = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    user_id       = Column(String, nullable=False)
    type          = Column(Enum(PhotoType, native_enum=False, length=8),
                           default=PhotoType.RAW, nullable=False)
    filename      = Column(String, nullable=False)
    url           = Column(String, nullable=False)
    path          = Column(String, nullable=False)
    thumbnail_url = Column(String)
    size          = Column(Integer, default=0, nullable=False)
    mime_type     = Column(String, default="image/jpeg", nullable=False)
    width         = Column(Integer)
    height        = Column(Integer)
    # "metadata" is reserved on declarative classes
    meta          = Column("metadata", JSON(none_as_null=True))
    created_at    = Column(DateTime, default=utcnow, nullable=False)

    event = relationship("Event", back_populates="photos")


# Bootstrap tables (no-op if already present)
Base.metadata.create_all(bind=engine)
