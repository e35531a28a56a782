"""Shared test fixtures."""

import os

os.environ["S3_BUCKET"] = "photos"
os.environ["S3_ENDPOINT_URL"] = "http://minio:9000"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "test-key"
os.environ["AWS_SECRET_ACCESS_KEY"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JOBS_BACKEND"] = "rq"

from dataclasses import dataclass, field  # noqa: E402
from datetime import datetime  # noqa: E402
from io import BytesIO  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402
from rq.job import JobStatus  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from club_photos.database import Base  # noqa: E402
from club_photos.deps import get_db, get_queue, get_storage  # noqa: E402
from club_photos.errors import StorageError  # noqa: E402
from club_photos.main import app  # noqa: E402
from club_photos.models import Event, EventDate, EventStatus, Join, Photo, PhotoType  # noqa: E402
from club_photos.services.queue import ProcessingJob  # noqa: E402


@dataclass
class FakeStorage:
    """In-memory object store."""

    bucket: str = "photos"
    objects: dict[str, bytes] = field(default_factory=dict)
    deleted: list[str] = field(default_factory=list)
    fail_deletes: bool = False
    fail_gets: Exception | None = None

    def public_url(self, key: str) -> str:
        return f"http://minio:9000/{self.bucket}/{key}"

    def presigned_upload_url(self, key: str, expiry: int = 3600) -> str:
        return f"http://minio:9000/{self.bucket}/{key}?X-Amz-Expires={expiry}&X-Amz-Signature=sig"

    def get_object(self, key: str) -> bytes:
        if self.fail_gets is not None:
            raise self.fail_gets
        if key not in self.objects:
            raise StorageError(f"get {key}: NoSuchKey")
        return self.objects[key]

    def put_object(self, key: str, data: bytes, content_type: str = "image/jpeg") -> str:
        self.objects[key] = data
        return self.public_url(key)

    def delete_file(self, key: str) -> None:
        if self.fail_deletes:
            raise StorageError(f"delete {key}: connection reset")
        self.deleted.append(key)
        self.objects.pop(key, None)


@dataclass
class RecordingQueue:
    """Job queue that only remembers what was enqueued."""

    jobs: list[ProcessingJob] = field(default_factory=list)
    fail: bool = False

    def enqueue(self, job: ProcessingJob) -> str | None:
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.jobs.append(job)
        return f"job-{len(self.jobs)}"


class FakeRQJob:
    def __init__(self, job_id: str, status: JobStatus = JobStatus.QUEUED):
        self.id = job_id
        self.status = status

    def get_status(self) -> JobStatus:
        return self.status


class FakeRQQueue:
    """Stands in for rq.Queue: records enqueue calls and keeps jobs by id."""

    def __init__(self):
        self.calls = []
        self.jobs: dict[str, FakeRQJob] = {}

    def fetch_job(self, job_id: str):
        return self.jobs.get(job_id)

    def enqueue(self, func, *args, **kwargs):
        self.calls.append((func, args, kwargs))
        job = FakeRQJob(kwargs.get("job_id") or f"rq-{len(self.calls)}")
        self.jobs[job.id] = job
        return job


def make_jpeg(size=(1200, 800), color=(200, 120, 40), exif: Image.Exif | None = None) -> bytes:
    buf = BytesIO()
    img = Image.new("RGB", size, color)
    if exif is not None:
        img.save(buf, format="JPEG", quality=90, exif=exif.tobytes())
    else:
        img.save(buf, format="JPEG", quality=90)
    return buf.getvalue()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def client(session_factory, storage, queue):
    def override_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_queue] = lambda: queue
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_event(db):
    def _make(status=EventStatus.UPCOMING, join_limit=0, dates=None, participants=()):
        event = Event(title="Night market walk", status=status, join_limit=join_limit,
                      participant_count=len(participants))
        event.dates = [EventDate(date=d) for d in (dates or [datetime(2030, 1, 1, 18, 0)])]
        event.joins = [Join(user_id=u) for u in participants]
        db.add(event)
        db.commit()
        return event
    return _make


@pytest.fixture
def make_photo(db):
    def _make(event, user_id="u1", photo_type=PhotoType.RAW, filename="IMG_01.CR2",
              thumbnail_url=None):
        path = f"photos/{event.id}/{user_id}/{filename}"
        photo = Photo(event_id=event.id, user_id=user_id, type=photo_type, filename=filename,
                      url=f"http://minio:9000/photos/{path}", path=path,
                      thumbnail_url=thumbnail_url)
        db.add(photo)
        db.commit()
        return photo
    return _make
