"""Job queue between the upload path and the image worker.

Choose backend with env: JOBS_BACKEND=rq | inline
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import redis
from rq import Queue, Retry
from rq.job import JobStatus

from club_photos.config import (
    IMAGE_QUEUE_NAME,
    JOB_MAX_RETRIES,
    JOB_RETRY_INTERVALS,
    JOB_TIMEOUT,
    JOBS_BACKEND,
    REDIS_URL,
    logger,
)

PROCESS_IMAGE_TASK = "club_photos.workers.rq_tasks.process_image"

# States of a job that has not finished yet
PENDING_STATES = {JobStatus.QUEUED, JobStatus.STARTED, JobStatus.SCHEDULED, JobStatus.DEFERRED}


@dataclass(frozen=True)
class ProcessingJob:
    photo_id: str
    file_key: str

    def to_payload(self) -> Dict[str, str]:
        return {"photoId": self.photo_id, "fileKey": self.file_key}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ProcessingJob":
        return cls(photo_id=str(payload["photoId"]), file_key=str(payload["fileKey"]))


class RQJobQueue:
    """At-least-once delivery through redis; rq handles retry backoff."""

    def __init__(self, queue: Optional[Queue] = None):
        self._queue = queue

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            conn = redis.from_url(REDIS_URL)
            self._queue = Queue(IMAGE_QUEUE_NAME, connection=conn)
        return self._queue

    @staticmethod
    def job_id(job: ProcessingJob) -> str:
        return f"process-image-{job.photo_id}"

    def enqueue(self, job: ProcessingJob) -> Optional[str]:
        job_id = self.job_id(job)
        existing = self.queue.fetch_job(job_id)
        if existing is not None and existing.get_status() in PENDING_STATES:
            logger.info("Photo %s already has pending job %s", job.photo_id, job_id)
            return existing.id

        rq_job = self.queue.enqueue(
            PROCESS_IMAGE_TASK,
            job.to_payload(),
            job_id=job_id,
            retry=Retry(max=JOB_MAX_RETRIES, interval=JOB_RETRY_INTERVALS),
            job_timeout=JOB_TIMEOUT,
            description=f"process-image {job.photo_id}",
        )
        logger.info("Queued %s for photo %s (job %s)", IMAGE_QUEUE_NAME, job.photo_id, rq_job.id)
        return rq_job.id


class InlineJobQueue:
    """Runs the job in-process right away. For local development only."""

    def __init__(self, handler: Optional[Callable[[Dict[str, str]], Any]] = None):
        self.handler = handler

    def enqueue(self, job: ProcessingJob) -> Optional[str]:
        handler = self.handler
        if handler is None:
            from club_photos.workers.rq_tasks import process_image
            handler = process_image
        logger.info("[INLINE] process-image %s", job.to_payload())
        try:
            handler(job.to_payload())
        except Exception:
            # Enqueue is fire-and-forget for the uploader
            logger.exception("[INLINE] processing failed for photo %s", job.photo_id)
        return None


def get_job_queue():
    if JOBS_BACKEND == "inline":
        return InlineJobQueue()
    return RQJobQueue()
