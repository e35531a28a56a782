"""rq entry points. Run workers with ``rq worker image-processing``."""

from typing import Dict, Optional

from club_photos.database import SessionLocal
from club_photos.services.queue import ProcessingJob
from club_photos.utils.preview import ExiftoolPreviewExtractor
from club_photos.utils.storage import S3Storage
from club_photos.workers.image_worker import ImageProcessor

_processor: Optional[ImageProcessor] = None


def get_processor() -> ImageProcessor:
    global _processor
    if _processor is None:
        _processor = ImageProcessor(
            storage=S3Storage(),
            session_factory=SessionLocal,
            preview_extractor=ExiftoolPreviewExtractor(),
        )
    return _processor


def process_image(payload: Dict[str, str]) -> Optional[str]:
    return get_processor().process(ProcessingJob.from_payload(payload))
