"""
Turns an uploaded original into a thumbnail and a metadata record.

  1. download the original by its object key
  2. spill it to a per-job scratch file (the tag reader and exiftool want a path)
  3. read tags; pull the embedded preview, or decode the original directly
     when there is none
  4. fit the picture inside 400×400 and encode JPEG q80
  5. upload to thumbnails/{eventId}/{name}.jpg and update the photo row

Jobs are delivered at least once. Every run for the same photo writes the
same thumbnail key and the same column values, so a repeat is harmless.
"""

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from PIL import Image

from club_photos.config import logger
from club_photos.errors import ExtractionFailure, PhotoServiceError, ProcessingFailure
from club_photos.models import Photo, utcnow
from club_photos.services.queue import ProcessingJob
from club_photos.utils.exif import read_tags
from club_photos.utils.image_variants import ThumbnailBuilder
from club_photos.utils.keys import thumbnail_key
from club_photos.utils.storage import S3Storage

ERROR_KEYS = ("processing_error", "failed_at")

PreviewExtractor = Callable[[Path, Path], bool]
TagReader        = Callable[[Path, str], Dict[str, Any]]


@contextmanager
def scratch_files(file_key: str) -> Iterator[Tuple[Path, Path]]:
    """Yield (original, preview) temp paths, removed on the way out whatever happens."""
    suffix = Path(file_key).suffix
    paths = []
    try:
        for prefix, sfx in (("photo_src_", suffix), ("photo_preview_", ".jpg")):
            fd, name = tempfile.mkstemp(prefix=prefix, suffix=sfx)
            os.close(fd)
            paths.append(Path(name))
        yield paths[0], paths[1]
    finally:
        for p in paths:
            try:
                p.unlink()
            except FileNotFoundError:
                pass


class ImageProcessor:
    def __init__(
        self,
        storage: S3Storage,
        session_factory,
        preview_extractor: Optional[PreviewExtractor] = None,
        tag_reader: TagReader = read_tags,
        thumbnails: Optional[ThumbnailBuilder] = None,
    ):
        self.storage           = storage
        self.session_factory   = session_factory
        self.preview_extractor = preview_extractor
        self.tag_reader        = tag_reader
        self.thumbnails        = thumbnails or ThumbnailBuilder()

    # ── substitutable steps ────────────────────────────────────────────────
    def read_tags(self, source: Path, filename: str) -> Optional[Dict[str, Any]]:
        try:
            return self.tag_reader(source, filename)
        except ExtractionFailure as e:
            logger.warning("Tag reading failed for %s: %s", filename, e)
            return None

    def try_extract_preview(self, source: Path, dest: Path) -> Optional[bytes]:
        if self.preview_extractor is None:
            return None
        try:
            if self.preview_extractor(source, dest):
                return dest.read_bytes()
        except ExtractionFailure as e:
            logger.warning("Preview extraction failed for %s: %s", source.name, e)
        return None

    def decode_fallback(self, data: bytes) -> Image.Image:
        try:
            return self.thumbnails.decode(data)
        except Exception as e:
            raise ProcessingFailure(f"cannot decode original: {e}") from e

    # ── pipeline ───────────────────────────────────────────────────────────
    def build_thumbnail(self, data: bytes, source: Path, preview_path: Path) -> Tuple[bytes, Optional[Tuple[int, int]]]:
        """Return (jpeg bytes, original size if the original itself was decoded)."""
        preview = self.try_extract_preview(source, preview_path)
        if preview:
            try:
                return self.thumbnails.from_bytes(preview), None
            except Exception as e:
                logger.warning("Embedded preview of %s is unreadable (%s); decoding original",
                               source.name, e)
        img = self.decode_fallback(data)
        size = img.size
        try:
            return self.thumbnails.render(img), size
        except Exception as e:
            raise ProcessingFailure(f"cannot render thumbnail: {e}") from e

    def process(self, job: ProcessingJob) -> Optional[str]:
        logger.info("Processing image %s for photo %s", job.file_key, job.photo_id)
        with self.session_factory() as db:
            if db.get(Photo, job.photo_id) is None:
                logger.warning("Photo %s no longer exists; dropping job", job.photo_id)
                return None

        try:
            with scratch_files(job.file_key) as (source, preview_path):
                data = self.storage.get_object(job.file_key)
                source.write_bytes(data)

                filename = Path(job.file_key).name
                tags = self.read_tags(source, filename)
                thumb, decoded_size = self.build_thumbnail(data, source, preview_path)

                if tags is not None and decoded_size and not (tags.get("width") and tags.get("height")):
                    tags["width"], tags["height"] = decoded_size

                url = self.storage.put_object(thumbnail_key(job.file_key), thumb, "image/jpeg")
                self._save_result(job.photo_id, url, len(data), tags)
        except Exception as e:
            self._record_failure(job.photo_id, e)
            raise

        logger.info("Photo %s processed → %s", job.photo_id, url)
        return url

    # ── persistence ────────────────────────────────────────────────────────
    def _save_result(self, photo_id: str, thumbnail_url: str, size: int,
                     tags: Optional[Dict[str, Any]]) -> None:
        with self.session_factory() as db:
            photo = db.get(Photo, photo_id)
            if photo is None:
                logger.warning("Photo %s deleted while processing", photo_id)
                return
            if tags is not None:
                photo.meta      = tags
                photo.width     = tags.get("width")
                photo.height    = tags.get("height")
                photo.mime_type = tags.get("mime_type") or photo.mime_type
            elif photo.meta and any(k in photo.meta for k in ERROR_KEYS):
                cleaned = {k: v for k, v in photo.meta.items() if k not in ERROR_KEYS}
                photo.meta = cleaned or None
            photo.thumbnail_url = thumbnail_url
            photo.size          = size
            db.commit()

    def _record_failure(self, photo_id: str, exc: Exception) -> None:
        kind = exc.kind if isinstance(exc, PhotoServiceError) else type(exc).__name__
        logger.error("Processing photo %s failed: %s: %s", photo_id, kind, exc)
        try:
            with self.session_factory() as db:
                photo = db.get(Photo, photo_id)
                if photo is None:
                    return
                photo.meta = {
                    **(photo.meta or {}),
                    "processing_error": f"{kind}: {exc}",
                    "failed_at": utcnow().isoformat(),
                }
                db.commit()
        except Exception:
            logger.exception("Could not record processing error on photo %s", photo_id)
