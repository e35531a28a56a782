"""Object-store key conventions.

Originals live at ``photos/{eventId}/{userId}/{filename}`` and thumbnails at
``thumbnails/{eventId}/{stem}.jpg``. The worker recovers the event id from
the original's key, so these layouts must not change.
"""

import posixpath
from typing import Optional

ORIGINALS_PREFIX  = "photos"
THUMBNAILS_PREFIX = "thumbnails"
_URL_MARKER       = f"/{ORIGINALS_PREFIX}/"


def original_key(event_id: str, user_id: str, filename: str) -> str:
    return f"{ORIGINALS_PREFIX}/{event_id}/{user_id}/{filename}"


def file_key_from_url(url: str) -> Optional[str]:
    """Everything after the first ``/photos/`` in *url*, or None.

    With a bucket named ``photos`` a public URL looks like
    ``http://host/photos/photos/e1/u1/a.CR2`` and this yields
    ``photos/e1/u1/a.CR2``. Breaks if the host path itself nests the
    marker differently.
    """
    idx = url.find(_URL_MARKER)
    if idx < 0:
        return None
    key = url[idx + len(_URL_MARKER):]
    return key or None


def event_id_from_key(file_key: str) -> str:
    parts = file_key.split("/")
    if len(parts) < 2 or not parts[1]:
        raise ValueError(f"cannot parse event id from key {file_key!r}")
    return parts[1]


def thumbnail_key(file_key: str) -> str:
    name = posixpath.basename(file_key)
    stem, _ = posixpath.splitext(name)
    return f"{THUMBNAILS_PREFIX}/{event_id_from_key(file_key)}/{stem or name}.jpg"
