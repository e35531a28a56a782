from __future__ import annotations

import mimetypes
from datetime import datetime
from fractions import Fraction
from pathlib import Path
from typing import Any, Dict, Optional

import exifread
from PIL import ExifTags, Image

from club_photos.errors import ExtractionFailure

RAW_EXTENSIONS = {
    ".cr2", ".cr3",                 # Canon
    ".nef", ".nrw",                 # Nikon
    ".arw", ".srf", ".sr2",         # Sony
    ".dng",                         # Adobe/Generic
    ".raf",                         # Fujifilm
    ".orf",                         # Olympus
    ".rw2",                         # Panasonic
    ".pef",                         # Pentax
    ".srw",                         # Samsung
    ".x3f",                         # Sigma
    ".raw", ".rwl", ".dcs", ".dcr", ".kdc", ".k25",
    ".mrw",                         # Minolta
    ".3fr", ".fff",                 # Hasselblad
    ".iiq",                         # Phase One
    ".erf", ".mef", ".mos",
}

_RAW_MIME = {
    ".cr2": "image/x-canon-cr2",
    ".cr3": "image/x-canon-cr3",
    ".nef": "image/x-nikon-nef",
    ".arw": "image/x-sony-arw",
    ".dng": "image/x-adobe-dng",
    ".raf": "image/x-fuji-raf",
    ".orf": "image/x-olympus-orf",
    ".rw2": "image/x-panasonic-rw2",
    ".pef": "image/x-pentax-pef",
}

_DATE_FORMATS = ("%Y:%m:%d %H:%M:%S", "%Y-%m-%d %H:%M:%S")


def is_raw_file(filename: str) -> bool:
    return Path(filename).suffix.lower() in RAW_EXTENSIONS


def describe_file(filename: str) -> tuple[str, str]:
    """Return (file_type, mime_type) for a filename, e.g. ("CR2", "image/x-canon-cr2")."""
    suffix = Path(filename).suffix.lower()
    file_type = suffix.lstrip(".").upper() or "UNKNOWN"
    if suffix in _RAW_MIME:
        return file_type, _RAW_MIME[suffix]
    if suffix in RAW_EXTENSIONS:
        return file_type, f"image/x-{suffix.lstrip('.')}"
    mt, _ = mimetypes.guess_type(filename)
    return file_type, mt or "application/octet-stream"


# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #
def _rational_to_float(value) -> Optional[float]:
    if isinstance(value, (tuple, list)) and len(value) == 2 and value[1]:
        return value[0] / value[1]
    if isinstance(value, Fraction):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    # exifread's Ratio
    if hasattr(value, "numerator") and hasattr(value, "denominator"):
        return float(value.numerator) / value.denominator if value.denominator else None
    return None


def _decode_if_bytes(val: Any) -> Optional[str]:
    if val is None:
        return None
    if isinstance(val, bytes):
        for enc in ("utf-16le", "utf-8", "latin1"):
            try:
                return val.decode(enc).rstrip("\x00").strip()
            except UnicodeDecodeError:  # pragma: no cover
                continue
        return None
    return str(val).strip() or None


def _first(tags: Dict[str, Any], *keys: str) -> Any:
    """Return the first present/truthy value among tag keys."""
    for k in keys:
        v = tags.get(k)
        if v:
            return v
    return None


def _tag_value(tag: Any) -> Any:
    values = getattr(tag, "values", tag)
    if isinstance(values, (list, tuple)) and values:
        return values[0]
    return values


def _parse_datetime(raw: Any) -> Optional[str]:
    s = _decode_if_bytes(raw)
    if not s or len(s) < 19:
        return None
    s = s.replace("\x00", "").strip()[:19]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).isoformat()
        except ValueError:
            continue
    return None


def _format_exposure(value: Any) -> Optional[str]:
    if isinstance(value, (tuple, list)) and len(value) == 2 and value[1]:
        value = Fraction(value[0], value[1])
    if hasattr(value, "numerator") and hasattr(value, "denominator") and value.denominator:
        if value.denominator == 1:
            return str(value.numerator)
        return f"{value.numerator}/{value.denominator}"
    if value is None:
        return None
    return str(value)


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# --------------------------------------------------------------------------- #
# passes                                                                      #
# --------------------------------------------------------------------------- #
def _from_exifread(path: Path) -> Dict[str, Any]:
    with path.open("rb") as fh:
        tags = exifread.process_file(fh, details=False)
    if not tags:
        return {}

    meta: Dict[str, Any] = {}
    meta["make"]  = _decode_if_bytes(_tag_value(tags.get("Image Make")))
    meta["model"] = _decode_if_bytes(_tag_value(tags.get("Image Model")))
    meta["lens"]  = _decode_if_bytes(_tag_value(
        _first(tags, "EXIF LensModel", "MakerNote LensModel", "Image LensModel")
    ))

    if (iso := tags.get("EXIF ISOSpeedRatings")) is not None:
        meta["iso"] = _int_or_none(_tag_value(iso))
    if (fnum := tags.get("EXIF FNumber")) is not None:
        meta["f_number"] = _rational_to_float(_tag_value(fnum))
    if (shutter := tags.get("EXIF ExposureTime")) is not None:
        meta["exposure_time"] = _format_exposure(_tag_value(shutter))
    if (focal := tags.get("EXIF FocalLength")) is not None:
        meta["focal_length"] = _rational_to_float(_tag_value(focal))

    dt_tag = _first(tags, "EXIF DateTimeOriginal", "EXIF DateTimeDigitized", "Image DateTime")
    if dt_tag:
        meta["taken_at"] = _parse_datetime(_tag_value(dt_tag))

    width  = _first(tags, "EXIF ExifImageWidth", "Image ImageWidth")
    height = _first(tags, "EXIF ExifImageLength", "Image ImageLength")
    meta["width"]  = _int_or_none(_tag_value(width)) if width else None
    meta["height"] = _int_or_none(_tag_value(height)) if height else None
    return meta


def _from_pillow(path: Path) -> Dict[str, Any]:
    """Fallback for JPEG/TIFF/WebP exports where exifread finds nothing."""
    with Image.open(path) as img:
        size = img.size
        raw = img.getexif()
        exif_ifd = raw.get_ifd(ExifTags.IFD.Exif) if raw else {}
    tag_map = {ExifTags.TAGS.get(k, k): v for k, v in {**dict(raw), **dict(exif_ifd)}.items()}

    meta: Dict[str, Any] = {
        "width": size[0],
        "height": size[1],
        "make": _decode_if_bytes(tag_map.get("Make")),
        "model": _decode_if_bytes(tag_map.get("Model")),
        "lens": _decode_if_bytes(tag_map.get("LensModel")),
    }
    if (iso_val := tag_map.get("ISOSpeedRatings") or tag_map.get("PhotographicSensitivity")):
        meta["iso"] = _int_or_none(iso_val[0] if isinstance(iso_val, (list, tuple)) else iso_val)
    if (fnum := tag_map.get("FNumber")) is not None:
        meta["f_number"] = _rational_to_float(fnum)
    if (shutter := tag_map.get("ExposureTime")) is not None:
        meta["exposure_time"] = _format_exposure(shutter)
    if (focal := tag_map.get("FocalLength")) is not None:
        meta["focal_length"] = _rational_to_float(focal)
    dt_raw = tag_map.get("DateTimeOriginal") or tag_map.get("DateTime")
    if dt_raw:
        meta["taken_at"] = _parse_datetime(dt_raw)
    return meta


# --------------------------------------------------------------------------- #
# main                                                                        #
# --------------------------------------------------------------------------- #
def read_tags(path: Path, filename: Optional[str] = None) -> Dict[str, Any]:
    """
    Return the normalised metadata record for the file at *path*:
      • file_type / mime_type – from the original filename
      • width / height        – sensor image size when tagged
      • make / model / lens
      • iso, exposure_time ("1/160"), f_number (2.8), focal_length (35.0)
      • taken_at              – ISO‑8601 capture time

    Raises ExtractionFailure when neither exifread nor Pillow can read it.
    """
    name = filename or path.name
    try:
        meta = _from_exifread(path)
    except Exception as e:
        meta = {}
        first_error: Optional[Exception] = e
    else:
        first_error = None

    if not meta:
        try:
            meta = _from_pillow(path)
        except Exception as e:
            raise ExtractionFailure(f"no readable tags in {name}: {first_error or e}") from e

    file_type, mime_type = describe_file(name)
    record: Dict[str, Any] = {
        "file_type": file_type,
        "mime_type": mime_type,
        "width": None,
        "height": None,
        "make": None,
        "model": None,
        "iso": None,
        "exposure_time": None,
        "f_number": None,
        "focal_length": None,
        "taken_at": None,
        "lens": None,
    }
    record.update({k: v for k, v in meta.items() if v is not None})
    return record
