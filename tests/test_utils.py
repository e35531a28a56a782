"""Tests for key conventions, the image codec, tag reading, preview extraction and storage."""

import subprocess
from io import BytesIO
from pathlib import Path

import boto3
import pytest
from botocore.exceptions import ReadTimeoutError
from botocore.stub import Stubber
from PIL import Image

from club_photos.errors import ExtractionFailure, StorageError, TransientIO
from club_photos.utils import preview as preview_module
from club_photos.utils.exif import describe_file, is_raw_file, read_tags
from club_photos.utils.image_variants import ThumbnailBuilder
from club_photos.utils.keys import (
    event_id_from_key,
    file_key_from_url,
    original_key,
    thumbnail_key,
)
from club_photos.utils.preview import ExiftoolPreviewExtractor
from club_photos.utils.storage import S3Storage
from tests.conftest import make_jpeg


# ── keys ───────────────────────────────────────────────────────────────────
def test_original_key() -> None:
    assert original_key("e1", "u1", "IMG_01.CR2") == "photos/e1/u1/IMG_01.CR2"


def test_file_key_from_url() -> None:
    assert file_key_from_url("http://host/photos/photos/e1/u1/IMG_01.CR2") == "photos/e1/u1/IMG_01.CR2"
    assert file_key_from_url("https://bucket.s3.amazonaws.com/photos/e1/u1/a.NEF") == "e1/u1/a.NEF"
    assert file_key_from_url("https://cdn.example.com/a.NEF") is None
    assert file_key_from_url("http://host/photos/") is None


def test_thumbnail_key() -> None:
    assert thumbnail_key("photos/e1/u1/IMG_01.CR2") == "thumbnails/e1/IMG_01.jpg"
    assert thumbnail_key("photos/e1/u1/final.edit.tiff") == "thumbnails/e1/final.edit.jpg"
    assert thumbnail_key("photos/e1/u1/noext") == "thumbnails/e1/noext.jpg"


def test_event_id_from_key_rejects_flat_keys() -> None:
    assert event_id_from_key("photos/e9/u1/a.CR2") == "e9"
    with pytest.raises(ValueError):
        event_id_from_key("a.CR2")


# ── codec ──────────────────────────────────────────────────────────────────
@pytest.mark.parametrize(
    ("size", "expected"),
    [((1200, 800), (400, 267)), ((800, 1600), (200, 400)), ((400, 400), (400, 400)), ((120, 90), (120, 90))],
)
def test_thumbnail_fits_bound_and_keeps_aspect(size, expected) -> None:
    out = ThumbnailBuilder().from_bytes(make_jpeg(size))
    img = Image.open(BytesIO(out))
    assert img.format == "JPEG"
    assert img.size == expected


def test_thumbnail_applies_orientation() -> None:
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90° clockwise on display
    out = ThumbnailBuilder().from_bytes(make_jpeg((1200, 800), exif=exif))
    width, height = Image.open(BytesIO(out)).size
    assert height == 400
    assert width < height


def test_thumbnail_converts_alpha_images() -> None:
    buf = BytesIO()
    Image.new("RGBA", (600, 300), (10, 20, 30, 128)).save(buf, format="PNG")
    out = ThumbnailBuilder().from_bytes(buf.getvalue())
    assert Image.open(BytesIO(out)).mode == "RGB"


def test_decode_tolerates_truncated_data() -> None:
    data = make_jpeg((800, 600))
    img = ThumbnailBuilder.decode(data[: int(len(data) * 0.85)])
    assert img.size == (800, 600)


def test_decode_rejects_non_images() -> None:
    with pytest.raises(Exception):
        ThumbnailBuilder.decode(b"definitely not pixels")


# ── tags ───────────────────────────────────────────────────────────────────
def test_describe_file() -> None:
    assert describe_file("IMG_01.CR2") == ("CR2", "image/x-canon-cr2")
    assert describe_file("x.MOS") == ("MOS", "image/x-mos")
    assert describe_file("final.jpg") == ("JPG", "image/jpeg")
    assert is_raw_file("a.nef") and not is_raw_file("a.webp")


def test_read_tags_from_jpeg(tmp_path: Path) -> None:
    exif = Image.Exif()
    exif[0x010F] = "NIKON CORPORATION"
    exif[0x0110] = "NIKON Z 6"
    path = tmp_path / "scratch.bin"
    path.write_bytes(make_jpeg((320, 240), exif=exif))

    record = read_tags(path, "DSC_0001.jpg")

    assert record["make"] == "NIKON CORPORATION"
    assert record["model"] == "NIKON Z 6"
    assert record["file_type"] == "JPG"
    assert set(record) == {
        "file_type", "mime_type", "width", "height", "make", "model", "iso",
        "exposure_time", "f_number", "focal_length", "taken_at", "lens",
    }


def test_read_tags_fails_on_unreadable_file(tmp_path: Path) -> None:
    path = tmp_path / "x.CR3"
    path.write_bytes(b"\x00" * 128)
    with pytest.raises(ExtractionFailure):
        read_tags(path)


# ── preview extraction ─────────────────────────────────────────────────────
def test_exiftool_extractor_writes_first_available_preview(tmp_path, monkeypatch) -> None:
    calls = []

    def fake_run(cmd, stdout, stderr, timeout, check):
        calls.append(cmd[2])
        if cmd[2] == "-PreviewImage":
            stdout.write(b"\xff\xd8\xff preview")
        return subprocess.CompletedProcess(cmd, 0, stderr=b"")

    monkeypatch.setattr(preview_module.subprocess, "run", fake_run)
    dest = tmp_path / "preview.jpg"

    assert ExiftoolPreviewExtractor(timeout=5)(tmp_path / "a.CR2", dest) is True
    assert calls == ["-JpgFromRaw", "-PreviewImage"]
    assert dest.read_bytes() == b"\xff\xd8\xff preview"


def test_exiftool_extractor_without_preview(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(preview_module.subprocess, "run",
                        lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stderr=b""))
    assert ExiftoolPreviewExtractor()(tmp_path / "a.CR2", tmp_path / "p.jpg") is False


def test_exiftool_extractor_timeout(tmp_path, monkeypatch) -> None:
    def slow(cmd, **kw):
        raise subprocess.TimeoutExpired(cmd, kw["timeout"])

    monkeypatch.setattr(preview_module.subprocess, "run", slow)
    with pytest.raises(ExtractionFailure, match="timed out"):
        ExiftoolPreviewExtractor(timeout=0.1)(tmp_path / "a.CR2", tmp_path / "p.jpg")


def test_exiftool_extractor_missing_binary(tmp_path) -> None:
    extractor = ExiftoolPreviewExtractor(exiftool=str(tmp_path / "no-such-exiftool"))
    with pytest.raises(ExtractionFailure, match="not runnable"):
        extractor(tmp_path / "a.CR2", tmp_path / "p.jpg")


# ── storage ────────────────────────────────────────────────────────────────
@pytest.fixture
def s3_client():
    return boto3.client("s3", region_name="us-east-1",
                        aws_access_key_id="k", aws_secret_access_key="s")


def test_public_url_styles(s3_client) -> None:
    aws = S3Storage(bucket="club", region="eu-west-1", endpoint_url=None, client=s3_client)
    minio = S3Storage(bucket="photos", endpoint_url="http://minio:9000/", client=s3_client)

    assert aws.public_url("photos/e1/u1/a.CR2") == "https://club.s3.eu-west-1.amazonaws.com/photos/e1/u1/a.CR2"
    assert minio.public_url("photos/e1/u1/a.CR2") == "http://minio:9000/photos/photos/e1/u1/a.CR2"


def test_presigned_upload_url(s3_client) -> None:
    storage = S3Storage(bucket="club", endpoint_url=None, client=s3_client)
    url = storage.presigned_upload_url("photos/e1/u1/IMG_01.CR2")
    assert "photos/e1/u1/IMG_01.CR2" in url
    assert "Expires=3600" in url


def test_get_object_wraps_client_errors(s3_client) -> None:
    storage = S3Storage(bucket="club", client=s3_client)
    with Stubber(s3_client) as stub:
        stub.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
        with pytest.raises(StorageError) as excinfo:
            storage.get_object("photos/e1/u1/missing.CR2")
    assert not isinstance(excinfo.value, TransientIO)


def test_timeouts_are_transient() -> None:
    class TimingOutClient:
        def get_object(self, **kwargs):
            raise ReadTimeoutError(endpoint_url="http://minio:9000")

    storage = S3Storage(bucket="club", client=TimingOutClient())
    with pytest.raises(TransientIO):
        storage.get_object("photos/e1/u1/a.CR2")


def test_put_object_returns_public_url(s3_client) -> None:
    storage = S3Storage(bucket="club", region="us-east-1", endpoint_url=None, client=s3_client)
    with Stubber(s3_client) as stub:
        stub.add_response("put_object", {})
        url = storage.put_object("thumbnails/e1/a.jpg", b"jpeg")
    assert url == "https://club.s3.us-east-1.amazonaws.com/thumbnails/e1/a.jpg"


def test_delete_wraps_errors(s3_client) -> None:
    storage = S3Storage(bucket="club", client=s3_client)
    with Stubber(s3_client) as stub:
        stub.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(StorageError):
            storage.delete_file("photos/e1/u1/a.CR2")
