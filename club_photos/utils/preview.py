import subprocess
from pathlib import Path

from club_photos.config import EXIFTOOL_PATH, EXTRACTOR_TIMEOUT, logger
from club_photos.errors import ExtractionFailure

# Largest first; cameras differ in which of these they embed
PREVIEW_TAGS = ("JpgFromRaw", "PreviewImage", "ThumbnailImage")


class ExiftoolPreviewExtractor:
    """Pull the camera-rendered JPEG out of a RAW file with ``exiftool -b``."""

    def __init__(self, exiftool: str = EXIFTOOL_PATH, timeout: float = EXTRACTOR_TIMEOUT):
        self.exiftool = exiftool
        self.timeout  = timeout

    def __call__(self, source: Path, dest: Path) -> bool:
        """Write the embedded preview of *source* to *dest*.

        Returns False when the file carries no preview. Raises
        ExtractionFailure when exiftool is missing, errors or times out.
        """
        for tag in PREVIEW_TAGS:
            try:
                with dest.open("wb") as out:
                    result = subprocess.run(
                        [self.exiftool, "-b", f"-{tag}", str(source)],
                        stdout=out,
                        stderr=subprocess.PIPE,
                        timeout=self.timeout,
                        check=False,
                    )
            except subprocess.TimeoutExpired as e:
                raise ExtractionFailure(f"exiftool timed out after {self.timeout}s") from e
            except OSError as e:
                raise ExtractionFailure(f"exiftool not runnable: {e}") from e

            if result.returncode != 0:
                raise ExtractionFailure(
                    f"exiftool exited {result.returncode}: {result.stderr.decode(errors='ignore').strip()}"
                )
            if dest.stat().st_size > 0:
                logger.debug("Extracted %s from %s", tag, source.name)
                return True
        return False
