from io import BytesIO

from PIL import Image, ImageFile, ImageOps

from club_photos.config import THUMBNAIL_QUALITY, THUMBNAIL_SIZE

# Decode whatever is there instead of failing on truncated/odd streams
ImageFile.LOAD_TRUNCATED_IMAGES = True


class ThumbnailBuilder:
    def __init__(self, max_px: int = THUMBNAIL_SIZE, quality: int = THUMBNAIL_QUALITY):
        self.max_px  = max_px
        self.quality = quality

    @staticmethod
    def decode(data: bytes) -> Image.Image:
        """Decode bytes into a loaded pixel buffer; raises on unknown formats."""
        img = Image.open(BytesIO(data))
        img.load()
        return img

    def render(self, img: Image.Image) -> bytes:
        """Auto-orient, fit inside max_px × max_px (never upscale), encode JPEG."""
        img = ImageOps.exif_transpose(img)
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        # thumbnail() keeps aspect ratio and only ever shrinks
        img.thumbnail((self.max_px, self.max_px), resample=Image.LANCZOS)
        buf = BytesIO()
        img.save(buf, format="JPEG", quality=self.quality, optimize=True)
        return buf.getvalue()

    def from_bytes(self, data: bytes) -> bytes:
        return self.render(self.decode(data))
