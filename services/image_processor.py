"""
Image sizing for the style pipeline: shrink the upload to the model's working
resolution, then restore the result to the caller's original size.
"""
import base64
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from clients.errors import DecodeError

logger = logging.getLogger(__name__)

# Modes the PNG encoder can write; anything else (CMYK, YCbCr, LAB) goes to RGB.
PNG_MODES = frozenset({"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"})


@dataclass(frozen=True)
class PreparedImage:
    data: bytes
    content_type: str
    original_width: int
    original_height: int
    width: int
    height: int

    @property
    def resized(self) -> bool:
        return (self.width, self.height) != (self.original_width, self.original_height)

    def to_data_uri(self) -> str:
        return f"data:{self.content_type};base64,{base64.b64encode(self.data).decode('ascii')}"


def _open(data: bytes) -> Image.Image:
    if not data:
        raise DecodeError("Image payload is empty")
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Could not decode image: {e}") from e
    return img


class ImageProcessor:
    def get_resize_dimensions(
        self, width: int, height: int, max_width: int, max_height: int
    ) -> Tuple[int, int]:
        """Largest size with the same aspect ratio that fits the bounding box."""
        if width <= 0 or height <= 0 or max_width <= 0 or max_height <= 0:
            raise ValueError("dimensions must be positive")
        ratio = min(max_width / width, max_height / height)
        return max(1, round(width * ratio)), max(1, round(height * ratio))

    def read_dimensions(self, data: bytes) -> Tuple[int, int]:
        with _open(data) as img:
            return img.size

    def prepare_input(self, data: bytes, max_width: int, max_height: int) -> PreparedImage:
        """Downscale to the bound when larger. Smaller images keep their original bytes."""
        with _open(data) as img:
            original_width, original_height = img.size
            content_type = Image.MIME.get(img.format or "", "image/png")

            if original_width <= max_width and original_height <= max_height:
                logger.info(
                    "Image size unchanged: %dx%d (already optimal)", original_width, original_height
                )
                return PreparedImage(
                    data=data,
                    content_type=content_type,
                    original_width=original_width,
                    original_height=original_height,
                    width=original_width,
                    height=original_height,
                )

            width, height = self.get_resize_dimensions(
                original_width, original_height, max_width, max_height
            )
            resized = img.resize((width, height), Image.Resampling.LANCZOS)
            if resized.mode not in PNG_MODES:
                resized = resized.convert("RGB")
            buf = BytesIO()
            resized.save(buf, format="PNG")

        logger.info(
            "Resized image %dx%d -> %dx%d", original_width, original_height, width, height
        )
        return PreparedImage(
            data=buf.getvalue(),
            content_type="image/png",
            original_width=original_width,
            original_height=original_height,
            width=width,
            height=height,
        )

    def resize_to(self, data: bytes, width: int, height: int) -> bytes:
        """Resize to exactly width x height and encode as JPEG."""
        if width <= 0 or height <= 0:
            raise ValueError("dimensions must be positive")
        with _open(data) as img:
            if img.mode != "RGB":
                img = img.convert("RGB")
            if img.size != (width, height):
                img = img.resize((width, height), Image.Resampling.BICUBIC)
            buf = BytesIO()
            img.save(buf, format="JPEG", quality=90)
        return buf.getvalue()
