"""
Image codec - PNG and base64 conversion for PIL images.

Encoding always goes through a readable RGBA copy. Decoding never hands back
a partially decoded image: malformed input gives None.
"""

import io
import base64
import binascii
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


PNG_MIME_TYPE = "image/png"


def is_readable(image: Image.Image) -> bool:
    """True when the image can be saved as-is (loaded and already RGBA)."""
    return image.mode == "RGBA" and getattr(image, "im", None) is not None


@contextmanager
def readable_copy(image: Image.Image) -> Iterator[Image.Image]:
    """Yield an RGBA version of `image`.

    If the source is not directly readable (another mode, or lazily loaded
    from a file), a temporary RGBA copy is rendered and released on exit.
    """
    if is_readable(image):
        yield image
        return

    image.load()
    temporary = image.convert("RGBA")
    try:
        yield temporary
    finally:
        temporary.close()


def encode_png(image: Image.Image) -> bytes:
    """Encode an image as PNG bytes."""
    with readable_copy(image) as readable:
        buffer = io.BytesIO()
        readable.save(buffer, format="PNG")
        return buffer.getvalue()


def encode_png_base64(image: Image.Image) -> str:
    """Encode an image as a base64 PNG string."""
    return base64.b64encode(encode_png(image)).decode("ascii")


def decode_png(data: bytes) -> Optional[Image.Image]:
    """Decode image bytes into a fully loaded PIL image.

    Returns None for anything Pillow cannot decode completely, including
    truncated files.
    """
    if not data:
        return None

    try:
        image = Image.open(io.BytesIO(data))
        # Force the full decode so truncated data fails here
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
        logger.warning(f"Failed to decode image: {e}")
        return None

    return image


def decode_base64_image(data: str) -> Optional[Image.Image]:
    """Decode a base64 image payload, None if either layer is malformed."""
    if not data:
        return None

    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Failed to decode base64 image data: {e}")
        return None

    return decode_png(raw)
