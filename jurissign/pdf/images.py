"""
Image normalization for captured signatures and selfies.

Signature pads often export an opaque white background; stripping it keeps
the document content visible around the stroke.
"""
import io
import logging
from typing import Optional

from PIL import Image, ImageChops, UnidentifiedImageError

from jurissign.exceptions import MediaProcessingError
from jurissign.models import JPEG_MAGIC, PNG_MAGIC, decode_data_url  # noqa: F401 (re-exported)

logger = logging.getLogger(__name__)

DEFAULT_BACKGROUND_THRESHOLD = 240


def sniff_image_type(data: Optional[bytes]) -> Optional[str]:
    """Return "png", "jpeg" or None from magic bytes."""
    if not data:
        return None
    if data.startswith(PNG_MAGIC):
        return "png"
    if data.startswith(JPEG_MAGIC):
        return "jpeg"
    return None


def strip_white_background(raw: bytes, threshold: int = DEFAULT_BACKGROUND_THRESHOLD) -> bytes:
    """
    Make near-white pixels transparent.

    Every pixel whose R, G and B are all above the threshold gets alpha 0;
    other pixels are unchanged. Output is always PNG.

    Raises:
        MediaProcessingError: the bytes cannot be decoded as an image
    """
    try:
        with Image.open(io.BytesIO(raw)) as img:
            rgba = img.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise MediaProcessingError(f"Cannot decode image: {e}")

    r, g, b, a = rgba.split()
    above = [band.point(lambda v: 255 if v > threshold else 0) for band in (r, g, b)]
    white_mask = ImageChops.multiply(ImageChops.multiply(above[0], above[1]), above[2])
    transparent = Image.new("L", rgba.size, 0)
    rgba.putalpha(Image.composite(transparent, a, white_mask))

    buffer = io.BytesIO()
    rgba.save(buffer, format="PNG")
    return buffer.getvalue()


def normalize_image(
    raw: bytes,
    strip_background: bool,
    threshold: int = DEFAULT_BACKGROUND_THRESHOLD,
) -> bytes:
    """
    Prepare a captured image for embedding.

    Without background stripping the input is returned unchanged. If
    stripping fails the original bytes are returned and the failure is
    logged; a bad capture never aborts certification.
    """
    if not strip_background:
        return raw

    try:
        return strip_white_background(raw, threshold)
    except MediaProcessingError as e:
        logger.warning(f"Background strip failed, embedding original image: {e.message}")
        return raw


def is_decodable(raw: Optional[bytes]) -> bool:
    """True when Pillow can open the bytes."""
    if not raw:
        return False
    try:
        with Image.open(io.BytesIO(raw)) as img:
            img.verify()
        return True
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.debug(f"Image not decodable: {e}")
        return False
