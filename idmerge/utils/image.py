# idmerge/utils/image.py
# ============================================================
# Image Utility Functions
# ============================================================
# Shared image helpers used by the recognition client and the
# page compositor. Handles decoding, encoding, resizing, and
# metadata extraction for raw image bytes and PIL Images.
#
# Usage:
#   from idmerge.utils.image import decode_image, encode_image_base64
#   img = decode_image(raw_bytes)
#   payload = encode_image_base64(raw_bytes)
# ============================================================

import base64
import io
import time
from typing import Union

from PIL import Image, UnidentifiedImageError

from idmerge.utils.logger import get_logger

logger = get_logger(__name__)


def decode_image(data: bytes) -> Image.Image:
    """
    Decode raw bytes into an RGB/L PIL Image.

    Raises:
        ValueError: If the bytes are empty or not a format Pillow can read.
    """
    if not data:
        raise ValueError("Image data is empty")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Unreadable image data: {e}") from e

    # Convert to RGB if necessary (e.g., RGBA, palette mode)
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    return image


def encode_image_base64(image: Union[Image.Image, bytes], fmt: str = "JPEG") -> str:
    """
    Encode a PIL Image or raw image bytes to a base64 string.

    Raw bytes are passed through untouched so the provider receives the
    original file; PIL Images are re-encoded in `fmt`.
    """
    start = time.perf_counter()
    if isinstance(image, (bytes, bytearray)):
        raw = bytes(image)
    else:
        buffer = io.BytesIO()
        image.save(buffer, format=fmt)
        raw = buffer.getvalue()

    encoded = base64.b64encode(raw).decode("utf-8")

    duration = (time.perf_counter() - start) * 1000
    logger.debug(f"Image encoding took {duration:.2f}ms ({len(raw)} bytes)")
    return encoded


def resize_to_fit(image: Image.Image, max_width: float, max_height: float) -> Image.Image:
    """
    Shrink an image so it fits inside the box, keeping its aspect ratio.

    Images that already fit are returned unchanged (never upscaled).
    """
    width, height = image.size
    scale = min(max_width / width, max_height / height, 1.0)
    if scale >= 1.0:
        return image

    new_width = max(1, int(width * scale))
    new_height = max(1, int(height * scale))
    resized = image.resize((new_width, new_height), Image.Resampling.LANCZOS)
    logger.debug(f"Image resizing ({width}x{height} -> {new_width}x{new_height})")
    return resized


def get_image_info(image: Image.Image) -> dict:
    """
    Extract metadata from a PIL Image for logging and diagnostics.

    Returns:
        Dictionary with width, height, mode (RGB/RGBA/L), channels and
        estimated uncompressed size in MB.
    """
    width, height = image.size
    channels = len(image.getbands())
    estimated_mb = round(width * height * channels / (1024 * 1024), 2)

    return {
        "width": width,
        "height": height,
        "mode": image.mode,
        "channels": channels,
        "estimated_size_mb": estimated_mb,
    }
