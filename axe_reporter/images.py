"""Screenshot encoding and file-type detection."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

from filetype import guess
from PIL import Image

from .utils import write_atomic

logger = logging.getLogger("axe_reporter")

NATIVE_CAPTURE_TYPES = {"png", "jpeg"}
EXTENSION_FALLBACKS = {"png": "png", "jpeg": "jpg", "webp": "webp"}


def capture_type_for(screenshot_format: str) -> str:
    """Return the format to request from the browser for ``screenshot_format``."""
    return screenshot_format if screenshot_format in NATIVE_CAPTURE_TYPES else "png"


def encode_screenshot(data: bytes, screenshot_format: str, quality: int) -> bytes:
    """Re-encode a captured image when the browser cannot emit the format itself."""
    if screenshot_format in NATIVE_CAPTURE_TYPES:
        return data
    with Image.open(io.BytesIO(data)) as image:
        buffer = io.BytesIO()
        image.save(buffer, format=screenshot_format.upper(), quality=quality)
    return buffer.getvalue()


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def screenshot_extension(data: bytes, screenshot_format: str) -> str:
    """Pick the file extension for stored screenshot bytes."""
    return detect_image_format(data) or EXTENSION_FALLBACKS.get(screenshot_format, "png")


def save_screenshot(data: bytes, images_dir: Path, base_filename: str, screenshot_format: str) -> Path:
    """Persist screenshot bytes and return the written path."""
    extension = screenshot_extension(data, screenshot_format)
    destination = images_dir / f"{base_filename}.{extension}"
    write_atomic(destination, data)
    logger.debug("Saved screenshot to %s", destination)
    return destination
