"""Helpers for images sent by the widget (data URLs, raw base64 or URLs)."""

import base64
import binascii
import io
import re
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from tryon.errors import InvalidImage

_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)

# PNG files base64-encode to a payload starting with this prefix
_PNG_B64_PREFIX = "iVBORw"

MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


def is_remote_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def ensure_data_url(value: str) -> str:
    """Turn raw base64 into a data URL; URLs and data URLs pass through."""
    if value.startswith("data:") or is_remote_url(value):
        return value
    mime = "image/png" if value.startswith(_PNG_B64_PREFIX) else "image/jpeg"
    return f"data:{mime};base64,{value}"


def decode_data_url(value: str) -> Tuple[str, bytes]:
    """Decode a data URL (or raw base64) into ``(mime_type, bytes)``."""
    match = _DATA_URL_RE.match(ensure_data_url(value.strip()))
    if not match:
        raise InvalidImage("Invalid image format")
    mime, payload = match.group(1), match.group(2)
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidImage("Image is not valid base64") from exc
    if not data:
        raise InvalidImage("Image is empty")
    return mime, data


def validate_image(data: bytes) -> str:
    """Check that ``data`` is a readable image. Returns the Pillow format name."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            fmt = img.format
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise InvalidImage("Could not decode image") from exc
    return fmt or "UNKNOWN"
