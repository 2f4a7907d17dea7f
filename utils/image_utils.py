"""
Image encoding helpers.

Images are stored inline as data URIs so a product record never depends on
an external file or URL to render.
"""

import base64
from pathlib import PurePath
from typing import Optional

DATA_URI_PREFIX = "data:image/"

# Extension (without dot, lower-case) -> MIME type
IMAGE_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "jpe": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
}

RASTER_EXTENSIONS = frozenset(IMAGE_MIME_TYPES)


def extension_of(name: str) -> str:
    """
    Lower-case extension without the dot.

    "xl/media/image1.JPEG" -> "jpeg"
    "photo" -> ""
    """
    return PurePath(name).suffix.lower().lstrip(".")


def mime_type_for(name: str, default: str = "image/png") -> str:
    """MIME type inferred from a file name or bare extension."""
    ext = extension_of(name) or name.lower().lstrip(".")
    return IMAGE_MIME_TYPES.get(ext, default)


def is_data_uri(value: Optional[str]) -> bool:
    """True if value is already a self-contained image data URI."""
    return bool(value) and value.strip().startswith(DATA_URI_PREFIX)


def to_data_uri(content: bytes, mime_type: str = "image/png") -> Optional[str]:
    """
    Encode binary image content as a data URI.

    Returns None for empty content.
    """
    if not content:
        return None
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def normalize_content_type(header: Optional[str], default: str = "image/jpeg") -> str:
    """
    Strip parameters from a Content-Type header.

    "image/png; charset=binary" -> "image/png"
    """
    if not header:
        return default
    mime = header.split(";", 1)[0].strip().lower()
    return mime or default
