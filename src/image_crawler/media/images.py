"""Image file-type and pixel-dimension helpers."""
from __future__ import annotations

import io
import os
from urllib.parse import unquote, urlparse

from PIL import Image, UnidentifiedImageError

KNOWN_IMAGE_EXTENSIONS = frozenset(
    {"jpg", "jpeg", "png", "gif", "webp", "bmp", "tif", "tiff", "avif", "svg", "ico", "heic"}
)
_ALIASES = {"jpeg": "jpg", "tiff": "tif"}


def url_extension(url: str) -> str | None:
    """Recognizable image extension of the URL path, lowercase, without the dot."""
    path = unquote(urlparse(url).path)
    ext = os.path.splitext(path)[1].lower().lstrip(".")
    return ext if ext in KNOWN_IMAGE_EXTENSIONS else None


def choose_extension(url: str, allowed: tuple[str, ...] | list[str]) -> str | None:
    """Pick the extension to save ``url`` under.

    Returns the URL's own extension when it is allowed, the first allowed
    extension when the URL has no recognizable one, and None when the URL
    names an image type outside the allow-list.
    """
    ext = url_extension(url)
    if ext is None:
        return allowed[0]
    return ext if is_allowed_extension(ext, allowed) else None


def is_allowed_extension(ext: str, allowed: tuple[str, ...] | list[str]) -> bool:
    """Allow-list membership treating jpg/jpeg and tif/tiff as the same type."""
    canonical = _ALIASES.get(ext.lower(), ext.lower())
    return any(_ALIASES.get(a, a) == canonical for a in allowed)


def is_image_content_type(content_type: str | None) -> bool:
    """True unless the server explicitly declares a non-image payload."""
    if not content_type:
        return True
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime.startswith("image/") or mime in {"application/octet-stream", "binary/octet-stream"}


def image_dimensions(data: bytes) -> tuple[int, int] | None:
    """Return (width, height) of encoded image bytes, or None if undecodable."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        return None


def meets_dimensions(size: tuple[int, int], min_width: int, min_height: int) -> bool:
    width, height = size
    return width >= min_width and height >= min_height
