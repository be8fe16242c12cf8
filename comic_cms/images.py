"""
Validation of image payloads picked in the editor before they are uploaded.
"""

from __future__ import annotations

import io
import logging
import os
import re
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from comic_cms.errors import InvalidImageError

logger = logging.getLogger(__name__)

ACCEPTED_EXTENSIONS = (".jpeg", ".jpg", ".png", ".gif", ".webp")

# Pillow format name -> content type.
ACCEPTED_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}


@dataclass
class ImageUpload:
    """A freshly picked local image that has not been uploaded yet."""

    filename: str
    data: bytes
    content_type: str = "application/octet-stream"


def safe_filename(filename: str) -> str:
    """Reduce a client supplied filename to a safe object-key basename."""
    base = os.path.basename((filename or "").replace("\\", "/"))
    base = re.sub(r"[^A-Za-z0-9._-]+", "-", base).strip("-.")
    return base or "image"


def validate_image(filename: str, data: bytes) -> ImageUpload:
    """
    Check that `data` is an accepted image and return an upload for it.

    The extension must be one of the accepted ones and the bytes must decode
    as JPEG, PNG, GIF or WEBP. The content type comes from the decoded format,
    not from the client.
    """
    if not filename or not filename.lower().endswith(ACCEPTED_EXTENSIONS):
        raise InvalidImageError(
            f"Unsupported image type for {filename!r}; "
            f"accepted: {', '.join(ACCEPTED_EXTENSIONS)}"
        )
    if not data:
        raise InvalidImageError(f"Image {filename!r} is empty")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            detected = img.format
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.warning("Rejected upload %s: %s", filename, e)
        raise InvalidImageError(f"{filename!r} is not a valid image") from e
    if detected not in ACCEPTED_FORMATS:
        raise InvalidImageError(f"Image format {detected} is not accepted")
    return ImageUpload(
        filename=safe_filename(filename),
        data=data,
        content_type=ACCEPTED_FORMATS[detected],
    )
