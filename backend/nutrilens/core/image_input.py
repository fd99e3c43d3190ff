"""
NutriLens AI - Image Payload Decoding

Accepts a base64 image, optionally wrapped in a data-URL prefix
(``data:image/png;base64,...``), and returns the raw bytes with their
mime type.
"""

import base64
import binascii
import re
from dataclasses import dataclass

from nutrilens.core.errors import InputError

_DATA_URL_PREFIX = re.compile(r"^data:image/(?P<subtype>[\w.+-]+);base64,", re.IGNORECASE)


@dataclass(frozen=True)
class DecodedImage:
    data: bytes
    mime_type: str = "image/jpeg"

    @property
    def size(self) -> int:
        return len(self.data)


def decode_image_payload(image: str | None) -> DecodedImage:
    """
    Strip an optional data-URL prefix and base64-decode the image.

    Raises:
        InputError: If the payload is missing, empty or not valid base64
    """
    if not image or not image.strip():
        raise InputError("Image is required")

    payload = image.strip()
    mime_type = "image/jpeg"

    match = _DATA_URL_PREFIX.match(payload)
    if match:
        mime_type = f"image/{match.group('subtype').lower()}"
        payload = payload[match.end():]

    # MIME-style base64 is wrapped at 76 columns
    payload = "".join(payload.split())

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InputError(f"Invalid image payload: {e}") from e

    if not data:
        raise InputError("Invalid image payload: decoded image is empty")

    return DecodedImage(data=data, mime_type=mime_type)
