"""
Image utility functions
"""

import base64
import binascii
import re
from typing import Optional

DATA_URL_PATTERN = re.compile(r'^data:image/[\w.+-]+;base64,', re.IGNORECASE)


def is_data_url(value: Optional[str]) -> bool:
    return bool(value) and bool(DATA_URL_PATTERN.match(value))


def decode_base64_image(value: str) -> bytes:
    """Decode a data URL or bare base64 payload into raw bytes"""
    payload = DATA_URL_PATTERN.sub('', value.strip(), count=1)
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("Image payload is not valid base64") from e
