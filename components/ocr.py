# components/ocr.py

"""
Text extraction for intake forms.

The Vision API only returns free text; turning it into form fields is the
caller's job (parse_intake_text). Any failure degrades to None so staff fall
back to typing the form in by hand.
"""

import base64
import logging
import re
from dataclasses import dataclass, asdict
from datetime import date
from typing import Optional

import httpx

from config import OCRConfig

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r'(\d{3}[-\s.]?\d{3,4}[-\s.]?\d{4})')
EMAIL_PATTERN = re.compile(r'([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})')
HANGUL_NAME_PATTERN = re.compile(r'^[가-힣]{2,4}$')
LATIN_NAME_PATTERN = re.compile(r'^[A-Za-z][A-Za-z .\'-]{1,38}[A-Za-z]$')
DATE_PATTERN = re.compile(r'(\d{4})[-./](\d{1,2})[-./](\d{1,2})')
NAME_LABEL_PATTERN = re.compile(r'^(?:name|이름|성명)\s*[:：]?\s*', re.IGNORECASE)


@dataclass
class IntakeFields:
    """Form fields recovered from an intake form photo"""
    name: str = ""
    phone: str = ""
    email: str = ""
    work_date: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


class VisionTextExtractor:
    """
    Google Cloud Vision TEXT_DETECTION client
    """

    def __init__(self, config: OCRConfig = None, client: httpx.Client = None):
        self.config = config or OCRConfig()
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=self.config.timeout_seconds)

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    def extract(self, image_bytes: bytes) -> Optional[str]:
        """
        Detect text in an image

        Returns:
            The full detected text, or None when nothing was found or the
            service is unavailable
        """
        if not image_bytes:
            return None

        if not self.configured:
            logger.warning("Vision API key not configured; OCR skipped")
            return None

        payload = {
            'requests': [{
                'image': {'content': base64.b64encode(image_bytes).decode('ascii')},
                'features': [{
                    'type': 'TEXT_DETECTION',
                    'maxResults': self.config.max_results
                }]
            }]
        }

        try:
            response = self.client.post(
                self.config.endpoint,
                params={'key': self.config.api_key},
                json=payload
            )
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Vision API returned %s: %s",
                         e.response.status_code, e.response.text[:500])
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Vision API request failed: %s", e)
            return None

        responses = result.get('responses') or []
        if not responses:
            return None

        first = responses[0]
        if 'error' in first:
            logger.error("Vision API error: %s", first['error'].get('message'))
            return None

        annotations = first.get('textAnnotations') or []
        if not annotations:
            return None

        # The first annotation holds the whole detected text
        text = annotations[0].get('description') or ""
        return text if text.strip() else None

    def close(self):
        if self._owns_client:
            self.client.close()


def parse_intake_text(text: Optional[str], today: date = None) -> IntakeFields:
    """
    Pull name, phone, email and work date out of OCR text

    The first match of each kind wins; the work date defaults to today.
    """
    fields = IntakeFields()
    found_date = None

    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue

        if not fields.phone:
            phone = PHONE_PATTERN.search(line)
            if phone:
                fields.phone = re.sub(r'[\s.]', '-', phone.group(1))

        if not fields.email:
            email = EMAIL_PATTERN.search(line)
            if email:
                fields.email = email.group(1)

        if found_date is None:
            found_date = _parse_date(line)

        if not fields.name:
            candidate = NAME_LABEL_PATTERN.sub('', line)
            if HANGUL_NAME_PATTERN.match(candidate) or (
                    candidate != line and LATIN_NAME_PATTERN.match(candidate)):
                fields.name = candidate

    fields.work_date = (found_date or today or date.today()).isoformat()
    return fields


def _parse_date(line: str) -> Optional[date]:
    match = DATE_PATTERN.search(line)
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None
