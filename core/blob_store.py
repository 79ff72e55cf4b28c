# core/blob_store.py

import io
import time
import uuid
import logging
from datetime import date
from pathlib import Path
from typing import List, Optional

from PIL import Image, ImageOps

from core.models import MatchType
from security.input_validation import InvalidImageError, SecurityValidator
from utils.file_utils import get_image_files

logger = logging.getLogger(__name__)


class ImageBlobStore:
    """
    Stores customer photos as optimised JPEG files under one root directory

    Stored names are POSIX paths relative to the root, e.g.
    2025/06/250611-P-001_20250611_work_1718100000000.jpg
    """

    def __init__(self,
                 root_dir: str = "uploads",
                 max_dimension: int = 800,
                 jpeg_quality: int = 80,
                 max_upload_bytes: int = SecurityValidator.MAX_FILE_SIZE,
                 url_prefix: str = "/uploads"):
        self.root = Path(root_dir)
        self.max_dimension = max_dimension
        self.jpeg_quality = jpeg_quality
        self.max_upload_bytes = max_upload_bytes
        self.url_prefix = url_prefix.rstrip('/')

    def initialize(self) -> 'ImageBlobStore':
        self.root.mkdir(parents=True, exist_ok=True)
        return self

    def save(self,
             image_bytes: bytes,
             role: MatchType,
             customer_id: Optional[str] = None,
             work_date: Optional[date] = None) -> str:
        """
        Validate, optimise and write an image

        Args:
            image_bytes: Encoded JPEG/PNG/WebP data
            role: Whether this is the intake form photo or the artwork photo
            customer_id: Business identifier used in the file name
            work_date: Work date used for the year/month folder

        Returns:
            Stored name relative to the root
        """
        role = MatchType(role)
        SecurityValidator.validate_image_bytes(image_bytes, self.max_upload_bytes)
        encoded = self._optimize(image_bytes)

        if customer_id and work_date:
            safe_id = SecurityValidator.sanitize_filename(customer_id)
            millis = int(time.time() * 1000)
            while True:
                name = (f"{work_date:%Y}/{work_date:%m}/"
                        f"{safe_id}_{work_date:%Y%m%d}_{role.value}_{millis}.jpg")
                path = SecurityValidator.resolve_within(self.root, name)
                # Never overwrite a photo saved in the same millisecond
                if not path.exists():
                    break
                millis += 1
        else:
            name = f"{role.value}_{uuid.uuid4()}.jpg"
            path = SecurityValidator.resolve_within(self.root, name)

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(encoded)

        logger.info("Saved %s image %s (%d bytes)", role.value, name, len(encoded))
        return name

    def resolve(self, name: str) -> Path:
        """Absolute path for a stored name"""
        return SecurityValidator.resolve_within(self.root, name)

    def url(self, name: Optional[str]) -> Optional[str]:
        """Public URL for a stored name; URLs and data URLs pass through"""
        if not name:
            return None
        if name.startswith(('http://', 'https://', 'data:', self.url_prefix + '/')):
            return name
        return f"{self.url_prefix}/{name}"

    def exists(self, name: str) -> bool:
        try:
            return self.resolve(name).is_file()
        except ValueError:
            return False

    def read(self, name: str) -> bytes:
        """Raw bytes of a stored image; raises FileNotFoundError or ValueError"""
        return self.resolve(name).read_bytes()

    def delete(self, name: Optional[str]):
        """Remove a stored image; failures are logged, never raised"""
        if not name:
            return
        try:
            self.resolve(name).unlink()
            logger.info("Deleted image %s", name)
        except FileNotFoundError:
            logger.warning("Image already missing, nothing to delete: %s", name)
        except (OSError, ValueError) as e:
            logger.warning("Failed to delete image %s: %s", name, e)

    def list_files(self) -> List[str]:
        """Stored names of every image under the root"""
        return get_image_files(str(self.root))

    def _optimize(self, image_bytes: bytes) -> bytes:
        """Fit inside max_dimension (never enlarging) and re-encode as JPEG"""
        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                img = ImageOps.exif_transpose(img)
                img = img.convert('RGB')
                img.thumbnail((self.max_dimension, self.max_dimension),
                              Image.Resampling.LANCZOS)

                buffer = io.BytesIO()
                img.save(buffer, format='JPEG', quality=self.jpeg_quality, optimize=True)
        except OSError as e:
            raise InvalidImageError(f"Cannot process image: {e}") from e

        return buffer.getvalue()
