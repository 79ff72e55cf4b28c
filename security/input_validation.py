# security/input_validation.py

from pathlib import Path
import io
import os
import re
import logging

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


class InvalidImageError(ValueError):
    """Uploaded data is not an acceptable image"""


class SecurityValidator:
    """
    Validate inputs for security
    """

    ALLOWED_FORMATS = {'JPEG', 'PNG', 'WEBP'}
    MAX_FILE_SIZE = 5 * 1024 * 1024  # 5 MB

    @staticmethod
    def validate_image_bytes(data: bytes, max_size: int = None) -> str:
        """
        Check an uploaded image by its content, not its name

        Returns:
            The detected format name (JPEG, PNG or WEBP)

        Raises:
            InvalidImageError: empty, oversized, undecodable or disallowed format
        """
        max_size = max_size or SecurityValidator.MAX_FILE_SIZE

        if not data:
            raise InvalidImageError("No image data provided")

        if len(data) > max_size:
            raise InvalidImageError(
                f"Image exceeds the {max_size // (1024 * 1024)} MB limit"
            )

        try:
            with Image.open(io.BytesIO(data)) as img:
                image_format = img.format
                img.verify()
        except (UnidentifiedImageError, Image.DecompressionBombError,
                OSError, SyntaxError, ValueError) as e:
            logger.warning("Rejected undecodable upload: %s", e)
            raise InvalidImageError("File is not a readable image") from e

        if image_format not in SecurityValidator.ALLOWED_FORMATS:
            raise InvalidImageError("Only JPEG, PNG, and WebP images are allowed")

        return image_format

    @staticmethod
    def sanitize_filename(filename: str) -> str:
        """
        Sanitize filename to prevent injection attacks
        """
        # Remove path separators
        filename = filename.replace('/', '_').replace('\\', '_')

        # Remove special characters
        filename = re.sub(r'[^\w\s.-]', '', filename)

        # Limit length
        if len(filename) > 255:
            name, ext = os.path.splitext(filename)
            filename = name[:250] + ext

        return filename

    @staticmethod
    def resolve_within(root: Path, relative_name: str) -> Path:
        """
        Resolve a stored name under root, refusing anything that escapes it
        """
        if not relative_name or Path(relative_name).is_absolute():
            raise ValueError(f"Invalid stored name: {relative_name!r}")

        root = Path(root).resolve()
        candidate = (root / relative_name).resolve()

        if not candidate.is_relative_to(root) or candidate == root:
            raise ValueError(f"Stored name escapes storage root: {relative_name!r}")

        return candidate
