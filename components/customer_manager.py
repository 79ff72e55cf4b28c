# components/customer_manager.py

from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple, Union
import logging

from core.blob_store import ImageBlobStore
from core.database import CustomerDatabase
from core.models import CustomerRecord, MatchType
from security.input_validation import InvalidImageError, SecurityValidator
from utils.date_utils import parse_iso_date
from utils.image_utils import decode_base64_image, is_data_url

logger = logging.getLogger(__name__)

ImageInput = Union[bytes, str, None]

IMAGE_ROLES = {
    'work_image': MatchType.WORK,
    'customer_image': MatchType.CUSTOMER,
}


class CustomerManager:
    """
    Intake and management flows: customer records together with their photos

    Image fields accept raw bytes, a data URL (camera capture), a stored name
    returned earlier by the upload endpoint, or None/"" to leave or clear it.
    """

    def __init__(self, database: CustomerDatabase, blob_store: ImageBlobStore):
        self.database = database
        self.blob_store = blob_store

    def create_customer(self, fields: Dict[str, Any],
                        created_at: datetime = None) -> CustomerRecord:
        """Register a customer and store any photos that came with the form"""
        fields = dict(fields)
        images = self._pop_images(fields)

        # Reject bad photos before anything is written
        pending = {column: self._coerce_image(value) for column, value in images.items()}

        record = self.database.create(fields, created_at=created_at)

        updates = {}
        saved = []
        try:
            for column, (kind, payload) in pending.items():
                if kind == 'bytes':
                    name = self.blob_store.save(
                        payload, IMAGE_ROLES[column],
                        customer_id=record.customer_id,
                        work_date=record.work_date
                    )
                    saved.append(name)
                    updates[column] = name
                elif kind == 'ref':
                    updates[column] = payload
        except Exception:
            logger.exception("Storing photos for %s failed; rolling back", record.customer_id)
            for name in saved:
                self.blob_store.delete(name)
            self.database.delete(record.id)
            raise

        if updates:
            record = self.database.update(record.id, updates)

        return record

    def update_customer(self, customer_id: int,
                        fields: Dict[str, Any]) -> Optional[CustomerRecord]:
        """
        Partial update; a replaced or cleared photo's old file is deleted
        after the record points at the new one
        """
        existing = self.database.get(customer_id)
        if existing is None:
            return None

        fields = dict(fields)
        images = self._pop_images(fields)
        pending = {column: self._coerce_image(value) for column, value in images.items()}

        work_date = existing.work_date
        new_date = fields.get('work_date')
        if isinstance(new_date, datetime):
            work_date = new_date.date()
        elif isinstance(new_date, date):
            work_date = new_date
        elif isinstance(new_date, str) and new_date.strip():
            work_date = parse_iso_date(new_date)

        replaced = []
        new_files = []
        for column, (kind, payload) in pending.items():
            old_name = getattr(existing, column)
            if kind == 'bytes':
                name = self.blob_store.save(
                    payload, IMAGE_ROLES[column],
                    customer_id=existing.customer_id,
                    work_date=work_date
                )
                new_files.append(name)
                fields[column] = name
            elif kind == 'ref':
                fields[column] = payload
            else:
                fields[column] = None

            if old_name and old_name != fields[column]:
                replaced.append(old_name)

        try:
            record = self.database.update(customer_id, fields)
        except Exception:
            for name in new_files:
                self.blob_store.delete(name)
            raise

        for name in replaced:
            self.blob_store.delete(name)

        return record

    def update_status(self, customer_id: int, status: str) -> Optional[CustomerRecord]:
        return self.database.update_status(customer_id, status)

    def delete_customer(self, customer_id: int) -> bool:
        """Delete a record, then its photos (photo errors are only logged)"""
        existing = self.database.get(customer_id)
        if existing is None:
            return False

        deleted = self.database.delete(customer_id)
        if deleted:
            for name in existing.image_names():
                self.blob_store.delete(name)
        return deleted

    def store_upload(self, image_bytes: bytes, role: str) -> Tuple[str, str]:
        """Save a standalone upload; returns (stored name, URL)"""
        name = self.blob_store.save(image_bytes, MatchType(role))
        return name, self.blob_store.url(name)

    def check_images(self) -> Dict[str, Any]:
        """Compare photo references in the table with files on disk"""
        referenced = self.database.image_references()
        actual = set(self.blob_store.list_files())

        missing = sorted(name for name in referenced if not self.blob_store.exists(name))
        orphaned = sorted(actual - referenced)

        return {
            'database_images': sorted(referenced),
            'actual_files': sorted(actual),
            'missing_files': missing,
            'orphan_files': orphaned,
            'total_in_database': len(referenced),
            'total_in_folder': len(actual),
        }

    @staticmethod
    def _pop_images(fields: Dict[str, Any]) -> Dict[str, ImageInput]:
        return {column: fields.pop(column) for column in IMAGE_ROLES if column in fields}

    def _coerce_image(self, value: ImageInput) -> Tuple[str, Any]:
        """Classify an image field value as ('bytes', data), ('ref', name) or ('clear', None)"""
        if value is None or value == "" or value == b"":
            return 'clear', None

        if isinstance(value, (bytes, bytearray)):
            data = bytes(value)
        elif is_data_url(value):
            try:
                data = decode_base64_image(value)
            except ValueError as e:
                raise InvalidImageError(str(e)) from e
        elif isinstance(value, str):
            if not self.blob_store.exists(value):
                raise InvalidImageError(f"Unknown image reference: {value}")
            return 'ref', value
        else:
            raise InvalidImageError("Unsupported image value")

        SecurityValidator.validate_image_bytes(data, self.blob_store.max_upload_bytes)
        return 'bytes', data
