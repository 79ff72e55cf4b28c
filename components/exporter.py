# components/exporter.py

import io
import logging
import zipfile
from datetime import date, datetime
from pathlib import PurePosixPath
from typing import Iterable, Optional

import pandas as pd

from core.blob_store import ImageBlobStore
from core.database import CustomerDatabase
from core.models import CustomerRecord, CustomerStatus, MatchType, ProgramType
from utils.date_utils import resolve_date_range

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    ('customer_id', 'Customer ID'),
    ('name', 'Name'),
    ('phone', 'Phone'),
    ('email', 'Email'),
    ('work_date', 'Work Date'),
    ('status', 'Status'),
    ('program_type', 'Program Type'),
    ('is_group', 'Group'),
    ('group_id', 'Group ID'),
    ('group_size', 'Group Size'),
    ('contact_status', 'Contact Status'),
    ('storage_location', 'Storage Location'),
    ('pickup_status', 'Pickup Status'),
    ('notes', 'Notes'),
    ('work_image', 'Work Image'),
    ('customer_image', 'Customer Image'),
    ('created_at', 'Registered At'),
]


class CustomerExporter:
    """
    CSV export of customer records and ZIP archives of their photos
    """

    def __init__(self, database: CustomerDatabase, blob_store: ImageBlobStore):
        self.database = database
        self.blob_store = blob_store

    def export_csv(self, date_range: Optional[str] = 'all',
                   now: datetime = None) -> str:
        """Customers registered in a named range as CSV text"""
        window = resolve_date_range(date_range, now)
        if window:
            records = self.database.list_created_between(*window)
        else:
            records = self.database.list()

        logger.info("Exporting %d customers (range=%s)", len(records), date_range or 'all')
        return records_to_csv(records)

    def build_image_archive(self, start: date, end: date) -> bytes:
        """
        ZIP of every stored photo for work dates in [start, end]

        Entries are named <customer_id>/<role>.<ext>. Files that have gone
        missing are skipped.
        """
        if start > end:
            raise ValueError("Start date must be on or before end date")

        records = self.database.list_work_between(start, end)
        buffer = io.BytesIO()
        added = 0

        with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
            for record in records:
                for match_type in (MatchType.CUSTOMER, MatchType.WORK):
                    name = record.image_for(match_type)
                    if not name:
                        continue
                    try:
                        data = self.blob_store.read(name)
                    except (OSError, ValueError) as e:
                        logger.warning("Skipping %s for %s: %s",
                                       name, record.customer_id, e)
                        continue

                    suffix = PurePosixPath(name).suffix or '.jpg'
                    archive.writestr(f"{record.customer_id}/{match_type.value}{suffix}", data)
                    added += 1

        logger.info("Built image archive %s..%s with %d files", start, end, added)
        return buffer.getvalue()


def records_to_csv(records: Iterable[CustomerRecord]) -> str:
    """Render records as CSV with human-readable headers and labels"""
    rows = [
        {header: _csv_value(record, key) for key, header in CSV_COLUMNS}
        for record in records
    ]
    df = pd.DataFrame(rows, columns=[header for _, header in CSV_COLUMNS])
    return df.to_csv(index=False, lineterminator="\n")


def _csv_value(record: CustomerRecord, key: str):
    value = getattr(record, key)
    if value is None:
        return ""
    if key == 'status':
        return CustomerStatus(value).label
    if key == 'program_type':
        return ProgramType(value).label
    if key == 'is_group':
        return "Yes" if value else "No"
    if isinstance(value, datetime):
        return value.isoformat(sep=' ', timespec='seconds')
    if isinstance(value, date):
        return value.isoformat()
    return value

