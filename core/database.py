# core/database.py

import sqlite3
import threading
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from core.models import (
    CustomerFilter,
    CustomerPage,
    CustomerRecord,
    CustomerStatus,
    ProgramType,
    EDITABLE_FIELDS,
    ENUM_FIELDS,
)
from utils.date_utils import resolve_date_range, parse_iso_date

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


class CustomerDatabase:
    """
    SQLite table of customer records

    The handle is opened explicitly at process start and closed at shutdown.
    One connection is shared between request threads; statements are
    serialised with a lock.
    """

    def __init__(self, db_path: str = "data/studio.db"):
        self.db_path = db_path
        self.conn = None
        self._lock = threading.RLock()

    def open(self) -> 'CustomerDatabase':
        """Connect and create the schema if needed"""
        if self.conn is not None:
            return self

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._initialize_database()
        logger.info("Opened customer database at %s", self.db_path)
        return self

    def close(self):
        """Close database connection"""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
                logger.info("Closed customer database")

    def __enter__(self) -> 'CustomerDatabase':
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def is_open(self) -> bool:
        return self.conn is not None

    def _initialize_database(self):
        """Create database schema"""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS customers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                customer_id TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                phone TEXT NOT NULL,
                email TEXT,
                work_date TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'waiting',
                program_type TEXT NOT NULL DEFAULT 'painting',
                work_image TEXT,
                customer_image TEXT,
                is_group INTEGER NOT NULL DEFAULT 0,
                group_id TEXT,
                group_size INTEGER,
                contact_status TEXT NOT NULL DEFAULT 'not_contacted',
                storage_location TEXT,
                pickup_status TEXT NOT NULL DEFAULT 'not_picked_up',
                notes TEXT,
                created_at TEXT NOT NULL
            )
        """)

        # Indexing for faster queries
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_customers_created ON customers(created_at)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_customers_work_date ON customers(work_date)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_customers_status ON customers(status)
        """)

        self.conn.commit()

    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise RuntimeError("Customer database is not open")
        return self.conn

    # Writes

    def create(self, fields: Dict[str, Any],
               created_at: datetime = None) -> CustomerRecord:
        """
        Insert a customer and generate its business identifier

        Args:
            fields: Editable customer fields; name, phone and work_date required
            created_at: Registration time, defaults to now

        Returns:
            The stored record
        """
        data = self._clean_fields(fields, creating=True)
        created_at = created_at or datetime.now()
        program = ProgramType(data.get('program_type', ProgramType.PAINTING.value))

        with self._lock:
            conn = self._connection()
            data['customer_id'] = self._next_customer_id(
                parse_iso_date(data['work_date']), program
            )
            data['created_at'] = created_at.strftime(TIMESTAMP_FORMAT)

            columns = ", ".join(data)
            placeholders = ", ".join("?" for _ in data)
            cursor = conn.execute(
                f"INSERT INTO customers ({columns}) VALUES ({placeholders})",
                tuple(data.values())
            )
            conn.commit()
            record = self.get(cursor.lastrowid)

        logger.info("Created customer %s (id=%d)", record.customer_id, record.id)
        return record

    def update(self, customer_id: int,
               fields: Dict[str, Any]) -> Optional[CustomerRecord]:
        """Apply a partial update; returns None for an unknown id"""
        data = self._clean_fields(fields, creating=False)

        with self._lock:
            if self.get(customer_id) is None:
                return None

            if data:
                assignments = ", ".join(f"{column} = ?" for column in data)
                self._connection().execute(
                    f"UPDATE customers SET {assignments} WHERE id = ?",
                    (*data.values(), customer_id)
                )
                self._connection().commit()

            return self.get(customer_id)

    def update_status(self, customer_id: int,
                      status: str) -> Optional[CustomerRecord]:
        """Move a job to another workflow status"""
        status = CustomerStatus(status).value
        return self.update(customer_id, {'status': status})

    def delete(self, customer_id: int) -> bool:
        with self._lock:
            cursor = self._connection().execute(
                "DELETE FROM customers WHERE id = ?", (customer_id,)
            )
            self._connection().commit()

        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted customer id=%d", customer_id)
        return deleted

    # Reads

    def get(self, customer_id: int) -> Optional[CustomerRecord]:
        rows = self._query("SELECT * FROM customers WHERE id = ?", (customer_id,))
        return rows[0] if rows else None

    def get_by_business_id(self, business_id: str) -> Optional[CustomerRecord]:
        rows = self._query(
            "SELECT * FROM customers WHERE customer_id = ?", (business_id,)
        )
        return rows[0] if rows else None

    def list(self) -> List[CustomerRecord]:
        """All customers, newest registration first"""
        return self._query(
            "SELECT * FROM customers ORDER BY created_at DESC, id DESC"
        )

    def count(self) -> int:
        with self._lock:
            row = self._connection().execute(
                "SELECT COUNT(*) FROM customers"
            ).fetchone()
        return row[0]

    def search(self, text: str) -> List[CustomerRecord]:
        """Case-insensitive match on name, phone, email or business id"""
        text = (text or "").strip()
        if not text:
            return []

        clause, params = self._search_clause(text)
        return self._query(
            f"SELECT * FROM customers WHERE {clause} "
            "ORDER BY created_at DESC, id DESC",
            params
        )

    def list_paginated(self, page: int = 1, page_size: int = 20,
                       customer_filter: CustomerFilter = None,
                       now: datetime = None) -> CustomerPage:
        """
        One page of customers matching a filter

        Page numbers start at 1; page_size is clamped to [1, 100].
        """
        page = max(1, int(page))
        page_size = min(MAX_PAGE_SIZE, max(1, int(page_size)))
        customer_filter = customer_filter or CustomerFilter()

        clauses = []
        params: List[Any] = []

        window = resolve_date_range(customer_filter.date_range, now)
        if window:
            clauses.append("created_at >= ? AND created_at < ?")
            params.extend(w.strftime(TIMESTAMP_FORMAT) for w in window)

        if customer_filter.status:
            clauses.append("status = ?")
            params.append(CustomerStatus(customer_filter.status).value)

        if customer_filter.program_type:
            clauses.append("program_type = ?")
            params.append(ProgramType(customer_filter.program_type).value)

        if customer_filter.search and customer_filter.search.strip():
            clause, search_params = self._search_clause(customer_filter.search.strip())
            clauses.append(clause)
            params.extend(search_params)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._lock:
            total = self._connection().execute(
                f"SELECT COUNT(*) FROM customers {where}", params
            ).fetchone()[0]

            customers = self._query(
                f"SELECT * FROM customers {where} "
                "ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (*params, page_size, (page - 1) * page_size)
            )

        return CustomerPage(customers=customers, total=total,
                            page=page, page_size=page_size)

    def list_today(self, now: datetime = None) -> List[CustomerRecord]:
        """Customers registered today"""
        start, end = resolve_date_range('today', now)
        return self.list_created_between(start, end)

    def list_created_between(self, start: Optional[datetime],
                             end: Optional[datetime]) -> List[CustomerRecord]:
        """Customers registered in [start, end); None leaves a side open"""
        clauses = []
        params = []
        if start is not None:
            clauses.append("created_at >= ?")
            params.append(start.strftime(TIMESTAMP_FORMAT))
        if end is not None:
            clauses.append("created_at < ?")
            params.append(end.strftime(TIMESTAMP_FORMAT))

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return self._query(
            f"SELECT * FROM customers {where} ORDER BY created_at DESC, id DESC",
            params
        )

    def list_work_between(self, start: date, end: date) -> List[CustomerRecord]:
        """Customers whose work date falls in [start, end] inclusive"""
        return self._query(
            "SELECT * FROM customers WHERE work_date >= ? AND work_date <= ? "
            "ORDER BY work_date, id",
            (start.isoformat(), end.isoformat())
        )

    def list_recent_with_images(self, since: datetime) -> List[CustomerRecord]:
        """Customers registered since a time that have at least one photo"""
        return self._query(
            "SELECT * FROM customers WHERE created_at >= ? "
            "AND (customer_image IS NOT NULL OR work_image IS NOT NULL) "
            "ORDER BY created_at DESC, id DESC",
            (since.strftime(TIMESTAMP_FORMAT),)
        )

    def image_references(self) -> Set[str]:
        """Every stored image name referenced by a record"""
        names = set()
        for record in self.list():
            names.update(record.image_names())
        return names

    # Helpers

    def _query(self, sql: str, params: Iterable[Any] = ()) -> List[CustomerRecord]:
        with self._lock:
            rows = self._connection().execute(sql, tuple(params)).fetchall()
        return [CustomerRecord.from_row(row) for row in rows]

    @staticmethod
    def _search_clause(text: str):
        escaped = (text.lower()
                   .replace("\\", "\\\\")
                   .replace("%", "\\%")
                   .replace("_", "\\_"))
        pattern = f"%{escaped}%"
        clause = (
            "(LOWER(name) LIKE ? ESCAPE '\\' OR phone LIKE ? ESCAPE '\\' "
            "OR LOWER(COALESCE(email, '')) LIKE ? ESCAPE '\\' "
            "OR LOWER(customer_id) LIKE ? ESCAPE '\\')"
        )
        return clause, [pattern] * 4

    def _next_customer_id(self, work_date: date, program: ProgramType) -> str:
        """YYMMDD-<program code>-NNN, numbered per date and program"""
        prefix = f"{work_date:%y%m%d}-{program.code}-"
        rows = self._connection().execute(
            "SELECT customer_id FROM customers WHERE customer_id LIKE ?",
            (prefix + "%",)
        ).fetchall()

        highest = 0
        for (existing,) in rows:
            suffix = existing[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))

        return f"{prefix}{highest + 1:03d}"

    @staticmethod
    def _clean_fields(fields: Dict[str, Any], creating: bool) -> Dict[str, Any]:
        """Keep editable columns and normalise their values"""
        data = {}
        for key, value in fields.items():
            if key not in EDITABLE_FIELDS:
                continue

            if isinstance(value, str):
                value = value.strip()

            if key in ENUM_FIELDS:
                value = ENUM_FIELDS[key](value).value
            elif key == 'work_date':
                value = CustomerDatabase._normalize_date(value)
            elif key == 'is_group':
                value = int(CustomerDatabase._to_bool(value))
            elif key == 'group_size':
                value = int(value) if value not in (None, "") else None
            elif key in ('name', 'phone'):
                if not value:
                    raise ValueError(f"{key} is required")
            elif value == "":
                value = None

            data[key] = value

        if creating:
            missing = [k for k in ('name', 'phone', 'work_date') if not data.get(k)]
            if missing:
                raise ValueError(f"Missing required fields: {', '.join(missing)}")

        return data

    @staticmethod
    def _normalize_date(value: Any) -> str:
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, str) and value:
            return parse_iso_date(value).isoformat()
        raise ValueError("work_date is required")

    @staticmethod
    def _to_bool(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ('true', '1', 'yes')
        return bool(value)
