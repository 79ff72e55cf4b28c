# core/models.py

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class CustomerStatus(str, Enum):
    """Job workflow, in order"""
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    COMPLETED = "completed"

    @property
    def label(self) -> str:
        return self.value.replace('_', ' ').title()


class ProgramType(str, Enum):
    PAINTING = "painting"
    ONE_TIME_CERAMIC = "one_time_ceramic"
    ADVANCED_CERAMIC = "advanced_ceramic"

    @property
    def code(self) -> str:
        """Letter used in the business identifier"""
        return {
            ProgramType.PAINTING: "P",
            ProgramType.ONE_TIME_CERAMIC: "C",
            ProgramType.ADVANCED_CERAMIC: "A",
        }[self]

    @property
    def label(self) -> str:
        return {
            ProgramType.PAINTING: "Painting",
            ProgramType.ONE_TIME_CERAMIC: "One-Time Ceramic",
            ProgramType.ADVANCED_CERAMIC: "Advanced Ceramic",
        }[self]


class ContactStatus(str, Enum):
    NOT_CONTACTED = "not_contacted"
    CONTACTED = "contacted"
    CONFIRMED = "confirmed"


class PickupStatus(str, Enum):
    NOT_PICKED_UP = "not_picked_up"
    PICKED_UP = "picked_up"


class MatchType(str, Enum):
    """Which stored photo of a record a search candidate comes from"""
    CUSTOMER = "customer"  # Intake form photo
    WORK = "work"          # Finished artwork photo

    @property
    def image_field(self) -> str:
        return "customer_image" if self is MatchType.CUSTOMER else "work_image"


DATE_RANGES = ("today", "week", "month", "all")

# Columns a caller may set; id, customer_id and created_at are generated
EDITABLE_FIELDS = (
    "name", "phone", "email", "work_date", "status", "program_type",
    "work_image", "customer_image", "is_group", "group_id", "group_size",
    "contact_status", "storage_location", "pickup_status", "notes",
)

ENUM_FIELDS = {
    "status": CustomerStatus,
    "program_type": ProgramType,
    "contact_status": ContactStatus,
    "pickup_status": PickupStatus,
}


@dataclass
class CustomerRecord:
    """One walk-in customer and their job"""
    id: int
    customer_id: str
    name: str
    phone: str
    work_date: date
    created_at: datetime
    email: Optional[str] = None
    status: str = CustomerStatus.WAITING.value
    program_type: str = ProgramType.PAINTING.value
    work_image: Optional[str] = None
    customer_image: Optional[str] = None
    is_group: bool = False
    group_id: Optional[str] = None
    group_size: Optional[int] = None
    contact_status: str = ContactStatus.NOT_CONTACTED.value
    storage_location: Optional[str] = None
    pickup_status: str = PickupStatus.NOT_PICKED_UP.value
    notes: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> 'CustomerRecord':
        """Build a record from a sqlite3.Row or mapping"""
        data = dict(row)
        data['work_date'] = date.fromisoformat(data['work_date'])
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['is_group'] = bool(data.get('is_group'))
        return cls(**data)

    def image_for(self, match_type: MatchType) -> Optional[str]:
        return getattr(self, match_type.image_field)

    def image_names(self) -> List[str]:
        return [name for name in (self.customer_image, self.work_image) if name]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['work_date'] = self.work_date.isoformat()
        data['created_at'] = self.created_at.isoformat(timespec='seconds')
        return data


@dataclass
class CustomerFilter:
    """Filter for paginated listing"""
    date_range: Optional[str] = None
    status: Optional[str] = None
    program_type: Optional[str] = None
    search: Optional[str] = None


@dataclass
class CustomerPage:
    customers: List[CustomerRecord] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            'customers': [c.to_dict() for c in self.customers],
            'total': self.total,
            'page': self.page,
            'page_size': self.page_size,
            'total_pages': self.total_pages,
        }
