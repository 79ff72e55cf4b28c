# api/schemas.py

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.models import CustomerStatus, ProgramType, ContactStatus, PickupStatus


class CustomerFields(BaseModel):
    """Editable customer fields; image fields take a data URL or a stored name"""
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    work_date: Optional[date] = None
    status: Optional[CustomerStatus] = None
    program_type: Optional[ProgramType] = None
    work_image: Optional[str] = None
    customer_image: Optional[str] = None
    is_group: Optional[bool] = None
    group_id: Optional[str] = None
    group_size: Optional[int] = Field(default=None, ge=1)
    contact_status: Optional[ContactStatus] = None
    storage_location: Optional[str] = None
    pickup_status: Optional[PickupStatus] = None
    notes: Optional[str] = None

    def to_fields(self) -> Dict[str, Any]:
        """Only the fields the client actually sent, enums as plain values"""
        return self.model_dump(mode='json', exclude_unset=True)


class CustomerCreate(CustomerFields):
    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    work_date: date


class StatusUpdate(BaseModel):
    status: CustomerStatus


class ImagePayload(BaseModel):
    """Base64 image, either bare or as a data URL"""
    image: str = Field(min_length=1)


class SearchOptions(BaseModel):
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    limit: Optional[int] = Field(default=None, ge=1, le=100)
    months: Optional[int] = Field(default=None, ge=1, le=120)


class ImageSearchPayload(SearchOptions):
    """Missing or empty image gives an empty result"""
    image: Optional[str] = None


class UploadResponse(BaseModel):
    filename: str
    url: str


class VisionTextResponse(BaseModel):
    text: Optional[str] = None
    fields: Optional[Dict[str, str]] = None


class SearchMatch(BaseModel):
    customer: Dict[str, Any]
    match_type: str
    similarity: float
    percent: int
    label: str
    high_confidence: bool
    image_url: Optional[str] = None


class ImageSearchResponse(BaseModel):
    results: List[SearchMatch] = Field(default_factory=list)
    candidates_scanned: int = 0
    failed_candidates: int = 0
    above_threshold: int = 0
    no_matches: bool = True
    message: Optional[str] = None


class SummaryResponse(BaseModel):
    basic_info: str
    work_history: str
    preferences: str
    notes: str
    recommendations: List[str]
    quick_summary: str


class ImageCheckResponse(BaseModel):
    database_images: List[str]
    actual_files: List[str]
    missing_files: List[str]
    orphan_files: List[str]
    total_in_database: int
    total_in_folder: int
