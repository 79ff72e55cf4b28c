# components/profile_summary.py

from dataclasses import dataclass, field, asdict
from datetime import date
from typing import List

from core.models import CustomerRecord, CustomerStatus, ProgramType
from utils.date_utils import format_long_date

LARGE_GROUP_NOTE_SIZE = 5
LARGE_GROUP_STAFF_SIZE = 4


@dataclass
class ProfileSummary:
    """Readable overview of a customer for the detail view"""
    basic_info: str
    work_history: str
    preferences: str
    notes: str
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _status_label(status: str) -> str:
    try:
        return CustomerStatus(status).label
    except ValueError:
        return status


def _program_label(program_type: str) -> str:
    try:
        return ProgramType(program_type or ProgramType.PAINTING.value).label
    except ValueError:
        return program_type


def _relative_days(days: int) -> str:
    if days > 0:
        return f"in {days} days"
    if days == 0:
        return "today"
    return f"{abs(days)} days ago"


def generate_summary(customer: CustomerRecord, today: date = None) -> ProfileSummary:
    """Build the profile summary as of `today`"""
    today = today or date.today()
    days_since_registration = (today - customer.created_at.date()).days
    days_until_work = (customer.work_date - today).days
    program = _program_label(customer.program_type)
    group_size = customer.group_size or 0

    who = f"group of {group_size} people" if customer.is_group else "individual"
    basic_info = (
        f"{customer.name} is a {who} customer registered on "
        f"{format_long_date(customer.created_at.date())}. Contact: {customer.phone}"
    )
    if customer.email:
        basic_info += f", Email: {customer.email}"
    basic_info += f". Program: {program}."

    work_history = (
        f"Scheduled work date: {format_long_date(customer.work_date)} "
        f"({_relative_days(days_until_work)}). "
        f"Current status: {_status_label(customer.status)}"
    )

    if customer.is_group:
        preferences = f"Group booking with {group_size} participants. "
        if customer.group_id:
            preferences += f"Group ID: {customer.group_id}. "
        preferences += f"Enrolled in {program} program."
    else:
        preferences = f"Individual booking for {program} program."

    return ProfileSummary(
        basic_info=basic_info,
        work_history=work_history,
        preferences=preferences,
        notes=" ".join(_notes(customer, days_since_registration, days_until_work)),
        recommendations=_recommendations(customer, days_until_work),
    )


def _notes(customer: CustomerRecord, days_since_registration: int,
           days_until_work: int) -> List[str]:
    notes = []

    if days_since_registration == 0:
        notes.append("New customer registered today.")
    elif 0 < days_since_registration <= 7:
        notes.append(f"New customer registered {days_since_registration} days ago.")

    if days_until_work < 0:
        notes.append("Scheduled work date has passed. Status update may be needed.")
    elif days_until_work == 0:
        notes.append("Scheduled work is today.")
    elif days_until_work <= 3:
        notes.append("Work date is approaching soon.")

    if customer.is_group and (customer.group_size or 0) >= LARGE_GROUP_NOTE_SIZE:
        notes.append("Large group booking requires adequate preparation.")

    if not customer.email:
        notes.append("No email address on file. Consider collecting for better communication.")

    return notes


def _recommendations(customer: CustomerRecord, days_until_work: int) -> List[str]:
    recommendations = []

    if days_until_work <= 1 and customer.status == CustomerStatus.WAITING.value:
        recommendations.append("Consider updating status to 'In Progress'")

    if customer.is_group:
        recommendations.append("Prepare adequate workspace and materials for group session")
        if (customer.group_size or 0) >= LARGE_GROUP_STAFF_SIZE:
            recommendations.append("Consider additional staff support for large group")

    if not customer.email:
        recommendations.append("Collect email address for improved communication")

    if days_until_work > 7:
        recommendations.append("Schedule reminder contact before work date")

    if customer.status == CustomerStatus.COMPLETED.value:
        recommendations.extend([
            "Take photos of completed work",
            "Request customer feedback and reviews",
            "Offer return visit discount or loyalty program",
        ])

    if customer.program_type == ProgramType.ADVANCED_CERAMIC.value:
        recommendations.append("Ensure kiln schedule and advanced tools are available")
    elif customer.program_type == ProgramType.ONE_TIME_CERAMIC.value:
        recommendations.append("Prepare beginner-friendly ceramic tools and guidance")

    return recommendations


def quick_summary(customer: CustomerRecord, today: date = None) -> str:
    """One line: party size, program, status, timing"""
    today = today or date.today()
    days_until_work = (customer.work_date - today).days

    party = f"{customer.group_size or 0} people" if customer.is_group else "Individual"
    if days_until_work > 0:
        timing = f"{days_until_work} days until work"
    elif days_until_work == 0:
        timing = "Work scheduled today"
    else:
        timing = f"Work was {abs(days_until_work)} days ago"

    return " | ".join([
        party,
        _program_label(customer.program_type),
        _status_label(customer.status),
        timing,
    ])
