"""Read-side models for the booking entities notifications are built from.

These rows are owned by the booking application; the engine only reads them.
"""

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class Recipient(BaseModel):
    """A user who can receive notifications (student or instructor)."""

    id: UUID
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    street_address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    # Empty list means every channel is allowed
    preferred_contact_methods: list[str] = Field(default_factory=list)
    sms_consent: bool = False
    sms_reminders_enabled: bool = False
    license_expiration: date | None = None
    license_issued: date | None = None

    model_config = {"from_attributes": True}

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class Course(BaseModel):
    id: UUID
    title: str
    description: str | None = None
    price: Decimal = Decimal("0")
    category: str | None = None
    course_type: str | None = None  # "renewal", "refresher", ...

    model_config = {"from_attributes": True}


class CourseSchedule(BaseModel):
    id: UUID
    course_id: UUID
    start_date: date | None = None
    end_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    arrival_time: time | None = None
    location: str | None = None
    day_of_week: str | None = None
    range_name: str | None = None
    classroom_name: str | None = None
    google_maps_link: str | None = None
    max_spots: int = 0
    available_spots: int = 0

    model_config = {"from_attributes": True}


class Enrollment(BaseModel):
    id: UUID
    student_id: UUID
    course_id: UUID
    schedule_id: UUID | None = None
    status: str
    payment_status: str
    amount_paid: Decimal = Decimal("0")
    remaining_balance: Decimal = Decimal("0")
    created_at: datetime

    model_config = {"from_attributes": True}


class Appointment(BaseModel):
    id: UUID
    student_id: UUID
    instructor_id: UUID
    type_title: str
    duration_minutes: int
    price: Decimal = Decimal("0")
    start_time: datetime
    end_time: datetime

    model_config = {"from_attributes": True}


class CompletedCourse(BaseModel):
    """A student who finished a scheduled course, with the schedule's end date."""

    student: Recipient
    course: Course
    schedule: CourseSchedule
