"""
Variable context for template resolution.

A VariableContext is a read-only tree: section name -> {field: scalar}.
It is rebuilt from current entity state for every send and never stored.

VariableContextBuilder is the one place that knows how booking entities map
onto template variables; reminder jobs, event triggers and manual sends all
go through it.
"""

import logging
from collections.abc import Iterator, Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any
from uuid import UUID

from core.config import CompanyInfo
from core.exceptions import UnresolvedContext
from core.models import Appointment, Course, CourseSchedule, Enrollment, Recipient
from core.repositories.directory_repository import DirectoryRepository
from utils.timezone import format_clock_time, format_us_date, local_today, to_local

logger = logging.getLogger(__name__)

Scalar = str | int | float | None


class VariableContext(Mapping):
    """
    Immutable section tree.

    Usage:
        ctx = VariableContext({"student": {"firstName": "Ana"}})
        ctx = ctx.with_section("course", {"name": "Basic Pistol"})
        resolve("Hi {{firstName}}", ctx)
    """

    __slots__ = ("_sections",)

    def __init__(self, sections: Mapping[str, Mapping[str, Scalar]] | None = None):
        frozen = {}
        for name, fields in (sections or {}).items():
            frozen[name] = MappingProxyType(dict(fields))
        self._sections = MappingProxyType(frozen)

    def __getitem__(self, name: str) -> Mapping[str, Scalar]:
        return self._sections[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._sections)

    def __len__(self) -> int:
        return len(self._sections)

    def __repr__(self) -> str:
        return f"VariableContext({self.to_dict()!r})"

    def with_section(self, name: str, fields: Mapping[str, Scalar]) -> "VariableContext":
        """Copy with `name` replaced wholesale."""
        sections = self.to_dict()
        sections[name] = dict(fields)
        return VariableContext(sections)

    def merge(self, other: Mapping[str, Mapping[str, Scalar]] | None) -> "VariableContext":
        """
        Copy overlaid with other, section by section.

        Fields in `other` win; fields only present here are kept.
        """
        if not other:
            return self
        sections = self.to_dict()
        for name, fields in other.items():
            sections[name] = {**sections.get(name, {}), **fields}
        return VariableContext(sections)

    def to_dict(self) -> dict[str, dict[str, Scalar]]:
        return {name: dict(fields) for name, fields in self._sections.items()}


# =============================================================================
# SECTION BUILDERS
# =============================================================================


def student_section(recipient: Recipient) -> dict[str, Scalar]:
    return {
        "name": recipient.full_name,
        "firstName": recipient.first_name or "",
        "lastName": recipient.last_name or "",
        "email": recipient.email or "",
        "phone": recipient.phone or "",
        "address": recipient.street_address or "",
        "city": recipient.city or "",
        "state": recipient.state or "",
        "zipCode": recipient.zip_code or "",
        "licenseNumber": "",
        "licenseExpiration": format_us_date(recipient.license_expiration),
    }


def course_section(course: Course, category: str | None = None) -> dict[str, Scalar]:
    return {
        "name": course.title,
        "description": course.description or "",
        "price": float(course.price),
        "category": category or course.category or "",
    }


def schedule_section(schedule: CourseSchedule) -> dict[str, Scalar]:
    return {
        "startDate": format_us_date(schedule.start_date),
        "endDate": format_us_date(schedule.end_date),
        "startTime": format_clock_time(schedule.start_time),
        "endTime": format_clock_time(schedule.end_time),
        "location": schedule.location or "",
        "maxSpots": schedule.max_spots,
        "availableSpots": schedule.available_spots,
        "dayOfWeek": schedule.day_of_week or "",
        "arrivalTime": format_clock_time(schedule.arrival_time),
        "rangeName": schedule.range_name or "",
        "classroomName": schedule.classroom_name or "",
        "googleMapsLink": schedule.google_maps_link or "",
    }


def enrollment_section(enrollment: Enrollment) -> dict[str, Scalar]:
    return {
        "paymentStatus": enrollment.payment_status,
        "amountPaid": float(enrollment.amount_paid),
        "remainingBalance": float(enrollment.remaining_balance),
        "registrationDate": format_us_date(enrollment.created_at),
    }


def appointment_section(appointment: Appointment, tz_name: str) -> dict[str, Scalar]:
    start = to_local(appointment.start_time, tz_name)
    end = to_local(appointment.end_time, tz_name)
    return {
        "type": appointment.type_title,
        # "Monday, January 15, 2024"
        "date": f"{start:%A}, {start:%B} {start.day}, {start.year}",
        "time": f"{format_clock_time(start.time())} - {format_clock_time(end.time())}",
        "duration": f"{appointment.duration_minutes} minutes",
        "price": f"${appointment.price:.2f}",
    }


def instructor_section(instructor: Recipient) -> dict[str, Scalar]:
    return {
        "name": instructor.full_name,
        "firstName": instructor.first_name or "",
        "lastName": instructor.last_name or "",
        "email": instructor.email or "",
        "phone": instructor.phone or "",
    }


def system_section(company: CompanyInfo, tz_name: str, now: datetime | None = None) -> dict[str, Scalar]:
    return {
        "companyName": company.name,
        "companyPhone": company.phone,
        "companyEmail": company.email,
        "website": company.website,
        "websiteUrl": company.website_url,
        "currentDate": format_us_date(local_today(tz_name, now)),
    }


# =============================================================================
# BUILDER
# =============================================================================


class VariableContextBuilder:
    """Builds VariableContexts from entity ids via the directory."""

    def __init__(self, directory: DirectoryRepository, company: CompanyInfo, tz_name: str):
        self.directory = directory
        self.company = company
        self.tz_name = tz_name

    def system(self) -> VariableContext:
        """Context holding only the company/system section."""
        return VariableContext({"system": system_section(self.company, self.tz_name)})

    def build(
        self,
        recipient_id: UUID | None = None,
        course_id: UUID | None = None,
        schedule_id: UUID | None = None,
        enrollment_id: UUID | None = None,
        appointment_id: UUID | None = None,
    ) -> VariableContext:
        """
        Load every referenced entity and assemble the context.

        Every id passed in is required: an id that does not load raises
        UnresolvedContext. Omitted ids just leave their section out.

        Raises:
            UnresolvedContext: If a referenced entity does not exist
        """
        sections: dict[str, Any] = {
            "system": system_section(self.company, self.tz_name),
        }

        if recipient_id is not None:
            sections["student"] = student_section(self._require(
                "recipient", recipient_id, self.directory.get_recipient(recipient_id)
            ))

        if course_id is not None:
            sections["course"] = course_section(self._require(
                "course", course_id, self.directory.get_course(course_id)
            ))

        if schedule_id is not None:
            sections["schedule"] = schedule_section(self._require(
                "schedule", schedule_id, self.directory.get_schedule(schedule_id)
            ))

        if enrollment_id is not None:
            enrollment = self._require(
                "enrollment", enrollment_id, self.directory.get_enrollment(enrollment_id)
            )
            sections["enrollment"] = enrollment_section(enrollment)
            answers = self.directory.list_form_responses(enrollment_id)
            if answers:
                sections["questionnaire"] = {
                    f"field_{field_id}": answer for field_id, answer in answers.items() if answer
                }

        if appointment_id is not None:
            appointment = self._require(
                "appointment", appointment_id, self.directory.get_appointment(appointment_id)
            )
            sections["appointment"] = appointment_section(appointment, self.tz_name)
            instructor = self._require(
                "instructor", appointment.instructor_id,
                self.directory.get_recipient(appointment.instructor_id),
            )
            sections["instructor"] = instructor_section(instructor)
            if "student" not in sections:
                student = self.directory.get_recipient(appointment.student_id)
                if student is not None:
                    sections["student"] = student_section(student)

        return VariableContext(sections)

    def for_reminder(
        self,
        recipient: Recipient,
        next_course: tuple[Course, CourseSchedule] | None,
        category: str,
    ) -> VariableContext:
        """Context for a lifecycle reminder: student, system and the next course offering."""
        sections: dict[str, Any] = {
            "student": student_section(recipient),
            "system": system_section(self.company, self.tz_name),
        }
        if next_course is not None:
            course, schedule = next_course
            sections["course"] = course_section(course, category=category)
            sections["schedule"] = schedule_section(schedule)
        return VariableContext(sections)

    @staticmethod
    def _require(entity: str, entity_id: UUID, value):
        if value is None:
            logger.warning(f"Cannot build variables: {entity} {entity_id} not found")
            raise UnresolvedContext(entity, entity_id)
        return value
