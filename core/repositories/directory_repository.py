"""
Read access to the booking application's tables.

Users, courses, schedules, enrollments and appointments are owned by the
booking app; this repository only selects from them and maps columns onto
the directory models.
"""

from datetime import date
from typing import Any
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.models import (
    Appointment, CompletedCourse, Course, CourseSchedule, Enrollment, Recipient,
)

# Enrollment states that count as an in-flight booking for suppression
ACTIVE_ENROLLMENT_STATUSES = ("pending", "confirmed")

# Enrollment states whose schedule end date means the course was taken
COMPLETED_ENROLLMENT_STATUSES = ("confirmed", "completed")


def _recipient_columns(prefix: str = "") -> str:
    return f"""
        u.id AS {prefix}id, u.first_name AS {prefix}first_name,
        u.last_name AS {prefix}last_name, u.email AS {prefix}email,
        u.phone AS {prefix}phone, u.street_address AS {prefix}street_address,
        u.city AS {prefix}city, u.state AS {prefix}state, u.zip_code AS {prefix}zip_code,
        COALESCE(u.preferred_contact_methods, '{{}}') AS {prefix}preferred_contact_methods,
        COALESCE(u.sms_consent, FALSE) AS {prefix}sms_consent,
        COALESCE(u.enable_sms_reminders, FALSE) AS {prefix}sms_reminders_enabled,
        u.concealed_carry_license_expiration::date AS {prefix}license_expiration,
        u.concealed_carry_license_issued::date AS {prefix}license_issued
    """


def _course_columns(prefix: str = "") -> str:
    return f"""
        c.id AS {prefix}id, c.title AS {prefix}title,
        c.description AS {prefix}description, COALESCE(c.price, 0) AS {prefix}price,
        cat.name AS {prefix}category, c.course_type AS {prefix}course_type
    """


def _schedule_columns(prefix: str = "") -> str:
    return f"""
        s.id AS {prefix}id, s.course_id AS {prefix}course_id,
        s.start_date::date AS {prefix}start_date, s.end_date::date AS {prefix}end_date,
        s.start_time AS {prefix}start_time, s.end_time AS {prefix}end_time,
        s.arrival_time AS {prefix}arrival_time, s.location AS {prefix}location,
        s.day_of_week AS {prefix}day_of_week, s.range_name AS {prefix}range_name,
        s.classroom_name AS {prefix}classroom_name,
        s.google_maps_link AS {prefix}google_maps_link,
        COALESCE(s.max_spots, 0) AS {prefix}max_spots,
        COALESCE(s.available_spots, 0) AS {prefix}available_spots
    """


def _prefixed(row: dict[str, Any], prefix: str) -> dict[str, Any]:
    """Pull `prefix`-ed keys out of a joined row."""
    return {
        key[len(prefix):]: value for key, value in row.items() if key.startswith(prefix)
    }


class DirectoryRepository:
    """Read-only lookups over booking entities."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def get_recipient(self, user_id: UUID) -> Recipient | None:
        row = self.postgres.execute_single(
            f"SELECT {_recipient_columns()} FROM users u WHERE u.id = %s",
            (user_id,)
        )
        if row is None:
            return None
        return Recipient.model_validate(row)

    def get_course(self, course_id: UUID) -> Course | None:
        row = self.postgres.execute_single(
            f"""
            SELECT {_course_columns()}
            FROM courses c
            LEFT JOIN categories cat ON cat.id = c.category_id
            WHERE c.id = %s
            """,
            (course_id,)
        )
        if row is None:
            return None
        return Course.model_validate(row)

    def get_schedule(self, schedule_id: UUID) -> CourseSchedule | None:
        row = self.postgres.execute_single(
            f"SELECT {_schedule_columns()} FROM course_schedules s WHERE s.id = %s",
            (schedule_id,)
        )
        if row is None:
            return None
        return CourseSchedule.model_validate(row)

    def get_enrollment(self, enrollment_id: UUID) -> Enrollment | None:
        row = self.postgres.execute_single(
            """
            SELECT id, student_id, course_id, schedule_id, status, payment_status,
                   COALESCE(amount_paid, 0) AS amount_paid,
                   COALESCE(remaining_balance, 0) AS remaining_balance,
                   created_at
            FROM enrollments
            WHERE id = %s
            """,
            (enrollment_id,)
        )
        if row is None:
            return None
        return Enrollment.model_validate(row)

    def get_appointment(self, appointment_id: UUID) -> Appointment | None:
        row = self.postgres.execute_single(
            """
            SELECT a.id, a.student_id, a.instructor_id,
                   t.title AS type_title, t.duration_minutes,
                   COALESCE(t.price, 0) AS price,
                   a.start_time, a.end_time
            FROM instructor_appointments a
            JOIN appointment_types t ON t.id = a.appointment_type_id
            WHERE a.id = %s
            """,
            (appointment_id,)
        )
        if row is None:
            return None
        return Appointment.model_validate(row)

    def list_form_responses(self, enrollment_id: UUID) -> dict[str, str]:
        """Questionnaire answers keyed by form field id."""
        rows = self.postgres.execute(
            """
            SELECT field_id, response
            FROM student_form_responses
            WHERE enrollment_id = %s
            """,
            (enrollment_id,)
        )
        return {str(row["field_id"]): row["response"] for row in rows}

    # -------------------------------------------------------------------------
    # Milestone sources
    # -------------------------------------------------------------------------

    def list_students_with_license_data(self) -> list[Recipient]:
        """Students with at least one license date on file."""
        rows = self.postgres.execute(
            f"""
            SELECT {_recipient_columns()}
            FROM users u
            WHERE u.role = 'student'
              AND (u.concealed_carry_license_expiration IS NOT NULL
                   OR u.concealed_carry_license_issued IS NOT NULL)
            ORDER BY u.id
            """
        )
        return [Recipient.model_validate(row) for row in rows]

    def has_active_enrollment(self, student_id: UUID, course_type: str) -> bool:
        row = self.postgres.execute_single(
            """
            SELECT 1 AS found
            FROM enrollments e
            JOIN courses c ON c.id = e.course_id
            WHERE e.student_id = %s
              AND c.course_type = %s
              AND e.status = ANY(%s)
            LIMIT 1
            """,
            (student_id, course_type, list(ACTIVE_ENROLLMENT_STATUSES))
        )
        return row is not None

    def next_available_course(
        self,
        course_type: str,
        after: date,
    ) -> tuple[Course, CourseSchedule] | None:
        """Earliest open schedule of an active course of this type starting after `after`."""
        row = self.postgres.execute_single(
            f"""
            SELECT {_course_columns("c_")}, {_schedule_columns("s_")}
            FROM course_schedules s
            JOIN courses c ON c.id = s.course_id
            LEFT JOIN categories cat ON cat.id = c.category_id
            WHERE c.course_type = %s
              AND c.is_active
              AND s.start_date::date > %s
              AND s.available_spots > 0
            ORDER BY s.start_date ASC
            LIMIT 1
            """,
            (course_type, after)
        )
        if row is None:
            return None
        return (
            Course.model_validate(_prefixed(row, "c_")),
            CourseSchedule.model_validate(_prefixed(row, "s_")),
        )

    def list_completed_courses(
        self,
        course_type: str,
        ended_on_or_after: date,
        ended_on_or_before: date,
    ) -> list[CompletedCourse]:
        """Students whose course of this type ended inside the window (inclusive)."""
        rows = self.postgres.execute(
            f"""
            SELECT {_recipient_columns("u_")}, {_course_columns("c_")}, {_schedule_columns("s_")}
            FROM enrollments e
            JOIN users u ON u.id = e.student_id
            JOIN courses c ON c.id = e.course_id
            LEFT JOIN categories cat ON cat.id = c.category_id
            JOIN course_schedules s ON s.id = e.schedule_id
            WHERE c.course_type = %s
              AND e.status = ANY(%s)
              AND s.end_date::date BETWEEN %s AND %s
            ORDER BY s.end_date ASC
            """,
            (course_type, list(COMPLETED_ENROLLMENT_STATUSES), ended_on_or_after, ended_on_or_before)
        )
        return [
            CompletedCourse(
                student=Recipient.model_validate(_prefixed(row, "u_")),
                course=Course.model_validate(_prefixed(row, "c_")),
                schedule=CourseSchedule.model_validate(_prefixed(row, "s_")),
            )
            for row in rows
        ]
