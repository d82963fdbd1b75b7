"""
Domain events for the notification engine.

Immutable event objects describing things that happened in the booking flow
or inside the engine. The booking side publishes what happened (an enrollment
was confirmed, an appointment was booked) and the trigger handler decides
whether a notification goes out; the engine publishes its own inconsistencies
(a refund that could not be written) so an alerting subscriber can page
someone.

Event Categories:
- BookingEvent: Enrollment and appointment lifecycle
- NotificationEvent: Engine-side outcomes (refund failure, milestone fired)

Events carry ids, not entities; handlers rebuild state through the
directory so templates see current values.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class NotifyEvent:
    """Base class for all engine events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# BOOKING EVENTS
# =============================================================================


@dataclass(frozen=True)
class BookingEvent(NotifyEvent):
    """Events raised by the booking application."""
    pass


@dataclass(frozen=True)
class EnrollmentConfirmed(BookingEvent):
    """A student's enrollment in a scheduled course was confirmed."""
    enrollment_id: UUID | None = None
    student_id: UUID | None = None
    course_id: UUID | None = None
    schedule_id: UUID | None = None

    # Trigger rows are keyed on this name
    trigger_name = "enrollment_confirmed"

    @classmethod
    def create(
        cls,
        enrollment_id: UUID,
        student_id: UUID,
        course_id: UUID,
        schedule_id: UUID | None = None,
    ) -> "EnrollmentConfirmed":
        return cls(
            enrollment_id=enrollment_id,
            student_id=student_id,
            course_id=course_id,
            schedule_id=schedule_id,
        )


@dataclass(frozen=True)
class AppointmentBooked(BookingEvent):
    """A student booked a one-on-one appointment with an instructor."""
    appointment_id: UUID | None = None
    student_id: UUID | None = None

    trigger_name = "appointment_booked"

    @classmethod
    def create(cls, appointment_id: UUID, student_id: UUID) -> "AppointmentBooked":
        return cls(appointment_id=appointment_id, student_id=student_id)


# =============================================================================
# NOTIFICATION EVENTS
# =============================================================================


@dataclass(frozen=True)
class NotificationEvent(NotifyEvent):
    """Events raised by the engine itself."""
    pass


@dataclass(frozen=True)
class RefundFailed(NotificationEvent):
    """
    A compensating refund could not be written.

    The account is short by `amount` until someone reconciles it by hand.
    """
    account_id: UUID | None = None
    debit_transaction_id: UUID | None = None
    delivery_id: UUID | None = None
    amount: int = 0
    error: str = ""

    @classmethod
    def create(
        cls,
        account_id: UUID,
        debit_transaction_id: UUID,
        delivery_id: UUID | None,
        amount: int,
        error: str,
    ) -> "RefundFailed":
        return cls(
            account_id=account_id,
            debit_transaction_id=debit_transaction_id,
            delivery_id=delivery_id,
            amount=amount,
            error=error,
        )


@dataclass(frozen=True)
class MilestoneFired(NotificationEvent):
    """The scheduler fired a milestone for an entity."""
    table: str = ""
    entity_id: UUID | None = None
    milestone_type: str = ""
    anchor_date: date | None = None
    results: tuple[Any, ...] = ()  # DeliveryResult per channel leg

    @classmethod
    def create(
        cls,
        table: str,
        entity_id: UUID,
        milestone_type: str,
        anchor_date: date,
        results: tuple[Any, ...] = (),
    ) -> "MilestoneFired":
        return cls(
            table=table,
            entity_id=entity_id,
            milestone_type=milestone_type,
            anchor_date=anchor_date,
            results=results,
        )
