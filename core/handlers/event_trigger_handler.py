"""
Handler for booking events that have notification triggers attached.

On EnrollmentConfirmed / AppointmentBooked, sends every active trigger's
template for that event to the student, filtered by course and schedule.
"""

import logging
from typing import Callable

from core.events import AppointmentBooked, BookingEvent, EnrollmentConfirmed
from core.exceptions import NotificationError

logger = logging.getLogger(__name__)


def handle_event_trigger(trigger_repository, context_builder, delivery_service) -> Callable:
    """
    Factory that returns a booking event handler.

    Args:
        trigger_repository: TriggerRepository instance
        context_builder: VariableContextBuilder instance
        delivery_service: DeliveryService instance

    Returns:
        Handler callable to subscribe for EnrollmentConfirmed and AppointmentBooked
    """

    def handler(event: BookingEvent):
        triggers = trigger_repository.list_active_for_event(event.trigger_name)
        if not triggers:
            return

        if isinstance(event, EnrollmentConfirmed):
            course_id, schedule_id = event.course_id, event.schedule_id
            build_args = dict(
                recipient_id=event.student_id,
                course_id=event.course_id,
                schedule_id=event.schedule_id,
                enrollment_id=event.enrollment_id,
            )
        elif isinstance(event, AppointmentBooked):
            course_id, schedule_id = None, None
            build_args = dict(
                recipient_id=event.student_id,
                appointment_id=event.appointment_id,
            )
        else:
            logger.warning(f"No trigger mapping for {event.__class__.__name__}")
            return

        matching = [t for t in triggers if t.applies_to(course_id, schedule_id)]
        if not matching:
            return

        # Built once; every matching trigger goes to the same student
        ctx = context_builder.build(**build_args)

        for trigger in matching:
            try:
                result = delivery_service.send_one(
                    trigger.template_id,
                    event.student_id,
                    ctx,
                    trigger_event=event.trigger_name,
                )
            except NotificationError as e:
                logger.error(f"Trigger {trigger.id} for {event.trigger_name} misconfigured: {e}")
                continue

            if not result.success:
                logger.warning(
                    f"Trigger {trigger.id} for {event.trigger_name} did not send "
                    f"to {event.student_id}: {result.outcome.value} ({result.error})"
                )

    return handler
