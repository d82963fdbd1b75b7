"""
Schedule announcements for course "notify me" signups.

When a new schedule of a course is published, everyone who signed up to
hear about that course gets the announcement on the channel they chose:
email, SMS, or both. Each channel goes out as one bulk send through the
delivery service, and every signup's outcome is recorded against the
schedule so a repeated announcement only reaches signups still owed it.
"""

import logging
from uuid import UUID

from core.exceptions import UnresolvedContext
from core.models import (
    Channel, CourseSignup, DeliveryStatus, SignupNotificationResult,
)
from core.repositories.directory_repository import DirectoryRepository
from core.repositories.signup_repository import SignupRepository
from core.repositories.template_repository import TemplateRepository
from core.services.delivery_service import DeliveryService
from core.variables import VariableContextBuilder

logger = logging.getLogger(__name__)

# Template looked up per channel, like the milestone templates
SCHEDULE_ANNOUNCEMENT_TEMPLATE = "New Course Schedule Available"

TRIGGER_EVENT = "schedule_published"


class SignupNotificationService:
    """Announces new course schedules to the course's signups."""

    def __init__(
        self,
        signups: SignupRepository,
        directory: DirectoryRepository,
        templates: TemplateRepository,
        delivery: DeliveryService,
        context_builder: VariableContextBuilder,
    ):
        self.signups = signups
        self.directory = directory
        self.templates = templates
        self.delivery = delivery
        self.context_builder = context_builder

    def notify_signups_for_schedule(
        self,
        schedule_id: UUID,
        account_id: UUID | None = None,
    ) -> SignupNotificationResult:
        """
        Send the schedule announcement to every signup still owed it.

        Args:
            schedule_id: Newly published schedule
            account_id: Credit account charged for metered channels

        Returns:
            Sent and failed counts per channel. A channel without an active
            template is reported in `errors` and sends nothing.

        Raises:
            UnresolvedContext: If the schedule or its course does not exist
        """
        schedule = self.directory.get_schedule(schedule_id)
        if schedule is None:
            raise UnresolvedContext("schedule", schedule_id)
        ctx = self.context_builder.build(course_id=schedule.course_id, schedule_id=schedule_id)

        result = SignupNotificationResult(schedule_id=schedule_id)
        for channel in (Channel.EMAIL, Channel.SMS):
            signups = self.signups.list_awaiting(schedule.course_id, schedule_id, channel)
            if not signups:
                continue

            template = self.templates.find_active(SCHEDULE_ANNOUNCEMENT_TEMPLATE, channel)
            if template is None:
                message = f'No active {channel.value} template found: "{SCHEDULE_ANNOUNCEMENT_TEMPLATE}"'
                logger.warning(message)
                result.errors.append(message)
                continue

            logger.info(
                f"Announcing schedule {schedule_id} to {len(signups)} {channel.value} signup(s)"
            )
            bulk = self.delivery.send_bulk_to(
                template.id,
                [signup.as_recipient() for signup in signups],
                ctx,
                account_id=account_id,
                trigger_event=TRIGGER_EVENT,
            )
            result.count(channel, bulk.sent, bulk.failed)

            for signup, delivery_result in zip(signups, bulk.results):
                if not delivery_result.success:
                    result.errors.append(
                        f"{channel.value} to signup {signup.id} failed: {delivery_result.error}"
                    )
                self._record(signup, schedule_id, channel, delivery_result.success, delivery_result.error)

        logger.info(
            f"Schedule {schedule_id} announced: email {result.email_sent} sent/{result.email_failed} failed, "
            f"sms {result.sms_sent} sent/{result.sms_failed} failed"
        )
        return result

    def _record(
        self,
        signup: CourseSignup,
        schedule_id: UUID,
        channel: Channel,
        sent: bool,
        error: str | None,
    ) -> None:
        status = DeliveryStatus.SENT if sent else DeliveryStatus.FAILED
        try:
            self.signups.record_delivery(signup.id, schedule_id, channel, status, error)
        except Exception:
            # The message already went out; a missing row only risks a repeat later
            logger.exception(
                f"Could not record {channel.value} announcement of {schedule_id} for signup {signup.id}"
            )
