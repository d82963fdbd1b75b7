"""Course "notify me" signups and the result of notifying them."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.directory import Recipient
from core.models.template import Channel


class SignupChannel(str, Enum):
    """Channel a signup asked to be contacted on."""

    EMAIL = "email"
    SMS = "sms"
    BOTH = "both"

    def covers(self, channel: Channel) -> bool:
        return self == SignupChannel.BOTH or self.value == channel.value


class CourseSignup(BaseModel):
    """
    A visitor who asked to hear about new schedules of a course.

    Signups are contact rows owned by the booking app, not users, so they
    are mapped onto Recipient for delivery.
    """

    id: UUID
    course_id: UUID
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    preferred_channel: SignupChannel = SignupChannel.EMAIL
    created_at: datetime | None = None

    model_config = {"from_attributes": True}

    def as_recipient(self) -> Recipient:
        # The signup itself states the channel, so no contact preferences apply
        return Recipient(
            id=self.id,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            phone=self.phone,
        )


class SignupNotificationResult(BaseModel):
    """Per-channel counts for one schedule announcement."""

    schedule_id: UUID
    email_sent: int = 0
    email_failed: int = 0
    sms_sent: int = 0
    sms_failed: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.email_failed == 0 and self.sms_failed == 0 and not self.errors

    def count(self, channel: Channel, sent: int, failed: int) -> None:
        if channel == Channel.EMAIL:
            self.email_sent += sent
            self.email_failed += failed
        else:
            self.sms_sent += sent
            self.sms_failed += failed
