"""Event-triggered notification rules."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class NotificationTriggerCreate(BaseModel):
    """Data required to attach a template to a domain event."""

    event: str = Field(..., min_length=1, max_length=60)
    template_id: UUID
    course_id: UUID | None = None
    schedule_id: UUID | None = None


class NotificationTrigger(BaseModel):
    """
    Send `template_id` to the affected user whenever `event` happens.

    A set course_id / schedule_id narrows the trigger to that course or
    schedule; None matches all.
    """

    id: UUID
    event: str
    template_id: UUID
    course_id: UUID | None
    schedule_id: UUID | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}

    def applies_to(self, course_id: UUID | None, schedule_id: UUID | None) -> bool:
        if self.course_id is not None and self.course_id != course_id:
            return False
        if self.schedule_id is not None and self.schedule_id != schedule_id:
            return False
        return True
