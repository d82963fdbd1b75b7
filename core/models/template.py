"""Notification template domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class Channel(str, Enum):
    """Delivery medium."""

    EMAIL = "email"
    SMS = "sms"


class TemplateCreate(BaseModel):
    """Data required to create a template."""

    name: str = Field(..., min_length=1, max_length=150)
    channel: Channel
    subject: str | None = Field(None, max_length=255)
    body: str = Field(..., min_length=1, max_length=20000)

    @model_validator(mode="after")
    def subject_only_for_email(self) -> "TemplateCreate":
        if self.channel == Channel.SMS and self.subject:
            raise ValueError("SMS templates cannot have a subject")
        return self


class Template(BaseModel):
    """
    Full template entity as stored.

    Rows referenced by delivery logs are never edited in place; a revision
    inserts a new row and deactivates the old one.
    """

    id: UUID
    name: str
    channel: Channel
    subject: str | None
    body: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
