"""Notification engine configuration."""

from typing import Annotated
from uuid import UUID
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator

from core.models.template import Channel


class CompanyInfo(BaseModel):
    """Business identity exposed to templates as the `system` section."""

    name: str = Field(default="Practical Defense Training", min_length=1)
    phone: str = Field(default="")
    email: str = Field(default="")
    website: str = Field(default="")
    website_url: str = Field(default="")


class NotifyConfig(BaseModel):
    """
    Runtime settings for delivery and scheduling.

    Anything that used to be a hard-coded constant in the send path lives
    here so deployments can override it without code changes.
    """

    company: CompanyInfo = Field(default_factory=CompanyInfo)

    # Calendar used to decide what "today" is for milestone matching
    timezone: str = Field(
        default="America/Denver",
        description="IANA zone the daily reminder run is anchored to",
    )

    # Credits charged per message; channels absent from the map are unmetered
    channel_costs: dict[Channel, Annotated[int, Field(ge=0)]] = Field(
        default_factory=lambda: {Channel.SMS: 1},
        description="Credit units debited per delivery, keyed by channel",
    )

    bulk_max_workers: int = Field(
        default=8,
        description="Upper bound on concurrent transport calls in a bulk send",
        ge=1,
        le=64,
    )

    sms_max_length: int = Field(
        default=1600,
        description="Longest SMS body the carrier accepts (concatenated)",
        ge=160,
        le=1600,
    )

    milestone_account_id: UUID | None = Field(
        default=None,
        description="Credit account charged for metered reminder sends; None sends them unmetered",
    )

    scheduler_lock_seconds: int = Field(
        default=3600,
        description="Expiry of the single-run lock held by the milestone scheduler",
        ge=60,
        le=86400,
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (KeyError, ValueError, OSError):
            raise ValueError(f"Unknown timezone: {value}")
        return value

    def cost_for(self, channel: Channel) -> int:
        """Credit units for one delivery on channel; 0 means unmetered."""
        return self.channel_costs.get(channel, 0)

    def is_metered(self, channel: Channel) -> bool:
        return self.cost_for(channel) > 0
