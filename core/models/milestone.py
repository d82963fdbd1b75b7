"""Milestone rule, dedup record and scheduler run models."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.template import Channel


class MilestoneChannel(str, Enum):
    """Channel(s) a milestone is delivered on."""

    EMAIL = "email"
    SMS = "sms"
    BOTH = "both"

    @property
    def channels(self) -> tuple[Channel, ...]:
        if self is MilestoneChannel.BOTH:
            return (Channel.EMAIL, Channel.SMS)
        return (Channel(self.value),)


class MilestoneRule(BaseModel):
    """
    Static rule: fire `type` when the anchor date is `offset_days` away.

    Negative offsets are before the anchor, positive after it.
    """

    type: str = Field(..., min_length=1, max_length=30)
    offset_days: int
    channel: MilestoneChannel
    template_name: str | None = None

    model_config = {"frozen": True}


class MilestoneFiredRecord(BaseModel):
    """Dedup guard, unique on (entity_id, milestone_type, anchor_snapshot)."""

    id: UUID
    entity_id: UUID
    milestone_type: str
    anchor_snapshot: date
    channel: MilestoneChannel
    fired_at: datetime

    model_config = {"from_attributes": True}


class MilestoneAction(str, Enum):
    """Decision taken for one (entity, milestone) candidate."""

    FIRED = "fired"
    DUPLICATE = "duplicate"
    SUPPRESSED = "suppressed"
    FAILED = "failed"


class MilestoneOutcome(BaseModel):
    """Per-entity record of what the scheduler did."""

    table: str
    entity_id: UUID
    milestone_type: str
    anchor_date: date
    action: MilestoneAction
    detail: str | None = None


class MilestoneRunSummary(BaseModel):
    """Result of one scheduler invocation."""

    today: date
    started_at: datetime
    finished_at: datetime | None = None
    skipped: bool = False  # Another run held the lock
    failed_tables: list[str] = Field(default_factory=list)
    entities_evaluated: int = 0
    fired: int = 0
    duplicates: int = 0
    suppressed: int = 0
    failed: int = 0
    outcomes: list[MilestoneOutcome] = Field(default_factory=list)

    def record(self, outcome: MilestoneOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.action == MilestoneAction.FIRED:
            self.fired += 1
        elif outcome.action == MilestoneAction.DUPLICATE:
            self.duplicates += 1
        elif outcome.action == MilestoneAction.SUPPRESSED:
            self.suppressed += 1
        else:
            self.failed += 1
