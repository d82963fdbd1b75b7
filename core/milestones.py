"""
Built-in milestone tables.

A table ties a set of MilestoneRules to where its entities come from, how
their anchor date is derived, and what suppresses a reminder. The scheduler
walks every table once per run.

Offsets are relative to the anchor: -45 fires 45 days before it, +30 fires
30 days after it.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable
from uuid import UUID

from core.models import MilestoneChannel, MilestoneRule, Recipient
from core.repositories.directory_repository import DirectoryRepository
from utils.timezone import add_years, day_offset

# Milestone type -> template name the reminder is looked up by
TEMPLATE_NAME_MAP = {
    "renewal_45d_before": "License Renewal - 45 Day Warning",
    "renewal_30d_before": "License Renewal - 30 Day Warning",
    "renewal_14d_before": "License Renewal - 14 Day Warning",
    "renewal_day_of": "License Renewal - Expiration Day",
    "renewal_30d_after": "License Renewal - 30 Days Past Expiration",
    "renewal_45d_after": "License Renewal - 45 Days Past Expiration",
    "refresher_60d_before": "License Refresher - 60 Day Reminder",
    "refresher_30d_before": "License Refresher - 30 Day Reminder",
    "post_course_nudge": "License Reminder - Update CCL Expiration",
}

# Years after issue that the refresher course is due
REFRESHER_INTERVAL_YEARS = 2


def template_name_for(rule: MilestoneRule) -> str:
    """Explicit rule template, then the standard map, then the type itself."""
    return rule.template_name or TEMPLATE_NAME_MAP.get(rule.type, rule.type)


@dataclass(frozen=True)
class MilestoneCandidate:
    """One entity of a table with its anchor date resolved."""

    entity_id: UUID
    recipient: Recipient
    anchor_date: date


CandidateSource = Callable[[DirectoryRepository, date, "MilestoneTable"], list[MilestoneCandidate]]


@dataclass(frozen=True)
class MilestoneTable:
    """A named group of rules sharing an anchor and a suppression condition."""

    name: str
    rules: tuple[MilestoneRule, ...]
    source: CandidateSource
    trigger_event: str
    # Course type offered in the reminder and whose active enrollment suppresses it
    course_type: str | None = None
    suppress_on_active_enrollment: bool = True
    offer_next_course: bool = True
    # 0 = fire only on the exact day
    tolerance_days: int = 0

    def due_rules(self, anchor_date: date, today: date) -> list[MilestoneRule]:
        """Rules whose offset matches today's distance to the anchor."""
        offset = day_offset(anchor_date, today)
        return [
            rule for rule in self.rules
            if abs(offset + rule.offset_days) <= self.tolerance_days
        ]

    def is_suppressed(self, directory: DirectoryRepository, candidate: MilestoneCandidate) -> bool:
        if not self.suppress_on_active_enrollment or self.course_type is None:
            return False
        return directory.has_active_enrollment(candidate.recipient.id, self.course_type)

    def offset_range(self) -> tuple[int, int]:
        """Smallest and largest rule offsets, widened by the tolerance."""
        offsets = [rule.offset_days for rule in self.rules]
        return min(offsets) - self.tolerance_days, max(offsets) + self.tolerance_days


# =============================================================================
# CANDIDATE SOURCES
# =============================================================================


def license_expiration_candidates(
    directory: DirectoryRepository,
    today: date,
    table: MilestoneTable,
) -> list[MilestoneCandidate]:
    return [
        MilestoneCandidate(student.id, student, student.license_expiration)
        for student in directory.list_students_with_license_data()
        if student.license_expiration is not None
    ]


def refresher_due_candidates(
    directory: DirectoryRepository,
    today: date,
    table: MilestoneTable,
) -> list[MilestoneCandidate]:
    return [
        MilestoneCandidate(
            student.id, student, add_years(student.license_issued, REFRESHER_INTERVAL_YEARS)
        )
        for student in directory.list_students_with_license_data()
        if student.license_issued is not None
    ]


def completed_course_candidates(
    directory: DirectoryRepository,
    today: date,
    table: MilestoneTable,
) -> list[MilestoneCandidate]:
    """Students whose course of the table's type ended inside any rule's window."""
    earliest_offset, latest_offset = table.offset_range()
    completed = directory.list_completed_courses(
        table.course_type,
        ended_on_or_after=today - timedelta(days=latest_offset),
        ended_on_or_before=today - timedelta(days=earliest_offset),
    )
    return [
        MilestoneCandidate(item.student.id, item.student, item.schedule.end_date)
        for item in completed
        if item.schedule.end_date is not None
    ]


# =============================================================================
# TABLES
# =============================================================================


RENEWAL = MilestoneTable(
    name="renewal",
    rules=(
        MilestoneRule(type="renewal_45d_before", offset_days=-45, channel=MilestoneChannel.EMAIL),
        MilestoneRule(type="renewal_30d_before", offset_days=-30, channel=MilestoneChannel.SMS),
        MilestoneRule(type="renewal_14d_before", offset_days=-14, channel=MilestoneChannel.EMAIL),
        MilestoneRule(type="renewal_day_of", offset_days=0, channel=MilestoneChannel.BOTH),
        MilestoneRule(type="renewal_30d_after", offset_days=30, channel=MilestoneChannel.EMAIL),
        MilestoneRule(type="renewal_45d_after", offset_days=45, channel=MilestoneChannel.SMS),
    ),
    source=license_expiration_candidates,
    trigger_event="license_renewal_reminder",
    course_type="renewal",
)

REFRESHER = MilestoneTable(
    name="refresher",
    rules=(
        MilestoneRule(type="refresher_60d_before", offset_days=-60, channel=MilestoneChannel.EMAIL),
        MilestoneRule(type="refresher_30d_before", offset_days=-30, channel=MilestoneChannel.SMS),
    ),
    source=refresher_due_candidates,
    trigger_event="license_refresher_reminder",
    course_type="refresher",
)

POST_COURSE_NUDGE = MilestoneTable(
    name="post_course_nudge",
    rules=(
        MilestoneRule(type="post_course_nudge", offset_days=45, channel=MilestoneChannel.EMAIL),
    ),
    source=completed_course_candidates,
    trigger_event="post_course_nudge",
    course_type="renewal",
    suppress_on_active_enrollment=False,
    offer_next_course=False,
    tolerance_days=1,
)

DEFAULT_TABLES: tuple[MilestoneTable, ...] = (RENEWAL, REFRESHER, POST_COURSE_NUDGE)
