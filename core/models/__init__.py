"""Core domain models."""

from core.models.template import Template, TemplateCreate, Channel
from core.models.ledger import CreditAccount, LedgerTransaction, TransactionKind
from core.models.delivery import (
    DeliveryLog, DeliveryStatus, DeliveryOutcome,
    DeliveryResult, BulkResult, TransportResult,
)
from core.models.milestone import (
    MilestoneRule, MilestoneChannel, MilestoneFiredRecord,
    MilestoneAction, MilestoneOutcome, MilestoneRunSummary,
)
from core.models.directory import (
    Recipient, Course, CourseSchedule, Enrollment, Appointment, CompletedCourse,
)
from core.models.trigger import NotificationTrigger, NotificationTriggerCreate
from core.models.signup import CourseSignup, SignupChannel, SignupNotificationResult

__all__ = [
    # Template
    "Template", "TemplateCreate", "Channel",
    # Ledger
    "CreditAccount", "LedgerTransaction", "TransactionKind",
    # Delivery
    "DeliveryLog", "DeliveryStatus", "DeliveryOutcome",
    "DeliveryResult", "BulkResult", "TransportResult",
    # Milestone
    "MilestoneRule", "MilestoneChannel", "MilestoneFiredRecord",
    "MilestoneAction", "MilestoneOutcome", "MilestoneRunSummary",
    # Directory (read-only booking entities)
    "Recipient", "Course", "CourseSchedule", "Enrollment", "Appointment", "CompletedCourse",
    # Trigger
    "NotificationTrigger", "NotificationTriggerCreate",
    # Course signups
    "CourseSignup", "SignupChannel", "SignupNotificationResult",
]
