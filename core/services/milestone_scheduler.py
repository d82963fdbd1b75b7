"""
Milestone scheduler: the daily date-driven reminder run.

Invoked by an external cron once per day. For every table and every entity
in it, works out which rules are due today, skips the ones already fired for
the same anchor date or suppressed by an active enrollment, sends the rest
through the delivery service and records that they fired.

Only one run may be active at a time. Two concurrent runs would evaluate the
same "today" and could both send before either writes its fired record, so
the run holds a Valkey lock and a second caller returns immediately.
"""

import logging
from datetime import date, datetime

from redis.exceptions import LockError

from clients.valkey_client import ValkeyClient
from core.config import NotifyConfig
from core.event_bus import EventBus
from core.events import MilestoneFired
from core.milestones import (
    DEFAULT_TABLES, MilestoneCandidate, MilestoneTable, template_name_for,
)
from core.models import (
    Channel, DeliveryOutcome, DeliveryResult, MilestoneAction, MilestoneOutcome, MilestoneRule,
    MilestoneRunSummary,
)
from core.repositories.directory_repository import DirectoryRepository
from core.repositories.milestone_repository import MilestoneRepository
from core.repositories.template_repository import TemplateRepository
from core.services.delivery_service import DeliveryService
from core.variables import VariableContextBuilder
from utils.timezone import local_today, now_utc

logger = logging.getLogger(__name__)

LOCK_NAME = "notify:milestone-scheduler"


class MilestoneScheduler:
    """Evaluates milestone tables and fires due reminders."""

    def __init__(
        self,
        directory: DirectoryRepository,
        milestones: MilestoneRepository,
        templates: TemplateRepository,
        delivery: DeliveryService,
        context_builder: VariableContextBuilder,
        valkey: ValkeyClient,
        config: NotifyConfig,
        event_bus: EventBus,
        tables: tuple[MilestoneTable, ...] = DEFAULT_TABLES,
    ):
        self.directory = directory
        self.milestones = milestones
        self.templates = templates
        self.delivery = delivery
        self.context_builder = context_builder
        self.valkey = valkey
        self.config = config
        self.event_bus = event_bus
        self.tables = tables

    def run(self, now: datetime | None = None) -> MilestoneRunSummary:
        """
        Run every table once for the calendar day containing `now`.

        Args:
            now: Instant to evaluate at (default: current time). "Today" is
                its date in the configured timezone.

        Returns:
            Summary with per-entity outcomes. skipped=True when another run
            held the lock and nothing was evaluated.
        """
        started_at = now or now_utc()
        today = local_today(self.config.timezone, started_at)
        summary = MilestoneRunSummary(today=today, started_at=started_at)

        lock = self.valkey.lock(LOCK_NAME, timeout=self.config.scheduler_lock_seconds)
        if not lock.acquire(blocking=False):
            logger.warning(f"Milestone run for {today} skipped: another run is in progress")
            summary.skipped = True
            summary.finished_at = now_utc()
            return summary

        logger.info(f"Milestone run started for {today}")
        try:
            for table in self.tables:
                self._run_table(table, today, summary)
        finally:
            try:
                lock.release()
            except LockError:
                logger.warning("Milestone lock expired before the run finished")

        summary.finished_at = now_utc()
        logger.info(
            f"Milestone run for {today} finished: {summary.entities_evaluated} evaluated, "
            f"{summary.fired} fired, {summary.duplicates} duplicate, "
            f"{summary.suppressed} suppressed, {summary.failed} failed"
        )
        return summary

    def _run_table(self, table: MilestoneTable, today: date, summary: MilestoneRunSummary) -> None:
        try:
            candidates = table.source(self.directory, today, table)
        except Exception:
            logger.exception(f"Could not load entities for milestone table {table.name}")
            summary.failed_tables.append(table.name)
            return

        for candidate in candidates:
            summary.entities_evaluated += 1
            for rule in table.due_rules(candidate.anchor_date, today):
                try:
                    outcome = self._process(table, candidate, rule, today)
                except Exception as e:
                    logger.exception(
                        f"Milestone {rule.type} failed for entity {candidate.entity_id}"
                    )
                    outcome = self._outcome(table, candidate, rule, MilestoneAction.FAILED, str(e))
                summary.record(outcome)

    def _process(
        self,
        table: MilestoneTable,
        candidate: MilestoneCandidate,
        rule: MilestoneRule,
        today: date,
    ) -> MilestoneOutcome:
        if self.milestones.has_fired(candidate.entity_id, rule.type, candidate.anchor_date):
            return self._outcome(table, candidate, rule, MilestoneAction.DUPLICATE)

        if table.is_suppressed(self.directory, candidate):
            logger.info(
                f"Suppressing {rule.type} for {candidate.entity_id}: "
                f"already enrolled in a {table.course_type} course"
            )
            return self._outcome(
                table, candidate, rule, MilestoneAction.SUPPRESSED,
                f"active {table.course_type} enrollment",
            )

        legs = self._send(table, candidate, rule, today)

        record = self.milestones.record_fired(
            candidate.entity_id, rule.type, candidate.anchor_date, rule.channel
        )
        if record is None:
            logger.warning(
                f"Milestone {rule.type} for {candidate.entity_id} was recorded by another writer"
            )
            return self._outcome(table, candidate, rule, MilestoneAction.DUPLICATE, "recorded concurrently")

        self.event_bus.publish(MilestoneFired.create(
            table=table.name,
            entity_id=candidate.entity_id,
            milestone_type=rule.type,
            anchor_date=candidate.anchor_date,
            results=tuple(result for _, result in legs if result is not None),
        ))

        detail = ", ".join(
            f"{channel.value}:{result.outcome.value if result else 'skipped'}"
            for channel, result in legs
        )
        return self._outcome(table, candidate, rule, MilestoneAction.FIRED, detail)

    def _send(self, table: MilestoneTable, candidate: MilestoneCandidate, rule: MilestoneRule, today: date):
        """Send each channel leg. Returns [(channel, DeliveryResult | None)]; None = not sent."""
        recipient = candidate.recipient
        template_name = template_name_for(rule)

        next_course = None
        if table.offer_next_course and table.course_type:
            next_course = self.directory.next_available_course(table.course_type, today)
        ctx = self.context_builder.for_reminder(recipient, next_course, table.course_type or "")

        legs = []
        errors = []
        for channel in rule.channel.channels:
            if channel == Channel.SMS and not (recipient.sms_consent and recipient.sms_reminders_enabled):
                logger.info(
                    f"Skipping SMS {rule.type} for {recipient.id}: SMS reminders not enabled or no consent"
                )
                legs.append((channel, None))
                continue

            try:
                result = self._send_leg(table, rule, template_name, channel, recipient.id, ctx)
            except Exception as e:
                logger.exception(f"{channel.value} {rule.type} to {recipient.id} raised")
                errors.append(e)
                result = DeliveryResult(
                    recipient_id=recipient.id,
                    success=False,
                    outcome=DeliveryOutcome.ERROR,
                    error=str(e),
                )
            legs.append((channel, result))

        # Once one leg went out the milestone must be recorded, or a rerun
        # would deliver that leg again. With nothing delivered, a raising leg
        # leaves the milestone unrecorded for the next run.
        if errors and not any(result is not None and result.success for _, result in legs):
            raise errors[0]

        return legs

    def _send_leg(self, table, rule, template_name, channel, recipient_id, ctx) -> DeliveryResult | None:
        template = self.templates.find_active(template_name, channel)
        if template is None:
            logger.warning(f'No active {channel.value} template found: "{template_name}"')
            return None

        result = self.delivery.send_one(
            template.id,
            recipient_id,
            ctx,
            account_id=self.config.milestone_account_id,
            trigger_event=table.trigger_event,
        )
        if result.success:
            logger.info(f"Sent {channel.value} {rule.type} to {recipient_id}")
        else:
            logger.warning(f"{channel.value} {rule.type} to {recipient_id} failed: {result.error}")
        return result

    @staticmethod
    def _outcome(
        table: MilestoneTable,
        candidate: MilestoneCandidate,
        rule: MilestoneRule,
        action: MilestoneAction,
        detail: str | None = None,
    ) -> MilestoneOutcome:
        return MilestoneOutcome(
            table=table.name,
            entity_id=candidate.entity_id,
            milestone_type=rule.type,
            anchor_date=candidate.anchor_date,
            action=action,
            detail=detail,
        )
