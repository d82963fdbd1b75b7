"""Tests for domain model validation and helpers."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from core.models import (
    Channel, MilestoneChannel, MilestoneRule, NotificationTrigger, TemplateCreate, TransactionKind,
)


class TestTemplateCreate:

    def test_email_with_subject(self):
        template = TemplateCreate(name="Welcome", channel=Channel.EMAIL, subject="Hi", body="<p>Hi</p>")
        assert template.subject == "Hi"

    def test_sms_cannot_have_subject(self):
        with pytest.raises(ValidationError, match="subject"):
            TemplateCreate(name="Text", channel=Channel.SMS, subject="Hi", body="Hi")

    def test_empty_body_rejected(self):
        with pytest.raises(ValidationError):
            TemplateCreate(name="Empty", channel=Channel.EMAIL, body="")


class TestTransactionKind:

    def test_signs(self):
        assert TransactionKind.DEBIT.sign == -1
        assert TransactionKind.REFUND.sign == 1
        assert TransactionKind.GRANT.sign == 1


class TestMilestoneRule:

    def test_rules_are_frozen(self):
        rule = MilestoneRule(type="renewal_day_of", offset_days=0, channel=MilestoneChannel.BOTH)
        with pytest.raises(ValidationError):
            rule.offset_days = 1

    def test_single_channel(self):
        assert MilestoneChannel.SMS.channels == (Channel.SMS,)


class TestNotificationTrigger:

    def _trigger(self, course_id=None, schedule_id=None):
        return NotificationTrigger(
            id=uuid4(), event="enrollment_confirmed", template_id=uuid4(),
            course_id=course_id, schedule_id=schedule_id, is_active=True,
            created_at=datetime.now(timezone.utc),
        )

    def test_unscoped_matches_everything(self):
        assert self._trigger().applies_to(uuid4(), None)

    def test_course_scope(self):
        course_id = uuid4()
        trigger = self._trigger(course_id=course_id)
        assert trigger.applies_to(course_id, uuid4())
        assert not trigger.applies_to(uuid4(), None)

    def test_schedule_scope(self):
        schedule_id = uuid4()
        trigger = self._trigger(schedule_id=schedule_id)
        assert not trigger.applies_to(uuid4(), uuid4())
        assert trigger.applies_to(uuid4(), schedule_id)
