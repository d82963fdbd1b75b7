"""Tests for EventBus."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock
from uuid import uuid4

from core.event_bus import ALERT_LOGGER, EventBus, alert_on_refund_failure
from core.events import AppointmentBooked, EnrollmentConfirmed, RefundFailed
from core.models import Channel


def _enrollment_event():
    return EnrollmentConfirmed.create(
        enrollment_id=uuid4(), student_id=uuid4(), course_id=uuid4(), schedule_id=uuid4()
    )


def _refund_failed():
    return RefundFailed.create(
        account_id=uuid4(), debit_transaction_id=uuid4(), delivery_id=uuid4(),
        amount=1, error="ledger unavailable",
    )


# =============================================================================
# SUBSCRIBE AND PUBLISH
# =============================================================================


class TestSubscribeAndPublish:

    def test_single_handler_receives_the_exact_event_object(self):
        bus = EventBus()
        received = []
        bus.subscribe("EnrollmentConfirmed", received.append)

        event = _enrollment_event()
        bus.publish(event)

        assert len(received) == 1
        assert received[0] is event

    def test_multiple_handlers_called_in_subscription_order(self):
        bus = EventBus()
        order = []
        bus.subscribe("EnrollmentConfirmed", lambda e: order.append("A"))
        bus.subscribe("EnrollmentConfirmed", lambda e: order.append("B"))
        bus.subscribe("EnrollmentConfirmed", lambda e: order.append("C"))

        bus.publish(_enrollment_event())

        assert order == ["A", "B", "C"]

    def test_type_isolation_only_matching_subscribers_called(self):
        bus = EventBus()
        enrollment_calls = []
        appointment_calls = []
        bus.subscribe("EnrollmentConfirmed", enrollment_calls.append)
        bus.subscribe("AppointmentBooked", appointment_calls.append)

        bus.publish(_enrollment_event())

        assert len(enrollment_calls) == 1
        assert appointment_calls == []

    def test_no_subscribers_does_not_raise(self):
        EventBus().publish(AppointmentBooked.create(appointment_id=uuid4(), student_id=uuid4()))


# =============================================================================
# HANDLER ERROR ISOLATION
# =============================================================================


class TestHandlerErrorIsolation:

    def test_handler_exception_is_logged_with_event_type_and_event_id(self, caplog):
        bus = EventBus()

        def failing_handler(event):
            raise ValueError("template lookup failed")

        bus.subscribe("EnrollmentConfirmed", failing_handler)

        with caplog.at_level(logging.ERROR, logger="core.event_bus"):
            event = _enrollment_event()
            bus.publish(event)

        assert "template lookup failed" in caplog.text
        assert "failing_handler" in caplog.text
        assert "EnrollmentConfirmed" in caplog.text
        assert event.event_id in caplog.text

    def test_all_handlers_run_even_if_some_fail(self):
        bus = EventBus()
        results = []

        bus.subscribe("EnrollmentConfirmed", lambda e: (_ for _ in ()).throw(RuntimeError("fail 1")))
        bus.subscribe("EnrollmentConfirmed", lambda e: results.append("survived_1"))
        bus.subscribe("EnrollmentConfirmed", lambda e: (_ for _ in ()).throw(RuntimeError("fail 2")))
        bus.subscribe("EnrollmentConfirmed", lambda e: results.append("survived_2"))

        bus.publish(_enrollment_event())

        assert results == ["survived_1", "survived_2"]

    def test_failed_handler_count_is_returned(self):
        bus = EventBus()

        def failing_handler(event):
            raise RuntimeError("boom")

        bus.subscribe("EnrollmentConfirmed", failing_handler)
        bus.subscribe("EnrollmentConfirmed", lambda e: None)

        assert bus.publish(_enrollment_event()) == 1


# =============================================================================
# SUBSCRIPTION MANAGEMENT
# =============================================================================


class TestSubscriptionManagement:

    def test_subscribe_by_class(self):
        bus = EventBus()
        received = []
        bus.subscribe(EnrollmentConfirmed, received.append)

        bus.publish(_enrollment_event())

        assert len(received) == 1

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe("EnrollmentConfirmed", received.append)

        assert bus.unsubscribe(EnrollmentConfirmed, received.append) is True
        assert bus.unsubscribe(EnrollmentConfirmed, received.append) is False
        bus.publish(_enrollment_event())

        assert received == []

    def test_concurrent_publishers_reach_every_handler(self):
        bus = EventBus()
        received = []
        lock = threading.Lock()

        def record(event):
            with lock:
                received.append(event.event_id)

        bus.subscribe(RefundFailed, record)
        events = [_refund_failed() for _ in range(50)]

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(bus.publish, events))

        assert sorted(received) == sorted(e.event_id for e in events)


# =============================================================================
# REFUND FAILURE ALERTS
# =============================================================================


class TestRefundFailureAlert:

    def test_alert_logged_at_critical(self, caplog):
        bus = EventBus()
        alert_on_refund_failure(bus)
        event = _refund_failed()

        with caplog.at_level(logging.CRITICAL, logger=ALERT_LOGGER):
            bus.publish(event)

        records = [r for r in caplog.records if r.name == ALERT_LOGGER]
        assert len(records) == 1
        assert records[0].levelno == logging.CRITICAL
        assert records[0].event_id == event.event_id
        assert str(event.debit_transaction_id) in records[0].getMessage()

    def test_alert_handler_can_be_removed(self, caplog):
        bus = EventBus()
        handler = alert_on_refund_failure(bus)
        bus.unsubscribe(RefundFailed, handler)

        with caplog.at_level(logging.CRITICAL, logger=ALERT_LOGGER):
            bus.publish(_refund_failed())

        assert not [r for r in caplog.records if r.name == ALERT_LOGGER]

    def test_delivery_refund_failure_reaches_the_alert(self, caplog, delivery_service, event_bus,
                                                       ledger, ledger_repo, directory, template_repo,
                                                       sms_transport):
        alert_on_refund_failure(event_bus)
        account = ledger.open_account(uuid4(), initial_balance=1)
        template = template_repo.add(Channel.SMS, body="Hi")
        recipient = directory.add_recipient(phone="5055551234")
        sms_transport.send.side_effect = TimeoutError("timed out")
        ledger_repo.apply_refund = Mock(side_effect=RuntimeError("ledger unavailable"))

        with caplog.at_level(logging.CRITICAL, logger=ALERT_LOGGER):
            result = delivery_service.send_one(template.id, recipient.id, account_id=account.id)

        assert result.refund_failed
        assert any(r.name == ALERT_LOGGER for r in caplog.records)
