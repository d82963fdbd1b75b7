"""Shared test fixtures for the notification engine test suite."""

import os
import threading
from datetime import date
from pathlib import Path
from unittest.mock import Mock
from uuid import UUID, uuid4

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from clients.email_client import EmailGatewayClient
from clients.sms_client import TwilioSmsClient
from core.config import NotifyConfig
from core.event_bus import EventBus
from core.exceptions import LedgerError
from core.models import (
    Channel, CourseSignup, CreditAccount, DeliveryLog, DeliveryStatus, LedgerTransaction,
    MilestoneFiredRecord, NotificationTrigger, Recipient, Template, TransactionKind,
    TransportResult,
)
from core.services.delivery_service import DeliveryService
from core.services.ledger_service import LedgerService
from core.services.signup_service import SignupNotificationService
from core.variables import VariableContextBuilder
from utils.timezone import now_utc


# =============================================================================
# IN-MEMORY REPOSITORIES
# =============================================================================
#
# Same method signatures and return types as core/repositories/*, backed by
# dicts. The ledger fake serializes mutations with a lock the way the row
# lock serializes them in Postgres.


class FakeTemplateRepository:

    def __init__(self):
        self.rows: dict[UUID, Template] = {}

    def add(self, channel: Channel, body: str, subject: str | None = None,
            name: str = "Test Template", is_active: bool = True) -> Template:
        now = now_utc()
        template = Template(
            id=uuid4(), name=name, channel=channel, subject=subject, body=body,
            is_active=is_active, created_at=now, updated_at=now,
        )
        self.rows[template.id] = template
        return template

    def get(self, template_id: UUID) -> Template | None:
        return self.rows.get(template_id)

    def find_active(self, name: str, channel: Channel) -> Template | None:
        matches = [
            t for t in self.rows.values()
            if t.name == name and t.channel == channel and t.is_active
        ]
        return max(matches, key=lambda t: t.created_at) if matches else None


class FakeLedgerRepository:

    def __init__(self):
        self.accounts: dict[UUID, CreditAccount] = {}
        self.transactions: list[LedgerTransaction] = []
        self.lock = threading.Lock()

    def _record(self, account_id, kind, amount, balance_after, reason, origin=None, delivery=None):
        tx = LedgerTransaction(
            id=uuid4(), account_id=account_id, kind=kind, amount=amount,
            balance_after=balance_after, reason=reason,
            originating_transaction_id=origin, linked_delivery_id=delivery,
            created_at=now_utc(),
        )
        self.transactions.append(tx)
        return tx

    def _set_balance(self, account_id: UUID, balance: int) -> None:
        account = self.accounts[account_id]
        self.accounts[account_id] = account.model_copy(
            update={"balance": balance, "updated_at": now_utc()}
        )

    def create_account(self, owner_id: UUID, initial_balance: int = 0) -> CreditAccount:
        with self.lock:
            if any(a.owner_id == owner_id for a in self.accounts.values()):
                raise ValueError(f"Owner {owner_id} already has a credit account")
            now = now_utc()
            account = CreditAccount(
                id=uuid4(), owner_id=owner_id, balance=initial_balance,
                created_at=now, updated_at=now,
            )
            self.accounts[account.id] = account
            if initial_balance > 0:
                self._record(account.id, TransactionKind.GRANT, initial_balance,
                             initial_balance, "Opening balance")
            return account

    def get_account(self, account_id: UUID) -> CreditAccount | None:
        return self.accounts.get(account_id)

    def apply_debit(self, account_id: UUID, amount: int, reason: str) -> LedgerTransaction | None:
        with self.lock:
            account = self.accounts.get(account_id)
            if account is None or account.balance < amount:
                return None
            balance = account.balance - amount
            self._set_balance(account_id, balance)
            return self._record(account_id, TransactionKind.DEBIT, amount, balance, reason)

    def apply_refund(self, account_id: UUID, originating_transaction_id: UUID, reason: str):
        with self.lock:
            origin = self.get_transaction(originating_transaction_id)
            if origin is None:
                raise LedgerError(f"Transaction {originating_transaction_id} not found")
            if origin.kind != TransactionKind.DEBIT:
                raise LedgerError(f"Transaction {originating_transaction_id} is not a debit")
            if origin.account_id != account_id:
                raise LedgerError(
                    f"Transaction {originating_transaction_id} does not belong to account {account_id}"
                )
            for tx in self.transactions:
                if tx.kind == TransactionKind.REFUND and tx.originating_transaction_id == origin.id:
                    return tx, False
            balance = self.accounts[account_id].balance + origin.amount
            self._set_balance(account_id, balance)
            refund = self._record(account_id, TransactionKind.REFUND, origin.amount, balance,
                                  reason, origin.id, origin.linked_delivery_id)
            return refund, True

    def apply_grant(self, account_id: UUID, amount: int, reason: str) -> LedgerTransaction:
        with self.lock:
            account = self.accounts.get(account_id)
            if account is None:
                raise ValueError(f"Credit account {account_id} not found")
            balance = account.balance + amount
            self._set_balance(account_id, balance)
            return self._record(account_id, TransactionKind.GRANT, amount, balance, reason)

    def link_delivery(self, transaction_id: UUID, delivery_id: UUID) -> None:
        with self.lock:
            self.transactions = [
                tx.model_copy(update={"linked_delivery_id": delivery_id}) if tx.id == transaction_id else tx
                for tx in self.transactions
            ]

    def get_transaction(self, transaction_id: UUID) -> LedgerTransaction | None:
        return next((tx for tx in self.transactions if tx.id == transaction_id), None)

    def list_transactions(self, account_id: UUID, limit: int = 100) -> list[LedgerTransaction]:
        rows = [tx for tx in self.transactions if tx.account_id == account_id]
        return list(reversed(rows))[:limit]


class FakeDeliveryRepository:

    def __init__(self):
        self.rows: dict[UUID, DeliveryLog] = {}
        self.lock = threading.Lock()

    def create_pending(self, template_id, recipient_id, channel, to_address, resolved_subject,
                       resolved_body, account_id=None, ledger_transaction_id=None,
                       trigger_event=None) -> DeliveryLog:
        log = DeliveryLog(
            id=uuid4(), template_id=template_id, recipient_id=recipient_id,
            account_id=account_id, channel=channel, to_address=to_address,
            resolved_subject=resolved_subject, resolved_body=resolved_body,
            status=DeliveryStatus.PENDING, external_reference=None, error=None,
            ledger_transaction_id=ledger_transaction_id, trigger_event=trigger_event,
            created_at=now_utc(), completed_at=None,
        )
        with self.lock:
            self.rows[log.id] = log
        return log

    def _complete(self, delivery_id, status, external_reference, error) -> DeliveryLog:
        with self.lock:
            log = self.rows.get(delivery_id)
            if log is None or log.status != DeliveryStatus.PENDING:
                raise ValueError(f"Delivery {delivery_id} not found or not pending")
            log = log.model_copy(update={
                "status": status, "external_reference": external_reference,
                "error": error, "completed_at": now_utc(),
            })
            self.rows[delivery_id] = log
            return log

    def mark_sent(self, delivery_id: UUID, external_reference: str | None) -> DeliveryLog:
        return self._complete(delivery_id, DeliveryStatus.SENT, external_reference, None)

    def mark_failed(self, delivery_id: UUID, error: str | None) -> DeliveryLog:
        return self._complete(delivery_id, DeliveryStatus.FAILED, None, error)

    def get(self, delivery_id: UUID) -> DeliveryLog | None:
        return self.rows.get(delivery_id)

    def list_for_recipient(self, recipient_id: UUID, limit: int = 50) -> list[DeliveryLog]:
        rows = [log for log in self.rows.values() if log.recipient_id == recipient_id]
        return sorted(rows, key=lambda log: log.created_at, reverse=True)[:limit]


class FakeDirectoryRepository:

    def __init__(self):
        self.recipients = {}
        self.courses = {}
        self.schedules = {}
        self.enrollments = {}
        self.appointments = {}
        self.form_responses = {}
        self.active_enrollments: set[tuple[UUID, str]] = set()
        self.next_courses = {}
        self.completed = []

    def add_recipient(self, **fields) -> Recipient:
        fields.setdefault("id", uuid4())
        fields.setdefault("first_name", "Ana")
        fields.setdefault("last_name", "Lopez")
        recipient = Recipient(**fields)
        self.recipients[recipient.id] = recipient
        return recipient

    def get_recipient(self, user_id):
        return self.recipients.get(user_id)

    def get_course(self, course_id):
        return self.courses.get(course_id)

    def get_schedule(self, schedule_id):
        return self.schedules.get(schedule_id)

    def get_enrollment(self, enrollment_id):
        return self.enrollments.get(enrollment_id)

    def get_appointment(self, appointment_id):
        return self.appointments.get(appointment_id)

    def list_form_responses(self, enrollment_id):
        return dict(self.form_responses.get(enrollment_id, {}))

    def list_students_with_license_data(self):
        return [
            r for r in self.recipients.values()
            if r.license_expiration is not None or r.license_issued is not None
        ]

    def has_active_enrollment(self, student_id, course_type):
        return (student_id, course_type) in self.active_enrollments

    def next_available_course(self, course_type, after: date):
        return self.next_courses.get(course_type)

    def list_completed_courses(self, course_type, ended_on_or_after, ended_on_or_before):
        return [
            item for item in self.completed
            if item.course.course_type == course_type
            and ended_on_or_after <= item.schedule.end_date <= ended_on_or_before
        ]


class FakeMilestoneRepository:

    def __init__(self):
        self.records: dict[tuple, MilestoneFiredRecord] = {}

    def has_fired(self, entity_id, milestone_type, anchor_snapshot) -> bool:
        return (entity_id, milestone_type, anchor_snapshot) in self.records

    def record_fired(self, entity_id, milestone_type, anchor_snapshot, channel):
        key = (entity_id, milestone_type, anchor_snapshot)
        if key in self.records:
            return None
        record = MilestoneFiredRecord(
            id=uuid4(), entity_id=entity_id, milestone_type=milestone_type,
            anchor_snapshot=anchor_snapshot, channel=channel, fired_at=now_utc(),
        )
        self.records[key] = record
        return record


class FakeTriggerRepository:

    def __init__(self):
        self.rows: list[NotificationTrigger] = []

    def add(self, event: str, template_id: UUID, course_id=None, schedule_id=None,
            is_active: bool = True) -> NotificationTrigger:
        trigger = NotificationTrigger(
            id=uuid4(), event=event, template_id=template_id, course_id=course_id,
            schedule_id=schedule_id, is_active=is_active, created_at=now_utc(),
        )
        self.rows.append(trigger)
        return trigger

    def list_active_for_event(self, event: str) -> list[NotificationTrigger]:
        return [t for t in self.rows if t.event == event and t.is_active]


class FakeSignupRepository:

    def __init__(self):
        self.signups: list[CourseSignup] = []
        self.deliveries: list[tuple[UUID, UUID, Channel, DeliveryStatus, str | None]] = []

    def add(self, course_id: UUID, preferred_channel: str = "email", **fields) -> CourseSignup:
        fields.setdefault("first_name", "Sam")
        fields.setdefault("last_name", "Reyes")
        fields.setdefault("email", "sam@example.com")
        signup = CourseSignup(id=uuid4(), course_id=course_id, preferred_channel=preferred_channel, **fields)
        self.signups.append(signup)
        return signup

    def list_awaiting(self, course_id, schedule_id, channel):
        sent = {
            signup_id for signup_id, sched, chan, status, _ in self.deliveries
            if sched == schedule_id and chan == channel and status == DeliveryStatus.SENT
        }
        return [
            s for s in self.signups
            if s.course_id == course_id and s.preferred_channel.covers(channel) and s.id not in sent
        ]

    def record_delivery(self, signup_id, schedule_id, channel, status, error=None) -> bool:
        key = (signup_id, schedule_id, channel, DeliveryStatus.SENT)
        if status == DeliveryStatus.SENT and any(d[:4] == key for d in self.deliveries):
            return False
        self.deliveries.append((signup_id, schedule_id, channel, status, error))
        return True


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def config() -> NotifyConfig:
    return NotifyConfig()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def template_repo() -> FakeTemplateRepository:
    return FakeTemplateRepository()


@pytest.fixture
def ledger_repo() -> FakeLedgerRepository:
    return FakeLedgerRepository()


@pytest.fixture
def delivery_repo() -> FakeDeliveryRepository:
    return FakeDeliveryRepository()


@pytest.fixture
def directory() -> FakeDirectoryRepository:
    return FakeDirectoryRepository()


@pytest.fixture
def milestone_repo() -> FakeMilestoneRepository:
    return FakeMilestoneRepository()


@pytest.fixture
def trigger_repo() -> FakeTriggerRepository:
    return FakeTriggerRepository()


@pytest.fixture
def signup_repo() -> FakeSignupRepository:
    return FakeSignupRepository()


@pytest.fixture
def ledger(ledger_repo) -> LedgerService:
    return LedgerService(ledger_repo)


@pytest.fixture
def email_transport():
    transport = Mock(spec=EmailGatewayClient)
    transport.send.return_value = TransportResult(success=True, provider_reference="email-ref")
    return transport


@pytest.fixture
def sms_transport():
    transport = Mock(spec=TwilioSmsClient)
    transport.send.return_value = TransportResult(success=True, provider_reference="SM123")
    return transport


@pytest.fixture
def delivery_service(template_repo, delivery_repo, directory, ledger, email_transport,
                     sms_transport, config, event_bus) -> DeliveryService:
    return DeliveryService(
        template_repo, delivery_repo, directory, ledger,
        {Channel.EMAIL: email_transport, Channel.SMS: sms_transport},
        config, event_bus,
    )


@pytest.fixture
def context_builder(directory, config) -> VariableContextBuilder:
    return VariableContextBuilder(directory, config.company, config.timezone)


@pytest.fixture
def signup_service(signup_repo, directory, template_repo, delivery_service,
                   context_builder) -> SignupNotificationService:
    return SignupNotificationService(
        signup_repo, directory, template_repo, delivery_service, context_builder
    )


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def db():
    """Session-scoped PostgresClient. Skips when Vault is not configured."""
    if not os.getenv("VAULT_ADDR"):
        pytest.skip("VAULT_ADDR not set; database tests need Vault")

    from clients.postgres_client import PostgresClient
    from clients.vault_client import get_database_url

    client = PostgresClient(get_database_url())
    yield client
    client.close()
