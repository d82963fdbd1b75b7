"""
Database tests for the ledger, template and milestone repositories.

Need a migrated database reachable through Vault; skipped otherwise.
"""

import threading
from datetime import date
from uuid import uuid4

import pytest

from core.exceptions import LedgerError
from core.models import Channel, MilestoneChannel, TemplateCreate, TransactionKind
from core.repositories.ledger_repository import LedgerRepository
from core.repositories.milestone_repository import MilestoneRepository
from core.repositories.template_repository import TemplateRepository


@pytest.fixture
def ledger_store(db):
    return LedgerRepository(db)


@pytest.fixture
def template_store(db):
    return TemplateRepository(db)


class TestLedgerRepository:

    def test_debit_is_conditional(self, ledger_store):
        account = ledger_store.create_account(uuid4(), initial_balance=1)

        assert ledger_store.apply_debit(account.id, 2, "too much") is None
        debit = ledger_store.apply_debit(account.id, 1, "sms")

        assert debit.balance_after == 0
        assert ledger_store.get_account(account.id).balance == 0

    def test_concurrent_debits_on_last_unit(self, ledger_store):
        """Row locking lets exactly one of the racing debits through."""
        account = ledger_store.create_account(uuid4(), initial_balance=1)
        results = []
        start = threading.Barrier(5)

        def attempt():
            start.wait()
            results.append(ledger_store.apply_debit(account.id, 1, "race"))

        threads = [threading.Thread(target=attempt) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for r in results if r is not None) == 1
        assert ledger_store.get_account(account.id).balance == 0

    def test_refund_once(self, ledger_store):
        account = ledger_store.create_account(uuid4(), initial_balance=2)
        debit = ledger_store.apply_debit(account.id, 1, "sms")

        refund, created = ledger_store.apply_refund(account.id, debit.id, "failed")
        again, created_again = ledger_store.apply_refund(account.id, debit.id, "failed")

        assert created and not created_again
        assert again.id == refund.id
        assert ledger_store.get_account(account.id).balance == 2

    def test_refund_of_grant_rejected(self, ledger_store):
        account = ledger_store.create_account(uuid4(), initial_balance=1)
        grant = ledger_store.list_transactions(account.id)[0]
        assert grant.kind == TransactionKind.GRANT

        with pytest.raises(LedgerError):
            ledger_store.apply_refund(account.id, grant.id, "nope")

    def test_duplicate_owner_rejected(self, ledger_store):
        owner = uuid4()
        ledger_store.create_account(owner)
        with pytest.raises(ValueError, match="already has"):
            ledger_store.create_account(owner)


class TestTemplateRepository:

    def test_revision_deactivates_previous_row(self, template_store):
        name = f"Reminder {uuid4()}"
        original = template_store.create(TemplateCreate(name=name, channel=Channel.SMS, body="v1"))

        revised = template_store.revise(original.id, TemplateCreate(name=name, channel=Channel.SMS, body="v2"))

        assert revised.id != original.id
        assert template_store.get(original.id).is_active is False
        assert template_store.find_active(name, Channel.SMS).id == revised.id


class TestMilestoneRepository:

    def test_record_once_per_anchor(self, db):
        store = MilestoneRepository(db)
        entity_id = uuid4()
        anchor = date(2024, 4, 15)

        assert store.has_fired(entity_id, "renewal_45d_before", anchor) is False
        assert store.record_fired(entity_id, "renewal_45d_before", anchor, MilestoneChannel.EMAIL) is not None
        assert store.record_fired(entity_id, "renewal_45d_before", anchor, MilestoneChannel.EMAIL) is None
        assert store.has_fired(entity_id, "renewal_45d_before", anchor) is True
        assert store.has_fired(entity_id, "renewal_45d_before", date(2026, 4, 15)) is False
