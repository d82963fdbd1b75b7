"""
Credit account and ledger storage.

Every balance change happens in the same database transaction as the ledger
row that explains it, so balance == sum of signed transactions at all times.
The debit is a single conditional UPDATE; Postgres row locking makes two
concurrent debits on the last unit serialize, and the loser sees zero rows.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.exceptions import LedgerError
from core.models import CreditAccount, LedgerTransaction, TransactionKind
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_INSERT_TRANSACTION = """
    INSERT INTO ledger_transactions (
        id, account_id, kind, amount, balance_after, reason,
        originating_transaction_id, linked_delivery_id, created_at
    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
    RETURNING *
"""


class LedgerRepository:
    """Atomic balance mutations plus ledger reads."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def create_account(self, owner_id: UUID, initial_balance: int = 0) -> CreditAccount:
        """
        Open an account. A non-zero opening balance is recorded as a grant.

        Raises:
            ValueError: If the owner already has an account
        """
        now = now_utc()
        account_id = uuid4()
        with self.postgres.transaction() as cur:
            cur.execute(
                """
                INSERT INTO credit_accounts (id, owner_id, balance, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (owner_id) DO NOTHING
                RETURNING *
                """,
                self.postgres.convert_params((account_id, owner_id, initial_balance, now, now))
            )
            row = cur.fetchone()
            if row is None:
                raise ValueError(f"Owner {owner_id} already has a credit account")

            if initial_balance > 0:
                cur.execute(_INSERT_TRANSACTION, self.postgres.convert_params((
                    uuid4(), account_id, TransactionKind.GRANT.value, initial_balance,
                    initial_balance, "Opening balance", None, None, now
                )))

        return CreditAccount.model_validate(dict(row))

    def get_account(self, account_id: UUID) -> CreditAccount | None:
        row = self.postgres.execute_single(
            "SELECT * FROM credit_accounts WHERE id = %s",
            (account_id,)
        )
        if row is None:
            return None
        return CreditAccount.model_validate(row)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def apply_debit(self, account_id: UUID, amount: int, reason: str) -> LedgerTransaction | None:
        """
        Decrement balance by amount if it covers it, recording the debit.

        Returns:
            The debit transaction, or None when the balance is too low
            (nothing is written in that case).
        """
        now = now_utc()
        with self.postgres.transaction() as cur:
            cur.execute(
                """
                UPDATE credit_accounts
                SET balance = balance - %s, updated_at = %s
                WHERE id = %s AND balance >= %s
                RETURNING balance
                """,
                self.postgres.convert_params((amount, now, account_id, amount))
            )
            updated = cur.fetchone()
            if updated is None:
                return None

            cur.execute(_INSERT_TRANSACTION, self.postgres.convert_params((
                uuid4(), account_id, TransactionKind.DEBIT.value, amount,
                updated["balance"], reason, None, None, now
            )))
            row = cur.fetchone()

        return LedgerTransaction.model_validate(dict(row))

    def apply_refund(
        self,
        account_id: UUID,
        originating_transaction_id: UUID,
        reason: str,
    ) -> tuple[LedgerTransaction, bool]:
        """
        Reverse a debit exactly once.

        The originating debit row is locked for the duration, so concurrent
        refunds of the same debit queue behind each other and the second
        finds the first's refund.

        Returns:
            (refund transaction, created) where created is False when the
            debit had already been refunded and the existing refund is returned.

        Raises:
            LedgerError: If the originating transaction is unknown, is not a
                debit, or belongs to another account
        """
        now = now_utc()
        with self.postgres.transaction() as cur:
            cur.execute(
                "SELECT * FROM ledger_transactions WHERE id = %s FOR UPDATE",
                self.postgres.convert_params((originating_transaction_id,))
            )
            origin = cur.fetchone()
            if origin is None:
                raise LedgerError(f"Transaction {originating_transaction_id} not found")
            if origin["kind"] != TransactionKind.DEBIT.value:
                raise LedgerError(f"Transaction {originating_transaction_id} is not a debit")
            if str(origin["account_id"]) != str(account_id):
                raise LedgerError(
                    f"Transaction {originating_transaction_id} does not belong to account {account_id}"
                )

            cur.execute(
                """
                SELECT * FROM ledger_transactions
                WHERE originating_transaction_id = %s AND kind = %s
                """,
                self.postgres.convert_params(
                    (originating_transaction_id, TransactionKind.REFUND.value)
                )
            )
            existing = cur.fetchone()
            if existing is not None:
                return LedgerTransaction.model_validate(dict(existing)), False

            cur.execute(
                """
                UPDATE credit_accounts
                SET balance = balance + %s, updated_at = %s
                WHERE id = %s
                RETURNING balance
                """,
                self.postgres.convert_params((origin["amount"], now, account_id))
            )
            updated = cur.fetchone()

            cur.execute(_INSERT_TRANSACTION, self.postgres.convert_params((
                uuid4(), account_id, TransactionKind.REFUND.value, origin["amount"],
                updated["balance"], reason, originating_transaction_id,
                origin["linked_delivery_id"], now
            )))
            row = cur.fetchone()

        return LedgerTransaction.model_validate(dict(row)), True

    def apply_grant(self, account_id: UUID, amount: int, reason: str) -> LedgerTransaction:
        """
        Add units (purchase, promotional grant, manual adjustment).

        Raises:
            ValueError: If account not found
        """
        now = now_utc()
        with self.postgres.transaction() as cur:
            cur.execute(
                """
                UPDATE credit_accounts
                SET balance = balance + %s, updated_at = %s
                WHERE id = %s
                RETURNING balance
                """,
                self.postgres.convert_params((amount, now, account_id))
            )
            updated = cur.fetchone()
            if updated is None:
                raise ValueError(f"Credit account {account_id} not found")

            cur.execute(_INSERT_TRANSACTION, self.postgres.convert_params((
                uuid4(), account_id, TransactionKind.GRANT.value, amount,
                updated["balance"], reason, None, None, now
            )))
            row = cur.fetchone()

        return LedgerTransaction.model_validate(dict(row))

    def link_delivery(self, transaction_id: UUID, delivery_id: UUID) -> None:
        self.postgres.execute(
            "UPDATE ledger_transactions SET linked_delivery_id = %s WHERE id = %s",
            (delivery_id, transaction_id)
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_transaction(self, transaction_id: UUID) -> LedgerTransaction | None:
        row = self.postgres.execute_single(
            "SELECT * FROM ledger_transactions WHERE id = %s",
            (transaction_id,)
        )
        if row is None:
            return None
        return LedgerTransaction.model_validate(row)

    def list_transactions(self, account_id: UUID, limit: int = 100) -> list[LedgerTransaction]:
        """Newest first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM ledger_transactions
            WHERE account_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (account_id, limit)
        )
        return [LedgerTransaction.model_validate(row) for row in rows]
