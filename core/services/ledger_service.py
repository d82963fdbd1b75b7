"""
Credit ledger service.

Debits reserve sendable units before a metered send; refunds compensate a
debit whose send did not complete. The ledger does not decide when a refund
is warranted, it only records the caller's reason.
"""

import logging
from uuid import UUID

from core.exceptions import InsufficientBalance
from core.models import CreditAccount, LedgerTransaction
from core.repositories.ledger_repository import LedgerRepository

logger = logging.getLogger(__name__)


class LedgerService:
    """Service for credit account operations."""

    def __init__(self, ledger: LedgerRepository):
        self.ledger = ledger

    def open_account(self, owner_id: UUID, initial_balance: int = 0) -> CreditAccount:
        """
        Create the owner's credit account.

        Raises:
            ValueError: If initial_balance is negative or the owner already has one
        """
        if initial_balance < 0:
            raise ValueError("initial_balance cannot be negative")

        account = self.ledger.create_account(owner_id, initial_balance)
        logger.info(f"Opened credit account {account.id} for {owner_id} with {initial_balance} unit(s)")
        return account

    def get_account(self, account_id: UUID) -> CreditAccount | None:
        return self.ledger.get_account(account_id)

    def get_balance(self, account_id: UUID) -> int:
        """
        Raises:
            ValueError: If account not found
        """
        account = self.ledger.get_account(account_id)
        if account is None:
            raise ValueError(f"Credit account {account_id} not found")
        return account.balance

    def debit(self, account_id: UUID, amount: int, reason: str) -> LedgerTransaction:
        """
        Take `amount` units from the account.

        The check and the decrement are one statement, so of two concurrent
        debits on the last unit exactly one succeeds.

        Raises:
            ValueError: If amount is not positive
            InsufficientBalance: If the balance does not cover amount
        """
        if amount <= 0:
            raise ValueError("Debit amount must be positive")

        transaction = self.ledger.apply_debit(account_id, amount, reason)
        if transaction is None:
            logger.info(f"Debit of {amount} refused for account {account_id}: insufficient balance")
            raise InsufficientBalance(account_id, amount)

        logger.debug(
            f"Debited {amount} from account {account_id} "
            f"(tx={transaction.id}, balance_after={transaction.balance_after})"
        )
        return transaction

    def refund(
        self,
        account_id: UUID,
        originating_transaction_id: UUID,
        reason: str,
    ) -> LedgerTransaction:
        """
        Reverse a debit. Idempotent per originating transaction.

        A second call for the same debit returns the first refund and leaves
        the balance alone.

        Raises:
            LedgerError: If the originating transaction is not a debit of this account
        """
        transaction, created = self.ledger.apply_refund(account_id, originating_transaction_id, reason)

        if created:
            logger.info(
                f"Refunded {transaction.amount} to account {account_id} "
                f"for debit {originating_transaction_id}: {reason}"
            )
        else:
            logger.info(
                f"Debit {originating_transaction_id} already refunded by {transaction.id}; "
                f"ignoring repeat refund ({reason})"
            )
        return transaction

    def grant(self, account_id: UUID, amount: int, reason: str) -> LedgerTransaction:
        """
        Top up the account (purchase, promotion, manual adjustment).

        Raises:
            ValueError: If amount is not positive or the account does not exist
        """
        if amount <= 0:
            raise ValueError("Grant amount must be positive")

        transaction = self.ledger.apply_grant(account_id, amount, reason)
        logger.info(f"Granted {amount} to account {account_id}: {reason}")
        return transaction

    def link_delivery(self, transaction_id: UUID, delivery_id: UUID) -> None:
        self.ledger.link_delivery(transaction_id, delivery_id)

    def history(self, account_id: UUID, limit: int = 100) -> list[LedgerTransaction]:
        """Newest first."""
        return self.ledger.list_transactions(account_id, limit)
