"""Credit account and ledger domain models.

Balances are whole sendable units (one SMS = one unit by default).
An account's balance always equals the signed sum of its transactions.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class TransactionKind(str, Enum):
    """Direction and purpose of a ledger entry."""

    DEBIT = "debit"
    REFUND = "refund"
    GRANT = "grant"  # Top-up: purchase, initial grant, manual adjustment

    @property
    def sign(self) -> int:
        return -1 if self is TransactionKind.DEBIT else 1


class CreditAccount(BaseModel):
    """Sendable-unit balance owned by one billing principal (an instructor)."""

    id: UUID
    owner_id: UUID
    balance: int = Field(..., ge=0)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class LedgerTransaction(BaseModel):
    """Append-only ledger entry."""

    id: UUID
    account_id: UUID
    kind: TransactionKind
    amount: int = Field(..., gt=0)
    balance_after: int
    reason: str
    originating_transaction_id: UUID | None = None
    linked_delivery_id: UUID | None = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @property
    def signed_amount(self) -> int:
        return self.kind.sign * self.amount
