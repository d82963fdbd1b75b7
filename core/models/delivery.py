"""Delivery log and send-result models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel

from core.models.template import Channel


class DeliveryStatus(str, Enum):
    """Delivery log lifecycle. pending -> sent | failed, never deleted."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class DeliveryOutcome(str, Enum):
    """What happened to one unit of work (one recipient)."""

    SENT = "sent"
    CREDIT_EXHAUSTED = "credit_exhausted"
    TRANSPORT_FAILURE = "transport_failure"
    RECIPIENT_UNREACHABLE = "recipient_unreachable"
    UNRESOLVED_CONTEXT = "unresolved_context"
    ERROR = "error"  # Unexpected failure inside the engine


class DeliveryLog(BaseModel):
    """One row per (template, recipient, attempt)."""

    id: UUID
    template_id: UUID
    recipient_id: UUID
    account_id: UUID | None
    channel: Channel
    to_address: str
    resolved_subject: str | None
    resolved_body: str
    status: DeliveryStatus
    external_reference: str | None
    error: str | None
    ledger_transaction_id: UUID | None
    trigger_event: str | None
    created_at: datetime
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class TransportResult(BaseModel):
    """What a channel transport reports back. Only `success` is inspected."""

    success: bool
    provider_reference: str | None = None
    error: str | None = None


class DeliveryResult(BaseModel):
    """Structured per-recipient outcome returned to callers."""

    recipient_id: UUID
    success: bool
    outcome: DeliveryOutcome
    delivery_id: UUID | None = None
    external_reference: str | None = None
    transaction_id: UUID | None = None
    refund_transaction_id: UUID | None = None
    refund_failed: bool = False
    error: str | None = None


class BulkResult(BaseModel):
    """Aggregate of a bulk send. `results` keeps the caller's recipient order."""

    sent: int
    failed: int
    results: list[DeliveryResult]
