"""Delivery log storage. Rows are inserted pending and only ever transitioned."""

from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.models import Channel, DeliveryLog, DeliveryStatus
from utils.timezone import now_utc


class DeliveryRepository:
    """CRUD for delivery_logs."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def create_pending(
        self,
        template_id: UUID,
        recipient_id: UUID,
        channel: Channel,
        to_address: str,
        resolved_subject: str | None,
        resolved_body: str,
        account_id: UUID | None = None,
        ledger_transaction_id: UUID | None = None,
        trigger_event: str | None = None,
    ) -> DeliveryLog:
        row = self.postgres.execute_returning(
            """
            INSERT INTO delivery_logs (
                id, template_id, recipient_id, account_id, channel,
                to_address, resolved_subject, resolved_body, status,
                ledger_transaction_id, trigger_event, created_at
            ) VALUES (
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), template_id, recipient_id, account_id, channel.value,
                to_address, resolved_subject, resolved_body, DeliveryStatus.PENDING.value,
                ledger_transaction_id, trigger_event, now_utc()
            )
        )[0]
        return DeliveryLog.model_validate(row)

    def mark_sent(self, delivery_id: UUID, external_reference: str | None) -> DeliveryLog:
        return self._complete(delivery_id, DeliveryStatus.SENT, external_reference, None)

    def mark_failed(self, delivery_id: UUID, error: str | None) -> DeliveryLog:
        return self._complete(delivery_id, DeliveryStatus.FAILED, None, error)

    def _complete(
        self,
        delivery_id: UUID,
        status: DeliveryStatus,
        external_reference: str | None,
        error: str | None,
    ) -> DeliveryLog:
        """
        Move a pending row to its final status.

        Raises:
            ValueError: If the row does not exist or is no longer pending
        """
        rows = self.postgres.execute_returning(
            """
            UPDATE delivery_logs
            SET status = %s, external_reference = %s, error = %s, completed_at = %s
            WHERE id = %s AND status = %s
            RETURNING *
            """,
            (
                status.value, external_reference, error, now_utc(),
                delivery_id, DeliveryStatus.PENDING.value
            )
        )
        if not rows:
            raise ValueError(f"Delivery {delivery_id} not found or not pending")
        return DeliveryLog.model_validate(rows[0])

    def get(self, delivery_id: UUID) -> DeliveryLog | None:
        row = self.postgres.execute_single(
            "SELECT * FROM delivery_logs WHERE id = %s",
            (delivery_id,)
        )
        if row is None:
            return None
        return DeliveryLog.model_validate(row)

    def list_for_recipient(self, recipient_id: UUID, limit: int = 50) -> list[DeliveryLog]:
        """Newest first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM delivery_logs
            WHERE recipient_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (recipient_id, limit)
        )
        return [DeliveryLog.model_validate(row) for row in rows]

    def list_stale_pending(self, older_than_minutes: int = 30, limit: int = 100) -> list[DeliveryLog]:
        """
        Pending rows that never completed (process died mid-send).

        These need manual reconciliation against the provider and the ledger.
        """
        rows = self.postgres.execute(
            """
            SELECT * FROM delivery_logs
            WHERE status = %s AND created_at < now() - make_interval(mins => %s)
            ORDER BY created_at ASC
            LIMIT %s
            """,
            (DeliveryStatus.PENDING.value, older_than_minutes, limit)
        )
        return [DeliveryLog.model_validate(row) for row in rows]
