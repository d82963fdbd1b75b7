"""Milestone dedup record storage."""

from datetime import date
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.models import MilestoneChannel, MilestoneFiredRecord
from utils.timezone import now_utc


class MilestoneRepository:
    """
    Reads and writes milestone_fired_records.

    The unique (entity_id, milestone_type, anchor_snapshot) constraint is
    the source of truth; has_fired is only a cheap pre-check.
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def has_fired(self, entity_id: UUID, milestone_type: str, anchor_snapshot: date) -> bool:
        return bool(self.postgres.execute_scalar(
            """
            SELECT EXISTS (
                SELECT 1 FROM milestone_fired_records
                WHERE entity_id = %s AND milestone_type = %s AND anchor_snapshot = %s
            )
            """,
            (entity_id, milestone_type, anchor_snapshot)
        ))

    def record_fired(
        self,
        entity_id: UUID,
        milestone_type: str,
        anchor_snapshot: date,
        channel: MilestoneChannel,
    ) -> MilestoneFiredRecord | None:
        """
        Insert the dedup record.

        Returns:
            The new record, or None if one already existed for this tuple.
        """
        rows = self.postgres.execute_returning(
            """
            INSERT INTO milestone_fired_records (
                id, entity_id, milestone_type, anchor_snapshot, channel, fired_at
            ) VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (entity_id, milestone_type, anchor_snapshot) DO NOTHING
            RETURNING *
            """,
            (uuid4(), entity_id, milestone_type, anchor_snapshot, channel.value, now_utc())
        )
        if not rows:
            return None
        return MilestoneFiredRecord.model_validate(rows[0])
