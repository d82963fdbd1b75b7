"""Event trigger storage."""

from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.models import NotificationTrigger, NotificationTriggerCreate
from utils.timezone import now_utc


class TriggerRepository:
    """CRUD for notification_triggers."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def create(self, data: NotificationTriggerCreate) -> NotificationTrigger:
        row = self.postgres.execute_returning(
            """
            INSERT INTO notification_triggers (
                id, event, template_id, course_id, schedule_id, is_active, created_at
            ) VALUES (%s, %s, %s, %s, %s, TRUE, %s)
            RETURNING *
            """,
            (uuid4(), data.event, data.template_id, data.course_id, data.schedule_id, now_utc())
        )[0]
        return NotificationTrigger.model_validate(row)

    def list_active_for_event(self, event: str) -> list[NotificationTrigger]:
        rows = self.postgres.execute(
            """
            SELECT * FROM notification_triggers
            WHERE event = %s AND is_active
            ORDER BY created_at ASC
            """,
            (event,)
        )
        return [NotificationTrigger.model_validate(row) for row in rows]

    def deactivate(self, trigger_id: UUID) -> bool:
        rows = self.postgres.execute_returning(
            "UPDATE notification_triggers SET is_active = FALSE WHERE id = %s RETURNING id",
            (trigger_id,)
        )
        return bool(rows)
