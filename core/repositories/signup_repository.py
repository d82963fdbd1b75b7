"""Course signup storage and the per-schedule delivery record."""

from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.models import Channel, CourseSignup, DeliveryStatus
from utils.timezone import now_utc


class SignupRepository:
    """
    Reads course_notification_signups and writes
    course_notification_delivery_logs.

    A signup counts as notified about a schedule on a channel once a `sent`
    row exists for (signup, schedule, channel). Failed rows are kept for
    history and do not block a retry.
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def list_awaiting(self, course_id: UUID, schedule_id: UUID, channel: Channel) -> list[CourseSignup]:
        """Signups for the course that want `channel` and were not yet sent this schedule on it."""
        rows = self.postgres.execute(
            """
            SELECT s.id, s.course_id, s.first_name, s.last_name, s.email, s.phone,
                   COALESCE(s.preferred_channel, 'email') AS preferred_channel, s.created_at
            FROM course_notification_signups s
            WHERE s.course_id = %s
              AND COALESCE(s.preferred_channel, 'email') IN (%s, 'both')
              AND NOT EXISTS (
                  SELECT 1 FROM course_notification_delivery_logs l
                  WHERE l.signup_id = s.id AND l.schedule_id = %s
                    AND l.channel = %s AND l.status = 'sent'
              )
            ORDER BY s.created_at, s.id
            """,
            (course_id, channel.value, schedule_id, channel.value)
        )
        return [CourseSignup.model_validate(row) for row in rows]

    def record_delivery(
        self,
        signup_id: UUID,
        schedule_id: UUID,
        channel: Channel,
        status: DeliveryStatus,
        error: str | None = None,
    ) -> bool:
        """
        Record the outcome of one signup notification.

        Returns:
            False if a `sent` row already existed for this tuple
        """
        rows = self.postgres.execute_returning(
            """
            INSERT INTO course_notification_delivery_logs (
                id, signup_id, schedule_id, channel, status, error_message, sent_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (signup_id, schedule_id, channel) WHERE status = 'sent' DO NOTHING
            RETURNING id
            """,
            (uuid4(), signup_id, schedule_id, channel.value, status.value, error, now_utc())
        )
        return bool(rows)
