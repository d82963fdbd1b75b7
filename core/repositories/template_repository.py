"""Notification template storage."""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.models import Channel, Template, TemplateCreate
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class TemplateRepository:
    """CRUD for notification_templates. Content is append-only per revision."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def create(self, data: TemplateCreate) -> Template:
        now = now_utc()
        row = self.postgres.execute_returning(
            """
            INSERT INTO notification_templates (
                id, name, channel, subject, body, is_active, created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, TRUE, %s, %s)
            RETURNING *
            """,
            (uuid4(), data.name, data.channel.value, data.subject, data.body, now, now)
        )[0]
        return Template.model_validate(row)

    def get(self, template_id: UUID) -> Template | None:
        row = self.postgres.execute_single(
            "SELECT * FROM notification_templates WHERE id = %s",
            (template_id,)
        )
        if row is None:
            return None
        return Template.model_validate(row)

    def find_active(self, name: str, channel: Channel) -> Template | None:
        """Newest active template with this name on this channel."""
        row = self.postgres.execute_single(
            """
            SELECT * FROM notification_templates
            WHERE name = %s AND channel = %s AND is_active
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (name, channel.value)
        )
        if row is None:
            return None
        return Template.model_validate(row)

    def revise(self, template_id: UUID, data: TemplateCreate) -> Template:
        """
        Replace a template's content without touching sent history.

        Inserts the new revision and deactivates the old row in one unit.

        Raises:
            ValueError: If template not found
        """
        now = now_utc()
        with self.postgres.transaction() as cur:
            cur.execute(
                """
                UPDATE notification_templates
                SET is_active = FALSE, updated_at = %s
                WHERE id = %s
                RETURNING id
                """,
                self.postgres.convert_params((now, template_id))
            )
            if cur.fetchone() is None:
                raise ValueError(f"Template {template_id} not found")

            cur.execute(
                """
                INSERT INTO notification_templates (
                    id, name, channel, subject, body, is_active, created_at, updated_at
                ) VALUES (%s, %s, %s, %s, %s, TRUE, %s, %s)
                RETURNING *
                """,
                self.postgres.convert_params(
                    (uuid4(), data.name, data.channel.value, data.subject, data.body, now, now)
                )
            )
            row = cur.fetchone()

        revised = Template.model_validate(dict(row))
        logger.info(f"Template {template_id} revised as {revised.id}")
        return revised

    def set_active(self, template_id: UUID, is_active: bool) -> Template:
        """
        Raises:
            ValueError: If template not found
        """
        rows = self.postgres.execute_returning(
            """
            UPDATE notification_templates
            SET is_active = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (is_active, now_utc(), template_id)
        )
        if not rows:
            raise ValueError(f"Template {template_id} not found")
        return Template.model_validate(rows[0])
