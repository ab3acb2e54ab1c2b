"""Repository for the notifications container (partitioned by /recipient_id)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from calendar_sync.database.repositories.base import BaseRepository
from calendar_sync.models.base import to_json_timestamp
from calendar_sync.models.notification import NotificationRecord, NotificationType

if TYPE_CHECKING:
    from datetime import datetime


class NotificationRepository(BaseRepository[NotificationRecord]):
    """Per-recipient notification inboxes."""

    container_name = "notifications"
    model_class = NotificationRecord

    async def find_mergeable(
        self,
        recipient_id: str,
        n_type: NotificationType,
        content_id: str,
        actor_id: str,
        since: datetime,
    ) -> NotificationRecord | None:
        """Return the newest record for the same event key at or after ``since``."""
        results = await self.query(
            "SELECT * FROM c WHERE c.recipient_id = @recipient_id"
            " AND c.type = @type"
            " AND c.metadata.content_id = @content_id"
            " AND c.metadata.actor_id = @actor_id"
            " AND c.timestamp >= @since"
            " ORDER BY c.timestamp DESC OFFSET 0 LIMIT 1",
            [
                {"name": "@recipient_id", "value": recipient_id},
                {"name": "@type", "value": n_type.value},
                {"name": "@content_id", "value": content_id},
                {"name": "@actor_id", "value": actor_id},
                {"name": "@since", "value": to_json_timestamp(since)},
            ],
            partition_key=recipient_id,
        )
        return results[0] if results else None

    async def merge(
        self,
        record: NotificationRecord,
        *,
        message: str,
        last_comment: str,
        timestamp: datetime,
    ) -> None:
        """Fold another event into an existing record in place."""
        stamp = to_json_timestamp(timestamp)
        await self.patch(
            record.id,
            record.recipient_id,
            [
                {"op": "set", "path": "/message", "value": message},
                {"op": "incr", "path": "/count", "value": 1},
                {"op": "set", "path": "/timestamp", "value": stamp},
                {"op": "set", "path": "/updated_at", "value": stamp},
                {"op": "set", "path": "/last_comment", "value": last_comment},
                {"op": "set", "path": "/metadata/comment", "value": last_comment},
            ],
        )

    async def list_for_recipient(self, recipient_id: str, project_id: str) -> list[NotificationRecord]:
        return await self.query(
            "SELECT * FROM c WHERE c.recipient_id = @recipient_id"
            " AND c.project_id = @project_id"
            " ORDER BY c.timestamp DESC",
            [
                {"name": "@recipient_id", "value": recipient_id},
                {"name": "@project_id", "value": project_id},
            ],
            partition_key=recipient_id,
        )

    async def list_unread(self, recipient_id: str, project_id: str) -> list[NotificationRecord]:
        return await self.query(
            "SELECT * FROM c WHERE c.recipient_id = @recipient_id"
            " AND c.project_id = @project_id"
            " AND c.read = false",
            [
                {"name": "@recipient_id", "value": recipient_id},
                {"name": "@project_id", "value": project_id},
            ],
            partition_key=recipient_id,
        )

    async def mark_read(self, recipient_id: str, notification_id: str) -> None:
        await self.patch(
            notification_id,
            recipient_id,
            [{"op": "set", "path": "/read", "value": True}],
        )
