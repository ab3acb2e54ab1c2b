"""Reading side of a member's notifications."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from calendar_sync.database.repositories.notifications import NotificationRepository
    from calendar_sync.models.notification import NotificationRecord

logger = logging.getLogger(__name__)


class NotificationInbox:
    def __init__(self, notifications: NotificationRepository) -> None:
        self._notifications = notifications

    async def list(self, recipient_id: str, project_id: str) -> list[NotificationRecord]:
        """Return the recipient's notifications for a project, newest first."""
        return await self._notifications.list_for_recipient(recipient_id, project_id)

    async def open(self, recipient_id: str, project_id: str) -> list[NotificationRecord]:
        """List notifications and mark every unread one as read."""
        records = await self.list(recipient_id, project_id)
        unread = [record for record in records if not record.read]
        if unread:
            await asyncio.gather(
                *(self._notifications.mark_read(recipient_id, record.id) for record in unread)
            )
            for record in unread:
                record.read = True
            logger.debug("Marked %d notification(s) read for %s", len(unread), recipient_id)
        return records

    async def mark_read(self, recipient_id: str, notification_id: str) -> None:
        await self._notifications.mark_read(recipient_id, notification_id)

    async def unread_count(self, recipient_id: str, project_id: str) -> int:
        return len(await self._notifications.list_unread(recipient_id, project_id))
