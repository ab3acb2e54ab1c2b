"""Per-member notification fanout with comment batching."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from calendar_sync.models.base import utcnow
from calendar_sync.models.notification import (
    NotificationMetadata,
    NotificationRecord,
    NotificationType,
)
from calendar_sync.notifications.messages import (
    approval_message,
    comment_message,
    edit_message,
    merged_comment_message,
    status_message,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from calendar_sync.database.repositories.notifications import NotificationRepository
    from calendar_sync.database.repositories.projects import ProjectRepository
    from calendar_sync.models.content import ContentItem
    from calendar_sync.models.project import Member

logger = logging.getLogger(__name__)


class NotificationFanout:
    """Writes one notification per project member, the actor included.

    Comment notifications from the same actor on the same card are folded
    into the recipient's most recent matching record while it is younger
    than the batching window. Every other type always creates a new record.
    """

    def __init__(
        self,
        projects: ProjectRepository,
        notifications: NotificationRepository,
        *,
        window_minutes: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._projects = projects
        self._notifications = notifications
        self._window = timedelta(minutes=window_minutes)
        self._clock = clock

    async def notify_comment(
        self,
        project_id: str,
        actor: Member,
        item: ContentItem,
        text: str,
        *,
        instance: str = "",
    ) -> int:
        metadata = self._metadata(actor, item, instance, comment=text)
        message = comment_message(actor.name, item.title, item.location, instance)
        return await self.publish(project_id, NotificationType.COMMENT, message, metadata)

    async def notify_approval(
        self,
        project_id: str,
        actor: Member,
        item: ContentItem,
        *,
        approving: bool,
        instance: str = "",
    ) -> int:
        metadata = self._metadata(actor, item, instance)
        message = approval_message(
            actor.name, item.title, approving=approving, location=item.location, instance=instance
        )
        return await self.publish(project_id, NotificationType.APPROVAL, message, metadata)

    async def notify_edit(
        self,
        project_id: str,
        actor: Member,
        item: ContentItem,
        changed: list[str],
        *,
        instance: str = "",
    ) -> int:
        metadata = self._metadata(actor, item, instance, edit_details=list(changed))
        message = edit_message(actor.name, item.title, item.location, instance)
        return await self.publish(project_id, NotificationType.EDIT, message, metadata)

    async def notify_status_change(
        self,
        project_id: str,
        actor: Member,
        item: ContentItem,
        old_status: str,
        new_status: str,
        *,
        instance: str = "",
    ) -> int:
        metadata = self._metadata(
            actor, item, instance, old_status=old_status, new_status=new_status
        )
        message = status_message(
            actor.name, item.title, old_status, new_status, item.location, instance
        )
        return await self.publish(project_id, NotificationType.STATUS_CHANGE, message, metadata)

    async def publish(
        self,
        project_id: str,
        n_type: NotificationType,
        message: str,
        metadata: NotificationMetadata,
    ) -> int:
        """Deliver to every member concurrently. Returns the number of successful writes."""
        try:
            member_ids = await self._projects.get_member_ids(project_id)
        except Exception:
            logger.exception("Could not resolve members of project %s", project_id)
            return 0
        if not member_ids:
            logger.debug("Project %s has no members to notify", project_id)
            return 0

        now = self._clock()
        results = await asyncio.gather(
            *(
                self._deliver(recipient_id, project_id, n_type, message, metadata, now)
                for recipient_id in member_ids
            )
        )
        delivered = sum(results)
        logger.info(
            "Sent %s notification for %s to %d/%d member(s)",
            n_type.value,
            metadata.content_id,
            delivered,
            len(member_ids),
        )
        return delivered

    async def _deliver(
        self,
        recipient_id: str,
        project_id: str,
        n_type: NotificationType,
        message: str,
        metadata: NotificationMetadata,
        now: datetime,
    ) -> bool:
        try:
            if n_type is NotificationType.COMMENT and metadata.content_id and metadata.actor_id:
                existing = await self._notifications.find_mergeable(
                    recipient_id,
                    n_type,
                    metadata.content_id,
                    metadata.actor_id,
                    now - self._window,
                )
                if existing is not None:
                    await self._notifications.merge(
                        existing,
                        message=merged_comment_message(
                            metadata.actor_name, metadata.content_title, existing.count + 1
                        ),
                        last_comment=metadata.comment,
                        timestamp=now,
                    )
                    logger.debug("Merged into notification %s for %s", existing.id, recipient_id)
                    return True

            record = NotificationRecord(
                recipient_id=recipient_id,
                project_id=project_id,
                type=n_type,
                message=message,
                metadata=metadata,
                timestamp=now,
                created_at=now,
                updated_at=now,
                last_comment=metadata.comment,
            )
            await self._notifications.create(record)
        except Exception:  # noqa: BLE001
            logger.warning(
                "Failed to deliver %s notification to %s", n_type.value, recipient_id, exc_info=True
            )
            return False
        return True

    @staticmethod
    def _metadata(
        actor: Member,
        item: ContentItem,
        instance: str,
        **extra: object,
    ) -> NotificationMetadata:
        return NotificationMetadata(
            content_id=item.id,
            actor_id=actor.uid,
            actor_name=actor.name,
            content_title=item.title,
            content_location=item.location,
            instance=instance,
            **extra,
        )
