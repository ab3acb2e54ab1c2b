"""Repository for the activities container (partitioned by /project_id)."""

from __future__ import annotations

from calendar_sync.database.repositories.base import BaseRepository
from calendar_sync.models.activity import ActivityActor, ActivityEntry


class ActivityRepository(BaseRepository[ActivityEntry]):
    container_name = "activities"
    model_class = ActivityEntry

    async def log(
        self,
        project_id: str,
        message: str,
        actor: ActivityActor,
        *,
        channel: str = "",
        content_id: str = "",
    ) -> ActivityEntry:
        """Append a human-readable activity line to the project log."""
        entry = ActivityEntry(
            project_id=project_id,
            channel=channel,
            content_id=content_id,
            message=message,
            actor=actor,
        )
        return await self.create(entry)

    async def list_recent(self, project_id: str, limit: int = 50) -> list[ActivityEntry]:
        return await self.query(
            "SELECT * FROM c WHERE c.project_id = @project_id"
            " ORDER BY c.timestamp DESC OFFSET 0 LIMIT @limit",
            [
                {"name": "@project_id", "value": project_id},
                {"name": "@limit", "value": limit},
            ],
            partition_key=project_id,
        )

    async def list_for_content(self, project_id: str, content_id: str) -> list[ActivityEntry]:
        return await self.query(
            "SELECT * FROM c WHERE c.project_id = @project_id"
            " AND c.content_id = @content_id"
            " ORDER BY c.timestamp DESC",
            [
                {"name": "@project_id", "value": project_id},
                {"name": "@content_id", "value": content_id},
            ],
            partition_key=project_id,
        )
