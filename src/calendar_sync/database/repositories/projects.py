"""Repository for the projects container (partitioned by /id)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from calendar_sync.database.change_feed import ProjectChangeFeed
from calendar_sync.database.repositories.base import BaseRepository, field_path
from calendar_sync.models.project import Member, Project

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from calendar_sync.models.content import ContentItem

logger = logging.getLogger(__name__)


class ProjectRepository(BaseRepository[Project]):
    """Project documents and the channel content maps nested inside them."""

    container_name = "projects"
    model_class = Project

    async def get_project(self, project_id: str) -> Project | None:
        return await self.get(project_id, project_id)

    async def create_project(self, name: str, owner: Member) -> Project:
        """Create a project owned (and joined) by ``owner`` with empty channels."""
        project = Project(name=name, owner=owner, members=[owner], member_ids=[owner.uid])
        await self.create(project)
        logger.info("Created project %s (%s)", project.id, name)
        return project

    async def add_member(self, project_id: str, member: Member) -> bool:
        """Add a member to the project. Returns False when already a member."""
        project = await self.get_project(project_id)
        if project is None:
            raise LookupError(f"Project {project_id} not found")
        if member.uid in project.member_ids:
            return False
        await self.patch(
            project_id,
            project_id,
            [
                {"op": "add", "path": "/members/-", "value": member.model_dump(mode="json")},
                {"op": "add", "path": "/member_ids/-", "value": member.uid},
            ],
        )
        logger.info("Added member %s to project %s", member.uid, project_id)
        return True

    async def get_member_ids(self, project_id: str) -> list[str]:
        project = await self.get_project(project_id)
        return list(project.member_ids) if project else []

    async def put_content(self, project_id: str, channel: str, item: ContentItem) -> None:
        """Write a whole content item under ``channels.<channel>.<id>``."""
        await self.patch(
            project_id,
            project_id,
            [
                {
                    "op": "set",
                    "path": field_path("channels", channel, item.id),
                    "value": item.to_document(),
                }
            ],
        )

    async def patch_content(
        self,
        project_id: str,
        channel: str,
        item_id: str,
        fields: Mapping[str, Any],
    ) -> None:
        """Set only the given fields of one content item."""
        operations = [
            {"op": "set", "path": field_path("channels", channel, item_id, name), "value": value}
            for name, value in fields.items()
        ]
        if operations:
            await self.patch(project_id, project_id, operations)

    async def append_to_content(
        self,
        project_id: str,
        channel: str,
        item_id: str,
        name: str,
        value: Any,
    ) -> None:
        """Append one value to a list field of a content item without rewriting it."""
        await self.patch(
            project_id,
            project_id,
            [{"op": "add", "path": field_path("channels", channel, item_id, name) + "/-", "value": value}],
        )

    async def delete_content(self, project_id: str, channel: str, item_ids: Iterable[str]) -> None:
        """Remove content items entirely (the field is removed, not nulled).

        Cosmos rejects a whole patch request when one ``remove`` targets a
        missing path, so only ids still stored are sent. Ids that are already
        gone are skipped.
        """
        project = await self.get_project(project_id)
        if project is None:
            return
        stored = project.channels.get(channel, {})
        operations = [
            {"op": "remove", "path": field_path("channels", channel, item_id)}
            for item_id in item_ids
            if item_id in stored
        ]
        if operations:
            await self.patch(project_id, project_id, operations)

    def subscribe(
        self,
        project_id: str,
        on_snapshot: Callable[[dict[str, Any] | None], None],
        on_error: Callable[[Exception], None],
        *,
        poll_interval: float = 1.0,
    ) -> ProjectChangeFeed:
        """Return an unstarted change feed subscription for one project."""
        return ProjectChangeFeed(
            self._container,
            project_id,
            on_snapshot,
            on_error,
            poll_interval=poll_interval,
        )
