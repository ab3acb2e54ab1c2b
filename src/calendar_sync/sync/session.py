"""Channel-scoped sync context and the engine that switches between them."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from calendar_sync.config import SyncConfig
from calendar_sync.models.project import Channel
from calendar_sync.sync.coordinator import MutationCoordinator
from calendar_sync.sync.listener import RemoteSyncListener
from calendar_sync.sync.registry import ContentRegistry
from calendar_sync.sync.sweeper import InvalidEntrySweeper
from calendar_sync.sync.transit import TransitTracker

if TYPE_CHECKING:
    from collections.abc import Callable

    from calendar_sync.database.repositories.activities import ActivityRepository
    from calendar_sync.database.repositories.projects import ProjectRepository
    from calendar_sync.errors import SubscriptionError
    from calendar_sync.models.content import ContentItem
    from calendar_sync.models.project import Member
    from calendar_sync.notifications.fanout import NotificationFanout
    from calendar_sync.storage.blobs import BlobStore

logger = logging.getLogger(__name__)


class ChannelSession:
    """Everything that belongs to one (project, channel) pair.

    A session is created fresh for every channel opened and torn down
    completely when the user leaves it; nothing is shared between sessions
    except the repositories.
    """

    def __init__(
        self,
        project_id: str,
        channel: str,
        projects: ProjectRepository,
        *,
        actor: Member,
        activities: ActivityRepository | None = None,
        fanout: NotificationFanout | None = None,
        blobs: BlobStore | None = None,
        sync: SyncConfig | None = None,
        on_error: Callable[[SubscriptionError], None] | None = None,
    ) -> None:
        sync = sync or SyncConfig()
        self.project_id = project_id
        self.channel = channel
        self.detail_id: str | None = None
        self.registry = ContentRegistry()
        self.tracker = TransitTracker(sync.settle_seconds)
        self.listener = RemoteSyncListener(
            projects,
            project_id,
            channel,
            self.registry,
            self.tracker,
            debounce_seconds=sync.debounce_seconds,
            poll_interval=sync.poll_interval_seconds,
            on_error=on_error,
        )
        self.coordinator = MutationCoordinator(
            project_id,
            channel,
            self.registry,
            self.tracker,
            projects,
            actor=actor,
            activities=activities,
            fanout=fanout,
            blobs=blobs,
            sync=sync,
            on_item_deleted=self._on_item_deleted,
        )
        self.sweeper = InvalidEntrySweeper(
            self.registry,
            projects,
            project_id,
            channel,
            retries=sync.sweep_retries,
            base_delay=sync.sweep_base_delay_seconds,
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        self.sweeper.start()
        await self.listener.start()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.listener.stop()
        await self.sweeper.stop()
        self.coordinator.close()
        self.tracker.close()
        self.registry.close()
        self.detail_id = None
        logger.info("Closed session for project %s channel %s", self.project_id, self.channel)

    def open_detail(self, item_id: str) -> ContentItem | None:
        item = self.registry.get(item_id)
        self.detail_id = item_id if item is not None else None
        return item

    def close_detail(self) -> None:
        self.detail_id = None

    def _on_item_deleted(self, item_id: str) -> None:
        if self.detail_id == item_id:
            self.detail_id = None


class SyncEngine:
    """Owns the shared collaborators and the single active channel session."""

    def __init__(
        self,
        projects: ProjectRepository,
        *,
        actor: Member,
        activities: ActivityRepository | None = None,
        fanout: NotificationFanout | None = None,
        blobs: BlobStore | None = None,
        sync: SyncConfig | None = None,
        on_error: Callable[[SubscriptionError], None] | None = None,
    ) -> None:
        self._projects = projects
        self._actor = actor
        self._activities = activities
        self._fanout = fanout
        self._blobs = blobs
        self._sync = sync or SyncConfig()
        self._on_error = on_error
        self._session: ChannelSession | None = None

    @property
    def session(self) -> ChannelSession:
        if self._session is None:
            raise RuntimeError("No channel is open. Call open() first.")
        return self._session

    @property
    def registry(self) -> ContentRegistry:
        return self.session.registry

    @property
    def coordinator(self) -> MutationCoordinator:
        return self.session.coordinator

    async def open(self, project_id: str, channel: str) -> ChannelSession:
        """Close any open session and start one for ``(project_id, channel)``."""
        channel = Channel.from_instance(channel).value
        await self.close()
        session = ChannelSession(
            project_id,
            channel,
            self._projects,
            actor=self._actor,
            activities=self._activities,
            fanout=self._fanout,
            blobs=self._blobs,
            sync=self._sync,
            on_error=self._on_error,
        )
        self._session = session
        await session.start()
        logger.info("Opened project %s channel %s", project_id, channel)
        return session

    async def switch_channel(self, channel: str) -> ChannelSession:
        return await self.open(self.session.project_id, channel)

    async def close(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            await session.close()

    def pool_items(self) -> list[ContentItem]:
        return self.registry.pool_items()

    def slot_groups(self) -> dict[str, list[ContentItem]]:
        return self.registry.slot_groups()

    def is_busy(self, item_id: str) -> bool:
        return self.session.tracker.is_busy(item_id)

    def open_detail(self, item_id: str) -> ContentItem | None:
        return self.session.open_detail(item_id)

    def close_detail(self) -> None:
        self.session.close_detail()
