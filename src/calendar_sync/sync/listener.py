"""Remote sync listener: feeds project snapshots into the content registry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from calendar_sync.errors import SubscriptionError
from calendar_sync.sync.normalize import normalize_channel
from calendar_sync.sync.timers import Debouncer

if TYPE_CHECKING:
    from collections.abc import Callable

    from calendar_sync.database.change_feed import ProjectChangeFeed
    from calendar_sync.database.repositories.projects import ProjectRepository
    from calendar_sync.sync.registry import ContentRegistry
    from calendar_sync.sync.transit import TransitTracker

logger = logging.getLogger(__name__)

_SNAPSHOT_TIMER = "snapshot"


class RemoteSyncListener:
    """Maintains one subscription for a (project, channel) pair.

    While any card is in transit every snapshot is dropped whole; the check
    runs when a tick arrives and again when its debounce timer fires. The
    newest dropped document is kept and replayed through the debounce once
    the tracker drains, since the change feed only delivers again on the
    next write. Each start/stop bumps a generation counter so a timer armed
    for an earlier subscription can never write into the registry.
    """

    def __init__(
        self,
        projects: ProjectRepository,
        project_id: str,
        channel: str,
        registry: ContentRegistry,
        tracker: TransitTracker,
        *,
        debounce_seconds: float = 0.05,
        poll_interval: float = 1.0,
        on_error: Callable[[SubscriptionError], None] | None = None,
    ) -> None:
        self._projects = projects
        self._project_id = project_id
        self._channel = channel
        self._registry = registry
        self._tracker = tracker
        self._debounce_seconds = debounce_seconds
        self._poll_interval = poll_interval
        self._on_error = on_error
        self._debouncer = Debouncer()
        self._subscription: ProjectChangeFeed | None = None
        self._remove_drain_listener: Callable[[], None] | None = None
        self._generation = 0
        self._has_dropped = False
        self._dropped: dict[str, Any] | None = None
        self.applied_count = 0
        self.dropped_count = 0

    @property
    def active(self) -> bool:
        return self._subscription is not None

    async def start(self) -> None:
        if self._subscription is not None:
            return
        self._generation += 1
        self._remove_drain_listener = self._tracker.add_drain_listener(self._on_drained)
        self._subscription = self._projects.subscribe(
            self._project_id,
            self.handle_snapshot,
            self.handle_error,
            poll_interval=self._poll_interval,
        )
        await self._subscription.start()
        logger.info("Listening to project %s channel %s", self._project_id, self._channel)

    async def stop(self) -> None:
        self._generation += 1
        self._debouncer.cancel_all()
        self._forget_dropped()
        if self._remove_drain_listener is not None:
            self._remove_drain_listener()
            self._remove_drain_listener = None
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.stop()
        logger.info("Stopped listening to project %s channel %s", self._project_id, self._channel)

    def handle_snapshot(self, document: dict[str, Any] | None) -> None:
        """Accept a full project document pushed by the store."""
        if self._suppressed(document):
            return
        self._forget_dropped()
        generation = self._generation
        self._debouncer.schedule(
            _SNAPSHOT_TIMER,
            self._debounce_seconds,
            lambda: self._apply(document, generation),
        )

    def handle_error(self, exc: Exception) -> None:
        """Clear the view and surface a retryable error; the subscription stays open."""
        self._debouncer.cancel_all()
        self._forget_dropped()
        message = f"Failed to load {self._channel} data. Please try again."
        logger.error(
            "Subscription error for project %s channel %s: %s",
            self._project_id,
            self._channel,
            exc,
        )
        self._registry.clear(error=message)
        if self._on_error is not None:
            error = SubscriptionError(message)
            error.__cause__ = exc
            self._on_error(error)

    def _suppressed(self, document: dict[str, Any] | None) -> bool:
        if not self._tracker.active:
            return False
        self.dropped_count += 1
        self._has_dropped = True
        self._dropped = document
        logger.debug(
            "Dropping snapshot for channel %s while %d item(s) are in transit",
            self._channel,
            len(self._tracker),
        )
        return True

    def _apply(self, document: dict[str, Any] | None, generation: int) -> None:
        if generation != self._generation or self._registry.closed:
            logger.debug("Discarding snapshot from a stale subscription")
            return
        if self._suppressed(document):
            return
        items = normalize_channel(document, self._channel)
        self._registry.replace_all(items)
        self.applied_count += 1
        logger.debug("Applied snapshot with %d item(s) for channel %s", len(items), self._channel)

    def _on_drained(self) -> None:
        if not self._has_dropped or self._subscription is None:
            return
        document = self._dropped
        self._forget_dropped()
        logger.debug("Replaying dropped snapshot for channel %s", self._channel)
        self.handle_snapshot(document)

    def _forget_dropped(self) -> None:
        self._has_dropped = False
        self._dropped = None
