"""Removes entries that can never be displayed from the registry and the store."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from calendar_sync.retry import retry_with_backoff

if TYPE_CHECKING:
    from collections.abc import Callable

    from calendar_sync.database.repositories.projects import ProjectRepository
    from calendar_sync.sync.registry import ContentRegistry

logger = logging.getLogger(__name__)


class InvalidEntrySweeper:
    """Watches the registry and deletes invalid items.

    Each invalid id is handled once per sweeper: it is removed locally right
    away and queued for one batched remote delete that retries a bounded
    number of times in the background. Remote failures are only logged.
    """

    def __init__(
        self,
        registry: ContentRegistry,
        projects: ProjectRepository,
        project_id: str,
        channel: str,
        *,
        retries: int = 2,
        base_delay: float = 0.5,
    ) -> None:
        self._registry = registry
        self._projects = projects
        self._project_id = project_id
        self._channel = channel
        self._retries = retries
        self._base_delay = base_delay
        self._seen: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._remove_listener: Callable[[], None] | None = None

    @property
    def seen(self) -> frozenset[str]:
        return frozenset(self._seen)

    def start(self) -> None:
        if self._remove_listener is None:
            self._remove_listener = self._registry.add_listener(self._on_change)

    async def stop(self) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def drain(self) -> None:
        """Wait for every scheduled remote delete to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def sweep(self) -> list[str]:
        """Remove invalid items from the registry. Returns the removed ids.

        Only ids not seen before are deleted remotely, so a snapshot that
        re-delivers an entry whose delete is still pending (or failed) does
        not trigger another write.
        """
        found: list[str] = []
        for item_id, item in self._registry.items().items():
            reason = item.invalid_reason()
            if reason is not None:
                if item_id not in self._seen:
                    logger.warning(
                        "Removing invalid content %s from %s: %s", item_id, self._channel, reason
                    )
                found.append(item_id)
        if not found:
            return []

        self._registry.remove_many(found)
        fresh = [item_id for item_id in found if item_id not in self._seen]
        if not fresh:
            return found
        self._seen.update(fresh)
        task = asyncio.get_running_loop().create_task(self._delete_remote(fresh))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return found

    def _on_change(self, _registry: ContentRegistry) -> None:
        self.sweep()

    async def _delete_remote(self, item_ids: list[str]) -> None:
        try:
            await retry_with_backoff(
                lambda: self._projects.delete_content(self._project_id, self._channel, item_ids),
                retries=self._retries,
                base_delay=self._base_delay,
                description=f"Deleting {len(item_ids)} invalid item(s)",
            )
        except Exception:  # noqa: BLE001
            logger.warning(
                "Giving up on deleting invalid items %s from project %s",
                ", ".join(item_ids),
                self._project_id,
                exc_info=True,
            )
        else:
            logger.info("Deleted %d invalid item(s) from channel %s", len(item_ids), self._channel)
