"""In-memory content registry for the active (project, channel) pair."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from calendar_sync.models.content import ContentItem

logger = logging.getLogger(__name__)


class ContentRegistry:
    """Single source of truth for the cards the UI shows.

    Holds no network state. Listeners run synchronously after every change;
    changes made by a listener are delivered in a follow-up round rather than
    recursively. A closed registry ignores writes.
    """

    def __init__(self) -> None:
        self._items: dict[str, ContentItem] = {}
        self._listeners: list[Callable[[ContentRegistry], None]] = []
        self._notifying = False
        self._pending = False
        self._closed = False
        self.loading = True
        self.error: str | None = None

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, item_id: str) -> ContentItem | None:
        return self._items.get(item_id)

    def items(self) -> dict[str, ContentItem]:
        return dict(self._items)

    def replace_all(self, items: Mapping[str, ContentItem]) -> None:
        """Swap in a complete channel snapshot and leave the loading state."""
        if self._guard_closed("replace_all"):
            return
        self._items = dict(items)
        self.loading = False
        self.error = None
        self._notify()

    def upsert(self, item_id: str, item: ContentItem) -> None:
        if self._guard_closed("upsert"):
            return
        if item.id != item_id:
            item = item.model_copy(update={"id": item_id})
        self._items[item_id] = item
        self._notify()

    def remove(self, item_id: str) -> ContentItem | None:
        if self._guard_closed("remove"):
            return None
        removed = self._items.pop(item_id, None)
        if removed is not None:
            self._notify()
        return removed

    def remove_many(self, item_ids: Iterable[str]) -> list[str]:
        """Remove several items with a single change notification."""
        if self._guard_closed("remove_many"):
            return []
        removed = [item_id for item_id in item_ids if self._items.pop(item_id, None) is not None]
        if removed:
            self._notify()
        return removed

    def clear(self, *, error: str | None = None) -> None:
        if self._guard_closed("clear"):
            return
        self._items = {}
        self.loading = False
        self.error = error
        self._notify()

    def snapshot(self) -> dict[str, ContentItem]:
        """Return a deep copy of the current state, for rollback."""
        return {item_id: item.model_copy(deep=True) for item_id, item in self._items.items()}

    def restore(self, snapshot: Mapping[str, ContentItem]) -> None:
        if self._guard_closed("restore"):
            return
        self._items = {item_id: item.model_copy(deep=True) for item_id, item in snapshot.items()}
        self._notify()

    def pool_items(self) -> list[ContentItem]:
        """Pool cards, most recently moved first."""
        pool = [item for item in self._items.values() if item.in_pool]
        pool.sort(key=lambda item: item.id)
        pool.sort(key=lambda item: item.last_moved, reverse=True)
        return pool

    def slot_groups(self) -> dict[str, list[ContentItem]]:
        """Calendar cards grouped by slot key."""
        groups: dict[str, list[ContentItem]] = defaultdict(list)
        for item in self._items.values():
            if not item.in_pool:
                groups[item.location].append(item)
        return dict(groups)

    def occupant(self, slot: str, *, exclude: str | None = None) -> ContentItem | None:
        """Return the card occupying ``slot`` in the local view, if any."""
        for item in self._items.values():
            if item.location == slot and item.id != exclude:
                return item
        return None

    def add_listener(self, callback: Callable[[ContentRegistry], None]) -> Callable[[], None]:
        """Register a change callback. Returns a function that removes it."""
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def close(self) -> None:
        self._closed = True
        self._listeners.clear()

    def _guard_closed(self, operation: str) -> bool:
        if self._closed:
            logger.debug("Ignoring %s on a closed registry", operation)
        return self._closed

    def _notify(self) -> None:
        if self._notifying:
            self._pending = True
            return
        self._notifying = True
        try:
            while True:
                self._pending = False
                for callback in list(self._listeners):
                    try:
                        callback(self)
                    except Exception:
                        logger.exception("Registry listener failed")
                if not self._pending:
                    break
        finally:
            self._notifying = False
