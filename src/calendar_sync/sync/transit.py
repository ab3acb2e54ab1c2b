"""Tracks cards whose local change has not been confirmed remotely yet."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class TransitTracker:
    """Item ids currently mid-mutation, counted per id.

    ``end`` keeps the id busy for a short settle delay so that a snapshot
    generated just before the write landed cannot snap the card back. Two
    overlapping mutations on one id keep it busy until both have settled.
    Drain listeners run each time the last busy id is released.
    """

    def __init__(self, settle_seconds: float = 0.5) -> None:
        self._settle_seconds = settle_seconds
        self._busy: dict[str, int] = {}
        self._handles: set[asyncio.TimerHandle] = set()
        self._drain_listeners: list[Callable[[], None]] = []

    def __len__(self) -> int:
        return len(self._busy)

    @property
    def active(self) -> bool:
        return bool(self._busy)

    def busy_ids(self) -> frozenset[str]:
        return frozenset(self._busy)

    def is_busy(self, item_id: str) -> bool:
        return item_id in self._busy

    def add_drain_listener(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Call ``callback`` whenever the tracker goes from busy to empty."""
        self._drain_listeners.append(callback)

        def remove() -> None:
            if callback in self._drain_listeners:
                self._drain_listeners.remove(callback)

        return remove

    def begin(self, item_id: str) -> None:
        self._busy[item_id] = self._busy.get(item_id, 0) + 1
        logger.debug("Item %s in transit (%d pending)", item_id, self._busy[item_id])

    def end(self, item_id: str) -> None:
        """Release one ``begin`` of ``item_id`` once the settle delay has elapsed."""
        if item_id not in self._busy:
            return
        if self._settle_seconds <= 0:
            self._release(item_id)
            return
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def fire() -> None:
            self._handles.discard(handle)
            self._release(item_id)

        handle = loop.call_later(self._settle_seconds, fire)
        self._handles.add(handle)

    def close(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
        self._busy.clear()
        self._drain_listeners.clear()

    def _release(self, item_id: str) -> None:
        remaining = self._busy.get(item_id, 0) - 1
        if remaining > 0:
            self._busy[item_id] = remaining
            return
        self._busy.pop(item_id, None)
        logger.debug("Item %s settled", item_id)
        if self._busy:
            return
        for callback in list(self._drain_listeners):
            try:
                callback()
            except Exception:
                logger.exception("Transit drain listener failed")
