"""Cosmos DB change feed subscription for a single project document."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

from calendar_sync.retry import compute_backoff_delay

if TYPE_CHECKING:
    from collections.abc import Callable

    from azure.cosmos.aio import ContainerProxy

logger = logging.getLogger(__name__)

_MAX_ERROR_DELAY_SECONDS = 30.0


class ProjectChangeFeed:
    """Pushes the full current project document whenever it changes.

    The first pass reads the partition's feed from the beginning, which in
    latest-version mode yields the current document exactly once (or nothing
    when the project does not exist). Later passes resume from the
    continuation token. After an error the token is dropped so the next
    successful pass re-delivers the current document.
    """

    def __init__(
        self,
        container: ContainerProxy,
        project_id: str,
        on_snapshot: Callable[[dict[str, Any] | None], None],
        on_error: Callable[[Exception], None],
        *,
        poll_interval: float = 1.0,
    ) -> None:
        self._container = container
        self._project_id = project_id
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._poll_interval = poll_interval
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start polling the change feed in a background task."""
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("Change feed started for project %s", self._project_id)

    async def stop(self) -> None:
        """Stop polling and wait for the background task to finish."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Change feed stopped for project %s", self._project_id)

    async def _poll_loop(self) -> None:
        token: str | None = None
        attempt = 0
        while self._running:
            try:
                token = await self._process_feed(token)
                attempt = 0
                delay = self._poll_interval
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                token = None
                delay = compute_backoff_delay(
                    attempt, self._poll_interval, max_delay=_MAX_ERROR_DELAY_SECONDS
                )
                attempt += 1
                logger.warning(
                    "Change feed error for project %s; retrying in %.1fs",
                    self._project_id,
                    delay,
                    exc_info=True,
                )
                self._on_error(exc)
            await asyncio.sleep(delay)

    async def _process_feed(self, continuation_token: str | None) -> str | None:
        """Read one batch of changes and deliver the newest project document."""
        query_kwargs: dict[str, Any] = {
            "partition_key": self._project_id,
            "max_item_count": 100,
        }
        if continuation_token:
            query_kwargs["continuation"] = continuation_token
        else:
            query_kwargs["start_time"] = "Beginning"

        response = self._container.query_items_change_feed(**query_kwargs)

        latest: dict[str, Any] | None = None
        async for item in response:
            if item.get("id") == self._project_id:
                latest = item

        if latest is not None:
            self._on_snapshot(latest)
        elif continuation_token is None:
            # The feed is empty from the beginning: the project does not exist.
            self._on_snapshot(None)

        return self._next_token(response) or continuation_token

    def _next_token(self, response: object) -> str | None:
        token = getattr(response, "continuation_token", None)
        if isinstance(token, str):
            return token
        headers = getattr(self._container.client_connection, "last_response_headers", None)
        if isinstance(headers, dict):
            etag = headers.get("etag")
            if isinstance(etag, str):
                return etag
        return None
