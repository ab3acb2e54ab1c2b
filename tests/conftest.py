"""Shared fixtures: an in-memory project store standing in for Cosmos DB."""

from __future__ import annotations

import asyncio
import copy
from typing import TYPE_CHECKING, Any

import pytest

from calendar_sync.config import SyncConfig
from calendar_sync.models.project import Channel, Member

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from calendar_sync.models.content import ContentItem


class FakeSubscription:
    """Mimics ProjectChangeFeed: delivers the current document on start."""

    def __init__(
        self,
        store: FakeProjectStore,
        on_snapshot: Callable[[dict[str, Any] | None], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        self.store = store
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.running = False

    async def start(self) -> None:
        self.running = True
        self.store.subscriptions.append(self)
        self.on_snapshot(self.store.current())

    async def stop(self) -> None:
        self.running = False
        if self in self.store.subscriptions:
            self.store.subscriptions.remove(self)


class FakeProjectStore:
    """Implements the ProjectRepository surface the sync engine uses.

    Writes apply last-write-wins to a single document and, with
    ``auto_push`` on, immediately push the new document to every
    subscriber, as the change feed eventually would.
    """

    def __init__(self, project_id: str = "proj-1", member_ids: list[str] | None = None) -> None:
        self.project_id = project_id
        self.document: dict[str, Any] = {
            "id": project_id,
            "member_ids": list(member_ids or ["user-1", "user-2"]),
            "channels": {channel.value: {} for channel in Channel},
        }
        self.subscriptions: list[FakeSubscription] = []
        self.writes: list[tuple[str, Any]] = []
        self.fail_writes = 0
        self.hold: asyncio.Event | None = None
        self.auto_push = True

    def current(self) -> dict[str, Any]:
        return copy.deepcopy(self.document)

    def channel(self, channel: str) -> dict[str, Any]:
        return self.document["channels"].setdefault(channel, {})

    def seed(self, channel: str, item_id: str, fields: Mapping[str, Any]) -> None:
        self.channel(channel)[item_id] = copy.deepcopy(dict(fields))

    def push(self) -> None:
        for subscription in list(self.subscriptions):
            subscription.on_snapshot(self.current())

    def push_error(self, exc: Exception) -> None:
        for subscription in list(self.subscriptions):
            subscription.on_error(exc)

    async def _write(self, kind: str, detail: Any, mutate: Callable[[], None]) -> None:
        if self.hold is not None:
            await self.hold.wait()
        if self.fail_writes:
            self.fail_writes -= 1
            raise RuntimeError("store unavailable")
        mutate()
        self.writes.append((kind, detail))
        if self.auto_push:
            self.push()

    async def put_content(self, project_id: str, channel: str, item: ContentItem) -> None:
        await self._write(
            "put", item.id, lambda: self.seed(channel, item.id, item.to_document())
        )

    async def patch_content(
        self, project_id: str, channel: str, item_id: str, fields: Mapping[str, Any]
    ) -> None:
        def _mutate() -> None:
            self.channel(channel).setdefault(item_id, {}).update(copy.deepcopy(dict(fields)))

        await self._write("patch", (item_id, sorted(fields)), _mutate)

    async def append_to_content(
        self, project_id: str, channel: str, item_id: str, name: str, value: Any
    ) -> None:
        def _mutate() -> None:
            entry = self.channel(channel).setdefault(item_id, {})
            entry.setdefault(name, []).append(copy.deepcopy(value))

        await self._write("append", (item_id, name), _mutate)

    async def delete_content(self, project_id: str, channel: str, item_ids: Iterable[str]) -> None:
        ids = list(item_ids)

        def _mutate() -> None:
            for item_id in ids:
                self.channel(channel).pop(item_id, None)

        await self._write("delete", ids, _mutate)

    async def get_member_ids(self, project_id: str) -> list[str]:
        return list(self.document["member_ids"])

    def subscribe(
        self,
        project_id: str,
        on_snapshot: Callable[[dict[str, Any] | None], None],
        on_error: Callable[[Exception], None],
        *,
        poll_interval: float = 1.0,
    ) -> FakeSubscription:
        return FakeSubscription(self, on_snapshot, on_error)


@pytest.fixture
def store() -> FakeProjectStore:
    return FakeProjectStore()


@pytest.fixture
def fast_sync() -> SyncConfig:
    """Timings short enough for tests to wait them out."""
    return SyncConfig(
        debounce_seconds=0.01,
        settle_seconds=0.03,
        approval_guard_seconds=0.0,
        notification_window_minutes=10.0,
        sweep_retries=2,
        sweep_base_delay_seconds=0.0,
        poll_interval_seconds=0.01,
        max_attachments=5,
        max_upload_bytes=1024,
    )


@pytest.fixture
def alice() -> Member:
    return Member(uid="user-1", email="alice@example.com", display_name="Alice")


@pytest.fixture
def bob() -> Member:
    return Member(uid="user-2", email="bob@example.com", display_name="Bob")


def valid_fields(title: str = "Launch post", location: str = "pool", **extra: Any) -> dict[str, Any]:
    """Raw stored fields for a displayable card."""
    fields: dict[str, Any] = {
        "media_url": f"https://cdn.example.com/{title.replace(' ', '-').lower()}.jpg",
        "title": title,
        "description": "",
        "comment": "",
        "caption": "",
        "video_embed": "",
        "label": "Ready for Approval",
        "content_type": "photo",
        "location": location,
        "last_moved": "2025-01-10T09:00:00+00:00",
        "attachments": [],
        "comments": [],
    }
    fields.update(extra)
    return fields


@pytest.fixture
def make_fields() -> Callable[..., dict[str, Any]]:
    return valid_fields
