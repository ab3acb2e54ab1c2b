"""Tests for the mutation coordinator."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from calendar_sync.errors import UploadError
from calendar_sync.models.content import Attachment, Comment, ContentType, Label
from calendar_sync.storage.blobs import Upload
from calendar_sync.sync.coordinator import ContentDraft, ContentEdit, MutationCoordinator
from calendar_sync.sync.normalize import normalize_channel
from calendar_sync.sync.registry import ContentRegistry
from calendar_sync.sync.transit import TransitTracker

PHOTO = Upload(filename="photo.jpg", content_type="image/jpeg", data=b"jpeg")


@pytest.fixture
def registry(store, make_fields) -> ContentRegistry:
    store.seed("fbig", "a1", make_fields("Launch post"))
    store.seed("fbig", "a2", make_fields("Teaser", location="2025-0-15"))
    store.seed("fbig", "a3", make_fields("Recap", label="Needs Revision"))
    registry = ContentRegistry()
    registry.replace_all(normalize_channel(store.current(), "fbig"))
    return registry


@pytest.fixture
def tracker(fast_sync) -> TransitTracker:
    return TransitTracker(fast_sync.settle_seconds)


@pytest.fixture
def activities() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def fanout() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def blobs() -> AsyncMock:
    blobs = AsyncMock()
    blobs.upload = AsyncMock(return_value="https://blob.example.com/uploads/1_photo.jpg")
    return blobs


@pytest.fixture
def deleted() -> MagicMock:
    return MagicMock()


@pytest.fixture
def coordinator(store, registry, tracker, alice, activities, fanout, blobs, fast_sync, deleted):
    coordinator = MutationCoordinator(
        "proj-1",
        "fbig",
        registry,
        tracker,
        store,
        actor=alice,
        activities=activities,
        fanout=fanout,
        blobs=blobs,
        sync=fast_sync,
        on_item_deleted=deleted,
    )
    yield coordinator
    coordinator.close()
    tracker.close()


def _logged(activities: AsyncMock) -> list[str]:
    return [call.args[1] for call in activities.log.call_args_list]


class TestMoves:
    async def test_move_to_slot_patches_location_and_last_moved(self, coordinator, store, registry, activities):
        before = registry.get("a1").last_moved

        result = await coordinator.move_to_slot("a1", 2025, 0, 14)

        assert result.ok
        assert registry.get("a1").location == "2025-0-14"
        assert registry.get("a1").last_moved > before
        assert store.writes == [("patch", ("a1", ["last_moved", "location"]))]
        assert store.channel("fbig")["a1"]["location"] == "2025-0-14"
        assert _logged(activities) == ["Alice dropped 'Launch post' on January 14, 2025"]

    async def test_item_stays_busy_until_settled(self, coordinator, tracker, fast_sync):
        await coordinator.move_to_slot_key("a1", "2025-0-14")
        assert tracker.is_busy("a1")
        await asyncio.sleep(fast_sync.settle_seconds * 3)
        assert not tracker.is_busy("a1")

    async def test_rejects_occupied_slot(self, coordinator, store, registry):
        result = await coordinator.move_to_slot_key("a1", "2025-0-15")
        assert not result.ok
        assert "already has content" in result.message
        assert registry.get("a1").in_pool
        assert store.writes == []

    async def test_rejects_malformed_key(self, coordinator, store):
        result = await coordinator.move_to_slot_key("a1", "2025-13-40")
        assert not result.ok
        assert store.writes == []

    async def test_rejects_unknown_item(self, coordinator):
        result = await coordinator.move_to_slot("missing", 2025, 0, 1)
        assert not result.ok
        assert result.message == "Content not found."

    async def test_same_slot_is_noop(self, coordinator, store):
        result = await coordinator.move_to_slot_key("a2", "2025-0-15")
        assert result.ok
        assert store.writes == []

    async def test_move_to_pool(self, coordinator, store, registry, activities):
        result = await coordinator.move_to_pool("a2")
        assert result.ok
        assert registry.get("a2").in_pool
        assert store.channel("fbig")["a2"]["location"] == "pool"
        assert _logged(activities) == ["Alice moved 'Teaser' back to pool"]

    async def test_move_to_pool_requires_media(self, coordinator, registry, store):
        registry.upsert("a2", registry.get("a2").model_copy(update={"media_url": ""}))
        result = await coordinator.move_to_pool("a2")
        assert not result.ok
        assert store.writes == []

    async def test_failed_write_restores_registry_exactly(self, coordinator, store, registry, activities, tracker):
        before = registry.snapshot()
        store.fail_writes = 1

        result = await coordinator.move_to_slot_key("a1", "2025-0-20")

        assert not result.ok
        assert result.item_id == "a1"
        assert registry.items() == before
        assert {k: v.model_dump_json() for k, v in registry.items().items()} == {
            k: v.model_dump_json() for k, v in before.items()
        }
        activities.log.assert_not_awaited()
        assert tracker.is_busy("a1")


class TestApproval:
    async def test_round_trip(self, coordinator, registry, store, fanout):
        first = await coordinator.toggle_approval("a1")
        assert first.ok
        assert registry.get("a1").label is Label.APPROVED
        assert store.channel("fbig")["a1"]["label"] == "Approved"

        second = await coordinator.toggle_approval("a1")
        assert second.ok
        assert registry.get("a1").label is Label.READY_FOR_APPROVAL
        assert store.channel("fbig")["a1"]["label"] == "Ready for Approval"

        approving = [call.kwargs["approving"] for call in fanout.notify_approval.call_args_list]
        assert approving == [True, False]

    async def test_other_labels_rejected(self, coordinator, store):
        result = await coordinator.toggle_approval("a3")
        assert not result.ok
        assert store.writes == []

    async def test_reentrant_toggle_ignored(self, coordinator, store, registry):
        store.hold = asyncio.Event()
        first = asyncio.create_task(coordinator.toggle_approval("a1"))
        await asyncio.sleep(0)

        second = await coordinator.toggle_approval("a1")
        store.hold.set()
        result = await first

        assert not second.ok
        assert result.ok
        assert registry.get("a1").label is Label.APPROVED
        assert len(store.writes) == 1

    async def test_guard_held_after_completion(self, store, registry, tracker, alice, fast_sync):
        coordinator = MutationCoordinator(
            "proj-1",
            "fbig",
            registry,
            tracker,
            store,
            actor=alice,
            sync=replace(fast_sync, approval_guard_seconds=0.05),
        )
        assert (await coordinator.toggle_approval("a1")).ok
        assert not (await coordinator.toggle_approval("a1")).ok
        await asyncio.sleep(0.1)
        assert (await coordinator.toggle_approval("a1")).ok
        coordinator.close()
        tracker.close()

    async def test_fanout_failure_does_not_fail_mutation(self, coordinator, fanout):
        fanout.notify_approval.side_effect = RuntimeError("notifications down")
        result = await coordinator.toggle_approval("a1")
        assert result.ok

    async def test_set_status_notifies_old_and_new(self, coordinator, store, fanout):
        result = await coordinator.set_status("a3", "Scheduled")
        assert result.ok
        assert store.channel("fbig")["a3"]["label"] == "Scheduled"
        args = fanout.notify_status_change.call_args.args
        assert args[3:] == ("Needs Revision", "Scheduled")

    async def test_set_status_unknown_rejected(self, coordinator, store):
        result = await coordinator.set_status("a3", "Published")
        assert not result.ok
        assert store.writes == []


class TestCreate:
    async def test_creates_item_in_pool(self, coordinator, store, registry, blobs, activities):
        draft = ContentDraft(title="New post", label=Label.READY_FOR_APPROVAL, content_type=ContentType.PHOTO)

        result = await coordinator.create_item(draft, PHOTO)

        assert result.ok
        item = registry.get(result.item_id)
        assert item.in_pool
        assert item.media_url == "https://blob.example.com/uploads/1_photo.jpg"
        assert store.channel("fbig")[result.item_id]["title"] == "New post"
        blobs.upload.assert_awaited_once_with(PHOTO)
        assert _logged(activities) == ["Alice uploaded a new content: New post"]

    @pytest.mark.parametrize(
        ("draft", "upload", "message"),
        [
            (ContentDraft(title=" ", label=Label.APPROVED, content_type=ContentType.PHOTO), PHOTO, "Title is required."),
            (ContentDraft(title="T", content_type=ContentType.PHOTO), PHOTO, "Label is required."),
            (ContentDraft(title="T", label=Label.APPROVED), PHOTO, "Content type is required."),
            (ContentDraft(title="T", label=Label.APPROVED, content_type=ContentType.PHOTO), None, "Please upload an image or video."),
            (
                ContentDraft(title="T", label=Label.APPROVED, content_type=ContentType.REEL),
                PHOTO,
                "A video embed link is required for reels and videos.",
            ),
        ],
    )
    async def test_validation(self, coordinator, store, blobs, draft, upload, message):
        result = await coordinator.create_item(draft, upload)
        assert not result.ok
        assert result.message == message
        blobs.upload.assert_not_awaited()
        assert store.writes == []

    async def test_rejects_non_media_upload(self, coordinator, blobs):
        draft = ContentDraft(title="Doc", label=Label.APPROVED, content_type=ContentType.PHOTO)
        pdf = Upload(filename="doc.pdf", content_type="application/pdf", data=b"%PDF")
        result = await coordinator.create_item(draft, pdf)
        assert result.message == "Only images and videos are allowed."
        blobs.upload.assert_not_awaited()

    async def test_upload_failure_reported(self, coordinator, blobs, store, registry):
        blobs.upload.side_effect = UploadError("Failed to upload photo.jpg")
        draft = ContentDraft(title="New", label=Label.APPROVED, content_type=ContentType.PHOTO)
        result = await coordinator.create_item(draft, PHOTO)
        assert not result.ok
        assert result.message == "Failed to upload photo.jpg"
        assert len(registry) == 3
        assert store.writes == []

    async def test_failed_write_removes_optimistic_item(self, coordinator, store, registry):
        store.fail_writes = 1
        draft = ContentDraft(title="New", label=Label.APPROVED, content_type=ContentType.PHOTO)
        result = await coordinator.create_item(draft, PHOTO)
        assert not result.ok
        assert result.item_id not in registry
        assert len(registry) == 3


class TestEdit:
    async def test_patches_only_changed_fields(self, coordinator, store, fanout):
        result = await coordinator.save_edit("a1", ContentEdit(title="Launch post", caption="Out now"))
        assert result.ok
        assert store.writes == [("patch", ("a1", ["caption"]))]
        assert fanout.notify_edit.call_args.args[3] == ["caption"]

    async def test_no_change_is_noop(self, coordinator, store, fanout):
        result = await coordinator.save_edit("a1", ContentEdit(title="Launch post"))
        assert result.ok
        assert result.message == "No changes to save."
        assert store.writes == []
        fanout.notify_edit.assert_not_awaited()

    async def test_reel_needs_embed(self, coordinator, store):
        result = await coordinator.save_edit("a1", ContentEdit(content_type=ContentType.REEL))
        assert not result.ok
        assert store.writes == []


class TestAttachments:
    async def test_attach_files(self, coordinator, store, registry, blobs):
        second = Upload(filename="clip.mp4", content_type="video/mp4", data=b"mp4")
        result = await coordinator.attach_files("a1", [PHOTO, second])
        assert result.ok
        assert len(registry.get("a1").attachments) == 2
        assert len(store.channel("fbig")["a1"]["attachments"]) == 2
        assert blobs.upload.await_count == 2

    async def test_limit_counts_existing(self, coordinator, registry, blobs):
        existing = [Attachment(url=f"https://cdn/{n}", name=str(n)) for n in range(4)]
        registry.upsert("a1", registry.get("a1").model_copy(update={"attachments": existing}))
        result = await coordinator.attach_files("a1", [PHOTO, PHOTO])
        assert not result.ok
        assert result.message == "You can only add 1 more attachment(s)."
        blobs.upload.assert_not_awaited()

    async def test_oversized_file_rejected(self, coordinator, blobs):
        big = Upload(filename="big.jpg", content_type="image/jpeg", data=b"x" * 2048)
        result = await coordinator.attach_files("a1", [big])
        assert not result.ok
        assert result.message.startswith("File size exceeds")
        blobs.upload.assert_not_awaited()


class TestComments:
    async def test_add_comment(self, coordinator, store, registry, fanout):
        result = await coordinator.add_comment("a1", "  Looks great  ")
        assert result.ok
        comments = registry.get("a1").comments
        assert [c.text for c in comments] == ["Looks great"]
        assert result.message == comments[0].id
        assert store.channel("fbig")["a1"]["comments"][0]["user_name"] == "Alice"
        assert fanout.notify_comment.call_args.args[3] == "Looks great"

    @pytest.mark.parametrize("text", ["", "   ", "x" * 5001])
    async def test_rejects_empty_or_long(self, coordinator, store, text):
        result = await coordinator.add_comment("a1", text)
        assert not result.ok
        assert store.writes == []

    async def test_delete_own_comment(self, coordinator, store, registry):
        added = await coordinator.add_comment("a1", "typo")
        result = await coordinator.delete_comment("a1", added.message)
        assert result.ok
        assert registry.get("a1").comments == []
        assert store.channel("fbig")["a1"]["comments"] == []

    async def test_cannot_delete_others_comment(self, coordinator, registry, bob):
        other = registry.get("a1").model_copy(
            update={"comments": [Comment(id="comment_x", user_id=bob.uid, text="mine")]}
        )
        registry.upsert("a1", other)
        result = await coordinator.delete_comment("a1", "comment_x")
        assert not result.ok


class TestDelete:
    async def test_delete_removes_everywhere(self, coordinator, store, registry, deleted, activities):
        result = await coordinator.delete_item("a2")
        assert result.ok
        assert "a2" not in registry
        assert "a2" not in store.channel("fbig")
        assert store.writes == [("delete", ["a2"])]
        deleted.assert_called_once_with("a2")
        assert _logged(activities) == ["Alice deleted content: Teaser"]

    async def test_failed_delete_restores(self, coordinator, store, registry):
        store.fail_writes = 1
        result = await coordinator.delete_item("a2")
        assert not result.ok
        assert registry.get("a2").title == "Teaser"
