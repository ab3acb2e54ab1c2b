"""Mutation coordinator: the only writer of user intents.

Every operation follows the same shape: validate against the local view,
snapshot the registry, apply the change optimistically, mark the card in
transit, send a minimal field patch, then either record the activity and
notify members or restore the snapshot and report the failure.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from calendar_sync.config import SyncConfig
from calendar_sync.errors import MutationRejectedError, UploadError
from calendar_sync.models.activity import ActivityActor
from calendar_sync.models.base import utcnow
from calendar_sync.models.content import (
    COMMENT_MAX_LENGTH,
    MAX_STORED_ATTACHMENTS,
    POOL,
    Attachment,
    Comment,
    ContentItem,
    ContentType,
    Label,
    is_valid_location,
    parse_slot_key,
    slot_key,
)
from calendar_sync.notifications import messages
from calendar_sync.storage.blobs import validate_media
from calendar_sync.sync.timers import Debouncer

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from calendar_sync.database.repositories.activities import ActivityRepository
    from calendar_sync.database.repositories.projects import ProjectRepository
    from calendar_sync.models.project import Member
    from calendar_sync.notifications.fanout import NotificationFanout
    from calendar_sync.storage.blobs import BlobStore, Upload
    from calendar_sync.sync.registry import ContentRegistry
    from calendar_sync.sync.transit import TransitTracker

logger = logging.getLogger(__name__)

_TOGGLE_LABELS = (Label.APPROVED, Label.READY_FOR_APPROVAL)


class MutationResult(BaseModel):
    """Outcome of a user intent, shown to the user as-is."""

    ok: bool
    message: str = ""
    item_id: str = ""


class ContentDraft(BaseModel):
    """Fields entered for a new card."""

    title: str = ""
    description: str = ""
    comment: str = ""
    caption: str = ""
    video_embed: str = ""
    label: Label | None = None
    content_type: ContentType | None = None
    location: str = POOL


class ContentEdit(BaseModel):
    """Fields changed in the edit form. ``None`` means untouched."""

    title: str | None = None
    description: str | None = None
    comment: str | None = None
    caption: str | None = None
    video_embed: str | None = None
    label: Label | None = None
    content_type: ContentType | None = None


def _ok(item_id: str, message: str = "") -> MutationResult:
    return MutationResult(ok=True, message=message, item_id=item_id)


class MutationCoordinator:
    """Applies one user's intents to the active channel."""

    def __init__(
        self,
        project_id: str,
        channel: str,
        registry: ContentRegistry,
        tracker: TransitTracker,
        projects: ProjectRepository,
        *,
        actor: Member,
        activities: ActivityRepository | None = None,
        fanout: NotificationFanout | None = None,
        blobs: BlobStore | None = None,
        sync: SyncConfig | None = None,
        on_item_deleted: Callable[[str], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._project_id = project_id
        self._channel = channel
        self._registry = registry
        self._tracker = tracker
        self._projects = projects
        self._actor = actor
        self._activities = activities
        self._fanout = fanout
        self._blobs = blobs
        self._sync = sync or SyncConfig()
        self._on_item_deleted = on_item_deleted
        self._clock = clock
        self._approvals_in_flight: set[str] = set()
        self._guard_timers = Debouncer()

    def close(self) -> None:
        self._guard_timers.cancel_all()
        self._approvals_in_flight.clear()

    # Moves

    async def move_to_slot(self, item_id: str, year: int, month: int, day: int) -> MutationResult:
        """Drop a card on a calendar day. ``month`` is zero-indexed."""
        return await self.move_to_slot_key(item_id, slot_key(year, month, day))

    async def move_to_slot_key(self, item_id: str, key: str) -> MutationResult:
        item = self._registry.get(item_id)
        if item is None:
            return self._reject("move", item_id, "Content not found.")
        if parse_slot_key(key) is None:
            return self._reject("move", item_id, "Invalid calendar date.")
        if item.location == key:
            return _ok(item_id)
        if self._registry.occupant(key, exclude=item_id) is not None:
            return self._reject("move", item_id, "That date already has content scheduled.")

        updated = item.model_copy(update={"location": key, "last_moved": self._clock()})
        if not await self._apply("move", updated, {"location", "last_moved"}):
            return MutationResult(ok=False, message="Failed to move content. Please try again.", item_id=item_id)
        await self._log_activity(messages.dropped_activity(self._actor.name, item.title, key), item_id)
        return _ok(item_id)

    async def move_to_pool(self, item_id: str) -> MutationResult:
        item = self._registry.get(item_id)
        if item is None:
            return self._reject("move to pool", item_id, "Content not found.")
        if not item.media_url:
            return self._reject("move to pool", item_id, "Content has no media and cannot be moved.")
        if item.in_pool:
            return _ok(item_id)

        updated = item.model_copy(update={"location": POOL, "last_moved": self._clock()})
        if not await self._apply("move to pool", updated, {"location", "last_moved"}):
            return MutationResult(ok=False, message="Failed to move content. Please try again.", item_id=item_id)
        await self._log_activity(messages.pooled_activity(self._actor.name, item.title), item_id)
        return _ok(item_id)

    # Labels

    async def toggle_approval(self, item_id: str) -> MutationResult:
        """Flip between Approved and Ready for Approval."""
        if item_id in self._approvals_in_flight:
            logger.debug("Ignoring approval toggle for %s: already in progress", item_id)
            return MutationResult(ok=False, message="Approval change already in progress.", item_id=item_id)
        item = self._registry.get(item_id)
        if item is None:
            return self._reject("approval", item_id, "Content not found.")
        if item.label not in _TOGGLE_LABELS:
            return self._reject(
                "approval", item_id, f"Content labelled {item.label.value} cannot be toggled."
            )

        approving = item.label is Label.READY_FOR_APPROVAL
        new_label = Label.APPROVED if approving else Label.READY_FOR_APPROVAL
        self._approvals_in_flight.add(item_id)
        try:
            updated = item.model_copy(update={"label": new_label})
            ok = await self._apply("approval", updated, {"label"})
        finally:
            self._release_approval_guard(item_id)
        if not ok:
            return MutationResult(
                ok=False, message="Failed to update approval. Please try again.", item_id=item_id
            )

        await self._log_activity(
            messages.approval_activity(self._actor.name, item.title, approving=approving), item_id
        )
        if self._fanout is not None:
            await self._notify(
                self._fanout.notify_approval(
                    self._project_id, self._actor, updated, approving=approving, instance=self._channel
                )
            )
        return _ok(item_id, "Content approved" if approving else "Content marked for review")

    async def set_status(self, item_id: str, label: Label | str) -> MutationResult:
        try:
            new_label = Label(label)
        except ValueError:
            return self._reject("status", item_id, f"Unknown status {label!r}.")
        item = self._registry.get(item_id)
        if item is None:
            return self._reject("status", item_id, "Content not found.")
        if item.label is new_label:
            return _ok(item_id)

        old_label = item.label
        updated = item.model_copy(update={"label": new_label})
        if not await self._apply("status", updated, {"label"}):
            return MutationResult(
                ok=False, message="Failed to update status. Please try again.", item_id=item_id
            )
        await self._log_activity(
            messages.status_activity(self._actor.name, item.title, new_label.value), item_id
        )
        if self._fanout is not None:
            await self._notify(
                self._fanout.notify_status_change(
                    self._project_id,
                    self._actor,
                    updated,
                    old_label.value,
                    new_label.value,
                    instance=self._channel,
                )
            )
        return _ok(item_id)

    # Content lifecycle

    async def create_item(self, draft: ContentDraft, upload: Upload | None) -> MutationResult:
        """Upload the asset and add a new card to the pool (or a free slot)."""
        try:
            self._check_draft(draft, upload)
        except MutationRejectedError as exc:
            return self._reject("create", "", str(exc))
        if self._blobs is None:
            return self._reject("create", "", "Uploads are not available.")
        try:
            validate_media(upload, self._sync.max_upload_bytes)
            media_url = await self._blobs.upload(upload)
        except UploadError as exc:
            logger.warning("Upload rejected for new content %r: %s", draft.title, exc)
            return MutationResult(ok=False, message=str(exc))

        item = ContentItem(
            media_url=media_url,
            title=draft.title.strip(),
            description=draft.description,
            comment=draft.comment,
            caption=draft.caption,
            video_embed=draft.video_embed.strip(),
            label=draft.label,
            content_type=draft.content_type,
            location=draft.location,
            last_moved=self._clock(),
        )
        snapshot = self._registry.snapshot()
        self._registry.upsert(item.id, item)
        written = await self._commit(
            "create",
            item.id,
            snapshot,
            lambda: self._projects.put_content(self._project_id, self._channel, item),
        )
        if not written:
            return MutationResult(
                ok=False, message="Failed to save content. Please try again.", item_id=item.id
            )
        await self._log_activity(messages.created_activity(self._actor.name, item.title), item.id)
        return _ok(item.id, "Content uploaded")

    async def save_edit(self, item_id: str, edit: ContentEdit) -> MutationResult:
        """Patch only the fields that actually changed."""
        item = self._registry.get(item_id)
        if item is None:
            return self._reject("edit", item_id, "Content not found.")
        changes: dict[str, Any] = {
            name: value
            for name, value in edit.model_dump(exclude_none=True).items()
            if getattr(item, name) != value
        }
        if not changes:
            return _ok(item_id, "No changes to save.")

        updated = item.model_copy(update=changes)
        if not updated.title.strip():
            return self._reject("edit", item_id, "Title is required.")
        if updated.content_type.requires_embed and not updated.video_embed.strip():
            return self._reject("edit", item_id, "A video embed link is required for reels and videos.")

        if not await self._apply("edit", updated, set(changes)):
            return MutationResult(
                ok=False, message="Failed to save changes. Please try again.", item_id=item_id
            )
        await self._log_activity(messages.edited_activity(self._actor.name, updated.title), item_id)
        if self._fanout is not None:
            await self._notify(
                self._fanout.notify_edit(
                    self._project_id, self._actor, updated, list(changes), instance=self._channel
                )
            )
        return _ok(item_id, "Changes saved")

    async def attach_files(self, item_id: str, uploads: list[Upload]) -> MutationResult:
        item = self._registry.get(item_id)
        if item is None:
            return self._reject("attach", item_id, "Content not found.")
        if not uploads:
            return self._reject("attach", item_id, "No files selected.")
        remaining = self._sync.max_attachments - len(item.attachments)
        if remaining <= 0:
            return self._reject(
                "attach", item_id, f"Maximum of {self._sync.max_attachments} attachments reached."
            )
        if len(uploads) > remaining:
            return self._reject("attach", item_id, f"You can only add {remaining} more attachment(s).")
        if self._blobs is None:
            return self._reject("attach", item_id, "Uploads are not available.")

        added: list[Attachment] = []
        try:
            for upload in uploads:
                validate_media(upload, self._sync.max_upload_bytes)
            for upload in uploads:
                url = await self._blobs.upload(upload)
                added.append(Attachment(url=url, name=upload.filename))
        except UploadError as exc:
            logger.warning("Attachment upload rejected for %s: %s", item_id, exc)
            return MutationResult(ok=False, message=str(exc), item_id=item_id)

        # Another write may have landed while uploading.
        item = self._registry.get(item_id)
        if item is None:
            return self._reject("attach", item_id, "Content not found.")
        attachments = [*item.attachments, *added][:MAX_STORED_ATTACHMENTS]
        updated = item.model_copy(update={"attachments": attachments})
        if not await self._apply("attach", updated, {"attachments"}):
            return MutationResult(
                ok=False, message="Failed to save attachments. Please try again.", item_id=item_id
            )
        await self._log_activity(
            messages.attached_activity(self._actor.name, item.title, len(added)), item_id
        )
        return _ok(item_id, f"{len(added)} attachment(s) added")

    async def add_comment(self, item_id: str, text: str) -> MutationResult:
        text = text.strip()
        if not text:
            return self._reject("comment", item_id, "Comment cannot be empty.")
        if len(text) > COMMENT_MAX_LENGTH:
            return self._reject(
                "comment", item_id, f"Comment cannot exceed {COMMENT_MAX_LENGTH} characters."
            )
        item = self._registry.get(item_id)
        if item is None:
            return self._reject("comment", item_id, "Content not found.")

        comment = Comment(
            user_id=self._actor.uid,
            user_name=self._actor.name,
            user_photo=self._actor.photo_url,
            text=text,
            timestamp=self._clock(),
        )
        updated = item.model_copy(update={"comments": [*item.comments, comment]})
        snapshot = self._registry.snapshot()
        self._registry.upsert(item_id, updated)
        written = await self._commit(
            "comment",
            item_id,
            snapshot,
            lambda: self._projects.append_to_content(
                self._project_id,
                self._channel,
                item_id,
                "comments",
                comment.model_dump(mode="json"),
            ),
        )
        if not written:
            return MutationResult(
                ok=False, message="Failed to add comment. Please try again.", item_id=item_id
            )
        await self._log_activity(messages.commented_activity(self._actor.name, item.title), item_id)
        if self._fanout is not None:
            await self._notify(
                self._fanout.notify_comment(
                    self._project_id, self._actor, updated, text, instance=self._channel
                )
            )
        return _ok(item_id, comment.id)

    async def delete_comment(self, item_id: str, comment_id: str) -> MutationResult:
        item = self._registry.get(item_id)
        if item is None:
            return self._reject("delete comment", item_id, "Content not found.")
        target = next((comment for comment in item.comments if comment.id == comment_id), None)
        if target is None:
            return self._reject("delete comment", item_id, "Comment not found.")
        if target.user_id != self._actor.uid:
            return self._reject("delete comment", item_id, "You can only delete your own comments.")

        comments = [comment for comment in item.comments if comment.id != comment_id]
        updated = item.model_copy(update={"comments": comments})
        if not await self._apply("delete comment", updated, {"comments"}):
            return MutationResult(
                ok=False, message="Failed to delete comment. Please try again.", item_id=item_id
            )
        return _ok(item_id)

    async def delete_item(self, item_id: str) -> MutationResult:
        item = self._registry.get(item_id)
        if item is None:
            return self._reject("delete", item_id, "Content not found.")

        snapshot = self._registry.snapshot()
        self._registry.remove(item_id)
        if self._on_item_deleted is not None:
            self._on_item_deleted(item_id)
        written = await self._commit(
            "delete",
            item_id,
            snapshot,
            lambda: self._projects.delete_content(self._project_id, self._channel, [item_id]),
        )
        if not written:
            return MutationResult(
                ok=False, message="Failed to delete content. Please try again.", item_id=item_id
            )
        await self._log_activity(messages.deleted_activity(self._actor.name, item.title), item_id)
        return _ok(item_id, "Content deleted")

    # Internals

    def _check_draft(self, draft: ContentDraft, upload: Upload | None) -> None:
        if not draft.title.strip():
            raise MutationRejectedError("Title is required.")
        if draft.label is None:
            raise MutationRejectedError("Label is required.")
        if draft.content_type is None:
            raise MutationRejectedError("Content type is required.")
        if upload is None:
            raise MutationRejectedError("Please upload an image or video.")
        if draft.content_type.requires_embed and not draft.video_embed.strip():
            raise MutationRejectedError("A video embed link is required for reels and videos.")
        if not is_valid_location(draft.location):
            raise MutationRejectedError("Invalid location.")
        if draft.location != POOL and self._registry.occupant(draft.location) is not None:
            raise MutationRejectedError("That date already has content scheduled.")

    async def _apply(self, operation: str, updated: ContentItem, fields: set[str]) -> bool:
        """Optimistically upsert ``updated`` and patch ``fields`` remotely."""
        snapshot = self._registry.snapshot()
        self._registry.upsert(updated.id, updated)
        return await self._commit(
            operation,
            updated.id,
            snapshot,
            lambda: self._projects.patch_content(
                self._project_id, self._channel, updated.id, updated.field_values(fields)
            ),
        )

    async def _commit(
        self,
        operation: str,
        item_id: str,
        snapshot: dict[str, ContentItem],
        write: Callable[[], Awaitable[None]],
    ) -> bool:
        self._tracker.begin(item_id)
        try:
            await write()
        except Exception:
            logger.exception("%s failed for %s; rolling back", operation.capitalize(), item_id)
            self._registry.restore(snapshot)
            return False
        finally:
            self._tracker.end(item_id)
        logger.info("%s committed for %s", operation.capitalize(), item_id)
        return True

    def _reject(self, operation: str, item_id: str, message: str) -> MutationResult:
        logger.info("Rejected %s for %s: %s", operation, item_id or "<new>", message)
        return MutationResult(ok=False, message=message, item_id=item_id)

    def _release_approval_guard(self, item_id: str) -> None:
        seconds = self._sync.approval_guard_seconds
        if seconds <= 0:
            self._approvals_in_flight.discard(item_id)
            return
        self._guard_timers.schedule(
            item_id, seconds, lambda: self._approvals_in_flight.discard(item_id)
        )

    async def _log_activity(self, message: str, item_id: str) -> None:
        if self._activities is None:
            return
        try:
            await self._activities.log(
                self._project_id,
                message,
                ActivityActor(uid=self._actor.uid, display_name=self._actor.name),
                channel=self._channel,
                content_id=item_id,
            )
        except Exception:  # noqa: BLE001
            logger.warning("Failed to log activity for %s", item_id, exc_info=True)

    async def _notify(self, delivery: Awaitable[int]) -> None:
        try:
            await delivery
        except Exception:  # noqa: BLE001
            logger.warning("Notification fanout failed", exc_info=True)
