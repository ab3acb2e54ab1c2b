"""Coerce raw project-document payloads into typed content items.

This is the only place where untyped store data is accepted. Everything that
leaves this module is a fully populated ``ContentItem``; items that are still
unusable afterwards (no media, no title, bad location) are left for the
sweeper to remove.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from calendar_sync.models.base import utcnow
from calendar_sync.models.content import (
    MAX_STORED_ATTACHMENTS,
    POOL,
    Attachment,
    Comment,
    ContentItem,
    ContentType,
    Label,
)

logger = logging.getLogger(__name__)

# Epoch numbers at or above this are treated as milliseconds.
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000


def coerce_timestamp(value: object, *, now: datetime | None = None) -> datetime:
    """Turn a provider timestamp, ISO string, epoch number or datetime into an aware datetime.

    Anything unparseable falls back to ``now``.
    """
    fallback = now or utcnow()
    if value is None or value == "":
        return fallback
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        if isinstance(seconds, int | float) and isinstance(nanos, int | float):
            return _from_epoch(seconds + nanos / 1_000_000_000, fallback)
        return fallback
    if isinstance(value, bool):
        return fallback
    if isinstance(value, int | float):
        if abs(value) >= _EPOCH_MILLIS_THRESHOLD:
            value = value / 1000
        return _from_epoch(value, fallback)
    if isinstance(value, str):
        text = value.strip()
        try:
            return coerce_timestamp(float(text), now=fallback)
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return fallback
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return fallback


def _from_epoch(seconds: float, fallback: datetime) -> datetime:
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return fallback


def _text(raw: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str):
            return value
    return ""


def _label(value: object, item_id: str) -> Label:
    if isinstance(value, str):
        try:
            return Label(value)
        except ValueError:
            pass
    if value:
        logger.debug("Unknown label %r on %s; using default", value, item_id)
    return Label.READY_FOR_APPROVAL


def _content_type(value: object, item_id: str) -> ContentType:
    if isinstance(value, str):
        try:
            return ContentType(value.strip().lower())
        except ValueError:
            pass
    if value:
        logger.debug("Unknown content type %r on %s; using default", value, item_id)
    return ContentType.PHOTO


def _location(value: object) -> str:
    if value is None or value == "":
        return POOL
    if isinstance(value, str):
        return value
    return ""


def _attachments(value: object) -> list[Attachment]:
    if not isinstance(value, list):
        return []
    attachments: list[Attachment] = []
    for entry in value:
        if isinstance(entry, dict) and isinstance(entry.get("url"), str) and entry["url"]:
            name = entry.get("name")
            attachments.append(Attachment(url=entry["url"], name=name if isinstance(name, str) else ""))
    return attachments[:MAX_STORED_ATTACHMENTS]


def _comments(value: object, now: datetime) -> list[Comment]:
    if not isinstance(value, list):
        return []
    comments: list[Comment] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        data = {key: val for key, val in entry.items() if val is not None}
        data["timestamp"] = coerce_timestamp(entry.get("timestamp"), now=now)
        for legacy, current in (("userId", "user_id"), ("userName", "user_name"), ("userPhoto", "user_photo")):
            if legacy in data and current not in data:
                data[current] = data.pop(legacy)
        try:
            comments.append(Comment.model_validate(data))
        except ValidationError:
            logger.debug("Dropping malformed comment %r", entry.get("id"))
    return comments


def normalize_item(item_id: str, raw: object, *, now: datetime | None = None) -> ContentItem:
    """Build a ``ContentItem`` from one raw entry of a channel map."""
    now = now or utcnow()
    if not isinstance(raw, dict):
        logger.debug("Content entry %s is not a map", item_id)
        return ContentItem(id=item_id, media_url="", title="", location="", last_moved=now)
    return ContentItem(
        id=item_id,
        media_url=_text(raw, "media_url", "url"),
        title=_text(raw, "title"),
        description=_text(raw, "description"),
        comment=_text(raw, "comment"),
        caption=_text(raw, "caption"),
        video_embed=_text(raw, "video_embed", "videoEmbed"),
        label=_label(raw.get("label"), item_id),
        content_type=_content_type(raw.get("content_type", raw.get("contentType")), item_id),
        location=_location(raw.get("location")),
        last_moved=coerce_timestamp(raw.get("last_moved", raw.get("lastMoved")), now=now),
        attachments=_attachments(raw.get("attachments")),
        comments=_comments(raw.get("comments"), now),
    )


def normalize_channel(document: dict[str, Any] | None, channel: str) -> dict[str, ContentItem]:
    """Extract and normalize the content map of one channel of a project document."""
    if not document:
        return {}
    channels = document.get("channels")
    if not isinstance(channels, dict):
        return {}
    entries = channels.get(channel)
    if not isinstance(entries, dict):
        return {}
    now = utcnow()
    return {str(item_id): normalize_item(str(item_id), raw, now=now) for item_id, raw in entries.items()}
