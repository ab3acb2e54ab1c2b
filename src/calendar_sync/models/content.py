"""Content item model - a single schedulable card on the calendar or in the pool."""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from calendar_sync.models.base import utcnow

POOL = "pool"
MAX_STORED_ATTACHMENTS = 10
COMMENT_MAX_LENGTH = 5000

_SLOT_KEY_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


class Label(StrEnum):
    APPROVED = "Approved"
    NEEDS_REVISION = "Needs Revision"
    READY_FOR_APPROVAL = "Ready for Approval"
    SCHEDULED = "Scheduled"


class ContentType(StrEnum):
    PHOTO = "photo"
    REEL = "reel"
    VIDEO = "video"
    CAROUSEL = "carousel"

    @property
    def requires_embed(self) -> bool:
        return self in (ContentType.REEL, ContentType.VIDEO)


class Attachment(BaseModel):
    url: str
    name: str = ""


class Comment(BaseModel):
    """A comment left on a card by a project member."""

    id: str = Field(default_factory=lambda: f"comment_{uuid.uuid4().hex[:12]}")
    user_id: str = ""
    user_name: str = ""
    user_photo: str = ""
    text: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


def slot_key(year: int, month: int, day: int) -> str:
    """Build a calendar slot key. ``month`` is zero-indexed."""
    return f"{year}-{month}-{day}"


def parse_slot_key(key: object) -> date | None:
    """Return the calendar date for a slot key, or None if it is malformed."""
    if not isinstance(key, str):
        return None
    match = _SLOT_KEY_RE.match(key)
    if match is None:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month + 1, day)
    except ValueError:
        return None


def is_valid_location(location: object) -> bool:
    return location == POOL or parse_slot_key(location) is not None


class ContentItem(BaseModel):
    """A card scheduled in a channel of a project.

    Every field carries a concrete value so that the serialized form never
    contains ``None`` where the store expects a string or list.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    media_url: str = ""
    title: str = ""
    description: str = ""
    comment: str = ""
    caption: str = ""
    video_embed: str = ""
    label: Label = Label.READY_FOR_APPROVAL
    content_type: ContentType = ContentType.PHOTO
    location: str = POOL
    last_moved: datetime = Field(default_factory=utcnow)
    attachments: list[Attachment] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)

    @property
    def in_pool(self) -> bool:
        return self.location == POOL

    @property
    def slot_date(self) -> date | None:
        return parse_slot_key(self.location)

    def invalid_reason(self) -> str | None:
        """Return why this item cannot be displayed, or None when it is valid."""
        if not self.media_url.strip():
            return "missing media url"
        if not self.title.strip():
            return "missing title"
        if not is_valid_location(self.location):
            return f"malformed location {self.location!r}"
        return None

    def to_document(self) -> dict[str, Any]:
        """Serialize for storage under ``channels.<channel>.<id>``."""
        return self.model_dump(mode="json", exclude={"id"})

    def field_values(self, fields: set[str] | list[str]) -> dict[str, Any]:
        """Serialize only the given fields, for minimal patches."""
        return self.model_dump(mode="json", include=set(fields))
