"""Data models for Cosmos DB document types."""

from calendar_sync.models.activity import ActivityActor, ActivityEntry
from calendar_sync.models.content import (
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
from calendar_sync.models.notification import (
    NotificationMetadata,
    NotificationRecord,
    NotificationType,
)
from calendar_sync.models.project import Channel, Member, Project

__all__ = [
    "POOL",
    "ActivityActor",
    "ActivityEntry",
    "Attachment",
    "Channel",
    "Comment",
    "ContentItem",
    "ContentType",
    "Label",
    "Member",
    "NotificationMetadata",
    "NotificationRecord",
    "NotificationType",
    "Project",
    "is_valid_location",
    "parse_slot_key",
    "slot_key",
]
