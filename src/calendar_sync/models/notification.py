"""Notification document model - one record per recipient per event."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from calendar_sync.models.base import DocumentBase, utcnow


class NotificationType(StrEnum):
    COMMENT = "comment"
    APPROVAL = "approval"
    EDIT = "edit"
    STATUS_CHANGE = "status_change"


class NotificationMetadata(BaseModel):
    content_id: str = ""
    actor_id: str = ""
    actor_name: str = ""
    comment: str = ""
    old_status: str = ""
    new_status: str = ""
    content_title: str = ""
    content_location: str = ""
    edit_details: list[str] = Field(default_factory=list)
    instance: str = ""


class NotificationRecord(DocumentBase):
    """A notification in a recipient's inbox (partitioned by /recipient_id)."""

    recipient_id: str
    project_id: str
    type: NotificationType
    message: str
    metadata: NotificationMetadata = Field(default_factory=NotificationMetadata)
    timestamp: datetime = Field(default_factory=utcnow)
    read: bool = False
    count: int = 1
    last_comment: str = ""
