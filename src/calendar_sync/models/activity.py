"""Activity log entry - a human-readable line per successful mutation."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from calendar_sync.models.base import DocumentBase, utcnow


class ActivityActor(BaseModel):
    uid: str
    display_name: str = ""


class ActivityEntry(DocumentBase):
    """An entry in a project's activity log (partitioned by /project_id)."""

    project_id: str
    channel: str = ""
    content_id: str = ""
    message: str
    actor: ActivityActor
    timestamp: datetime = Field(default_factory=utcnow)
